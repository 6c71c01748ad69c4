from geo_engine.distance import haversine_distance_meters
from geo_engine.models import GeoPoint


def distance_if_inside_radius(center: GeoPoint, point: GeoPoint, radius_meters: float) -> float | None:
    """Return the great-circle distance when ``point`` lies within the radius (inclusive)."""
    if radius_meters < 0:
        raise ValueError("radius_meters must be >= 0")
    distance = haversine_distance_meters(center, point)
    return distance if distance <= radius_meters else None
