import math

from geo_engine.models import GeoPoint

EARTH_RADIUS_METERS = 6_371_000


def great_circle_distance_meters(start_lat: float, start_lng: float, end_lat: float, end_lng: float) -> float:
    phi_1 = math.radians(start_lat)
    phi_2 = math.radians(end_lat)
    half_delta_phi = math.radians(end_lat - start_lat) / 2
    half_delta_lambda = math.radians(end_lng - start_lng) / 2

    a = math.sin(half_delta_phi) ** 2 + math.cos(phi_1) * math.cos(phi_2) * math.sin(half_delta_lambda) ** 2
    # rounding can push ``a`` marginally past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def haversine_distance_meters(start: GeoPoint, end: GeoPoint) -> float:
    return great_circle_distance_meters(start.lat, start.lng, end.lat, end.lng)
