"""Geo primitives: points, great-circle distance and spatial bucketing."""

from geo_engine.distance import EARTH_RADIUS_METERS, great_circle_distance_meters, haversine_distance_meters
from geo_engine.geofence import distance_if_inside_radius
from geo_engine.models import GeoPoint, is_valid_coordinate
from geo_engine.spatial_index import H3SpatialIndex

__all__ = [
    "EARTH_RADIUS_METERS",
    "GeoPoint",
    "H3SpatialIndex",
    "distance_if_inside_radius",
    "great_circle_distance_meters",
    "haversine_distance_meters",
    "is_valid_coordinate",
]
