import pytest

from geo_engine.distance import haversine_distance_meters
from geo_engine.geofence import distance_if_inside_radius
from geo_engine.models import GeoPoint


def test_point_inside_radius_returns_distance() -> None:
    center = GeoPoint(lat=52.5200, lng=13.4050)
    nearby = GeoPoint(lat=52.5205, lng=13.4054)
    distance = distance_if_inside_radius(center, nearby, radius_meters=100)
    assert distance is not None
    assert distance == pytest.approx(haversine_distance_meters(center, nearby))


def test_point_outside_radius() -> None:
    center = GeoPoint(lat=52.5200, lng=13.4050)
    far = GeoPoint(lat=52.3906, lng=13.0645)
    assert distance_if_inside_radius(center, far, radius_meters=100) is None


def test_radius_boundary_is_inclusive() -> None:
    center = GeoPoint(lat=52.5200, lng=13.4050)
    point = GeoPoint(lat=52.5300, lng=13.4050)
    exact = haversine_distance_meters(center, point)
    assert distance_if_inside_radius(center, point, radius_meters=exact) == exact
    assert distance_if_inside_radius(center, point, radius_meters=exact - 0.01) is None


def test_negative_radius_raises() -> None:
    center = GeoPoint(lat=52.5200, lng=13.4050)
    with pytest.raises(ValueError):
        distance_if_inside_radius(center, center, radius_meters=-1)
