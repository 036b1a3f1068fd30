import pytest

from havenmap.geo.models import Coordinate
from havenmap.geo.proximity import bounding_box, build_radius_polygon, distance_km, within_radius

TORQUAY = Coordinate(lat=-38.3305, lng=144.3256)
GEELONG = Coordinate(lat=-38.1499, lng=144.3580)


def test_haversine_known_distances():
    assert distance_km(TORQUAY, TORQUAY) == 0.0
    assert distance_km(TORQUAY, GEELONG) == pytest.approx(20.28, abs=0.2)
    assert distance_km(TORQUAY, GEELONG) == distance_km(GEELONG, TORQUAY)
    one_degree = distance_km(Coordinate(lat=0.0, lng=0.0), Coordinate(lat=0.0, lng=1.0))
    assert one_degree == pytest.approx(111.195, abs=0.001)


def test_within_radius_fails_open_for_unknown_points():
    assert within_radius(TORQUAY, None, 0.001)
    assert within_radius(TORQUAY, None, 10_000)


def test_within_radius_boundary_is_inclusive():
    point = Coordinate(lat=TORQUAY.lat + 0.09, lng=TORQUAY.lng)
    exact = distance_km(TORQUAY, point)
    assert within_radius(TORQUAY, point, exact)
    assert not within_radius(TORQUAY, point, exact - 0.0001)


def test_within_radius_high_latitude_uses_great_circle():
    center = Coordinate(lat=70.0, lng=20.0)
    point = Coordinate(lat=70.0, lng=20.5)
    d = distance_km(center, point)
    assert d == pytest.approx(19.0, abs=0.1)
    assert within_radius(center, point, d)
    assert not within_radius(center, point, d - 0.0001)


def test_radius_polygon_is_closed_ring():
    ring = build_radius_polygon(TORQUAY, 10.0)
    assert len(ring) == 65
    assert ring[0] == ring[-1]
    for point in ring:
        assert distance_km(TORQUAY, point) == pytest.approx(10.0, rel=0.01)


def test_radius_polygon_custom_segments():
    ring = build_radius_polygon(TORQUAY, 2.5, segments=8)
    assert len(ring) == 9
    assert ring[0] == ring[-1]
    with pytest.raises(ValueError):
        build_radius_polygon(TORQUAY, 2.5, segments=2)


def test_bounding_box():
    assert bounding_box([]) is None
    south_west, north_east = bounding_box([TORQUAY, GEELONG])
    assert south_west == Coordinate(lat=TORQUAY.lat, lng=TORQUAY.lng)
    assert north_east == Coordinate(lat=GEELONG.lat, lng=GEELONG.lng)
