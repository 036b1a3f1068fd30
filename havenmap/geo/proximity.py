"""Great-circle distance, radius membership and radius ring geometry."""
from __future__ import annotations

import math
from typing import Iterable, List, Optional, Tuple

from havenmap.geo.models import Coordinate, RadiusPolygon

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 110.574
KM_PER_DEGREE_LNG_EQUATOR = 111.320
DEFAULT_SEGMENTS = 64


def km_per_degree_lng(lat: float) -> float:
    """Length of one degree of longitude at the given latitude."""
    return KM_PER_DEGREE_LNG_EQUATOR * math.cos(math.radians(lat))


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two points in kilometres."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, h)))


def within_radius(center: Coordinate, point: Optional[Coordinate], radius_km: float) -> bool:
    """Return True when ``point`` lies within ``radius_km`` of ``center``.

    Unknown points pass: an entity without a location is never hidden by a
    radius filter.
    """
    if point is None:
        return True
    return distance_km(center, point) <= radius_km


def build_radius_polygon(
    center: Coordinate,
    radius_km: float,
    segments: int = DEFAULT_SEGMENTS,
) -> RadiusPolygon:
    """Approximate a circle as a closed ring of ``segments + 1`` points."""
    if segments < 3:
        raise ValueError(f"a ring needs at least 3 segments, got {segments}")
    delta_lat = radius_km / KM_PER_DEGREE_LAT
    lng_scale = km_per_degree_lng(center.lat)
    delta_lng = radius_km / lng_scale if lng_scale > 0 else 0.0
    ring: List[Coordinate] = []
    for i in range(segments):
        angle = i * 2 * math.pi / segments
        ring.append(
            Coordinate(
                lat=_clamp_lat(center.lat + delta_lat * math.sin(angle)),
                lng=_wrap_lng(center.lng + delta_lng * math.cos(angle)),
            )
        )
    ring.append(ring[0])
    return tuple(ring)


def bounding_box(points: Iterable[Coordinate]) -> Optional[Tuple[Coordinate, Coordinate]]:
    """Return ``(south_west, north_east)`` corners enclosing all points."""
    pts = list(points)
    if not pts:
        return None
    south = min(p.lat for p in pts)
    north = max(p.lat for p in pts)
    west = min(p.lng for p in pts)
    east = max(p.lng for p in pts)
    return Coordinate(lat=south, lng=west), Coordinate(lat=north, lng=east)


def _clamp_lat(lat: float) -> float:
    return max(-90.0, min(90.0, lat))


def _wrap_lng(lng: float) -> float:
    if -180.0 <= lng <= 180.0:
        return lng
    return (lng + 180.0) % 360.0 - 180.0
