"""Deterministic, identity-seeded position obfuscation.

Each entity is shown at its resolved base point shifted by an offset derived
only from the entity id. The offset is recomputed on every call and never
stored, so the displayed pin is stable between renders while the true point is
never handed to a map layer.

This is a browsing-privacy heuristic, not a security boundary: anyone who
knows this algorithm and an entity id can recompute the offset and recover the
base point exactly. Repeated queries reveal nothing extra because the output
never varies.
"""
from __future__ import annotations

import hashlib
import math
from typing import Tuple

from havenmap.geo.models import Coordinate
from havenmap.geo.proximity import EARTH_RADIUS_KM, KM_PER_DEGREE_LAT, distance_km, km_per_degree_lng

_MASK64 = (1 << 64) - 1
_KM_PER_DEGREE_SPHERE = 2 * math.pi * EARTH_RADIUS_KM / 360.0
# Latitude offsets use the 110.574 km/degree figure, which is shorter than a
# degree on the haversine sphere; shrink the radial draw so the great-circle
# displacement stays within max_km.
_RADIAL_SCALE = KM_PER_DEGREE_LAT / _KM_PER_DEGREE_SPHERE
_MAX_SHRINK_STEPS = 16
_SHRINK_MARGIN = 0.999999


def seed_for(entity_id: str) -> int:
    """Stable 64-bit seed for an entity id."""
    digest = hashlib.sha256(entity_id.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def _splitmix64(value: int) -> int:
    z = (value + 0x9E3779B97F4A7C15) & _MASK64
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
    return z ^ (z >> 31)


def unit_draw(seed: int) -> float:
    """Map a seed to a float in [0, 1) using the top 53 bits of SplitMix64."""
    return (_splitmix64(seed & _MASK64) >> 11) / float(1 << 53)


def polar_offset(entity_id: str, max_km: float) -> Tuple[float, float]:
    """Return ``(angle_radians, distance_km)`` for an entity."""
    seed = seed_for(entity_id)
    angle = unit_draw(seed) * 2 * math.pi
    distance = unit_draw(seed + 1) * max_km
    return angle, distance


def jitter(base: Coordinate, entity_id: str, max_km: float) -> Coordinate:
    """Shift ``base`` by up to ``max_km`` in a direction fixed by ``entity_id``."""
    if max_km <= 0:
        return base
    angle, distance = polar_offset(entity_id, max_km)
    distance *= _RADIAL_SCALE
    delta_lat = distance * math.cos(angle) / KM_PER_DEGREE_LAT
    lng_scale = km_per_degree_lng(base.lat)
    delta_lng = distance * math.sin(angle) / lng_scale if lng_scale > 1e-9 else 0.0

    # The flat-earth degree conversion overshoots at high latitudes and large
    # radii; pull the offset back along the same bearing until it fits.
    scale = 1.0
    for _ in range(_MAX_SHRINK_STEPS):
        moved = _shift(base, delta_lat * scale, delta_lng * scale)
        travelled = distance_km(base, moved)
        if travelled <= max_km:
            return moved
        scale *= max_km / travelled * _SHRINK_MARGIN
    return base


def _shift(base: Coordinate, delta_lat: float, delta_lng: float) -> Coordinate:
    lat = max(-90.0, min(90.0, base.lat + delta_lat))
    lng = base.lng + delta_lng
    if not -180.0 <= lng <= 180.0:
        lng = (lng + 180.0) % 360.0 - 180.0
    return Coordinate(lat=lat, lng=lng)


class PositionJitter:
    """Callable bound to a fixed obfuscation radius."""

    def __init__(self, max_km: float = 1.0) -> None:
        if max_km < 0:
            raise ValueError(f"max_km must be non-negative, got {max_km}")
        self.max_km = max_km

    def __call__(self, base: Coordinate, entity_id: str) -> Coordinate:
        return jitter(base, entity_id, self.max_km)
