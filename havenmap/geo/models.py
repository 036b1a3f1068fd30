"""Core value types for location resolution and proximity search."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalise_query(text: Optional[str]) -> str:
    """Return the cache identity for free-text place names."""
    if not text:
        return ""
    return text.strip().lower()


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"longitude out of range: {self.lng}")

    def as_lng_lat(self) -> list[float]:
        """Return the pair in GeoJSON axis order."""
        return [self.lng, self.lat]

    @classmethod
    def from_lng_lat(cls, pair: Sequence[float]) -> "Coordinate":
        if len(pair) < 2:
            raise ValueError(f"expected [lng, lat], got {pair!r}")
        return cls(lat=float(pair[1]), lng=float(pair[0]))

    @classmethod
    def parse(cls, text: str) -> "Coordinate":
        """Parse a ``"lat,lng"`` string as typed on the command line."""
        parts = [part.strip() for part in text.split(",")]
        if len(parts) != 2:
            raise ValueError(f"expected 'lat,lng', got {text!r}")
        return cls(lat=float(parts[0]), lng=float(parts[1]))


RadiusPolygon = Tuple[Coordinate, ...]


@dataclass(frozen=True, slots=True)
class GazetteerEntry:
    """A static place name and its representative coordinate."""

    name: str
    coordinate: Coordinate


@dataclass(frozen=True)
class EntityPosition:
    """An entity's resolved base point and the obfuscated point shown on maps.

    ``located`` is False when the base point is only the fallback placeholder;
    radius filters treat such entities as having an unknown location.
    """

    entity_id: str
    base: Coordinate
    jittered: Coordinate
    metadata: Dict[str, Any] = field(default_factory=dict)
    located: bool = True


class EntityRecord(BaseModel):
    """An entity handed in by the profile store: an id plus free-text location."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    location_text: Optional[str] = Field(default=None, alias="location_name")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value


class ProximityQuery(BaseModel):
    """Search centre and radius supplied by the user's search preferences."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    center: Coordinate
    radius_km: Optional[float] = None

    @field_validator("radius_km")
    @classmethod
    def _drop_empty_radius(cls, value: Optional[float]) -> Optional[float]:
        # A zero or negative radius from preferences means "no filter".
        if value is not None and value <= 0:
            return None
        return value

    @field_validator("center", mode="before")
    @classmethod
    def _coerce_center(cls, value: object) -> object:
        if isinstance(value, Coordinate):
            return value
        if isinstance(value, dict):
            if "lat" not in value or "lng" not in value:
                raise ValueError("center requires 'lat' and 'lng'")
            return Coordinate(lat=float(value["lat"]), lng=float(value["lng"]))
        if isinstance(value, str):
            return Coordinate.parse(value)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return Coordinate(lat=float(value[0]), lng=float(value[1]))
        raise ValueError(f"unsupported center value: {value!r}")

    @property
    def active(self) -> bool:
        """True when a radius filter should be applied."""
        return self.radius_km is not None
