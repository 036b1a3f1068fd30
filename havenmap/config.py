"""Settings loaded from ``config/settings.toml`` and the environment."""
from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from havenmap.fetch.session import DEFAULT_BLOCKED_HOSTS
from havenmap.geo.gazetteer import Gazetteer
from havenmap.geo.models import Coordinate

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")
DEFAULT_LOGGING_PATH = Path("config/logging.yaml")


class DefaultLocation(BaseModel):
    """Fallback point for blank or unresolvable text.

    ``name`` is looked up in the gazetteer unless both ``lat`` and ``lng`` are
    given, in which case they win.
    """

    name: str = "Torquay"
    lat: Optional[float] = None
    lng: Optional[float] = None

    def coordinate(self, gazetteer: Optional[Gazetteer] = None) -> Coordinate:
        if self.lat is not None and self.lng is not None:
            return Coordinate(lat=self.lat, lng=self.lng)
        table = gazetteer if gazetteer is not None else Gazetteer.default()
        found = table.get(self.name)
        if found is None:
            raise ValueError(f"default location {self.name!r} is not in the gazetteer; set lat and lng")
        return found


class GeocodeSettings(BaseModel):
    provider: Literal["nominatim", "mapbox", "none"] = "nominatim"
    region: str = "Australia"
    country_code: str = Field(default="au", min_length=2, max_length=2)
    timeout_seconds: float = Field(default=5.0, gt=0)
    user_agent: str = "HavenApp/1.0"
    max_connections: int = Field(default=10, gt=0)
    default: DefaultLocation = Field(default_factory=DefaultLocation)
    gazetteer_path: Optional[Path] = None
    cache_path: Optional[Path] = None
    blocked_hosts: List[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_HOSTS))
    mapbox_token: Optional[str] = None


class PrivacySettings(BaseModel):
    jitter_km: float = Field(default=1.0, ge=0)


class SearchSettings(BaseModel):
    polygon_segments: int = Field(default=64, ge=3)
    concurrency: Optional[int] = Field(default=None, gt=0)


class Settings(BaseModel):
    geocode: GeocodeSettings = Field(default_factory=GeocodeSettings)
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)
    search: SearchSettings = Field(default_factory=SearchSettings)


def load_settings(path: Path = DEFAULT_SETTINGS_PATH) -> Settings:
    """Read the TOML configuration file; a missing file yields the defaults.

    ``MAPBOX_TOKEN`` from the environment fills ``geocode.mapbox_token`` when
    the file does not set it.
    """
    raw: Dict[str, object] = {}
    if path.exists():
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    settings = Settings.model_validate(raw)
    if not settings.geocode.mapbox_token:
        token = os.getenv("MAPBOX_TOKEN")
        if token:
            settings.geocode.mapbox_token = token
    return settings
