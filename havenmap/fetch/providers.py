"""External geocoding providers scoped to a single country/region."""
from __future__ import annotations

import time
from typing import List, Optional, Protocol
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from havenmap.errors import InvalidLocationText, ProviderError
from havenmap.geo.models import Coordinate
from havenmap.observability.tracing import log_provider_result

LOGGER = structlog.get_logger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
MAPBOX_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"


class GeocodeProvider(Protocol):
    """Anything that can turn a place name into at most one coordinate."""

    name: str

    async def geocode(self, query: str) -> Optional[Coordinate]:
        ...


class NominatimPlace(BaseModel):
    lat: float
    lon: float
    display_name: Optional[str] = None


class MapboxFeature(BaseModel):
    center: List[float] = Field(min_length=2)
    place_name: Optional[str] = None
    text: Optional[str] = None


class MapboxResponse(BaseModel):
    features: List[MapboxFeature] = Field(default_factory=list)


async def _get_json(client: httpx.AsyncClient, provider: str, query: str, url: str, params: dict) -> object:
    start = time.perf_counter()
    try:
        response = await client.get(url, params=params)
    except httpx.TimeoutException as exc:
        raise ProviderError(query, reason=f"{provider} timeout: {exc}") from exc
    except httpx.HTTPError as exc:
        raise ProviderError(query, reason=f"{provider} transport error: {exc}") from exc
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    log_provider_result(provider=provider, query=query, status=response.status_code, elapsed_ms=elapsed_ms)
    if not response.is_success:
        raise ProviderError(query, reason=f"{provider} returned HTTP {response.status_code}", status_code=response.status_code)
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(query, reason=f"{provider} returned a non-JSON body") from exc


class NominatimProvider:
    """OpenStreetMap Nominatim search; free, no API key."""

    name = "nominatim"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        region: str = "Australia",
        country_code: str = "au",
        url: str = NOMINATIM_URL,
    ) -> None:
        self._client = client
        self._region = region
        self._country_code = country_code.lower()
        self._url = url

    async def geocode(self, query: str) -> Optional[Coordinate]:
        if not query.strip():
            raise InvalidLocationText(query)
        params = {
            "q": f"{query.strip()}, {self._region}" if self._region else query.strip(),
            "format": "json",
            "limit": 1,
            "countrycodes": self._country_code,
        }
        payload = await _get_json(self._client, self.name, query, self._url, params)
        if not isinstance(payload, list):
            raise ProviderError(query, reason="nominatim body is not a list")
        if not payload:
            return None
        try:
            place = NominatimPlace.model_validate(payload[0])
            return Coordinate(lat=place.lat, lng=place.lon)
        except (ValidationError, ValueError) as exc:
            raise ProviderError(query, reason=f"nominatim result malformed: {exc}") from exc


class MapboxProvider:
    """Mapbox Places forward and reverse geocoding, biased toward a home point."""

    name = "mapbox"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        access_token: str,
        country_code: str = "au",
        proximity: Optional[Coordinate] = None,
        types: str = "address,poi,place",
        url: str = MAPBOX_URL,
    ) -> None:
        if not access_token:
            raise ValueError("MapboxProvider requires an access token")
        self._client = client
        self._token = access_token
        self._country_code = country_code.upper()
        self._proximity = proximity
        self._types = types
        self._url = url.rstrip("/")

    def _parse(self, query: str, payload: object) -> List[MapboxFeature]:
        try:
            return MapboxResponse.model_validate(payload).features
        except ValidationError as exc:
            raise ProviderError(query, reason=f"mapbox body malformed: {exc}") from exc

    async def geocode(self, query: str) -> Optional[Coordinate]:
        if not query.strip():
            raise InvalidLocationText(query)
        params = {
            "access_token": self._token,
            "country": self._country_code,
            "types": self._types,
            "limit": 1,
        }
        if self._proximity is not None:
            params["proximity"] = f"{self._proximity.lng},{self._proximity.lat}"
        url = f"{self._url}/{quote(query.strip(), safe='')}.json"
        features = self._parse(query, await _get_json(self._client, self.name, query, url, params))
        if not features:
            return None
        try:
            return Coordinate.from_lng_lat(features[0].center)
        except ValueError as exc:
            raise ProviderError(query, reason=f"mapbox center invalid: {exc}") from exc

    async def reverse(self, coordinate: Coordinate) -> Optional[str]:
        """Return the place name of the best feature at a coordinate."""
        label = f"{coordinate.lng},{coordinate.lat}"
        url = f"{self._url}/{label}.json"
        features = self._parse(label, await _get_json(self._client, self.name, label, url, {"access_token": self._token}))
        if not features:
            return None
        return features[0].place_name or features[0].text
