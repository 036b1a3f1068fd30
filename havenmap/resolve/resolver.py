"""Free-text place name to coordinate resolution.

Lookup order, stopping at the first hit:

1. blank text -> default coordinate (nothing cached)
2. session cache
3. gazetteer partial match (cached)
4. external provider, bounded by a timeout (cached on success only)

Any provider failure degrades to the default coordinate; ``resolve`` never
raises.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

import httpx
import structlog

from havenmap.config import Settings
from havenmap.errors import ProviderTimeout, ResolutionMiss
from havenmap.fetch.providers import GeocodeProvider, MapboxProvider, NominatimProvider
from havenmap.geo.gazetteer import Gazetteer, load_gazetteer
from havenmap.geo.models import Coordinate, normalise_query
from havenmap.observability.metrics import MetricsRegistry
from havenmap.observability.tracing import span
from havenmap.resolve.cache import ResolutionCache

LOGGER = structlog.get_logger(__name__)

DEFAULT_COORDINATE = Coordinate(lat=-38.3305, lng=144.3256)

SOURCE_BLANK = "blank"
SOURCE_CACHE = "cache"
SOURCE_GAZETTEER = "gazetteer"
SOURCE_PROVIDER = "provider"
SOURCE_DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class Resolution:
    """A resolved coordinate and the tier that produced it."""

    coordinate: Coordinate
    source: str

    @property
    def known(self) -> bool:
        """False when the coordinate is only the fallback placeholder."""
        return self.source not in (SOURCE_BLANK, SOURCE_DEFAULT)


def build_provider(
    settings: Settings,
    client: httpx.AsyncClient,
    *,
    proximity: Optional[Coordinate] = None,
) -> Optional[GeocodeProvider]:
    """Instantiate the configured provider, or ``None`` for gazetteer-only mode."""
    geocode = settings.geocode
    if geocode.provider == "none":
        return None
    if geocode.provider == "nominatim":
        return NominatimProvider(client, region=geocode.region, country_code=geocode.country_code)
    if geocode.provider == "mapbox":
        if not geocode.mapbox_token:
            raise ValueError("geocode.provider is 'mapbox' but no MAPBOX_TOKEN is configured")
        return MapboxProvider(
            client,
            access_token=geocode.mapbox_token,
            country_code=geocode.country_code,
            proximity=proximity or geocode.default.coordinate(),
        )
    raise ValueError(f"unknown geocode provider: {geocode.provider}")


class GeocodeResolver:
    """Resolves place names through cache, gazetteer and provider tiers."""

    def __init__(
        self,
        *,
        gazetteer: Optional[Gazetteer] = None,
        provider: Optional[GeocodeProvider] = None,
        cache: Optional[ResolutionCache] = None,
        default: Coordinate = DEFAULT_COORDINATE,
        timeout: float = 5.0,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self.gazetteer = gazetteer if gazetteer is not None else Gazetteer.default()
        self.cache = cache if cache is not None else ResolutionCache()
        self.default = default
        self.metrics = metrics or MetricsRegistry()
        self._provider = provider
        self._timeout = timeout
        self._inflight: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient,
        *,
        metrics: Optional[MetricsRegistry] = None,
    ) -> "GeocodeResolver":
        geocode = settings.geocode
        gazetteer = load_gazetteer(geocode.gazetteer_path)
        default = geocode.default.coordinate(gazetteer)
        return cls(
            gazetteer=gazetteer,
            provider=build_provider(settings, client, proximity=default),
            cache=ResolutionCache(geocode.cache_path),
            default=default,
            timeout=geocode.timeout_seconds,
            metrics=metrics,
        )

    async def resolve(self, text: Optional[str]) -> Coordinate:
        """Return a usable coordinate for ``text``; never raises."""
        return (await self.locate(text)).coordinate

    async def locate(self, text: Optional[str]) -> Resolution:
        """Like :meth:`resolve`, but also report which tier produced the answer."""
        self.metrics.incr("resolve_calls")
        key = normalise_query(text)
        if not key:
            self.metrics.incr("blank_queries")
            self.metrics.incr("fallbacks")
            return Resolution(self.default, SOURCE_BLANK)

        cached = self.cache.get(key)
        if cached is not None:
            self.metrics.incr("cache_hits")
            LOGGER.debug("geocode_cache_hit", query=key)
            return Resolution(cached, SOURCE_CACHE)

        entry = self.gazetteer.lookup(key)
        if entry is not None:
            self.metrics.incr("gazetteer_hits")
            LOGGER.debug("geocode_gazetteer_hit", query=key, place=entry.name)
            self.cache.put(key, entry.coordinate)
            return Resolution(entry.coordinate, SOURCE_GAZETTEER)

        if self._provider is None:
            self.metrics.incr("fallbacks")
            LOGGER.info("geocode_fallback", query=key, reason="no provider")
            return Resolution(self.default, SOURCE_DEFAULT)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._lookup(key))
            self._inflight[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            self.metrics.incr("inflight_joins")

        coordinate = await asyncio.shield(task)
        if coordinate is None:
            self.metrics.incr("fallbacks")
            return Resolution(self.default, SOURCE_DEFAULT)
        return Resolution(coordinate, SOURCE_PROVIDER)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _lookup(self, key: str) -> Optional[Coordinate]:
        if self._provider is None:
            raise RuntimeError("provider lookup attempted without a configured provider")
        self.metrics.incr("provider_calls")
        try:
            with span(name="geocode", query=key):
                try:
                    coordinate = await asyncio.wait_for(self._provider.geocode(key), timeout=self._timeout)
                except asyncio.TimeoutError as exc:
                    raise ProviderTimeout(key, self._timeout) from exc
        except ProviderTimeout as exc:
            self.metrics.incr("provider_timeouts")
            self.metrics.incr("provider_failures")
            LOGGER.warning("geocode_provider_timeout", query=key, reason=exc.reason)
            return None
        except (ResolutionMiss, httpx.HTTPError) as exc:
            self.metrics.incr("provider_failures")
            LOGGER.warning("geocode_provider_failure", query=key, reason=getattr(exc, "reason", str(exc)))
            return None
        except Exception:
            self.metrics.incr("provider_failures")
            LOGGER.exception("geocode_provider_error", query=key)
            return None

        if coordinate is None:
            self.metrics.incr("provider_misses")
            LOGGER.info("geocode_provider_miss", query=key)
            return None
        self.metrics.incr("provider_hits")
        self.cache.put(key, coordinate)
        return coordinate
