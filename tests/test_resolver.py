import asyncio

import httpx
import pytest

from havenmap.config import Settings
from havenmap.errors import ProviderError
from havenmap.geo.models import Coordinate
from havenmap.resolve.cache import ResolutionCache
from havenmap.resolve.resolver import DEFAULT_COORDINATE, GeocodeResolver

JAN_JUC = Coordinate(lat=-38.3470, lng=144.3010)


class FakeProvider:
    name = "fake"

    def __init__(self, results=None, *, delay=0.0, error=None):
        self.results = results or {}
        self.delay = delay
        self.error = error
        self.calls = []

    async def geocode(self, query):
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.results.get(query)


def test_gazetteer_hit_needs_no_network():
    provider = FakeProvider()
    resolver = GeocodeResolver(provider=provider)
    coordinate = asyncio.run(resolver.resolve("Torquay"))
    assert (coordinate.lng, coordinate.lat) == (144.3256, -38.3305)
    assert provider.calls == []
    assert "torquay" in resolver.cache
    assert resolver.metrics.get("gazetteer_hits") == 1


def test_blank_text_returns_default_without_cache_write():
    provider = FakeProvider()
    resolver = GeocodeResolver(provider=provider)

    async def _run():
        assert await resolver.resolve("") == DEFAULT_COORDINATE
        assert await resolver.resolve("   ") == DEFAULT_COORDINATE
        assert await resolver.resolve(None) == DEFAULT_COORDINATE

    asyncio.run(_run())
    assert provider.calls == []
    assert len(resolver.cache) == 0
    assert resolver.metrics.get("blank_queries") == 3


def test_provider_hit_is_cached_and_second_call_skips_network():
    provider = FakeProvider({"jan juc": JAN_JUC})
    resolver = GeocodeResolver(provider=provider)

    async def _run():
        first = await resolver.resolve("Jan Juc")
        second = await resolver.resolve("  JAN JUC ")
        return first, second

    first, second = asyncio.run(_run())
    assert first == second == JAN_JUC
    assert provider.calls == ["jan juc"]
    assert resolver.metrics.get("cache_hits") == 1


def test_empty_result_falls_back_and_is_not_cached():
    provider = FakeProvider({})
    resolver = GeocodeResolver(provider=provider)

    async def _run():
        first = await resolver.resolve("Nowhere-Atlantis")
        second = await resolver.resolve("Nowhere-Atlantis")
        return first, second

    first, second = asyncio.run(_run())
    assert first == second == DEFAULT_COORDINATE
    assert len(provider.calls) == 2
    assert "nowhere-atlantis" not in resolver.cache
    assert resolver.metrics.get("provider_misses") == 2


def test_provider_errors_are_swallowed():
    for error in (
        ProviderError("x", reason="HTTP 500", status_code=500),
        httpx.ConnectError("refused"),
        RuntimeError("boom"),
    ):
        provider = FakeProvider(error=error)
        resolver = GeocodeResolver(provider=provider)
        assert asyncio.run(resolver.resolve("Fyansford")) == DEFAULT_COORDINATE
        assert len(resolver.cache) == 0
        assert resolver.metrics.get("provider_failures") == 1


def test_timeout_degrades_to_default():
    provider = FakeProvider({"moriac": JAN_JUC}, delay=1.0)
    resolver = GeocodeResolver(provider=provider, timeout=0.05)
    assert asyncio.run(resolver.resolve("Moriac")) == DEFAULT_COORDINATE
    assert "moriac" not in resolver.cache
    assert resolver.metrics.get("provider_timeouts") == 1


def test_concurrent_duplicates_share_one_provider_call():
    provider = FakeProvider({"bells beach": JAN_JUC}, delay=0.01)
    resolver = GeocodeResolver(provider=provider)

    async def _run():
        return await asyncio.gather(*(resolver.resolve("Bells Beach") for _ in range(10)))

    results = asyncio.run(_run())
    assert all(result == JAN_JUC for result in results)
    assert provider.calls == ["bells beach"]
    assert resolver.metrics.get("inflight_joins") == 9


def test_failed_inflight_lookup_is_retried_later():
    provider = FakeProvider({}, delay=0.01)
    resolver = GeocodeResolver(provider=provider)

    async def _run():
        await asyncio.gather(*(resolver.resolve("Wallington") for _ in range(3)))
        await resolver.resolve("Wallington")

    asyncio.run(_run())
    assert len(provider.calls) == 2


def test_no_provider_means_gazetteer_only():
    resolver = GeocodeResolver(provider=None, default=Coordinate(lat=-38.1499, lng=144.3580))
    assert asyncio.run(resolver.resolve("Jan Juc")) == Coordinate(lat=-38.1499, lng=144.3580)
    assert asyncio.run(resolver.resolve("Lorne")).lat == -38.5433


def test_warm_cache_is_consulted_first(tmp_path):
    cache = ResolutionCache()
    cache.put("torquay", JAN_JUC)
    resolver = GeocodeResolver(cache=cache, provider=FakeProvider())
    assert asyncio.run(resolver.resolve("Torquay")) == JAN_JUC
    assert resolver.metrics.get("gazetteer_hits") == 0


def test_locate_reports_the_answering_tier():
    provider = FakeProvider({"jan juc": JAN_JUC})
    resolver = GeocodeResolver(provider=provider)

    async def _run():
        return [
            await resolver.locate(""),
            await resolver.locate("Lorne"),
            await resolver.locate("Lorne"),
            await resolver.locate("Jan Juc"),
            await resolver.locate("Nowhere-Atlantis"),
        ]

    sources = [(r.source, r.known) for r in asyncio.run(_run())]
    assert sources == [
        ("blank", False),
        ("gazetteer", True),
        ("cache", True),
        ("provider", True),
        ("default", False),
    ]


def test_from_settings_resolves_default_name_through_gazetteer():
    settings = Settings.model_validate({"geocode": {"provider": "none", "default": {"name": "Geelong"}}})
    resolver = GeocodeResolver.from_settings(settings, httpx.AsyncClient())
    assert resolver.default == Coordinate(lat=-38.1499, lng=144.3580)
    assert asyncio.run(resolver.resolve("")) == Coordinate(lat=-38.1499, lng=144.3580)


def test_provider_lookup_without_provider_is_an_error():
    resolver = GeocodeResolver(provider=None)
    with pytest.raises(RuntimeError):
        asyncio.run(resolver._lookup("lorne"))
