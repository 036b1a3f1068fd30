"""Factories for geocoding HTTP sessions with outbound filtering."""
from __future__ import annotations

import contextlib
from typing import AsyncIterator, Iterable, Optional, Sequence, Tuple

import httpx
import structlog

LOGGER = structlog.get_logger(__name__)

DEFAULT_BLOCKED_HOSTS: Tuple[str, ...] = (
    "events.mapbox.com",
    "api.mapbox.com/events",
    "mapbox-turnstile",
)


class OutboundFilterTransport(httpx.AsyncBaseTransport):
    """Transport wrapper that short-circuits requests to blocked destinations.

    A rule matches when it appears in ``host + path`` of the outgoing URL, so
    both bare hosts (``events.mapbox.com``) and host/path prefixes
    (``api.mapbox.com/events``) can be listed. Blocked requests get an empty
    ``204`` response and never reach the network.
    """

    def __init__(self, inner: httpx.AsyncBaseTransport, blocked: Iterable[str] = DEFAULT_BLOCKED_HOSTS) -> None:
        self._inner = inner
        self._blocked: Tuple[str, ...] = tuple(rule.lower() for rule in blocked if rule)
        self.blocked_count = 0

    def is_blocked(self, url: httpx.URL) -> bool:
        target = f"{url.host}{url.path}".lower()
        return any(rule in target for rule in self._blocked)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self.is_blocked(request.url):
            self.blocked_count += 1
            LOGGER.debug("outbound_blocked", host=request.url.host, path=request.url.path)
            return httpx.Response(204, request=request)
        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self._inner.aclose()


@contextlib.asynccontextmanager
async def create_geocode_session(
    *,
    user_agent: str,
    timeout: float,
    max_connections: int,
    blocked_hosts: Sequence[str] = DEFAULT_BLOCKED_HOSTS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield a configured ``httpx.AsyncClient`` for the duration of the context."""
    headers = {"User-Agent": user_agent, "Accept-Language": "en"}
    limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections)
    inner = transport or httpx.AsyncHTTPTransport(limits=limits)
    filtered = OutboundFilterTransport(inner, blocked_hosts)
    async with httpx.AsyncClient(headers=headers, timeout=timeout, transport=filtered) as client:
        yield client
