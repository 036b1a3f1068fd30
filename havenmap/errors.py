"""Exception hierarchy for location resolution.

None of these escape :meth:`GeocodeResolver.resolve`; they exist so providers
and helpers can signal *why* a lookup failed and the resolver can log and count
the reason before degrading to the default coordinate.
"""
from __future__ import annotations


class LocationError(Exception):
    """Base class for location subsystem errors."""


class ResolutionMiss(LocationError):
    """No usable coordinate could be produced for a place name."""

    def __init__(self, query: str, reason: str = "no result") -> None:
        super().__init__(f"{reason}: {query!r}")
        self.query = query
        self.reason = reason


class InvalidLocationText(ResolutionMiss):
    """The place name was empty or whitespace only."""

    def __init__(self, query: str = "") -> None:
        super().__init__(query, reason="blank location text")


class ProviderError(ResolutionMiss):
    """The external geocoding provider failed or answered with garbage."""

    def __init__(self, query: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(query, reason=reason)
        self.status_code = status_code


class ProviderTimeout(ProviderError):
    """The provider did not answer within the configured bound."""

    def __init__(self, query: str, timeout: float) -> None:
        super().__init__(query, reason=f"timed out after {timeout:.1f}s")
        self.timeout = timeout
