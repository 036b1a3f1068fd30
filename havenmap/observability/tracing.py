"""Run context and provider-call spans.

``set_context`` binds the batch ``run_id`` into structlog contextvars so every
resolver event in a run carries it. ``span`` and ``log_provider_result`` emit
``trace_span`` and ``provider_result`` events with elapsed
milliseconds.
"""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def _logger() -> structlog.stdlib.BoundLogger:
    return structlog.get_logger("havenmap.trace")


def set_context(*, run_id: str, batch_size: int) -> None:
    bind_contextvars(run_id=run_id, batch_size=batch_size)
    _logger().debug("trace_context", run_id=run_id, batch_size=batch_size)


def clear_context() -> None:
    clear_contextvars()


@contextlib.contextmanager
def span(*, name: str, query: Optional[str] = None) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        _logger().info("trace_span", span=name, query=query, elapsed_ms=elapsed_ms)


def log_provider_result(*, provider: str, query: str, status: int, elapsed_ms: int) -> None:
    _logger().info(
        "provider_result",
        provider=provider,
        query=query,
        status=status,
        elapsed_ms=elapsed_ms,
    )
