"""Tracing helpers for fetch and extraction stages."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def _logger() -> structlog.stdlib.BoundLogger:
    return structlog.get_logger("propscrape.trace")


def set_context(*, run_id: str, job_id: str, trigger: str) -> None:
    bind_contextvars(run_id=run_id, job_id=job_id, trigger=trigger)
    _logger().debug("trace_context", run_id=run_id, job_id=job_id, trigger=trigger)


def clear_context() -> None:
    clear_contextvars()


@contextlib.contextmanager
def span(*, name: str, url: Optional[str] = None) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        _logger().info("trace_span", span=name, url=url, elapsed_ms=elapsed_ms)


def log_fetch_result(*, url: str, status: int, bytes_read: int, elapsed_ms: int) -> None:
    _logger().info(
        "fetch_result",
        url=url,
        status=status,
        bytes=bytes_read,
        elapsed_ms=elapsed_ms,
    )


def log_fetch_failure(*, url: str, reason: str) -> None:
    _logger().warning("fetch_failure", url=url, reason=reason)
