"""In-process counters for fetches, extraction and runs."""
from __future__ import annotations

import contextlib
import time
from collections import Counter
from typing import Dict, Iterator, Tuple

import structlog

LOGGER = structlog.get_logger(__name__)

DEFAULT_COUNTERS: Tuple[str, ...] = (
    "pages_fetched",
    "http_2xx",
    "http_3xx",
    "http_4xx",
    "http_5xx",
    "fetch_failures",
    "containers_found",
    "degraded_extractions",
    "records_skipped",
    "records_persisted",
    "duplicates",
    "persistence_errors",
    "runs_completed",
    "runs_failed",
    "run_duration_ms",
)


class MetricsRegistry:
    """Mutable counters shared by every run of one pipeline.

    All counters start at zero so snapshots always carry the full set of keys.
    """

    def __init__(self) -> None:
        self._counters: Counter[str] = Counter({name: 0 for name in DEFAULT_COUNTERS})

    def incr(self, name: str, value: int = 1) -> None:
        self._counters[name] += value

    def get(self, name: str) -> int:
        return self._counters[name]

    def snapshot(self) -> Dict[str, int]:
        return dict(sorted(self._counters.items()))


@contextlib.contextmanager
def record_duration(registry: MetricsRegistry, metric_name: str) -> Iterator[None]:
    """Add the wall time of the block, in milliseconds, to ``metric_name``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        registry.incr(metric_name, elapsed_ms)
        LOGGER.debug("duration_recorded", metric=metric_name, duration_ms=elapsed_ms)
