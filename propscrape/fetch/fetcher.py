"""Fetching primitive: one bounded request per run, no retries."""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from propscrape.fetch.session import DEFAULT_TIMEOUT, FetchSession
from propscrape.observability.metrics import MetricsRegistry
from propscrape.observability.tracing import log_fetch_failure, log_fetch_result, span
from propscrape.orchestrator.errors import FetchFailure


@dataclass(slots=True)
class Page:
    """A fetched document."""

    url: str
    html: str
    status_code: int
    fetched_at: datetime


async def fetch_markup(
    *,
    session: FetchSession,
    url: str,
    metrics: MetricsRegistry,
    timeout: float = DEFAULT_TIMEOUT,
) -> Page:
    """Fetch ``url`` and return its markup.

    Timeouts, transport errors and non-2xx responses raise ``FetchFailure``.
    """
    try:
        with span(name="fetch", url=url):
            start = time.perf_counter()
            response = await session.fetch(url, timeout=timeout)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
    except httpx.TimeoutException as exc:
        metrics.incr("fetch_failures")
        log_fetch_failure(url=url, reason="timeout")
        raise FetchFailure(url, f"timed out after {timeout:g}s") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        metrics.incr("fetch_failures")
        log_fetch_failure(url=url, reason=str(exc))
        raise FetchFailure(url, str(exc) or exc.__class__.__name__) from exc

    log_fetch_result(
        url=url,
        status=response.status_code,
        bytes_read=len(response.content or b""),
        elapsed_ms=elapsed_ms,
    )
    metrics.incr("pages_fetched")
    metrics.incr(f"http_{response.status_code // 100}xx")

    if not response.is_success:
        metrics.incr("fetch_failures")
        log_fetch_failure(url=url, reason=f"HTTP {response.status_code}")
        raise FetchFailure(url, f"HTTP {response.status_code}", status_code=response.status_code)

    return Page(
        url=url,
        html=response.text,
        status_code=response.status_code,
        fetched_at=datetime.now(timezone.utc),
    )
