"""Factories for httpx-backed fetch sessions."""
from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import AsyncIterator, Dict, Optional
from urllib.parse import unquote, urlparse

import httpx

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
DEFAULT_TIMEOUT = 30.0


class FetchSession:
    """Thin wrapper over a shared ``httpx.AsyncClient``.

    ``file://`` URLs are served from disk so fixtures and local snapshots can
    be scraped without a network.
    """

    def __init__(self, client: Optional[httpx.AsyncClient]) -> None:
        self._client = client

    async def fetch(self, url: str, *, headers: Optional[Dict[str, str]] = None, timeout: float = DEFAULT_TIMEOUT) -> httpx.Response:
        """Fetch a URL returning an HTTPX response object."""
        parsed = urlparse(url)
        if parsed.scheme == "file":
            location = unquote((parsed.netloc + parsed.path) or parsed.path)
            target = Path(location)
            if not target.is_absolute():
                target = Path.cwd() / target
            try:
                html = await asyncio.to_thread(target.read_text, encoding="utf-8")
            except OSError as exc:
                raise httpx.RequestError(str(exc), request=httpx.Request("GET", url)) from exc
            return httpx.Response(200, text=html, request=httpx.Request("GET", url))
        if self._client is None:
            raise RuntimeError("No fetch session available")
        return await self._client.get(url, headers=headers, timeout=timeout)


@contextlib.asynccontextmanager
async def create_fetch_session(
    *,
    user_agent: str = DEFAULT_USER_AGENT,
    timeout: float = DEFAULT_TIMEOUT,
    max_connections: int = 10,
) -> AsyncIterator[FetchSession]:
    """Yield a configured `FetchSession` for the duration of the context."""
    headers = {"User-Agent": user_agent}
    limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections)
    async with httpx.AsyncClient(headers=headers, limits=limits, timeout=timeout, follow_redirects=True) as client:
        yield FetchSession(client)
