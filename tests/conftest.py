from pathlib import Path

import httpx
import pytest

from propscrape.fetch.session import FetchSession
from propscrape.orchestrator.errors import PersistenceError
from propscrape.orchestrator.jobs import Job, SelectorSet
from propscrape.storage.store import InMemoryPropertyStore

FIXTURES = Path(__file__).parent / "fixtures" / "html"


def fixture_url(name: str) -> str:
    return (FIXTURES / name).resolve().as_uri()


class StaticSession(FetchSession):
    """Serves a fixed response, or raises, without touching the network."""

    def __init__(self, *, status: int = 200, body: str = "", error: Exception | None = None):
        super().__init__(client=None)
        self._status = status
        self._body = body
        self._error = error
        self.calls = 0

    async def fetch(self, url: str, *, headers=None, timeout: float = 30.0) -> httpx.Response:  # type: ignore[override]
        self.calls += 1
        if self._error is not None:
            raise self._error
        return httpx.Response(self._status, text=self._body, request=httpx.Request("GET", url))


class FlakyStore(InMemoryPropertyStore):
    """In-memory store that rejects the listed titles."""

    def __init__(self, failing_titles):
        super().__init__()
        self._failing = set(failing_titles)

    async def create(self, record):
        if record.title in self._failing:
            raise PersistenceError("connection reset")
        return await super().create(record)


@pytest.fixture()
def selectors() -> SelectorSet:
    return SelectorSet(
        title=".title",
        address=".address",
        price=".price",
        property_type=".type",
        bedrooms=".beds",
        bathrooms=".baths",
        land_size=".land",
        floor_size=".floor",
        link="a.details",
    )


@pytest.fixture()
def make_job(selectors):
    def _make(url: str = fixture_url("listings.html"), **overrides) -> Job:
        fields = {
            "name": "Fixture listings",
            "target_url": url,
            "selectors": selectors,
            "schedule": "0 2 * * *",
        }
        fields.update(overrides)
        return Job(**fields)

    return _make
