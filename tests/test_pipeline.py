import asyncio

import httpx

from conftest import FIXTURES, FlakyStore, StaticSession
from propscrape.fetch.session import FetchSession
from propscrape.normalize.geo import GeoPoint, GeoResolver
from propscrape.orchestrator.jobs import RunStatus, RunTrigger, SelectorSet
from propscrape.orchestrator.pipeline import ExecutionPipeline
from propscrape.storage.store import InMemoryPropertyStore, SqlitePropertyStore

LISTINGS = (FIXTURES / "listings.html").read_text(encoding="utf-8")


def _pipeline(session, store=None) -> ExecutionPipeline:
    return ExecutionPipeline(session=session, store=store or InMemoryPropertyStore(), timeout=5.0)


def test_run_persists_listings_from_file(make_job):
    store = InMemoryPropertyStore()
    pipeline = _pipeline(FetchSession(client=None), store)
    job = make_job(id="job-1")

    async def scenario():
        return await pipeline.run(job, RunTrigger.SCHEDULED), await store.find_all()

    result, stored = asyncio.run(scenario())

    assert result.status is RunStatus.COMPLETED
    assert result.trigger is RunTrigger.SCHEDULED
    assert result.job_id == "job-1"
    assert result.records_processed == 2
    assert result.errors == []
    assert result.completed_at >= result.started_at

    by_title = {item.title: item for item in stored}
    assert by_title["Modern Family Home"].province == "Gauteng"
    assert by_title["Garden Apartment"].property_type == "unknown"
    assert by_title["Garden Apartment"].price is None
    assert by_title["Modern Family Home"].source_url == "file:///listings/101"
    assert pipeline.metrics.get("records_skipped") == 1
    assert pipeline.metrics.get("records_persisted") == 2


def test_connection_error_fails_run(make_job):
    session = StaticSession(error=httpx.ConnectError("connection refused"))
    result = asyncio.run(_pipeline(session).run(make_job(id="job-1", target_url="https://down.example")))

    assert result.status is RunStatus.FAILED
    assert result.records_processed == 0
    assert len(result.errors) == 1
    assert "https://down.example" in result.errors[0]


def test_timeout_fails_run(make_job):
    session = StaticSession(error=httpx.ReadTimeout("slow"))
    pipeline = _pipeline(session)
    result = asyncio.run(pipeline.run(make_job(id="job-1", target_url="https://slow.example")))

    assert result.status is RunStatus.FAILED
    assert "timed out" in result.errors[0]
    assert pipeline.metrics.get("fetch_failures") == 1


def test_server_error_status_fails_run(make_job):
    session = StaticSession(status=500, body="oops")
    result = asyncio.run(_pipeline(session).run(make_job(id="job-1", target_url="https://broken.example")))

    assert result.status is RunStatus.FAILED
    assert "HTTP 500" in result.errors[0]


def test_partial_persistence_failure_is_still_completed(make_job):
    session = StaticSession(body=LISTINGS)
    store = FlakyStore({"Garden Apartment"})
    result = asyncio.run(_pipeline(session, store).run(make_job(id="job-1", target_url="https://site.example/search")))

    assert result.status is RunStatus.COMPLETED
    assert result.records_processed == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Garden Apartment (https://site.example/listings/102)")


def test_every_record_failing_fails_run(make_job):
    session = StaticSession(body=LISTINGS)
    store = FlakyStore({"Modern Family Home", "Garden Apartment"})
    result = asyncio.run(_pipeline(session, store).run(make_job(id="job-1", target_url="https://site.example/search")))

    assert result.status is RunStatus.FAILED
    assert result.records_processed == 0
    assert len(result.errors) == 2


def test_skipped_containers_are_not_errors(make_job):
    session = StaticSession(body=LISTINGS)
    result = asyncio.run(_pipeline(session).run(make_job(id="job-1", target_url="https://site.example/search")))

    assert result.records_processed == 2
    assert result.errors == []


def test_second_run_deduplicates_by_source_url(make_job):
    session = StaticSession(body=LISTINGS)
    store = InMemoryPropertyStore()
    pipeline = _pipeline(session, store)
    job = make_job(id="job-1", target_url="https://site.example/search")

    async def scenario():
        first = await pipeline.run(job)
        second = await pipeline.run(job)
        return first, second, await store.find_all()

    first, second, stored = asyncio.run(scenario())

    assert first.records_processed == 2
    assert second.status is RunStatus.COMPLETED
    assert second.records_processed == 0
    assert second.errors == []
    assert len(stored) == 2
    assert pipeline.metrics.get("duplicates") == 2


def test_without_link_selector_page_url_is_shared(make_job):
    session = StaticSession(body=LISTINGS)
    store = InMemoryPropertyStore()
    job = make_job(
        id="job-1",
        target_url="https://site.example/search",
        selectors=SelectorSet(title=".title", address=".address"),
    )

    async def scenario():
        return await _pipeline(session, store).run(job), await store.find_all()

    result, stored = asyncio.run(scenario())

    assert result.status is RunStatus.COMPLETED
    assert result.records_processed == 1
    assert [item.source_url for item in stored] == ["https://site.example/search"]


def test_page_without_containers_is_not_an_error(make_job):
    session = StaticSession(body="<html><body><p>No listings today</p></body></html>")
    pipeline = _pipeline(session)
    result = asyncio.run(pipeline.run(make_job(id="job-1", target_url="https://site.example/search")))

    assert result.status is RunStatus.COMPLETED
    assert result.records_processed == 0
    assert pipeline.metrics.get("degraded_extractions") == 1


class FixedGeoResolver(GeoResolver):
    async def resolve(self, address):
        if address.endswith("Gauteng"):
            return GeoPoint(latitude=-26.1, longitude=28.05)
        return None


def test_geocoder_fills_coordinates_before_persist(make_job):
    session = StaticSession(body=LISTINGS)
    store = InMemoryPropertyStore()
    pipeline = ExecutionPipeline(session=session, store=store, geo=FixedGeoResolver())
    job = make_job(id="job-1", target_url="https://site.example/search")

    async def scenario():
        await pipeline.run(job)
        return await store.find_all()

    stored = asyncio.run(scenario())

    assert {(item.latitude, item.longitude) for item in stored} == {(-26.1, 28.05)}
    snapshot = pipeline.metrics.snapshot()
    assert snapshot["records_persisted"] == 2
    assert snapshot["http_2xx"] == 1
    assert snapshot["runs_completed"] == 1


OVERSIZED_PRICE_PAGE = """
<html><body>
  <div class="property-card">
    <h2 class="title">Corner House</h2><div class="address">Pretoria, Gauteng</div>
    <span class="price">R 2,100,000</span><a class="details" href="/a">View</a>
  </div>
  <div class="property-card">
    <h2 class="title">Typo Listing</h2><div class="address">Durban, KwaZulu-Natal</div>
    <span class="price">Ref 123456789012345678901234</span><a class="details" href="/b">View</a>
  </div>
  <div class="property-card">
    <h2 class="title">Hillside Flat</h2><div class="address">Cape Town, Western Cape</div>
    <a class="details" href="/c">View</a>
  </div>
</body></html>
"""


def test_oversized_price_does_not_abort_sqlite_run(make_job, tmp_path):
    store = SqlitePropertyStore(tmp_path / "props.db")
    pipeline = _pipeline(StaticSession(body=OVERSIZED_PRICE_PAGE), store)
    job = make_job(id="job-1", target_url="https://site.example/search")

    async def scenario():
        return await pipeline.run(job), await store.find_all()

    result, stored = asyncio.run(scenario())

    assert result.status is RunStatus.COMPLETED
    assert result.records_processed == 3
    assert result.errors == []
    prices = {item.title: item.price for item in stored}
    assert prices == {"Corner House": 2100000, "Typo Listing": None, "Hillside Flat": None}


def test_store_value_errors_stay_per_record(make_job, tmp_path):
    class OverflowingStore(SqlitePropertyStore):
        async def create(self, record):
            if record.title == "Typo Listing":
                record = record.model_copy(update={"price": 10**24})
            return await super().create(record)

    store = OverflowingStore(tmp_path / "props.db")
    pipeline = _pipeline(StaticSession(body=OVERSIZED_PRICE_PAGE), store)
    job = make_job(id="job-1", target_url="https://site.example/search")

    async def scenario():
        return await pipeline.run(job), await store.find_all()

    result, stored = asyncio.run(scenario())

    assert result.status is RunStatus.COMPLETED
    assert result.records_processed == 2
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Typo Listing (https://site.example/b): Database error")
    assert sorted(item.title for item in stored) == ["Corner House", "Hillside Flat"]


def test_invalid_url_is_a_fetch_failure(make_job):
    pipeline = _pipeline(StaticSession(error=httpx.InvalidURL("Invalid URL 'http://[bad'")))
    result = asyncio.run(pipeline.run(make_job(id="job-1", target_url="http://[bad")))

    assert result.status is RunStatus.FAILED
    assert result.errors[0].startswith("Failed to fetch http://[bad")
