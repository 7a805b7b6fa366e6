"""Execution pipeline: fetch, extract, persist, classify."""
from __future__ import annotations

from typing import List, Optional

import structlog

from propscrape.fetch.fetcher import fetch_markup
from propscrape.fetch.session import DEFAULT_TIMEOUT, FetchSession
from propscrape.normalize.geo import GeoResolver
from propscrape.observability.metrics import MetricsRegistry, record_duration
from propscrape.observability.tracing import clear_context, set_context
from propscrape.orchestrator.errors import DuplicateSourceUrl, FetchFailure, PersistenceError
from propscrape.orchestrator.jobs import Job, RunResult, RunStatus, RunTrigger
from propscrape.parse.extractor import extract_candidates
from propscrape.storage.models import CandidateRecord
from propscrape.storage.store import PropertyStore

LOGGER = structlog.get_logger(__name__)


class ExecutionPipeline:
    """Runs one job end to end and reports the outcome as a ``RunResult``.

    A fetch failure ends the run. Problems with individual records are
    collected in ``errors`` and never stop the remaining records.
    """

    def __init__(
        self,
        *,
        session: FetchSession,
        store: PropertyStore,
        metrics: Optional[MetricsRegistry] = None,
        geo: Optional[GeoResolver] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._session = session
        self._store = store
        self._metrics = metrics or MetricsRegistry()
        self._geo = geo or GeoResolver()
        self._timeout = timeout

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    async def run(self, job: Job, trigger: RunTrigger = RunTrigger.MANUAL) -> RunResult:
        running = RunResult.start(job.id, trigger)
        set_context(run_id=running.run_id, job_id=job.id, trigger=trigger.value)
        LOGGER.info("run_started", name=job.name, url=job.target_url)
        try:
            with record_duration(self._metrics, "run_duration_ms"):
                result = await self._execute(job, running)
            if result.status is RunStatus.FAILED:
                self._metrics.incr("runs_failed")
            else:
                self._metrics.incr("runs_completed")
            LOGGER.info(
                "run_finished",
                status=result.status.value,
                records_processed=result.records_processed,
                errors=len(result.errors),
            )
            return result
        finally:
            clear_context()

    async def _execute(self, job: Job, running: RunResult) -> RunResult:
        try:
            page = await fetch_markup(
                session=self._session,
                url=job.target_url,
                metrics=self._metrics,
                timeout=self._timeout,
            )
        except FetchFailure as exc:
            LOGGER.error("run_fetch_failed", reason=str(exc))
            return running.finish(records_processed=0, errors=[str(exc)])

        report = extract_candidates(page.html, job.selectors, page.url)
        self._metrics.incr("containers_found", report.containers)
        self._metrics.incr("records_skipped", report.skipped)
        if report.degraded:
            self._metrics.incr("degraded_extractions")
        LOGGER.info(
            "extraction_finished",
            container_selector=report.container_selector,
            candidates=len(report.candidates),
            skipped=report.skipped,
        )

        processed = 0
        errors: List[str] = []
        for candidate in report.candidates:
            try:
                stored = await self._persist(candidate)
            except PersistenceError as exc:
                self._metrics.incr("persistence_errors")
                LOGGER.warning("record_persist_failed", title=candidate.title, reason=str(exc))
                errors.append(f"{candidate.title} ({candidate.source_url}): {exc}")
                continue
            if stored:
                processed += 1
        return running.finish(records_processed=processed, errors=errors)

    async def _persist(self, candidate: CandidateRecord) -> bool:
        """Store one candidate; False means the source URL was already stored."""
        candidate = await self._geo.locate(candidate)
        try:
            await self._store.create(candidate)
        except DuplicateSourceUrl:
            self._metrics.incr("duplicates")
            LOGGER.debug("record_duplicate", source_url=candidate.source_url)
            return False
        self._metrics.incr("records_persisted")
        return True
