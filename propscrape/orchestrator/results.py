"""In-memory tracker of run results per job."""
from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional

import structlog

from propscrape.orchestrator.errors import ResultNotFound
from propscrape.orchestrator.jobs import RunResult, RunStatus
from propscrape.orchestrator.locks import ReadWriteLock

LOGGER = structlog.get_logger(__name__)

DEFAULT_HISTORY_PER_JOB = 20


class ResultTracker:
    """Latest result plus a bounded history for every job.

    Results are immutable and stored whole, so readers never see a partially
    written entry.
    """

    def __init__(self, *, history_per_job: int = DEFAULT_HISTORY_PER_JOB) -> None:
        if history_per_job < 1:
            raise ValueError("history_per_job must be at least 1")
        self._history_per_job = history_per_job
        self._latest: Dict[str, RunResult] = {}
        self._history: Dict[str, Deque[RunResult]] = {}
        self._total_runs = 0
        self._successful_runs = 0
        self._failed_runs = 0
        self._lock = ReadWriteLock()

    async def publish(self, result: RunResult) -> None:
        """Record a terminal result for its job."""
        if not result.status.terminal:
            raise ValueError(f"Run {result.run_id} is still running")
        async with self._lock.write():
            history = self._history.setdefault(result.job_id, deque(maxlen=self._history_per_job))
            history.append(result)
            current = self._latest.get(result.job_id)
            # a run that started earlier never displaces a newer one
            if current is None or result.started_at >= current.started_at:
                self._latest[result.job_id] = result
            self._total_runs += 1
            if result.status is RunStatus.COMPLETED:
                self._successful_runs += 1
            elif result.status is RunStatus.FAILED:
                self._failed_runs += 1
        LOGGER.info(
            "result_published",
            job_id=result.job_id,
            run_id=result.run_id,
            status=result.status.value,
            records_processed=result.records_processed,
        )

    async def latest(self, job_id: str) -> RunResult:
        async with self._lock.read():
            try:
                return self._latest[job_id]
            except KeyError:
                raise ResultNotFound(job_id) from None

    async def results(self, limit: Optional[int] = None) -> List[RunResult]:
        """Latest result of every job, most recently finished first."""
        async with self._lock.read():
            items = list(self._latest.values())
        items.sort(key=lambda item: item.finished_at, reverse=True)
        if limit is not None:
            items = items[: max(limit, 0)]
        return items

    async def history(self, job_id: str) -> List[RunResult]:
        """Retained results of one job, newest first."""
        async with self._lock.read():
            retained = list(self._history.get(job_id, ()))
        if not retained:
            raise ResultNotFound(job_id)
        retained.sort(key=lambda item: item.finished_at, reverse=True)
        return retained

    async def prune(self, keep_per_job: int) -> int:
        """Drop all but the newest ``keep_per_job`` results of each job.

        The latest-result slot of each job is left untouched. Returns the
        number of results removed.
        """
        if keep_per_job < 1:
            raise ValueError("keep_per_job must be at least 1")
        keep = keep_per_job
        removed = 0
        async with self._lock.write():
            for job_id, history in self._history.items():
                if len(history) <= keep:
                    continue
                ordered = sorted(history, key=lambda item: item.finished_at, reverse=True)
                removed += len(ordered) - keep
                self._history[job_id] = deque(reversed(ordered[:keep]), maxlen=self._history_per_job)
        LOGGER.info("results_pruned", removed=removed, keep_per_job=keep)
        return removed

    async def counters(self) -> Dict[str, int]:
        async with self._lock.read():
            return {
                "total_runs": self._total_runs,
                "successful_runs": self._successful_runs,
                "failed_runs": self._failed_runs,
            }
