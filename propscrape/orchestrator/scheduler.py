"""Cron-driven trigger engine built on asyncio."""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

import structlog
from croniter import CroniterBadDateError, croniter

from propscrape.orchestrator.errors import InvalidSchedule, JobNotFound
from propscrape.orchestrator.jobs import Job, RunResult, RunTrigger, utcnow
from propscrape.orchestrator.pipeline import ExecutionPipeline
from propscrape.orchestrator.registry import JobRegistry
from propscrape.orchestrator.results import ResultTracker

LOGGER = structlog.get_logger(__name__)


class CronSchedules:
    """Common cron expressions."""

    DAILY = "0 2 * * *"
    HOURLY = "0 * * * *"
    WEEKLY = "0 2 * * 0"
    TWICE_DAILY = "0 2,14 * * *"

    @staticmethod
    def every_n_hours(hours: int) -> str:
        return f"0 */{hours} * * *"

    @staticmethod
    def daily_at(hour: int, minute: int) -> str:
        return f"{minute} {hour} * * *"


def normalize_schedule(expression: str) -> str:
    """Validate a cron expression and return it in croniter's field order.

    Accepts the standard five fields, or six fields with a leading seconds
    field (``"0 0 2 * * *"``), which croniter expects last.
    """
    fields = expression.split()
    if len(fields) == 6:
        fields = fields[1:] + fields[:1]
    elif len(fields) != 5:
        raise InvalidSchedule(expression, "expected 5 fields, or 6 with leading seconds")
    normalized = " ".join(fields)
    if not croniter.is_valid(normalized):
        raise InvalidSchedule(expression)
    try:
        croniter(normalized, utcnow()).get_next(datetime)
    except CroniterBadDateError as exc:
        raise InvalidSchedule(expression, "never fires") from exc
    return normalized


class TriggerEngine:
    """Fires pipeline runs for registered jobs on their cron schedules.

    Each job gets its own timer task; every due run is spawned as an
    independent task so a slow job never delays another job or the timers.
    Runs of the same job are serialized, so the latest published result is
    always the one that started last.
    """

    def __init__(
        self,
        *,
        registry: JobRegistry,
        tracker: ResultTracker,
        pipeline: ExecutionPipeline,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._pipeline = pipeline
        self._clock = clock
        self._timers: Dict[str, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._job_locks: Dict[str, asyncio.Lock] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Install timers for every registered job."""
        if self._running:
            return
        self._running = True
        jobs = await self._registry.list()
        for job in jobs:
            self._install_timer(job.id, job.schedule)
        LOGGER.info("scheduler_started", jobs=len(jobs))

    async def stop(self) -> None:
        """Cancel the timers and wait for dispatched runs to finish.

        Scheduled runs still queued behind another run of the same job are
        recorded as cancelled instead of executing.
        """
        self._running = False
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        LOGGER.info("scheduler_stopped")

    async def add_job(self, job: Job) -> str:
        """Register a job and start its timer.

        Raises ``InvalidSchedule`` before anything is registered when the cron
        expression is malformed.
        """
        normalize_schedule(job.schedule)
        job_id = await self._registry.add(job)
        if self._running:
            self._install_timer(job_id, job.schedule)
        LOGGER.info("job_added", job_id=job_id, schedule=job.schedule)
        return job_id

    async def update_job(self, job_id: str, job: Job) -> None:
        """Replace a job definition wholesale, restarting its timer if needed."""
        normalize_schedule(job.schedule)
        current = await self._registry.get(job_id)
        if current is None:
            raise JobNotFound(job_id)
        updated = dataclasses.replace(job, id=job_id)
        await self._registry.replace(updated)
        if self._running and updated.schedule != current.schedule:
            self._install_timer(job_id, updated.schedule)
        LOGGER.info("job_updated", job_id=job_id)

    async def remove_job(self, job_id: str) -> None:
        """Deactivate a job; its timer keeps ticking but dispatches nothing."""
        await self._registry.deactivate(job_id)

    async def run_now(self, job_id: str) -> RunResult:
        """Run a job immediately, outside its schedule, and return the result."""
        job = await self._registry.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        LOGGER.info("manual_trigger", job_id=job_id, name=job.name)
        return await self._execute(job, RunTrigger.MANUAL)

    async def dispatch(self, job_id: str) -> Optional[asyncio.Task]:
        """Handle one scheduled tick for a job.

        The job is re-read right before dispatch; missing or inactive jobs are
        skipped. Returns the spawned run task, if any.
        """
        job = await self._registry.get(job_id)
        if job is None or not job.active:
            LOGGER.info("dispatch_skipped", job_id=job_id, reason="missing" if job is None else "inactive")
            return None
        task = asyncio.create_task(self._execute(job, RunTrigger.SCHEDULED), name=f"run-{job_id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def _install_timer(self, job_id: str, schedule: str) -> None:
        existing = self._timers.pop(job_id, None)
        if existing is not None:
            existing.cancel()
        expression = normalize_schedule(schedule)
        self._timers[job_id] = asyncio.create_task(self._timer_loop(job_id, expression), name=f"timer-{job_id}")

    async def _timer_loop(self, job_id: str, expression: str) -> None:
        try:
            schedule = croniter(expression, self._clock())
            fire_at = schedule.get_next(datetime)
            while True:
                delay = (fire_at - self._clock()).total_seconds()
                if delay > 0:
                    await asyncio.sleep(delay)
                await self.dispatch(job_id)
                now = self._clock()
                fire_at = schedule.get_next(datetime)
                # missed ticks are dropped, not replayed
                while fire_at < now:
                    fire_at = schedule.get_next(datetime)
        except Exception:
            LOGGER.exception("timer_crashed", job_id=job_id, schedule=expression)
            raise

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._job_locks.get(job_id)
        if lock is None:
            lock = self._job_locks[job_id] = asyncio.Lock()
        return lock

    async def _execute(self, job: Job, trigger: RunTrigger) -> RunResult:
        async with self._lock_for(job.id):
            if trigger is RunTrigger.SCHEDULED and not self._running:
                result = RunResult.start(job.id, trigger).cancel("scheduler stopped before the run started")
            else:
                running = RunResult.start(job.id, trigger)
                try:
                    result = await self._pipeline.run(job, trigger)
                except Exception as exc:
                    LOGGER.exception("run_crashed", job_id=job.id)
                    result = running.finish(
                        records_processed=0,
                        errors=[f"Unexpected error: {exc}"],
                    )
                await self._registry.mark_run(job.id, result.started_at)
            await self._tracker.publish(result)
        return result

    async def list_jobs(self) -> List[Job]:
        return await self._registry.list()

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self._registry.get(job_id)

    async def list_results(self, limit: Optional[int] = None) -> List[RunResult]:
        return await self._tracker.results(limit)

    async def get_result(self, job_id: str) -> RunResult:
        return await self._tracker.latest(job_id)

    async def prune_results(self, keep_per_job: int) -> int:
        return await self._tracker.prune(keep_per_job)

    async def get_stats(self) -> Dict[str, int]:
        jobs = await self._registry.list()
        counters = await self._tracker.counters()
        return {
            "total_jobs": len(jobs),
            "active_jobs": sum(1 for job in jobs if job.active),
            "total_runs": counters["total_runs"],
            "successful_runs": counters["successful_runs"],
        }
