"""In-memory job registry."""
from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from propscrape.orchestrator.errors import JobNotFound
from propscrape.orchestrator.jobs import Job
from propscrape.orchestrator.locks import ReadWriteLock

LOGGER = structlog.get_logger(__name__)


class JobRegistry:
    """Owns job definitions for the lifetime of the process.

    Jobs are immutable, so callers always receive a consistent snapshot and
    every mutation swaps in a whole new record.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = ReadWriteLock()

    async def add(self, job: Job) -> str:
        """Register a job, generating an id when it has none."""
        if not job.id:
            job = dataclasses.replace(job, id=str(uuid.uuid4()))
        async with self._lock.write():
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already registered")
            self._jobs[job.id] = job
        LOGGER.info("job_registered", job_id=job.id, name=job.name)
        return job.id

    async def get(self, job_id: str) -> Optional[Job]:
        async with self._lock.read():
            return self._jobs.get(job_id)

    async def list(self) -> List[Job]:
        """Return every job, inactive ones included, in registration order."""
        async with self._lock.read():
            return list(self._jobs.values())

    async def replace(self, job: Job) -> None:
        async with self._lock.write():
            if job.id not in self._jobs:
                raise JobNotFound(job.id)
            self._jobs[job.id] = job

    async def deactivate(self, job_id: str) -> Job:
        async with self._lock.write():
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFound(job_id)
            updated = dataclasses.replace(current, active=False)
            self._jobs[job_id] = updated
        LOGGER.info("job_deactivated", job_id=job_id)
        return updated

    async def mark_run(self, job_id: str, when: datetime) -> None:
        """Stamp ``last_run``; a job deleted meanwhile is ignored."""
        async with self._lock.write():
            current = self._jobs.get(job_id)
            if current is not None:
                self._jobs[job_id] = dataclasses.replace(current, last_run=when)
