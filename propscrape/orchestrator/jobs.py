"""Definitions for scraping jobs and their run results."""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import soupsieve
from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SelectorSet(BaseModel):
    """CSS selectors locating each listing field inside a container."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = Field(min_length=1)
    address: str = Field(min_length=1)
    price: Optional[str] = None
    property_type: Optional[str] = None
    bedrooms: Optional[str] = None
    bathrooms: Optional[str] = None
    garage_spaces: Optional[str] = None
    land_size: Optional[str] = None
    floor_size: Optional[str] = None
    link: Optional[str] = None

    @field_validator("*")
    @classmethod
    def _compiles(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Selector must not be blank")
        try:
            soupsieve.compile(value)
        except soupsieve.SelectorSyntaxError as exc:
            raise ValueError(f"Invalid CSS selector {value!r}: {exc}") from exc
        return value


@dataclass(frozen=True)
class Job:
    """A schedulable scrape of one target page with one selector set.

    Instances are immutable; the registry replaces whole records, so a run
    holding a job keeps the definition it started with.
    """

    name: str
    target_url: str
    selectors: SelectorSet
    schedule: str
    id: str = ""
    active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    last_run: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "target_url": self.target_url,
            "selectors": self.selectors.model_dump(exclude_none=True),
            "schedule": self.schedule,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class RunTrigger(str, enum.Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class RunResult(BaseModel):
    """Outcome of one pipeline execution for a job."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    job_id: str
    trigger: RunTrigger = RunTrigger.MANUAL
    status: RunStatus = RunStatus.RUNNING
    records_processed: int = Field(default=0, ge=0)
    errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @classmethod
    def start(cls, job_id: str, trigger: RunTrigger = RunTrigger.MANUAL) -> "RunResult":
        return cls(job_id=job_id, trigger=trigger)

    def finish(self, *, records_processed: int, errors: List[str]) -> "RunResult":
        """Return the terminal copy of a running result.

        A run is Failed only when nothing was persisted and at least one error
        was recorded; partial success stays Completed.
        """
        if self.status.terminal:
            raise ValueError(f"Run {self.run_id} already finalised as {self.status.value}")
        if records_processed == 0 and errors:
            status = RunStatus.FAILED
        else:
            status = RunStatus.COMPLETED
        return self.model_copy(
            update={
                "status": status,
                "records_processed": records_processed,
                "errors": list(errors),
                "completed_at": max(utcnow(), self.started_at),
            }
        )

    def cancel(self, reason: str) -> "RunResult":
        if self.status.terminal:
            raise ValueError(f"Run {self.run_id} already finalised as {self.status.value}")
        return self.model_copy(
            update={
                "status": RunStatus.CANCELLED,
                "errors": [*self.errors, reason],
                "completed_at": max(utcnow(), self.started_at),
            }
        )

    @property
    def finished_at(self) -> datetime:
        return self.completed_at or self.started_at
