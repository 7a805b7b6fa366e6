"""Utilities for loading job definitions from the registry YAML file."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError

from propscrape.orchestrator.errors import InvalidSchedule
from propscrape.orchestrator.jobs import Job, SelectorSet
from propscrape.orchestrator.scheduler import CronSchedules, normalize_schedule


class JobConfig(BaseModel):
    """Validated configuration for a single scraping job."""

    id: Optional[str] = None
    name: str = Field(min_length=1)
    target_url: str = Field(pattern=r"^(https?|file)://")
    selectors: SelectorSet
    schedule: str = CronSchedules.DAILY
    active: bool = True

    def ensure_schedule_valid(self) -> None:
        normalize_schedule(self.schedule)

    def to_job(self) -> Job:
        return Job(
            id=self.id or "",
            name=self.name,
            target_url=self.target_url,
            selectors=self.selectors,
            schedule=self.schedule,
            active=self.active,
        )


SAMPLE_JOB: Dict[str, Any] = {
    "name": "Sample Property Site",
    "target_url": "https://example-property-site.com/listings",
    "schedule": CronSchedules.DAILY,
    "active": True,
    "selectors": {
        "title": "h2.property-title",
        "price": "span.price",
        "address": "div.address",
        "property_type": "span.type",
        "bedrooms": "span.bedrooms",
        "bathrooms": "span.bathrooms",
        "land_size": "span.land-size",
        "floor_size": "span.floor-size",
    },
}


def _read_entries(path: Path) -> List[Dict[str, Any]]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    entries = data.get("jobs", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a list under 'jobs'")
    return [entry for entry in entries if entry]


def _label(entry: Any, index: int) -> str:
    if isinstance(entry, dict) and entry.get("name"):
        return str(entry["name"])
    return f"#{index}"


def load_jobs(path: Path) -> List[Job]:
    """Load and validate every job in the registry file."""
    jobs: List[Job] = []
    for index, entry in enumerate(_read_entries(path)):
        try:
            config = JobConfig.model_validate(entry)
            config.ensure_schedule_valid()
        except (ValidationError, InvalidSchedule) as exc:
            raise ValueError(f"Invalid job {_label(entry, index)}: {exc}") from exc
        jobs.append(config.to_job())
    return jobs


def validate_jobs(path: Path) -> List[Tuple[str, bool, str]]:
    """Validate all entries, returning results per job without raising."""
    results: List[Tuple[str, bool, str]] = []
    for index, entry in enumerate(_read_entries(path)):
        label = _label(entry, index)
        try:
            config = JobConfig.model_validate(entry)
            config.ensure_schedule_valid()
        except (ValidationError, InvalidSchedule) as exc:
            results.append((label, False, str(exc)))
        else:
            results.append((label, True, "ok" if config.active else "inactive"))
    return results


def write_sample_jobs(path: Path) -> None:
    """Write the demo job registry unless the file already exists."""
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump({"jobs": [SAMPLE_JOB]}, sort_keys=False), encoding="utf-8")
