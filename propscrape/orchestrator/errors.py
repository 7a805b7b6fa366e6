"""Error taxonomy for the scraping engine."""
from __future__ import annotations


class ScrapeError(Exception):
    """Base class for all engine errors."""


class InvalidSchedule(ScrapeError):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, schedule: str, reason: str = "malformed cron expression") -> None:
        super().__init__(f"Invalid schedule {schedule!r}: {reason}")
        self.schedule = schedule


class FetchFailure(ScrapeError):
    """Network error, timeout or non-2xx response while fetching a page."""

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


class ExtractionSkip(ScrapeError):
    """A container lacks a required field and yields no record."""


class PersistenceConflict(ScrapeError):
    """The store already holds an entity for the record's source URL."""

    def __init__(self, source_url: str) -> None:
        super().__init__(f"Duplicate source URL: {source_url}")
        self.source_url = source_url


DuplicateSourceUrl = PersistenceConflict


class PersistenceError(ScrapeError):
    """Any store failure other than a duplicate source URL."""


class JobNotFound(ScrapeError, LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class ResultNotFound(ScrapeError, LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"No results found for job {job_id}")
        self.job_id = job_id


class PropertyNotFound(ScrapeError, LookupError):
    def __init__(self, property_id: str) -> None:
        super().__init__(f"Property {property_id} not found")
        self.property_id = property_id
