from pathlib import Path

import pytest
import yaml

from propscrape.orchestrator.job_loader import SAMPLE_JOB, load_jobs, validate_jobs, write_sample_jobs
from propscrape.orchestrator.scheduler import CronSchedules

REPO_JOBS = Path(__file__).resolve().parents[1] / "job_registry" / "jobs.yaml"


def _write(path: Path, jobs) -> Path:
    path.write_text(yaml.safe_dump({"jobs": jobs}, sort_keys=False), encoding="utf-8")
    return path


def test_repository_registry_is_valid():
    jobs = load_jobs(REPO_JOBS)
    assert [job.name for job in jobs] == ["Sample Property Site", "Local Fixture Listings"]
    assert jobs[1].active is False
    assert jobs[1].selectors.link == "a.details"


def test_load_applies_defaults(tmp_path):
    entry = {"name": "Minimal", "target_url": "https://site.example", "selectors": {"title": "h2", "address": ".addr"}}
    jobs = load_jobs(_write(tmp_path / "jobs.yaml", [entry]))

    assert len(jobs) == 1
    assert jobs[0].id == ""
    assert jobs[0].schedule == CronSchedules.DAILY
    assert jobs[0].active is True


def test_load_rejects_invalid_entries(tmp_path):
    bad_schedule = dict(SAMPLE_JOB, schedule="every day")
    with pytest.raises(ValueError, match="Sample Property Site"):
        load_jobs(_write(tmp_path / "jobs.yaml", [bad_schedule]))

    no_address = dict(SAMPLE_JOB, selectors={"title": "h2"})
    with pytest.raises(ValueError):
        load_jobs(_write(tmp_path / "jobs.yaml", [no_address]))

    bad_url = dict(SAMPLE_JOB, target_url="ftp://site.example")
    with pytest.raises(ValueError):
        load_jobs(_write(tmp_path / "jobs.yaml", [bad_url]))


def test_validate_reports_each_entry(tmp_path):
    entries = [
        SAMPLE_JOB,
        dict(SAMPLE_JOB, name="Paused", active=False),
        dict(SAMPLE_JOB, name="Broken", selectors={"title": "h2[", "address": ".a"}),
    ]
    report = validate_jobs(_write(tmp_path / "jobs.yaml", entries))

    assert [(name, ok) for name, ok, _ in report] == [
        ("Sample Property Site", True),
        ("Paused", True),
        ("Broken", False),
    ]
    assert report[0][2] == "ok"
    assert report[1][2] == "inactive"
    assert "Invalid CSS selector" in report[2][2]


def test_write_sample_does_not_overwrite(tmp_path):
    path = tmp_path / "registry" / "jobs.yaml"
    write_sample_jobs(path)
    assert [job.name for job in load_jobs(path)] == [SAMPLE_JOB["name"]]

    path.write_text("jobs: []\n", encoding="utf-8")
    write_sample_jobs(path)
    assert load_jobs(path) == []
