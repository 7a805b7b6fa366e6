"""Command-line entrypoints for the property scraping engine."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import orjson
import structlog
import tomllib
from dotenv import load_dotenv

try:
    import uvloop
except ImportError:  # pragma: no cover - uvloop is unavailable on Windows
    uvloop = None

from propscrape.fetch.session import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, create_fetch_session
from propscrape.observability.log import configure_logging
from propscrape.observability.metrics import MetricsRegistry
from propscrape.orchestrator.job_loader import SAMPLE_JOB, load_jobs, validate_jobs, write_sample_jobs
from propscrape.orchestrator.pipeline import ExecutionPipeline
from propscrape.orchestrator.registry import JobRegistry
from propscrape.orchestrator.results import DEFAULT_HISTORY_PER_JOB, ResultTracker
from propscrape.orchestrator.scheduler import TriggerEngine
from propscrape.storage.store import create_store

LOGGER = structlog.get_logger(__name__)

DEFAULT_SETTINGS = Path("config/settings.toml")
DEFAULT_JOBS_FILE = Path("job_registry/jobs.yaml")


def load_settings(path: Path) -> Dict[str, Any]:
    """Read the TOML configuration file; missing files yield defaults."""
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _section(settings: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = settings.get(name, {})
    return value if isinstance(value, dict) else {}


def jobs_file(settings: Dict[str, Any]) -> Path:
    return Path(_section(settings, "app").get("jobs_file", DEFAULT_JOBS_FILE))


def _print_json(payload: Any) -> None:
    print(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="propscrape", description="Scheduled property listing scraper")
    parser.add_argument("--settings", type=Path, default=DEFAULT_SETTINGS, help="Path to settings TOML")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed-jobs", help="Write the sample job registry file")
    sub.add_parser("sample-job", help="Print the sample job definition")
    sub.add_parser("validate-jobs", help="Validate the job registry file")

    run = sub.add_parser("run", help="Run active jobs once, immediately")
    run.add_argument("--job-name", help="Only run the job with this name, even if it is inactive")

    schedule = sub.add_parser("schedule", help="Run the trigger engine")
    schedule.add_argument("--duration", type=float, help="Seconds to run before stopping")

    return parser


@contextlib.asynccontextmanager
async def build_engine(settings: Dict[str, Any]) -> AsyncIterator[TriggerEngine]:
    """Wire registry, tracker, pipeline and engine from settings."""
    app_cfg = _section(settings, "app")
    fetch_cfg = _section(settings, "fetch")
    scheduler_cfg = _section(settings, "scheduler")
    timeout = float(fetch_cfg.get("timeout_seconds", DEFAULT_TIMEOUT))
    store = create_store(
        str(app_cfg.get("store", "memory")),
        database_path=Path(app_cfg.get("database_path", "data/properties.db")),
    )
    async with create_fetch_session(
        user_agent=str(fetch_cfg.get("user_agent", DEFAULT_USER_AGENT)),
        timeout=timeout,
        max_connections=int(fetch_cfg.get("max_connections", 10)),
    ) as session:
        pipeline = ExecutionPipeline(session=session, store=store, metrics=MetricsRegistry(), timeout=timeout)
        engine = TriggerEngine(
            registry=JobRegistry(),
            tracker=ResultTracker(
                history_per_job=int(scheduler_cfg.get("history_per_job", DEFAULT_HISTORY_PER_JOB)),
            ),
            pipeline=pipeline,
        )
        try:
            yield engine
        finally:
            await engine.stop()


async def run_jobs(settings: Dict[str, Any], *, job_name: Optional[str] = None) -> Dict[str, Any]:
    """Register the configured jobs and run them once concurrently.

    Inactive jobs are skipped unless ``job_name`` selects one explicitly.
    """
    jobs = load_jobs(jobs_file(settings))
    if job_name:
        jobs = [job for job in jobs if job.name == job_name]
    else:
        jobs = [job for job in jobs if job.active]
    async with build_engine(settings) as engine:
        job_ids = [await engine.add_job(job) for job in jobs]
        results = await asyncio.gather(*(engine.run_now(job_id) for job_id in job_ids))
        stats = await engine.get_stats()
    return {
        "results": [result.model_dump(mode="json") for result in results],
        "stats": stats,
    }


async def run_scheduler(settings: Dict[str, Any], *, duration: Optional[float] = None) -> Dict[str, int]:
    """Start the trigger engine with every configured job."""
    jobs = load_jobs(jobs_file(settings))
    async with build_engine(settings) as engine:
        for job in jobs:
            await engine.add_job(job)
        await engine.start()
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
        await engine.stop()
        return await engine.get_stats()


def _validate_command(settings: Dict[str, Any]) -> None:
    report: List[Dict[str, str]] = []
    success = True
    for name, ok, detail in validate_jobs(jobs_file(settings)):
        status = "OK" if ok else "FAIL"
        if ok and detail == "inactive":
            status = "INACTIVE"
        success = success and ok
        report.append({"job": name, "status": status, "detail": detail if not ok else ""})
    _print_json(report)
    if not success:
        raise SystemExit(1)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    settings = load_settings(args.settings)
    configure_logging(Path(_section(settings, "app").get("logging_config", "config/logging.yaml")))

    if args.command == "seed-jobs":
        write_sample_jobs(jobs_file(settings))
        return

    if args.command == "sample-job":
        _print_json(SAMPLE_JOB)
        return

    if args.command == "validate-jobs":
        _validate_command(settings)
        return

    if uvloop is not None:
        uvloop.install()

    try:
        if args.command == "run":
            _print_json(asyncio.run(run_jobs(settings, job_name=args.job_name)))
            return
        if args.command == "schedule":
            _print_json(asyncio.run(run_scheduler(settings, duration=args.duration)))
            return
    except ValueError as exc:
        raise SystemExit(f"Failed to load jobs: {exc}")
    except KeyboardInterrupt:
        LOGGER.info("interrupted")


if __name__ == "__main__":
    main()
