#!/usr/bin/env python
"""Populate the job registry with the built-in demo job."""
from __future__ import annotations

import argparse
from pathlib import Path

from dotenv import load_dotenv

from propscrape.orchestrator.job_loader import write_sample_jobs


def main() -> None:
    """CLI entrypoint mirroring `propscrape seed-jobs`."""
    load_dotenv()
    parser = argparse.ArgumentParser(description="Seed the job registry with the demo job")
    parser.add_argument(
        "--path",
        type=Path,
        default=Path("job_registry/jobs.yaml"),
        help="Path to the job registry YAML",
    )
    args = parser.parse_args()
    write_sample_jobs(args.path)


if __name__ == "__main__":
    main()
