"""CLI entrypoint for country brief updates, job history and the web server."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List

from core import CountryRecord, RunKind
from orchestrator import NoPacing
from utils.exceptions import BriefServiceError, JobAlreadyRunningError
from utils.logger import setup_logger
from webapp.runtime import build_runtime


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _load_seed(path: str) -> List[CountryRecord]:
    rows = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(rows, list):
        raise ValueError(f"Seed file must hold a JSON list: {path}")
    return [CountryRecord.model_validate(row) for row in rows]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Munitions of war country brief service")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run an update job now")
    run.add_argument("--country", default="", help="ISO3 of a single country")
    run.add_argument("--by", default="cli", help="Actor recorded on the job")
    run.add_argument("--no-pacing", action="store_true", help="Skip the delays between model calls")

    jobs = sub.add_parser("jobs", help="List update jobs")
    jobs.add_argument("--limit", type=int, default=20)
    jobs.add_argument("--skip", type=int, default=0)

    logs = sub.add_parser("logs", help="Per-country attempts of one job")
    logs.add_argument("--job-id", required=True)

    sub.add_parser("status", help="Scheduler status and running job")

    reset = sub.add_parser("reset-job", help="Fail a job stuck in running")
    reset.add_argument("--job-id", required=True)
    reset.add_argument("--reason", default="Reset by operator")

    seed = sub.add_parser("seed", help="Insert countries from a JSON file")
    seed.add_argument("--file", required=True)

    sources = sub.add_parser("refresh-sources", help="Re-fetch regulatory sources")
    sources.add_argument("--force", action="store_true")

    serve = sub.add_parser("serve", help="Start the web API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8765)
    serve.add_argument("--reload", action="store_true")

    return parser


def main() -> int:
    args = build_parser().parse_args()
    setup_logger(level=getattr(logging, str(args.log_level).upper(), logging.INFO), log_file="mow_briefs.log")

    if args.command == "serve":
        import uvicorn

        uvicorn.run("webapp.app:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    runtime = build_runtime(pacing=NoPacing() if getattr(args, "no_pacing", False) else None)
    orchestrator = runtime.orchestrator

    try:
        if args.command == "run":
            job = asyncio.run(
                orchestrator.run(RunKind.MANUAL, triggered_by=args.by, target=args.country or None)
            )
            _print(job.model_dump(mode="json"))
            return 0

        if args.command == "jobs":
            items, total = orchestrator.list_jobs(limit=args.limit, skip=args.skip)
            _print({"total": total, "jobs": [item.model_dump(mode="json") for item in items]})
            return 0

        if args.command == "logs":
            rows = orchestrator.job_logs(args.job_id)
            _print([row.model_dump(mode="json") for row in rows])
            return 0

        if args.command == "status":
            running = orchestrator.current_job()
            _print(
                {
                    "scheduler": runtime.trigger.status().to_dict(),
                    "running_job": running.model_dump(mode="json") if running else None,
                }
            )
            return 0

        if args.command == "reset-job":
            job = orchestrator.reset_stale_job(args.job_id, args.reason)
            _print(job.model_dump(mode="json"))
            return 0

        if args.command == "seed":
            inserted, existing = 0, 0
            for record in _load_seed(args.file):
                if runtime.countries.find_by_key(record.iso3) is not None:
                    existing += 1
                    continue
                runtime.countries.insert(record)
                inserted += 1
            _print({"inserted": inserted, "existing": existing, "total": runtime.countries.count()})
            return 0

        if args.command == "refresh-sources":
            _print(asyncio.run(runtime.fetcher.refresh_all(force=args.force)))
            return 0
    except JobAlreadyRunningError as exc:
        _print({"error": exc.message, "running_job_id": exc.running_job_id})
        return 2
    except BriefServiceError as exc:
        _print({"error": str(exc)})
        return 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
