"""Forge Score worker entrypoint.

Commands:
    init-db         create tables
    process-queue   process one batch of pending recompute jobs
    run             poll the queue until SIGINT/SIGTERM
    verify          run probes for one delivery and ingest the evidence
    recompute       request a manual recompute (rate limited)
    history         print a builder's score history
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any, Optional, Sequence

from dotenv import load_dotenv

from forgescore.config import ForgeSettings, load_settings
from forgescore.database import DBM
from forgescore.ledger import EvidenceLedger
from forgescore.pipeline import (
    RecomputeQueue,
    RecomputeWorker,
    get_score_history,
    request_manual_recompute,
)
from forgescore.probes import DeliveryTarget, run_probes_for_delivery
from forgescore.scoring.types import RateLimitedError
from forgescore.shared.logging import setup_events_logger, setup_logging

logger = logging.getLogger("forgescore.worker")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="forge-score", description="Forge Score V3 worker")
    parser.add_argument("--log-level", type=str, default=None, help="Override logging.level")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    pq = sub.add_parser("process-queue", help="Process one batch of pending jobs")
    pq.add_argument("--limit", type=int, default=None)

    sub.add_parser("run", help="Poll the queue until stopped")

    verify = sub.add_parser("verify", help="Run probes for a delivery")
    verify.add_argument("--builder", required=True)
    verify.add_argument("--delivery-id", required=True)
    verify.add_argument("--deployment-url", default=None)
    verify.add_argument("--repo-url", default=None)
    verify.add_argument("--project-id", default=None)
    verify.add_argument("--github-username", default=None)

    recompute = sub.add_parser("recompute", help="Request a manual recompute")
    recompute.add_argument("--builder", required=True)

    history = sub.add_parser("history", help="Show score history")
    history.add_argument("--builder", required=True)
    history.add_argument("--limit", type=int, default=10)

    return parser


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


async def _run_command(args: argparse.Namespace, settings: ForgeSettings) -> int:
    dbm = DBM(settings.database_url, echo=settings.database.echo)
    try:
        if args.command == "init-db":
            await dbm.create_schema()
            return 0

        if args.command == "process-queue":
            worker = RecomputeWorker(dbm, batch_size=settings.worker.batch_size)
            _print(await worker.process_pending(args.limit))
            return 0

        if args.command == "run":
            worker = RecomputeWorker(
                dbm,
                batch_size=settings.worker.batch_size,
                poll_interval_seconds=settings.worker.poll_interval_seconds,
            )
            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, stop_event.set)
                except NotImplementedError:
                    pass
            await worker.run(stop_event)
            return 0

        if args.command == "verify":
            result = await run_probes_for_delivery(
                EvidenceLedger(dbm),
                RecomputeQueue(dbm),
                args.builder,
                DeliveryTarget(
                    delivery_id=args.delivery_id,
                    deployment_url=args.deployment_url,
                    repo_url=args.repo_url,
                    project_id=args.project_id,
                ),
                args.github_username,
                settings=settings.probes,
            )
            _print(result.as_dict())
            return 0

        if args.command == "recompute":
            try:
                job = await request_manual_recompute(
                    dbm,
                    args.builder,
                    window_minutes=settings.worker.rate_limit_minutes,
                )
            except RateLimitedError as e:
                logger.warning(str(e))
                _print({"queued": False, "retry_after_seconds": e.retry_after_seconds})
                return 2
            _print({"queued": True, "job_id": job.id})
            return 0

        if args.command == "history":
            entries = await get_score_history(dbm, args.builder, args.limit)
            _print([entry.__dict__ for entry in entries])
            return 0

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await dbm.dispose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    # Load .env if not in test mode
    if os.environ.get("FORGE_TEST_MODE") != "true":
        load_dotenv()

    args = build_parser().parse_args(argv)
    settings = load_settings()

    setup_logging(args.log_level or settings.logging.level)
    setup_events_logger(settings.logging.events_dir, settings.logging.events_retention_bytes)

    try:
        return asyncio.run(_run_command(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
