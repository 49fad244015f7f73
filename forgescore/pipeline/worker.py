"""Recompute worker.

Polls the queue and processes pending jobs in priority order. Any number of
workers may run against the same database; the conditional claim keeps two
of them from running the same job.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from forgescore.database.dbm import DBM
from forgescore.scoring.types import ScoreResult

from .queue import RecomputeQueue
from .recompute import process_recompute_job

logger = logging.getLogger(__name__)

ProcessJob = Callable[..., Awaitable[Optional[ScoreResult]]]


class RecomputeWorker:
    """Drains the recompute queue in batches."""

    DEFAULT_BATCH_SIZE = 10
    DEFAULT_POLL_INTERVAL_SEC = 30.0

    def __init__(
        self,
        dbm: DBM,
        *,
        queue: Optional[RecomputeQueue] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SEC,
        process_job: ProcessJob = process_recompute_job,
    ):
        self.dbm = dbm
        self.queue = queue or RecomputeQueue(dbm)
        self.batch_size = max(int(batch_size), 1)
        self.poll_interval_seconds = poll_interval_seconds
        self._process_job = process_job
        self.batches_run = 0

    async def process_pending(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Process up to ``limit`` pending jobs.

        Returns:
            Counts of jobs that produced a score, jobs that did not (failed or
            claimed elsewhere) and jobs selected.
        """
        jobs = await self.queue.pending_jobs(limit or self.batch_size)
        processed = 0
        failed = 0
        for job in jobs:
            result = await self._process_job(self.dbm, job.id, queue=self.queue)
            if result is not None:
                processed += 1
            else:
                failed += 1

        self.batches_run += 1
        if jobs:
            logger.info(f"Recompute batch: processed={processed} failed={failed} total={len(jobs)}")
        return {"processed": processed, "failed": failed, "total": len(jobs)}

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Poll until ``stop_event`` is set.

        A full batch is followed immediately by another; otherwise the worker
        sleeps for the poll interval.
        """
        stop_event = stop_event or asyncio.Event()
        logger.info(
            f"Recompute worker started (batch_size={self.batch_size}, "
            f"poll_interval={self.poll_interval_seconds}s)"
        )
        while not stop_event.is_set():
            started = time.monotonic()
            try:
                stats = await self.process_pending()
            except Exception as e:
                logger.error(f"Recompute batch failed: {e}", exc_info=True)
                stats = {"processed": 0, "failed": 0, "total": 0}

            if stats["total"] >= self.batch_size:
                continue

            elapsed = time.monotonic() - started
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(0.0, self.poll_interval_seconds - elapsed))
            except asyncio.TimeoutError:
                pass
        logger.info("Recompute worker stopped")


__all__ = ["RecomputeWorker"]
