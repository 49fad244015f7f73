"""Recompute job queue.

Lifecycle: pending -> processing -> completed | failed. Claiming is a single
conditional update on status, so when several workers race for one job
exactly one of them sees a touched row. Jobs are never re-queued
automatically.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional

from sqlalchemy import insert, select, update

from forgescore.database.dbm import DBM
from forgescore.database.schema import RecomputeQueueRow
from forgescore.scoring.types import JobNotFoundError, JobStatus, RecomputeTrigger, ValidationError
from forgescore.shared.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 1000


@dataclass(frozen=True)
class RecomputeJob:
    id: str
    builder_id: str
    trigger_type: str
    trigger_evidence_id: Optional[str]
    priority: int
    status: JobStatus
    created_at: datetime
    claimed_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RecomputeJob":
        return cls(
            id=row["id"],
            builder_id=row["builder_id"],
            trigger_type=row["trigger_type"],
            trigger_evidence_id=row.get("trigger_evidence_id"),
            priority=int(row.get("priority") or 0),
            status=JobStatus(row["status"]),
            created_at=ensure_utc(row["created_at"]),
            claimed_at=ensure_utc(row["claimed_at"]) if row.get("claimed_at") else None,
            processed_at=ensure_utc(row["processed_at"]) if row.get("processed_at") else None,
            error_message=row.get("error_message"),
        )


def _trigger_value(trigger_type: RecomputeTrigger | str) -> str:
    if isinstance(trigger_type, RecomputeTrigger):
        return trigger_type.value
    try:
        return RecomputeTrigger(str(trigger_type)).value
    except ValueError:
        raise ValidationError(f"Unknown recompute trigger: {trigger_type!r}")


class RecomputeQueue:
    def __init__(self, dbm: DBM):
        self.dbm = dbm

    async def enqueue(
        self,
        builder_id: str,
        trigger_type: RecomputeTrigger | str,
        trigger_evidence_id: Optional[str] = None,
        priority: int = 0,
    ) -> RecomputeJob:
        if not builder_id:
            raise ValidationError("builder_id is required")
        job = RecomputeJob(
            id=str(uuid.uuid4()),
            builder_id=builder_id,
            trigger_type=_trigger_value(trigger_type),
            trigger_evidence_id=trigger_evidence_id,
            priority=int(priority),
            status=JobStatus.PENDING,
            created_at=utcnow(),
        )
        await self.dbm.write(
            insert(RecomputeQueueRow).values(
                id=job.id,
                builder_id=job.builder_id,
                trigger_type=job.trigger_type,
                trigger_evidence_id=job.trigger_evidence_id,
                priority=job.priority,
                status=job.status.value,
                created_at=job.created_at,
            )
        )
        logger.debug(f"Enqueued recompute {job.id} for {builder_id} ({job.trigger_type})")
        return job

    async def claim(self, job_id: str) -> bool:
        """Move a pending job to processing. True only for the worker that won."""
        claimed = await self.dbm.write(
            update(RecomputeQueueRow)
            .where(
                RecomputeQueueRow.id == job_id,
                RecomputeQueueRow.status == JobStatus.PENDING.value,
            )
            .values(status=JobStatus.PROCESSING.value, claimed_at=utcnow())
        )
        return claimed == 1

    async def complete(self, job_id: str) -> bool:
        return await self._finish(job_id, JobStatus.COMPLETED, None)

    async def fail(self, job_id: str, error_message: str) -> bool:
        message = (error_message or "Unknown error")[:MAX_ERROR_MESSAGE_LENGTH]
        return await self._finish(job_id, JobStatus.FAILED, message)

    async def _finish(self, job_id: str, status: JobStatus, error_message: Optional[str]) -> bool:
        updated = await self.dbm.write(
            update(RecomputeQueueRow)
            .where(
                RecomputeQueueRow.id == job_id,
                RecomputeQueueRow.status == JobStatus.PROCESSING.value,
            )
            .values(status=status.value, processed_at=utcnow(), error_message=error_message)
        )
        if not updated:
            if await self.get_job(job_id) is None:
                raise JobNotFoundError(f"Unknown recompute job: {job_id}")
            logger.warning(f"Job {job_id} was not processing; {status.value} not recorded")
        return updated == 1

    async def get_job(self, job_id: str) -> Optional[RecomputeJob]:
        rows = await self.dbm.read(
            select(RecomputeQueueRow.__table__).where(RecomputeQueueRow.id == job_id)
        )
        return RecomputeJob.from_row(rows[0]) if rows else None

    async def pending_jobs(self, limit: int = 10) -> List[RecomputeJob]:
        """Pending jobs, highest priority first, then oldest first."""
        table = RecomputeQueueRow.__table__
        rows = await self.dbm.read(
            select(table)
            .where(table.c.status == JobStatus.PENDING.value)
            .order_by(table.c.priority.desc(), table.c.created_at.asc())
            .limit(max(1, int(limit)))
        )
        return [RecomputeJob.from_row(r) for r in rows]


__all__ = ["MAX_ERROR_MESSAGE_LENGTH", "RecomputeJob", "RecomputeQueue"]
