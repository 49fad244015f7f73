"""Recompute queue and per-builder rate-limit timestamps."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RecomputeQueueRow(Base):
    """Recompute jobs.

    Workers claim a job with a conditional update (pending -> processing);
    only the worker whose update touches a row owns the job.
    """

    __tablename__ = "score_recompute_queue"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Job identifier (UUID)",
    )
    builder_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Builder to recompute",
    )
    trigger_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="RecomputeTrigger value",
    )
    trigger_evidence_id: Mapped[str | None] = mapped_column(
        String(36),
        comment="Evidence row that caused the job, if any",
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Higher priority = processed first",
    )
    status: Mapped[str] = mapped_column(
        String(16),
        default="pending",
        nullable=False,
        comment="Status: pending, processing, completed, failed",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the job was enqueued (UTC)",
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        comment="When a worker claimed the job (UTC)",
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        comment="When the job reached a terminal status (UTC)",
    )
    error_message: Mapped[str | None] = mapped_column(
        String(1000),
        comment="Error message if failed",
    )

    __table_args__ = (
        Index("ix_score_recompute_queue_status", "status"),
        Index("ix_score_recompute_queue_priority", "status", "priority", "created_at"),
        Index("ix_score_recompute_queue_builder", "builder_id"),
    )


class ScoreRateLimitRow(Base):
    __tablename__ = "score_rate_limits"

    builder_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Builder identifier",
    )
    last_computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Last recompute time (UTC)",
    )


__all__ = ["RecomputeQueueRow", "ScoreRateLimitRow"]
