"""Evidence ledger table."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ScoreEvidenceRow(Base):
    """Append-only evidence rows.

    Rows are never updated except to set superseded_by once, and never deleted.
    """

    __tablename__ = "score_evidence"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Evidence identifier (UUID)",
    )
    builder_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Builder this evidence is about",
    )
    project_id: Mapped[str | None] = mapped_column(
        String(64),
        comment="Project the evidence relates to, if any",
    )
    delivery_id: Mapped[str | None] = mapped_column(
        String(64),
        comment="Delivery the evidence relates to, if any",
    )
    type: Mapped[str] = mapped_column(
        String(48),
        nullable=False,
        comment="EvidenceType value",
    )
    source: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="EvidenceSource value",
    )
    payload: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="{}",
        comment="JSON-encoded payload; shape depends on type",
    )
    confidence: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Confidence in [0, 1]",
    )
    hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 of the canonical evidence content",
    )
    superseded_by: Mapped[str | None] = mapped_column(
        String(36),
        comment="Id of the newer row that retires this one",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="UTC timestamp when the evidence was recorded",
    )

    __table_args__ = (
        UniqueConstraint("builder_id", "hash", name="uq_score_evidence_builder_hash"),
        Index("ix_score_evidence_builder_created", "builder_id", "created_at"),
        Index("ix_score_evidence_type", "type"),
        Index("ix_score_evidence_superseded_by", "superseded_by"),
        {
            "comment": "Append-only ledger of verifiable builder evidence",
        },
    )


__all__ = ["ScoreEvidenceRow"]
