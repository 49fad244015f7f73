"""Score model versions, history and the builder projection."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ScoringModelVersionRow(Base):
    __tablename__ = "scoring_model_versions"

    version: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Model version label (e.g. 'v3.0')",
    )
    weights: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON-encoded ModelWeights",
    )
    caps: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON-encoded ModelCaps",
    )
    tier_config: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="{}",
        comment="JSON-encoded TierConfig",
    )
    effective_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When this version became active (UTC)",
    )
    deprecated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        comment="When this version was retired; null while active",
    )

    __table_args__ = (
        Index("ix_scoring_model_versions_effective", "effective_from"),
    )


class ScoreHistoryRow(Base):
    """One row per recompute. System of record for scores."""

    __tablename__ = "score_history"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Internal surrogate primary key",
    )
    builder_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Scored builder",
    )
    score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Final score 100-999",
    )
    previous_score: Mapped[int | None] = mapped_column(
        Integer,
        comment="Score before this recompute",
    )
    delta: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="score - previous_score (0 for a first score)",
    )
    breakdown: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON-encoded dimensions, BCM and intermediate values",
    )
    anomaly_flags: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="[]",
        comment="JSON-encoded list of BCM flags",
    )
    evidence_snapshot_ids: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="[]",
        comment="JSON-encoded evidence ids used (first 100)",
    )
    model_version: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Scoring model version that produced the score",
    )
    reason: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Recompute trigger",
    )
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="UTC timestamp of the recompute",
    )

    __table_args__ = (
        Index("ix_score_history_builder_computed", "builder_id", "computed_at"),
        {
            "comment": "Append-only score history",
        },
    )


class BuilderRow(Base):
    """Builder record: self-reported skills plus the denormalized score cache."""

    __tablename__ = "builders"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Builder identifier",
    )
    github_username: Mapped[str | None] = mapped_column(
        String(64),
        comment="GitHub login used by the contributor probe",
    )
    ai_backend: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_frontend: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_ml: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_systems: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_devops: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score_v3: Mapped[int | None] = mapped_column(
        Integer,
        comment="Cached latest score (rebuilt every recompute)",
    )
    score_v3_model: Mapped[str | None] = mapped_column(
        String(32),
        comment="Model version of the cached score",
    )
    score_v3_computed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        comment="When the cached score was computed (UTC)",
    )
    tenure_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        comment="Start of the evidence-bearing tenure window (UTC)",
    )


SKILL_COLUMNS = ("ai_backend", "ai_frontend", "ai_ml", "ai_systems", "ai_devops")


__all__ = ["ScoringModelVersionRow", "ScoreHistoryRow", "BuilderRow", "SKILL_COLUMNS"]
