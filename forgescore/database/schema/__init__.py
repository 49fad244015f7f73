"""SQLAlchemy table definitions for the scoring store."""

from __future__ import annotations

from .base import Base, metadata
from .evidence import ScoreEvidenceRow
from .queue import RecomputeQueueRow, ScoreRateLimitRow
from .scoring import SKILL_COLUMNS, BuilderRow, ScoreHistoryRow, ScoringModelVersionRow

__all__ = [
    "Base",
    "metadata",
    "ScoreEvidenceRow",
    "RecomputeQueueRow",
    "ScoreRateLimitRow",
    "ScoringModelVersionRow",
    "ScoreHistoryRow",
    "BuilderRow",
    "SKILL_COLUMNS",
]
