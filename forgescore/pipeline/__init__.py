"""Recompute queue, score pipeline and worker."""

from .queue import RecomputeJob, RecomputeQueue
from .recompute import (
    RateLimitStatus,
    ScoreHistoryEntry,
    check_rate_limit,
    compute_score_for_builder,
    get_score_history,
    load_active_model,
    process_recompute_job,
    request_manual_recompute,
)
from .worker import RecomputeWorker

__all__ = [
    "RecomputeJob",
    "RecomputeQueue",
    "RateLimitStatus",
    "ScoreHistoryEntry",
    "check_rate_limit",
    "compute_score_for_builder",
    "get_score_history",
    "load_active_model",
    "process_recompute_job",
    "request_manual_recompute",
    "RecomputeWorker",
]
