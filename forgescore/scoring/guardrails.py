"""Composite, 3-digit mapping and score guardrails.

Guardrails run in a fixed order on the mapped score:

    inactivity decay -> tenure gates -> movement caps -> clamp to [100, 999]
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from .determinism import clamp, round_half_up
from .model_params import ModelCaps, ModelWeights
from .types import DimensionScores

SCORE_MIN = 100
SCORE_MAX = 999

# Sigmoid steepness around the midpoint of the composite range
SIGMOID_STEEPNESS = 8.0


@dataclass(frozen=True)
class DecayOutcome:
    score: int
    decay_applied: int


@dataclass(frozen=True)
class CapOutcome:
    score: int
    capped_delta: int


def compute_composite(dims: DimensionScores, weights: ModelWeights) -> float:
    """Weighted sum of the four 0-100 dimensions."""
    return (
        weights.ec_weight * dims.ec
        + weights.aoi_weight * dims.aoi
        + weights.rc_weight * dims.rc
        + weights.lpi_weight * dims.lpi
    )


def map_to_3digit(composite: float) -> int:
    """Map a 0-100 composite onto 100-999 with a sigmoid.

    Both extremes are compressed and the middle is steep, so differences in
    mid-range evidence move the score the most.
    """
    t = clamp(composite / 100, 0.0, 1.0)
    mapped = 1 / (1 + math.exp(-SIGMOID_STEEPNESS * (t - 0.5)))
    return round_half_up(SCORE_MIN + mapped * (SCORE_MAX - SCORE_MIN))


def apply_inactivity_decay(score: int, recency_days: float, caps: ModelCaps) -> DecayOutcome:
    """Subtract points for each day of inactivity past the threshold, floored at 100."""
    if recency_days <= caps.inactivity_decay_start_days:
        return DecayOutcome(score=score, decay_applied=0)

    inactive_days = recency_days - caps.inactivity_decay_start_days
    decay = round_half_up(inactive_days * caps.inactivity_decay_rate_per_day)
    decayed = max(SCORE_MIN, score - decay)
    return DecayOutcome(score=decayed, decay_applied=score - decayed)


def apply_tenure_gates(score: int, tenure_months: float, caps: ModelCaps) -> int:
    """Hold scores below a tier until the builder has the tenure for it.

    Thresholds are inclusive: exactly the minimum tenure passes.
    """
    if score >= 900 and tenure_months < caps.tier_900_min_months:
        score = min(score, 899)
    if score >= 800 and tenure_months < caps.tier_800_min_months:
        score = min(score, 799)
    return score


def apply_movement_caps(
    new_score: int,
    previous_score: Optional[int],
    has_milestone_evidence: bool,
    caps: ModelCaps,
) -> CapOutcome:
    """Limit how far a score moves from the previous one in a single recompute.

    A first score (no previous) applies unclamped.
    """
    if previous_score is None:
        return CapOutcome(score=new_score, capped_delta=0)

    max_delta = caps.milestone_delta_max if has_milestone_evidence else caps.normal_delta_max
    clamped_delta = int(clamp(new_score - previous_score, -max_delta, max_delta))
    return CapOutcome(score=previous_score + clamped_delta, capped_delta=clamped_delta)


def clamp_score(score: int, score_min: int = SCORE_MIN, score_max: int = SCORE_MAX) -> int:
    return int(clamp(score, score_min, score_max))


__all__ = [
    "SCORE_MIN",
    "SCORE_MAX",
    "DecayOutcome",
    "CapOutcome",
    "compute_composite",
    "map_to_3digit",
    "apply_inactivity_decay",
    "apply_tenure_gates",
    "apply_movement_caps",
    "clamp_score",
]
