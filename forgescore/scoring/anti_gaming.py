"""Anti-gaming: Behavioral Coherence Multiplier (BCM).

Detects evidence patterns that suggest score manipulation and turns them
into a multiplier on the composite. Each detector adds a fixed penalty;
long-tenured, steady builders with no flags get a small bonus.

    multiplier = clamp(1.0 + bonus - sum(penalties), bcm_min, bcm_max)

Detectors:
- Burstiness: Gini coefficient of weekly evidence counts
- Evidence density: evidence rows per day of tenure
- Skill jump: largest rise in any self-reported skill since the last recompute
- Template clone: repeated identical language stacks across repos
- Attestation ring: direct reciprocal attestations (A vouches for B, B for A)
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from forgescore.shared.time import MS_PER_WEEK, to_epoch_ms

from .determinism import clamp
from .model_params import ModelCaps
from .types import (
    FLAG_ABNORMAL_EVIDENCE_DENSITY,
    FLAG_ATTESTATION_RING_DETECTED,
    FLAG_HIGH_BURSTINESS,
    FLAG_MODERATE_BURSTINESS,
    FLAG_SUSPICIOUS_SKILL_JUMP,
    FLAG_TEMPLATE_CLONE_DETECTED,
    BCMResult,
    EvidenceType,
    ScoreEvidence,
)

MIN_WEEKLY_BUCKETS = 4

HIGH_BURSTINESS_GINI = 0.7
MODERATE_BURSTINESS_GINI = 0.5
STEADY_BURSTINESS_GINI = 0.3
MAX_EVIDENCE_PER_TENURE_DAY = 3.0
MAX_SKILL_JUMP = 40.0
TEMPLATE_CLONE_THRESHOLD = 0.3
ATTESTATION_RING_THRESHOLD = 0.5
BONUS_MIN_TENURE_DAYS = 120

PENALTY_HIGH_BURSTINESS = 0.15
PENALTY_MODERATE_BURSTINESS = 0.05
PENALTY_DENSITY = 0.10
PENALTY_SKILL_JUMP = 0.10
PENALTY_TEMPLATE_CLONE = 0.10
PENALTY_ATTESTATION_RING = 0.10
STEADY_BUILDER_BONUS = 0.05


def gini_coefficient(values: Sequence[float] | NDArray[np.float64]) -> float:
    """Gini coefficient of a distribution.

    0 = perfectly uniform, approaching 1 = everything in one bucket.

        G = sum_i sum_j |x_i - x_j| / (2 * n^2 * mean)
    """
    arr = np.asarray(values, dtype=np.float64)
    n = len(arr)
    if n < 2:
        return 0.0
    mean = float(arr.mean())
    if mean == 0:
        return 0.0
    diffs = np.abs(arr[:, None] - arr[None, :]).sum()
    return float(diffs / (2 * n * n * mean))


def weekly_buckets(timestamps_ms: NDArray[np.float64]) -> NDArray[np.int64]:
    """Bucket timestamps into at least four equal bins spanning min..max.

    Bin count is the span in weeks (rounded up), so one bin is about a week
    once activity spans more than a month.
    """
    if len(timestamps_ms) == 0:
        return np.zeros(MIN_WEEKLY_BUCKETS, dtype=np.int64)

    min_ts = float(timestamps_ms.min())
    max_ts = float(timestamps_ms.max())
    range_weeks = max(1.0, (max_ts - min_ts) / MS_PER_WEEK)
    bucket_count = max(MIN_WEEKLY_BUCKETS, math.ceil(range_weeks))
    bucket_size = (max_ts - min_ts + 1) / bucket_count

    idx = np.floor((timestamps_ms - min_ts) / bucket_size).astype(np.int64)
    idx = np.minimum(idx, bucket_count - 1)
    return np.bincount(idx, minlength=bucket_count)


def compute_burstiness(evidence: Sequence[ScoreEvidence]) -> float:
    """Gini of weekly evidence counts (0 for fewer than three rows)."""
    if len(evidence) < 3:
        return 0.0
    timestamps = np.array([to_epoch_ms(e.created_at) for e in evidence], dtype=np.float64)
    return gini_coefficient(weekly_buckets(timestamps))


def detect_template_clone(evidence: Sequence[ScoreEvidence]) -> float:
    """Probability that repos were stamped from one template.

    Repos are grouped by their sorted language set; three or more identical
    stacks start to count, saturating at seven.
    """
    stacks = [
        ",".join(sorted((e.payload or {}).get("languages", {}) or {}))
        for e in evidence
        if e.type == EvidenceType.REPO_STACK_INFERRED
    ]
    if len(stacks) < 2:
        return 0.0

    max_dupes = max(Counter(stacks).values())
    if max_dupes < 3:
        return 0.0
    return min(1.0, (max_dupes - 2) / 5)


def detect_attestation_ring(
    evidence: Sequence[ScoreEvidence],
    attestations_for_builder: Sequence[ScoreEvidence],
    builder_id: Optional[str] = None,
) -> float:
    """Share of this builder's attesters that the builder attested back.

    Only direct two-party reciprocity is detected.
    """
    attestations = [e for e in evidence if e.type == EvidenceType.TEAM_ATTESTATION]
    if len(attestations) < 2:
        return 0.0

    if builder_id is None:
        builder_id = attestations[0].builder_id

    attesters = {
        str(a.payload["attester_id"])
        for a in attestations
        if (a.payload or {}).get("attester_id")
    }
    if len(attesters) < 2:
        return 0.0

    reciprocated = {
        e.builder_id
        for e in attestations_for_builder
        if e.type == EvidenceType.TEAM_ATTESTATION
        and str((e.payload or {}).get("attester_id")) == builder_id
    }
    reciprocal_count = len(attesters & reciprocated)
    return min(1.0, reciprocal_count / len(attesters))


def max_skill_jump(
    previous_skill_scores: Optional[Sequence[float]],
    current_skill_scores: Sequence[float],
) -> Optional[float]:
    """Largest rise in any skill dimension, or None when not comparable."""
    if not previous_skill_scores or not current_skill_scores:
        return None
    if len(previous_skill_scores) != len(current_skill_scores):
        return None
    prev = np.asarray(previous_skill_scores, dtype=np.float64)
    cur = np.asarray(current_skill_scores, dtype=np.float64)
    return float(np.maximum(0.0, cur - prev).max())


def compute_bcm(
    evidence: Sequence[ScoreEvidence],
    tenure_days: float,
    previous_skill_scores: Optional[Sequence[float]],
    current_skill_scores: Sequence[float],
    attestations_for_builder: Sequence[ScoreEvidence],
    *,
    builder_id: Optional[str] = None,
    caps: Optional[ModelCaps] = None,
) -> BCMResult:
    """Run every detector and fold the penalties into one multiplier."""
    caps = caps or ModelCaps()
    flags: List[str] = []
    details: Dict[str, float] = {}
    penalty = 0.0

    # 1. Burstiness
    burstiness = compute_burstiness(evidence)
    details["burstiness_gini"] = burstiness
    if burstiness > HIGH_BURSTINESS_GINI:
        penalty += PENALTY_HIGH_BURSTINESS
        flags.append(FLAG_HIGH_BURSTINESS)
    elif burstiness > MODERATE_BURSTINESS_GINI:
        penalty += PENALTY_MODERATE_BURSTINESS
        flags.append(FLAG_MODERATE_BURSTINESS)

    # 2. Evidence density vs tenure
    density = len(evidence) / tenure_days if tenure_days > 0 else 0.0
    details["evidence_density"] = density
    if density > MAX_EVIDENCE_PER_TENURE_DAY:
        penalty += PENALTY_DENSITY
        flags.append(FLAG_ABNORMAL_EVIDENCE_DENSITY)

    # 3. Skill jump
    jump = max_skill_jump(previous_skill_scores, current_skill_scores)
    if jump is not None:
        details["skill_jump_magnitude"] = jump
        if jump > MAX_SKILL_JUMP:
            penalty += PENALTY_SKILL_JUMP
            flags.append(FLAG_SUSPICIOUS_SKILL_JUMP)

    # 4. Template clones
    template_score = detect_template_clone(evidence)
    details["template_clone_probability"] = template_score
    if template_score > TEMPLATE_CLONE_THRESHOLD:
        penalty += PENALTY_TEMPLATE_CLONE
        flags.append(FLAG_TEMPLATE_CLONE_DETECTED)

    # 5. Attestation rings
    ring_score = detect_attestation_ring(evidence, attestations_for_builder, builder_id)
    details["attestation_ring_score"] = ring_score
    if ring_score > ATTESTATION_RING_THRESHOLD:
        penalty += PENALTY_ATTESTATION_RING
        flags.append(FLAG_ATTESTATION_RING_DETECTED)

    bonus = 0.0
    if tenure_days > BONUS_MIN_TENURE_DAYS and burstiness < STEADY_BURSTINESS_GINI and not flags:
        bonus = STEADY_BUILDER_BONUS

    multiplier = clamp(1.0 + bonus - penalty, caps.bcm_min, caps.bcm_max)
    return BCMResult(multiplier=multiplier, flags=flags, details=details)


__all__ = [
    "gini_coefficient",
    "weekly_buckets",
    "compute_burstiness",
    "detect_template_clone",
    "detect_attestation_ring",
    "max_skill_jump",
    "compute_bcm",
]
