"""Forge Score V3 engine.

4-dimension composite (EC, AOI, RC, LPI) x BCM -> 100-999 scale.
Deterministic given evidence and ``as_of``; self-reported skills only feed
anomaly detection, never the score itself.

Steps:
1. Evidence -> dimension inputs -> dimension scores
2. Weighted composite (0-100)
3. Behavioral coherence multiplier
4. Sigmoid mapping to 100-999
5. Inactivity decay, tenure gates, movement caps
6. Clamp to the model's score range
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Mapping, Optional, Sequence

from forgescore.shared.time import ensure_utc, utcnow

from .anti_gaming import compute_bcm
from .determinism import clamp01, round_half_up
from .dimensions import (
    build_dimension_inputs,
    compute_aoi,
    compute_ec,
    compute_lpi,
    compute_rc,
    normalize_counts,
)
from .guardrails import (
    apply_inactivity_decay,
    apply_movement_caps,
    apply_tenure_gates,
    clamp_score,
    compute_composite,
    map_to_3digit,
)
from .model_params import ScoringModelVersion, get_default_model
from .types import BCMResult, DimensionScores, ScoreBreakdown, ScoreEvidence, ScoreResult

DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class ComputeV3Input:
    builder_id: str
    evidence: Sequence[ScoreEvidence]
    counts: Mapping[str, int]
    tenure_days: float
    previous_score: Optional[int] = None
    previous_skill_scores: Optional[Sequence[float]] = None
    current_skill_scores: Sequence[float] = field(default_factory=list)
    attestations_for_builder: Sequence[ScoreEvidence] = field(default_factory=list)
    model: ScoringModelVersion = field(default_factory=get_default_model)
    trigger_reason: str = "manual"
    has_milestone_evidence: bool = False
    as_of: Optional[datetime] = None


def compute_confidence(
    evidence_count: int,
    type_count: int,
    tenure_months: float,
    bcm: BCMResult,
) -> int:
    """Confidence (0-100) in the score itself, separate from the BCM.

    Grows with evidence volume, type diversity and tenure; halves its
    anomaly component when any detector fired.
    """
    raw = (
        0.3 * min(1.0, evidence_count / 20)
        + 0.3 * min(1.0, type_count / 8)
        + 0.2 * min(1.0, tenure_months / 6)
        + 0.2 * (1.0 if not bcm.flags else 0.5)
    )
    return round_half_up(100 * clamp01(raw))


def compute_forge_score_v3(inp: ComputeV3Input) -> ScoreResult:
    model = inp.model
    caps = model.caps
    as_of = ensure_utc(inp.as_of) if inp.as_of is not None else utcnow()
    tenure_months = max(0.0, inp.tenure_days) / DAYS_PER_MONTH
    counts = normalize_counts(inp.counts)

    dim_inputs = build_dimension_inputs(inp.evidence, counts, as_of)
    dimensions = DimensionScores(
        ec=compute_ec(dim_inputs.ec),
        aoi=compute_aoi(dim_inputs.aoi),
        rc=compute_rc(dim_inputs.rc),
        lpi=compute_lpi(dim_inputs.lpi),
    )

    composite = compute_composite(dimensions, model.weights)

    bcm = compute_bcm(
        inp.evidence,
        inp.tenure_days,
        inp.previous_skill_scores,
        inp.current_skill_scores,
        inp.attestations_for_builder,
        builder_id=inp.builder_id,
        caps=caps,
    )
    adjusted_composite = composite * bcm.multiplier

    mapped = map_to_3digit(adjusted_composite)

    decay = apply_inactivity_decay(mapped, dim_inputs.recency_days, caps)
    gated = apply_tenure_gates(decay.score, tenure_months, caps)
    capped = apply_movement_caps(gated, inp.previous_score, inp.has_milestone_evidence, caps)

    score = clamp_score(capped.score, model.tier_config.score_min, model.tier_config.score_max)

    confidence = compute_confidence(
        len(inp.evidence),
        sum(1 for v in counts.values() if v > 0),
        tenure_months,
        bcm,
    )

    breakdown = ScoreBreakdown(
        dimensions=dimensions,
        composite=composite,
        bcm=bcm,
        adjusted_composite=adjusted_composite,
        raw_3digit=gated,
        capped_delta=capped.capped_delta,
        final_score=score,
        confidence=confidence,
        tenure_months=round(tenure_months, 1),
        model_version=model.version,
        inactivity_decay_applied=decay.decay_applied,
    )

    evidence_ids: List[str] = [e.id for e in inp.evidence]
    return ScoreResult(
        score=score,
        previous_score=inp.previous_score,
        delta=score - inp.previous_score if inp.previous_score is not None else 0,
        breakdown=breakdown,
        anomaly_flags=list(bcm.flags),
        evidence_ids=evidence_ids,
    )


__all__ = ["ComputeV3Input", "compute_confidence", "compute_forge_score_v3"]
