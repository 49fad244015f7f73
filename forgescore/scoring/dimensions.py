"""Dimension calculators.

Each dimension reduces aggregated evidence counts to an integer 0-100:

    aggregate counts -> saturating transform -> weighted blend -> round

- EC  (Execution Consistency): verified/sustained deliveries, cadence, activity, recency
- AOI (Orchestration Intelligence): stack depth, strong ownership, repo complexity
- RC  (Reliability & Commitment): Bayesian completion rate with ghosting penalties
- LPI (Live Performance Index): probe pass rates

Missing counts default to 0; the calculators never fail on sparse evidence.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence, Set

from forgescore.shared.time import MS_PER_DAY, MS_PER_WEEK, ensure_utc, to_epoch_ms, utcnow

from .determinism import clamp01, saturate, to_percent
from .types import (
    AOIInput,
    DimensionInputs,
    ECInput,
    EvidenceType,
    LPIInput,
    RCInput,
    ScoreEvidence,
)

# Recency used when a builder has no evidence at all
NO_EVIDENCE_RECENCY_DAYS = 365.0

SIX_MONTHS_DAYS = 180
ACTIVITY_WINDOW_WEEKS = 12

# Distinct depth flags (ci/tests/docker/languages/stack categories) for full stack depth
STACK_DEPTH_SATURATION = 8


# ─────────────────────────────────────────────────────────────────────────────
# Calculators
# ─────────────────────────────────────────────────────────────────────────────


def compute_ec(inp: ECInput) -> int:
    """Execution Consistency."""
    delivery_score = saturate(
        1.0 * inp.verified_deliveries
        + 1.5 * inp.sustained_deliveries
        + 0.5 * inp.team_completed_deliveries,
        8,
    )
    cadence = saturate(inp.deliveries_last_6m, 3)
    activity = clamp01(inp.active_weeks_last_12 / ACTIVITY_WINDOW_WEEKS)
    recency = math.exp(-max(0.0, inp.recency_days) / 90)
    evidence_consistency = clamp01(inp.evidence_additions_count / 20)

    raw = (
        0.40 * delivery_score
        + 0.20 * cadence
        + 0.15 * activity
        + 0.15 * recency
        + 0.10 * evidence_consistency
    )
    return to_percent(raw)


def compute_aoi(inp: AOIInput) -> int:
    """Orchestration Intelligence: depth and ownership of what was built."""
    depth = clamp01(inp.stack_depth_score)
    ownership = clamp01(inp.ownership_strong_count / 3)
    complexity = clamp01(inp.repo_complexity_signals / 5)
    arch_logs = clamp01(inp.arch_decision_logs / 3)
    pr_review = clamp01(inp.pr_review_count / 10)

    raw = (
        0.30 * depth
        + 0.25 * ownership
        + 0.20 * complexity
        + 0.15 * arch_logs
        + 0.10 * pr_review
    )
    return to_percent(raw)


def compute_rc(inp: RCInput) -> int:
    """Reliability & Commitment.

    Penalty weights are ordered no-show > ghost departure > abandoned > late.
    """
    joined = inp.projects_joined
    completed = inp.projects_completed
    if joined == 0 and completed == 0:
        return 0

    # Bayesian completion rate, prior of 2 completions in 3 joins
    p_complete = (completed + 2) / (joined + 3)

    penalty_exponent = -(
        2.5 * inp.no_show_count
        + 1.8 * inp.team_departure_ghost
        + 1.2 * inp.projects_abandoned
        + 0.6 * inp.projects_late
    ) / max(1, joined)
    pen = math.exp(penalty_exponent)

    attest_bonus = clamp01(inp.attestation_score) * 0.15

    clean_ratio = 0.0
    if inp.team_departure_clean > 0:
        clean_ratio = inp.team_departure_clean / (
            inp.team_departure_clean + inp.team_departure_ghost + 0.01
        )
    departure_credit = clean_ratio * 0.10

    return to_percent(p_complete * pen + attest_bonus + departure_credit)


def compute_lpi(inp: LPIInput) -> int:
    """Live Performance Index."""
    deploy_rate = 0.0
    if inp.deployment_probes_total > 0:
        deploy_rate = inp.deployment_probes_passed / inp.deployment_probes_total

    gh_rate = 0.0
    if inp.github_contributor_total > 0:
        gh_rate = inp.github_contributor_verified / inp.github_contributor_total

    # Live challenges do not exist yet; the slot stays reserved at 25%
    live_challenge = clamp01(inp.live_challenge_score)

    raw = 0.40 * deploy_rate + 0.35 * gh_rate + 0.25 * live_challenge
    return to_percent(raw)


# ─────────────────────────────────────────────────────────────────────────────
# Evidence -> dimension inputs
# ─────────────────────────────────────────────────────────────────────────────


def normalize_counts(counts: Mapping[object, int]) -> dict[str, int]:
    """Key counts by plain type string whether they arrive as enums or str."""
    out: dict[str, int] = {}
    for key, value in counts.items():
        name = key.value if isinstance(key, EvidenceType) else str(key)
        out[name] = out.get(name, 0) + int(value or 0)
    return out


def _count(counts: Mapping[str, int], kind: EvidenceType) -> int:
    return int(counts.get(kind.value, 0) or 0)


def recency_days(evidence: Sequence[ScoreEvidence], as_of: Optional[datetime] = None) -> float:
    """Days since the newest evidence row (365 when there is none)."""
    if not evidence:
        return NO_EVIDENCE_RECENCY_DAYS
    now_ms = to_epoch_ms(as_of or utcnow())
    last_ms = max(to_epoch_ms(e.created_at) for e in evidence)
    return max(0.0, (now_ms - last_ms) / MS_PER_DAY)


def _active_weeks(evidence: Iterable[ScoreEvidence], now_ms: float) -> int:
    window_ms = ACTIVITY_WINDOW_WEEKS * MS_PER_WEEK
    weeks: Set[int] = set()
    for e in evidence:
        ts = to_epoch_ms(e.created_at)
        if 0 <= now_ms - ts < window_ms:
            weeks.add(int(ts // MS_PER_WEEK))
    return len(weeks)


def _stack_depth_flags(evidence: Iterable[ScoreEvidence]) -> Set[str]:
    flags: Set[str] = set()
    for e in evidence:
        payload = e.payload or {}
        if e.type == EvidenceType.REPO_STACK_INFERRED:
            if payload.get("has_ci"):
                flags.add("ci")
            if payload.get("has_tests"):
                flags.add("tests")
            if payload.get("has_dockerfile"):
                flags.add("docker")
            for lang in (payload.get("languages") or {}).keys():
                flags.add(str(lang).lower())
        elif e.type == EvidenceType.SKILL_EVIDENCE_INFERRED:
            for category in payload.get("detected_stack") or []:
                flags.add(f"stack:{category}")
    return flags


def _split_departures(evidence: Iterable[ScoreEvidence]) -> tuple[int, int]:
    """(clean, ghosted) team departures. Ghosted departures carry ``ghosted: true``."""
    clean = ghost = 0
    for e in evidence:
        if e.type != EvidenceType.TEAM_DEPARTED:
            continue
        if (e.payload or {}).get("ghosted"):
            ghost += 1
        else:
            clean += 1
    return clean, ghost


def build_dimension_inputs(
    evidence: Sequence[ScoreEvidence],
    counts: Mapping[object, int],
    as_of: Optional[datetime] = None,
) -> DimensionInputs:
    """Aggregate evidence rows and per-type counts into calculator inputs."""
    now = ensure_utc(as_of) if as_of is not None else utcnow()
    now_ms = to_epoch_ms(now)
    counts = normalize_counts(counts)

    six_months_ago = now - timedelta(days=SIX_MONTHS_DAYS)
    deliveries_6m = sum(
        1
        for e in evidence
        if e.type == EvidenceType.DELIVERY_VERIFIED and ensure_utc(e.created_at) > six_months_ago
    )
    recency = recency_days(evidence, now)

    stack_evidence = [e for e in evidence if e.type == EvidenceType.REPO_STACK_INFERRED]
    depth_flags = _stack_depth_flags(evidence)
    clean_departures, ghost_departures = _split_departures(evidence)

    ec = ECInput(
        verified_deliveries=_count(counts, EvidenceType.DELIVERY_VERIFIED),
        sustained_deliveries=_count(counts, EvidenceType.DELIVERY_SUSTAINED),
        team_completed_deliveries=_count(counts, EvidenceType.PROJECT_COMPLETED),
        active_weeks_last_12=_active_weeks(evidence, now_ms),
        deliveries_last_6m=deliveries_6m,
        recency_days=recency,
        evidence_additions_count=len(evidence),
    )

    aoi = AOIInput(
        stack_depth_score=min(1.0, len(depth_flags) / STACK_DEPTH_SATURATION),
        ownership_strong_count=_count(counts, EvidenceType.OWNERSHIP_VERIFIED_STRONG),
        repo_complexity_signals=sum(
            1 for e in stack_evidence if (e.payload or {}).get("has_ci") or (e.payload or {}).get("has_tests")
        ),
        arch_decision_logs=_count(counts, EvidenceType.ARCH_DECISION_LOG),
        pr_review_count=_count(counts, EvidenceType.PR_REVIEW_ACTIVITY),
    )

    rc = RCInput(
        projects_joined=_count(counts, EvidenceType.TEAM_JOINED),
        projects_completed=_count(counts, EvidenceType.PROJECT_COMPLETED),
        projects_abandoned=_count(counts, EvidenceType.PROJECT_ABANDONED),
        projects_late=_count(counts, EvidenceType.DELIVERY_DROPPED),
        no_show_count=_count(counts, EvidenceType.NO_SHOW_FLAG),
        team_departure_clean=clean_departures,
        team_departure_ghost=ghost_departures,
        attestation_score=min(1.0, _count(counts, EvidenceType.TEAM_ATTESTATION) * 0.25),
    )

    probes_ok = _count(counts, EvidenceType.DEPLOYMENT_HTTP_PROBE_OK)
    gh_ok = _count(counts, EvidenceType.GITHUB_CONTRIBUTOR_VERIFIED)
    lpi = LPIInput(
        deployment_probes_passed=probes_ok,
        deployment_probes_total=probes_ok + _count(counts, EvidenceType.DEPLOYMENT_HTTP_PROBE_FAIL),
        github_contributor_verified=gh_ok,
        github_contributor_total=gh_ok + _count(counts, EvidenceType.GITHUB_CONTRIBUTOR_FAIL),
        live_challenge_score=0.0,
    )

    return DimensionInputs(ec=ec, aoi=aoi, rc=rc, lpi=lpi, recency_days=recency)


__all__ = [
    "NO_EVIDENCE_RECENCY_DAYS",
    "compute_ec",
    "compute_aoi",
    "compute_rc",
    "compute_lpi",
    "normalize_counts",
    "recency_days",
    "build_dimension_inputs",
]
