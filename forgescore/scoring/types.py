"""Type definitions and constants for the V3 scoring system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict


class ForgeScoreError(Exception):
    """Base class for scoring errors."""

    pass


class ValidationError(ForgeScoreError):
    """Raised when input validation fails."""

    pass


class JobNotFoundError(ForgeScoreError):
    """Raised when a recompute job id does not exist."""

    pass


class RateLimitedError(ForgeScoreError):
    """Raised when a manual recompute is requested inside the rate-limit window."""

    def __init__(self, builder_id: str, retry_after_seconds: int):
        super().__init__(
            f"Rate limited: score for {builder_id} can be recomputed again in {retry_after_seconds}s"
        )
        self.builder_id = builder_id
        self.retry_after_seconds = retry_after_seconds


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class EvidenceType(str, Enum):
    DEPLOYMENT_HTTP_PROBE_OK = "DEPLOYMENT_HTTP_PROBE_OK"
    DEPLOYMENT_HTTP_PROBE_FAIL = "DEPLOYMENT_HTTP_PROBE_FAIL"
    GITHUB_CONTRIBUTOR_VERIFIED = "GITHUB_CONTRIBUTOR_VERIFIED"
    GITHUB_CONTRIBUTOR_FAIL = "GITHUB_CONTRIBUTOR_FAIL"
    REPO_STACK_INFERRED = "REPO_STACK_INFERRED"
    PR_REVIEW_ACTIVITY = "PR_REVIEW_ACTIVITY"
    DELIVERY_VERIFIED = "DELIVERY_VERIFIED"
    DELIVERY_SUSTAINED = "DELIVERY_SUSTAINED"
    DELIVERY_DROPPED = "DELIVERY_DROPPED"
    TEAM_ATTESTATION = "TEAM_ATTESTATION"
    TEAM_JOINED = "TEAM_JOINED"
    TEAM_DEPARTED = "TEAM_DEPARTED"
    PROJECT_COMPLETED = "PROJECT_COMPLETED"
    PROJECT_ABANDONED = "PROJECT_ABANDONED"
    NO_SHOW_FLAG = "NO_SHOW_FLAG"
    LIVE_CHALLENGE_RESULT = "LIVE_CHALLENGE_RESULT"
    ANOMALY_BURST_ACTIVITY = "ANOMALY_BURST_ACTIVITY"
    ANOMALY_TEMPLATE_CLONE = "ANOMALY_TEMPLATE_CLONE"
    ANOMALY_ATTESTATION_RING = "ANOMALY_ATTESTATION_RING"
    ARCH_DECISION_LOG = "ARCH_DECISION_LOG"
    OWNERSHIP_VERIFIED_STRONG = "OWNERSHIP_VERIFIED_STRONG"
    OWNERSHIP_VERIFIED_WEAK = "OWNERSHIP_VERIFIED_WEAK"
    CONSISTENCY_ACTIVE_WEEK = "CONSISTENCY_ACTIVE_WEEK"
    SKILL_EVIDENCE_INFERRED = "SKILL_EVIDENCE_INFERRED"


class EvidenceSource(str, Enum):
    PROBE_HTTP = "probe_http"
    PROBE_GITHUB = "probe_github"
    PROBE_STACK = "probe_stack"
    PLATFORM_EVENT = "platform_event"
    USER_ACTION = "user_action"
    ANOMALY_DETECTOR = "anomaly_detector"
    ATTESTATION = "attestation"
    SYSTEM = "system"


class RecomputeTrigger(str, Enum):
    DELIVERY_VERIFIED = "delivery_verified"
    PROBE_RESULT = "probe_result"
    ATTESTATION_ADDED = "attestation_added"
    PROJECT_STATUS_CHANGE = "project_status_change"
    TEAM_DEPARTURE = "team_departure"
    ANOMALY_FLAGGED = "anomaly_flagged"
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Triggers and evidence kinds that widen the movement cap to milestone_delta_max
MILESTONE_TRIGGERS = frozenset(
    {RecomputeTrigger.DELIVERY_VERIFIED.value, RecomputeTrigger.PROJECT_STATUS_CHANGE.value}
)
MILESTONE_EVIDENCE_TYPES = frozenset(
    {EvidenceType.DELIVERY_VERIFIED.value, EvidenceType.PROJECT_COMPLETED.value}
)

# Anomaly flags raised by the behavioral coherence multiplier
FLAG_HIGH_BURSTINESS = "HIGH_BURSTINESS"
FLAG_MODERATE_BURSTINESS = "MODERATE_BURSTINESS"
FLAG_ABNORMAL_EVIDENCE_DENSITY = "ABNORMAL_EVIDENCE_DENSITY"
FLAG_SUSPICIOUS_SKILL_JUMP = "SUSPICIOUS_SKILL_JUMP"
FLAG_TEMPLATE_CLONE_DETECTED = "TEMPLATE_CLONE_DETECTED"
FLAG_ATTESTATION_RING_DETECTED = "ATTESTATION_RING_DETECTED"


def coerce_evidence_type(value: Any) -> EvidenceType:
    if isinstance(value, EvidenceType):
        return value
    try:
        return EvidenceType(str(value))
    except ValueError:
        raise ValidationError(f"Unknown evidence type: {value!r}")


def coerce_evidence_source(value: Any) -> EvidenceSource:
    if isinstance(value, EvidenceSource):
        return value
    try:
        return EvidenceSource(str(value))
    except ValueError:
        raise ValidationError(f"Unknown evidence source: {value!r}")


# ─────────────────────────────────────────────────────────────────────────────
# Payload shapes
# ─────────────────────────────────────────────────────────────────────────────


class HttpProbePayload(TypedDict):
    """Payload of DEPLOYMENT_HTTP_PROBE_OK / _FAIL."""

    url: str
    reachable: bool
    status_code: Optional[int]
    response_time_ms: Optional[int]
    has_forge_token: bool
    error: Optional[str]


class GitHubProbePayload(TypedDict):
    """Payload of GITHUB_CONTRIBUTOR_VERIFIED / _FAIL."""

    repo_url: str
    username: str
    is_contributor: bool
    commit_count: int
    repo_exists: bool
    languages: Dict[str, int]
    has_ci: bool
    has_tests: bool
    has_dockerfile: bool
    error: Optional[str]


class RepoStackPayload(TypedDict):
    """Payload of REPO_STACK_INFERRED."""

    languages: Dict[str, int]
    has_ci: bool
    has_tests: bool
    has_dockerfile: bool


class OwnershipPayload(TypedDict):
    """Payload of OWNERSHIP_VERIFIED_STRONG / _WEAK."""

    github_verified: bool
    deployment_reachable: bool


class StackInferencePayload(TypedDict):
    """Payload of SKILL_EVIDENCE_INFERRED from a dependency manifest."""

    detected_stack: List[str]
    depth_flags: Dict[str, bool]


# ─────────────────────────────────────────────────────────────────────────────
# Ledger rows
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScoreEvidence:
    """One immutable ledger row."""

    id: str
    builder_id: str
    type: EvidenceType
    source: EvidenceSource
    payload: Dict[str, Any]
    confidence: float
    hash: str
    created_at: datetime
    project_id: Optional[str] = None
    delivery_id: Optional[str] = None
    superseded_by: Optional[str] = None


@dataclass(frozen=True)
class EvidenceParams:
    """Input to ledger ingestion."""

    builder_id: str
    type: EvidenceType
    source: EvidenceSource
    payload: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.5
    project_id: Optional[str] = None
    delivery_id: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Dimension inputs
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ECInput:
    verified_deliveries: int = 0
    sustained_deliveries: int = 0
    team_completed_deliveries: int = 0
    active_weeks_last_12: int = 0
    deliveries_last_6m: int = 0
    recency_days: float = 365.0
    evidence_additions_count: int = 0


@dataclass(frozen=True)
class AOIInput:
    stack_depth_score: float = 0.0
    ownership_strong_count: int = 0
    repo_complexity_signals: int = 0
    arch_decision_logs: int = 0
    pr_review_count: int = 0


@dataclass(frozen=True)
class RCInput:
    projects_joined: int = 0
    projects_completed: int = 0
    projects_abandoned: int = 0
    projects_late: int = 0
    no_show_count: int = 0
    team_departure_clean: int = 0
    team_departure_ghost: int = 0
    attestation_score: float = 0.0


@dataclass(frozen=True)
class LPIInput:
    deployment_probes_passed: int = 0
    deployment_probes_total: int = 0
    github_contributor_verified: int = 0
    github_contributor_total: int = 0
    live_challenge_score: float = 0.0


@dataclass(frozen=True)
class DimensionInputs:
    ec: ECInput
    aoi: AOIInput
    rc: RCInput
    lpi: LPIInput
    recency_days: float


# ─────────────────────────────────────────────────────────────────────────────
# Results
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DimensionScores:
    ec: int
    aoi: int
    rc: int
    lpi: int

    def as_dict(self) -> Dict[str, int]:
        return {"ec": self.ec, "aoi": self.aoi, "rc": self.rc, "lpi": self.lpi}


@dataclass(frozen=True)
class BCMResult:
    """Behavioral coherence multiplier and the detectors that fired."""

    multiplier: float
    flags: List[str]
    details: Dict[str, float]

    def as_dict(self) -> Dict[str, Any]:
        return {"multiplier": self.multiplier, "flags": list(self.flags), "details": dict(self.details)}


@dataclass(frozen=True)
class ScoreBreakdown:
    dimensions: DimensionScores
    composite: float
    bcm: BCMResult
    adjusted_composite: float
    raw_3digit: int
    capped_delta: int
    final_score: int
    confidence: int
    tenure_months: float
    model_version: str
    inactivity_decay_applied: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "dimensions": self.dimensions.as_dict(),
            "composite": self.composite,
            "bcm": self.bcm.as_dict(),
            "adjusted_composite": self.adjusted_composite,
            "raw_3digit": self.raw_3digit,
            "capped_delta": self.capped_delta,
            "final_score": self.final_score,
            "confidence": self.confidence,
            "tenure_months": self.tenure_months,
            "model_version": self.model_version,
            "inactivity_decay_applied": self.inactivity_decay_applied,
        }


@dataclass(frozen=True)
class ScoreResult:
    score: int
    previous_score: Optional[int]
    delta: int
    breakdown: ScoreBreakdown
    anomaly_flags: List[str]
    evidence_ids: List[str]


__all__ = [
    "ForgeScoreError",
    "ValidationError",
    "JobNotFoundError",
    "RateLimitedError",
    "EvidenceType",
    "EvidenceSource",
    "RecomputeTrigger",
    "JobStatus",
    "MILESTONE_TRIGGERS",
    "MILESTONE_EVIDENCE_TYPES",
    "FLAG_HIGH_BURSTINESS",
    "FLAG_MODERATE_BURSTINESS",
    "FLAG_ABNORMAL_EVIDENCE_DENSITY",
    "FLAG_SUSPICIOUS_SKILL_JUMP",
    "FLAG_TEMPLATE_CLONE_DETECTED",
    "FLAG_ATTESTATION_RING_DETECTED",
    "coerce_evidence_type",
    "coerce_evidence_source",
    "HttpProbePayload",
    "GitHubProbePayload",
    "RepoStackPayload",
    "OwnershipPayload",
    "StackInferencePayload",
    "ScoreEvidence",
    "EvidenceParams",
    "ECInput",
    "AOIInput",
    "RCInput",
    "LPIInput",
    "DimensionInputs",
    "DimensionScores",
    "BCMResult",
    "ScoreBreakdown",
    "ScoreResult",
]
