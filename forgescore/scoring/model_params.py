"""Scoring model versions.

A ScoringModelVersion bundles every hyperparameter that affects a score:
dimension weights, movement caps, tenure gates, decay and BCM bounds.

Every history row records the version that produced it, so a stored score
can always be reproduced against the parameters that were active then.
At most one version is active (deprecated_at is null) at a time.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


class ModelWeights(BaseModel):
    """Dimension weights for the composite.

    Composite = ec_weight * EC + aoi_weight * AOI + rc_weight * RC + lpi_weight * LPI
    """

    model_config = ConfigDict(frozen=True)

    ec_weight: float = Field(
        default=0.30,
        ge=0,
        le=1,
        description="Weight for Execution Consistency.",
    )
    aoi_weight: float = Field(
        default=0.20,
        ge=0,
        le=1,
        description="Weight for Orchestration Intelligence (ownership/stack depth).",
    )
    rc_weight: float = Field(
        default=0.30,
        ge=0,
        le=1,
        description="Weight for Reliability & Commitment.",
    )
    lpi_weight: float = Field(
        default=0.20,
        ge=0,
        le=1,
        description="Weight for Live Performance Index.",
    )
    self_report_max_weight: float = Field(
        default=0.20,
        ge=0,
        le=1,
        description="Ceiling on self-reported signal in the legacy fallback score.",
    )
    self_report_evidence_threshold: int = Field(
        default=3,
        ge=0,
        le=100,
        description="Evidence rows needed before self-report stops being consulted by the legacy fallback.",
    )


class ModelCaps(BaseModel):
    """Guardrails applied after the composite is mapped to 100-999."""

    model_config = ConfigDict(frozen=True)

    normal_delta_max: int = Field(
        default=35,
        ge=1,
        le=899,
        description="Maximum score movement per ordinary recompute.",
    )
    milestone_delta_max: int = Field(
        default=70,
        ge=1,
        le=899,
        description="Maximum score movement when milestone evidence triggered the recompute.",
    )
    tier_800_min_months: float = Field(
        default=4,
        ge=0,
        le=120,
        description="Minimum tenure (months, inclusive) to hold a score of 800 or more.",
    )
    tier_900_min_months: float = Field(
        default=9,
        ge=0,
        le=120,
        description="Minimum tenure (months, inclusive) to hold a score of 900 or more.",
    )
    inactivity_decay_start_days: float = Field(
        default=60,
        ge=0,
        le=3650,
        description="Days without evidence before decay starts.",
    )
    inactivity_decay_rate_per_day: float = Field(
        default=0.15,
        ge=0,
        le=100,
        description="Points subtracted per inactive day beyond the start threshold.",
    )
    bcm_min: float = Field(
        default=0.60,
        ge=0,
        le=1,
        description="Lower clamp on the behavioral coherence multiplier.",
    )
    bcm_max: float = Field(
        default=1.05,
        ge=1,
        le=2,
        description="Upper clamp on the behavioral coherence multiplier.",
    )


def _default_floors() -> Dict[str, int]:
    return {"100": 0, "200": 15, "400": 30, "600": 50, "800": 70, "900": 85}


class TierConfig(BaseModel):
    """Score range and tier floors (minimum composite for each tier)."""

    model_config = ConfigDict(frozen=True)

    floors: Dict[str, int] = Field(default_factory=_default_floors)
    score_min: int = Field(default=100, ge=0, le=1000)
    score_max: int = Field(default=999, ge=1, le=1000)


class ScoringModelVersion(BaseModel):
    """Immutable bundle of all scoring hyperparameters."""

    model_config = ConfigDict(frozen=True)

    version: str = "v3.0"
    weights: ModelWeights = Field(default_factory=ModelWeights)
    caps: ModelCaps = Field(default_factory=ModelCaps)
    tier_config: TierConfig = Field(default_factory=TierConfig)
    effective_from: Optional[datetime] = None
    deprecated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.deprecated_at is None


# Default instance for easy import
DEFAULT_MODEL = ScoringModelVersion()


def get_default_model() -> ScoringModelVersion:
    """Model used when no active version is configured."""
    return DEFAULT_MODEL


def _json_field(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def model_from_row(row: Optional[Mapping[str, Any]]) -> ScoringModelVersion:
    """Build a model from a scoring_model_versions row.

    JSON columns may arrive encoded (SQLite) or decoded (Postgres). A missing
    or invalid row degrades to the default model so scoring never blocks on
    configuration.
    """
    if not row:
        return get_default_model()
    try:
        return ScoringModelVersion(
            version=row["version"],
            weights=_json_field(row.get("weights")) or {},
            caps=_json_field(row.get("caps")) or {},
            tier_config=_json_field(row.get("tier_config")) or {},
            effective_from=row.get("effective_from"),
            deprecated_at=row.get("deprecated_at"),
        )
    except (KeyError, ValueError, TypeError, PydanticValidationError) as e:
        logger.warning(f"Invalid scoring model row {row.get('version')!r}, using default: {e}")
        return get_default_model()


__all__ = [
    "ModelWeights",
    "ModelCaps",
    "TierConfig",
    "ScoringModelVersion",
    "DEFAULT_MODEL",
    "get_default_model",
    "model_from_row",
]
