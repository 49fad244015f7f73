"""Forge Score V3 scoring core.

Pure functions only: everything in this package is deterministic given its
inputs and never touches the database or the network.

- types: evidence, dimension and result types
- model_params: versioned scoring hyperparameters
- dimensions: EC / AOI / RC / LPI calculators
- anti_gaming: behavioral coherence multiplier
- guardrails: mapping, decay, tenure gates, movement caps
- engine: end-to-end score computation
"""

from __future__ import annotations

from .anti_gaming import compute_bcm
from .engine import ComputeV3Input, compute_forge_score_v3
from .guardrails import (
    apply_inactivity_decay,
    apply_movement_caps,
    apply_tenure_gates,
    map_to_3digit,
)
from .model_params import DEFAULT_MODEL, ScoringModelVersion, get_default_model

__all__ = [
    "ComputeV3Input",
    "compute_forge_score_v3",
    "compute_bcm",
    "apply_inactivity_decay",
    "apply_movement_caps",
    "apply_tenure_gates",
    "map_to_3digit",
    "DEFAULT_MODEL",
    "ScoringModelVersion",
    "get_default_model",
]
