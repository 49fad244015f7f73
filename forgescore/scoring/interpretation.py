"""Display helpers for consumers of the score (profile pages, APIs).

A score of None or <= 0 means "not computed yet" and renders as a
placeholder rather than a number.
"""

from __future__ import annotations

from typing import Optional

PLACEHOLDER = "—"

# (minimum score, band name), highest first
SCORE_BANDS = (
    (800, "Elite"),
    (600, "Strong"),
    (400, "Proven"),
    (200, "Developing"),
)

CONFIDENCE_HIGH = 65
CONFIDENCE_MEDIUM = 35


def is_score_computed(score: Optional[int]) -> bool:
    return score is not None and score > 0


def format_score(score: Optional[int]) -> str:
    if not is_score_computed(score):
        return PLACEHOLDER
    return str(score)


def score_band(score: Optional[int]) -> Optional[str]:
    """Band name for a score, or None below the first band."""
    if not is_score_computed(score):
        return None
    for floor, name in SCORE_BANDS:
        if score >= floor:
            return name
    return None


def confidence_label(confidence: Optional[int]) -> str:
    if confidence is None or confidence <= 0:
        return PLACEHOLDER
    if confidence >= CONFIDENCE_HIGH:
        return "High"
    if confidence >= CONFIDENCE_MEDIUM:
        return "Medium"
    return "Low"


__all__ = [
    "PLACEHOLDER",
    "SCORE_BANDS",
    "is_score_computed",
    "format_score",
    "score_band",
    "confidence_label",
]
