"""Numeric helpers that keep scoring reproducible.

Every recompute with identical inputs must produce an identical score, so
rounding is pinned to half-up (not Python's banker's rounding) and every
saturating transform goes through the same helpers.
"""

from __future__ import annotations

import math


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp a value to a range."""
    return max(min_val, min(value, max_val))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties toward +infinity."""
    return int(math.floor(value + 0.5))


def saturate(value: float, scale: float) -> float:
    """Exponential saturation: 1 - e^(-value/scale), 0 for non-positive input."""
    if value <= 0 or scale <= 0:
        return 0.0
    return 1.0 - math.exp(-value / scale)


def to_percent(value: float) -> int:
    """Map a [0, 1] quantity onto an integer 0-100."""
    return round_half_up(100 * clamp01(value))


__all__ = ["clamp", "clamp01", "round_half_up", "saturate", "to_percent"]
