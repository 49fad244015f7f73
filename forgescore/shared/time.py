"""UTC time helpers shared by the ledger, engine and pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

SECONDS_PER_DAY = 24 * 60 * 60
MS_PER_DAY = SECONDS_PER_DAY * 1000
MS_PER_WEEK = 7 * MS_PER_DAY


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Any) -> datetime:
    """Coerce a datetime or ISO string to an aware UTC datetime.

    SQLite hands timestamps back naive (or as strings from raw SQL); they are
    always written as UTC, so naive values are tagged rather than converted.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime or ISO string, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> float:
    return ensure_utc(value).timestamp() * 1000.0


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from earlier to later (negative if reversed)."""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / SECONDS_PER_DAY


__all__ = [
    "SECONDS_PER_DAY",
    "MS_PER_DAY",
    "MS_PER_WEEK",
    "utcnow",
    "ensure_utc",
    "to_epoch_ms",
    "days_between",
]
