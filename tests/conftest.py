"""Shared fixtures for Forge Score tests."""

from __future__ import annotations

import itertools
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional

import pytest
import pytest_asyncio

from forgescore.database import DBM
from forgescore.scoring.types import EvidenceSource, EvidenceType, ScoreEvidence

# Fixed clock so engine results never depend on wall time
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_evidence() -> Callable[..., ScoreEvidence]:
    """Factory for in-memory evidence rows, timestamped relative to NOW."""
    counter = itertools.count()

    def _make(
        evidence_type: EvidenceType,
        *,
        days_ago: float = 0.0,
        builder_id: str = "builder-1",
        payload: Optional[Dict[str, Any]] = None,
        confidence: float = 0.8,
        source: EvidenceSource = EvidenceSource.SYSTEM,
    ) -> ScoreEvidence:
        n = next(counter)
        return ScoreEvidence(
            id=f"ev-{n}",
            builder_id=builder_id,
            type=evidence_type,
            source=source,
            payload=dict(payload or {}),
            confidence=confidence,
            hash=f"hash-{n}",
            created_at=NOW - timedelta(days=days_ago),
        )

    return _make


@pytest.fixture
def counts_of() -> Callable[[Iterable[ScoreEvidence]], Dict[str, int]]:
    def _counts(evidence: Iterable[ScoreEvidence]) -> Dict[str, int]:
        return dict(Counter(e.type.value for e in evidence))

    return _counts


@pytest_asyncio.fixture
async def dbm(tmp_path):
    """Fresh SQLite database with the full schema."""
    manager = DBM(f"sqlite+aiosqlite:///{tmp_path / 'forge.db'}")
    await manager.create_schema()
    try:
        yield manager
    finally:
        await manager.dispose()
