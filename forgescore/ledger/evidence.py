"""Append-only evidence ledger.

Evidence rows are immutable. Ingest is idempotent on (builder_id, hash):
re-submitting identical evidence returns None instead of raising, so a
retried probe can never double count. Rows are retired only by pointing
``superseded_by`` at a newer row; default queries skip retired rows.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import func, select, update

from forgescore.database.dbm import DBM, dialect_insert
from forgescore.database.schema import ScoreEvidenceRow
from forgescore.scoring.determinism import clamp01
from forgescore.scoring.types import (
    EvidenceParams,
    EvidenceType,
    ScoreEvidence,
    ValidationError,
    coerce_evidence_source,
    coerce_evidence_type,
)
from forgescore.shared.time import ensure_utc, utcnow

from .hashing import canonical_json, evidence_hash

logger = logging.getLogger(__name__)


def _coerce_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Confidence must be a number, got {value!r}")
    if math.isnan(confidence):
        raise ValidationError("Confidence must be a number, got NaN")
    return clamp01(confidence)


def row_to_evidence(row: Mapping[str, Any]) -> ScoreEvidence:
    """Convert a score_evidence row mapping into a ScoreEvidence."""
    payload = row.get("payload") or {}
    if isinstance(payload, (str, bytes)):
        payload = json.loads(payload) if payload else {}
    return ScoreEvidence(
        id=row["id"],
        builder_id=row["builder_id"],
        type=coerce_evidence_type(row["type"]),
        source=coerce_evidence_source(row["source"]),
        payload=dict(payload),
        confidence=float(row["confidence"]),
        hash=row["hash"],
        created_at=ensure_utc(row["created_at"]),
        project_id=row.get("project_id"),
        delivery_id=row.get("delivery_id"),
        superseded_by=row.get("superseded_by"),
    )


class EvidenceLedger:
    """Ledger operations over the score_evidence table."""

    def __init__(self, dbm: DBM):
        self.dbm = dbm

    async def ingest(
        self,
        params: EvidenceParams,
        *,
        created_at: Optional[datetime] = None,
    ) -> Optional[ScoreEvidence]:
        """Record one piece of evidence.

        Returns the stored row, or None when the same builder already holds
        evidence with the same hash. ``created_at`` overrides the recording
        time for backfills.
        """
        if not params.builder_id:
            raise ValidationError("builder_id is required")
        evidence_type = coerce_evidence_type(params.type)
        source = coerce_evidence_source(params.source)
        confidence = _coerce_confidence(params.confidence)
        payload = dict(params.payload or {})

        digest = evidence_hash(
            params.builder_id,
            evidence_type,
            payload,
            delivery_id=params.delivery_id,
            project_id=params.project_id,
        )
        payload_json = canonical_json(payload)
        recorded_at = ensure_utc(created_at) if created_at is not None else utcnow()
        evidence_id = str(uuid.uuid4())

        stmt = (
            dialect_insert(self.dbm.dialect, ScoreEvidenceRow)
            .values(
                id=evidence_id,
                builder_id=params.builder_id,
                project_id=params.project_id,
                delivery_id=params.delivery_id,
                type=evidence_type.value,
                source=source.value,
                payload=payload_json,
                confidence=confidence,
                hash=digest,
                superseded_by=None,
                created_at=recorded_at,
            )
            .on_conflict_do_nothing(index_elements=["builder_id", "hash"])
            .returning(ScoreEvidenceRow.id)
        )
        rows = await self.dbm.write(stmt, return_rows=True)
        if not rows:
            logger.debug(f"Duplicate evidence {evidence_type.value} for {params.builder_id} ({digest[:12]})")
            return None

        return ScoreEvidence(
            id=evidence_id,
            builder_id=params.builder_id,
            type=evidence_type,
            source=source,
            payload=json.loads(payload_json),
            confidence=confidence,
            hash=digest,
            created_at=recorded_at,
            project_id=params.project_id,
            delivery_id=params.delivery_id,
        )

    async def get(self, evidence_id: str) -> Optional[ScoreEvidence]:
        """Fetch one row by id, superseded or not."""
        rows = await self.dbm.read(
            select(ScoreEvidenceRow.__table__).where(ScoreEvidenceRow.id == evidence_id)
        )
        return row_to_evidence(rows[0]) if rows else None

    async def query(
        self,
        builder_id: str,
        types: Optional[Iterable[EvidenceType | str]] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ScoreEvidence]:
        """Live (non-superseded) evidence for a builder, newest first."""
        table = ScoreEvidenceRow.__table__
        stmt = select(table).where(
            table.c.builder_id == builder_id,
            table.c.superseded_by.is_(None),
        )
        if types is not None:
            type_values = [coerce_evidence_type(t).value for t in types]
            if not type_values:
                return []
            stmt = stmt.where(table.c.type.in_(type_values))
        if since is not None:
            stmt = stmt.where(table.c.created_at >= ensure_utc(since))
        stmt = stmt.order_by(table.c.created_at.desc(), table.c.id.desc())
        if limit is not None:
            stmt = stmt.limit(max(1, int(limit)))

        rows = await self.dbm.read(stmt)
        return [row_to_evidence(r) for r in rows]

    async def count_by_type(self, builder_id: str) -> Dict[str, int]:
        """Live evidence counts keyed by evidence type value."""
        table = ScoreEvidenceRow.__table__
        stmt = (
            select(table.c.type, func.count(table.c.id).label("n"))
            .where(
                table.c.builder_id == builder_id,
                table.c.superseded_by.is_(None),
            )
            .group_by(table.c.type)
        )
        rows = await self.dbm.read(stmt)
        return {r["type"]: int(r["n"]) for r in rows}

    async def supersede(self, old_id: str, replacement: EvidenceParams) -> ScoreEvidence:
        """Retire ``old_id`` in favour of a newly ingested replacement.

        The old row's pointer is set only while it is still null, so a row
        is superseded at most once. When the replacement is a duplicate the
        existing matching row becomes the successor.
        """
        old = await self.get(old_id)
        if old is None:
            raise ValidationError(f"Unknown evidence id: {old_id}")

        new = await self.ingest(replacement)
        if new is None:
            new = await self._find_by_hash(
                replacement.builder_id,
                evidence_hash(
                    replacement.builder_id,
                    coerce_evidence_type(replacement.type),
                    dict(replacement.payload or {}),
                    delivery_id=replacement.delivery_id,
                    project_id=replacement.project_id,
                ),
            )
            if new is None:
                raise ValidationError(f"Replacement for {old_id} could not be stored")
        if new.id == old_id:
            raise ValidationError("Evidence cannot supersede itself")
        if new.superseded_by is not None:
            raise ValidationError(f"Replacement {new.id} is itself superseded by {new.superseded_by}")

        table = ScoreEvidenceRow.__table__
        updated = await self.dbm.write(
            update(table)
            .where(table.c.id == old_id, table.c.superseded_by.is_(None))
            .values(superseded_by=new.id)
        )
        if not updated:
            logger.info(f"Evidence {old_id} was already superseded; leaving pointer unchanged")
        return new

    async def attestations_by_builders(self, builder_ids: Sequence[str]) -> List[ScoreEvidence]:
        """Live TEAM_ATTESTATION rows received by any of ``builder_ids``.

        Used for ring detection: the rows whose attester is the builder being
        scored show which of its attesters it vouched for in return.
        """
        ids = sorted({b for b in builder_ids if b})
        if not ids:
            return []
        table = ScoreEvidenceRow.__table__
        stmt = (
            select(table)
            .where(
                table.c.builder_id.in_(ids),
                table.c.type == EvidenceType.TEAM_ATTESTATION.value,
                table.c.superseded_by.is_(None),
            )
            .order_by(table.c.created_at.desc())
        )
        rows = await self.dbm.read(stmt)
        return [row_to_evidence(r) for r in rows]

    async def _find_by_hash(self, builder_id: str, digest: str) -> Optional[ScoreEvidence]:
        table = ScoreEvidenceRow.__table__
        rows = await self.dbm.read(
            select(table).where(table.c.builder_id == builder_id, table.c.hash == digest)
        )
        return row_to_evidence(rows[0]) if rows else None


__all__ = ["EvidenceLedger", "row_to_evidence"]
