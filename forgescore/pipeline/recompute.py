"""Score recompute pipeline.

Each job:
1. Claims the queue row (pending -> processing, conditional)
2. Loads the active model version (default when none is usable)
3. Gathers live evidence, counts, previous history and attestations
4. Computes the V3 score
5. Writes one score_history row, the builder projection and the rate-limit
   timestamp in a single transaction
6. Marks the job completed, or failed with the error message

score_history is the system of record. The builder projection is a cache
and is never read back as an input.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import func, insert, select
from sqlalchemy.exc import SQLAlchemyError

from forgescore import SCORE_GENERATION
from forgescore.database.dbm import DBM, dialect_insert
from forgescore.database.schema import (
    SKILL_COLUMNS,
    BuilderRow,
    ScoreHistoryRow,
    ScoreRateLimitRow,
    ScoringModelVersionRow,
)
from forgescore.ledger.evidence import EvidenceLedger
from forgescore.scoring.engine import ComputeV3Input, compute_forge_score_v3
from forgescore.scoring.model_params import ScoringModelVersion, get_default_model, model_from_row
from forgescore.scoring.types import (
    MILESTONE_EVIDENCE_TYPES,
    MILESTONE_TRIGGERS,
    EvidenceType,
    RateLimitedError,
    RecomputeTrigger,
    ScoreEvidence,
    ScoreResult,
)
from forgescore.shared.logging import log_event
from forgescore.shared.time import days_between, ensure_utc, utcnow

from .queue import RecomputeJob, RecomputeQueue

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_MINUTES = 15
MAX_SNAPSHOT_IDS = 100
DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 50


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    retry_after_seconds: int
    last_computed_at: Optional[datetime]


@dataclass(frozen=True)
class ScoreHistoryEntry:
    id: int
    builder_id: str
    score: int
    previous_score: Optional[int]
    delta: int
    breakdown: Dict[str, Any]
    anomaly_flags: List[str]
    evidence_snapshot_ids: List[str]
    model_version: str
    reason: str
    computed_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ScoreHistoryEntry":
        return cls(
            id=int(row["id"]),
            builder_id=row["builder_id"],
            score=int(row["score"]),
            previous_score=row.get("previous_score"),
            delta=int(row.get("delta") or 0),
            breakdown=_json_value(row.get("breakdown"), {}),
            anomaly_flags=list(_json_value(row.get("anomaly_flags"), [])),
            evidence_snapshot_ids=list(_json_value(row.get("evidence_snapshot_ids"), [])),
            model_version=row["model_version"],
            reason=row["reason"],
            computed_at=ensure_utc(row["computed_at"]),
        )


def _json_value(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return default
    return value


# ─────────────────────────────────────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────────────────────────────────────


async def load_active_model(dbm: DBM) -> ScoringModelVersion:
    """Newest non-deprecated model version, or the default model."""
    table = ScoringModelVersionRow.__table__
    try:
        rows = await dbm.read(
            select(table)
            .where(table.c.deprecated_at.is_(None))
            .order_by(table.c.effective_from.desc())
            .limit(1)
        )
    except SQLAlchemyError as e:
        logger.warning(f"Failed to load active scoring model, using default: {e}")
        return get_default_model()
    return model_from_row(dict(rows[0]) if rows else None)


async def get_score_history(
    dbm: DBM,
    builder_id: str,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> List[ScoreHistoryEntry]:
    """History rows for a builder, newest first. limit is clamped to [1, 50]."""
    limit = max(1, min(MAX_HISTORY_LIMIT, int(limit)))
    table = ScoreHistoryRow.__table__
    rows = await dbm.read(
        select(table)
        .where(table.c.builder_id == builder_id)
        .order_by(table.c.computed_at.desc(), table.c.id.desc())
        .limit(limit)
    )
    return [ScoreHistoryEntry.from_row(r) for r in rows]


async def _latest_history(dbm: DBM, builder_id: str) -> Optional[ScoreHistoryEntry]:
    entries = await get_score_history(dbm, builder_id, limit=1)
    return entries[0] if entries else None


async def _load_builder(dbm: DBM, builder_id: str) -> Optional[Mapping[str, Any]]:
    table = BuilderRow.__table__
    rows = await dbm.read(select(table).where(table.c.id == builder_id))
    return rows[0] if rows else None


async def check_rate_limit(
    dbm: DBM,
    builder_id: str,
    window_minutes: int = DEFAULT_RATE_LIMIT_MINUTES,
    now: Optional[datetime] = None,
) -> RateLimitStatus:
    """Whether the rate-limit window since the last recompute has passed."""
    table = ScoreRateLimitRow.__table__
    rows = await dbm.read(select(table.c.last_computed_at).where(table.c.builder_id == builder_id))
    if not rows or rows[0]["last_computed_at"] is None:
        return RateLimitStatus(allowed=True, retry_after_seconds=0, last_computed_at=None)

    last = ensure_utc(rows[0]["last_computed_at"])
    now = ensure_utc(now) if now is not None else utcnow()
    remaining = (last + timedelta(minutes=window_minutes)) - now
    if remaining.total_seconds() <= 0:
        return RateLimitStatus(allowed=True, retry_after_seconds=0, last_computed_at=last)
    return RateLimitStatus(
        allowed=False,
        retry_after_seconds=int(remaining.total_seconds()) + 1,
        last_computed_at=last,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Compute
# ─────────────────────────────────────────────────────────────────────────────


def _skill_vector(builder: Optional[Mapping[str, Any]]) -> List[float]:
    if builder is None:
        return []
    return [float(builder.get(col) or 0) for col in SKILL_COLUMNS]


def _attester_ids(evidence: Sequence[ScoreEvidence]) -> List[str]:
    ids = {
        str(e.payload.get("attester_id"))
        for e in evidence
        if e.type == EvidenceType.TEAM_ATTESTATION and (e.payload or {}).get("attester_id")
    }
    return sorted(ids)


def _tenure_start(builder: Optional[Mapping[str, Any]], evidence: Sequence[ScoreEvidence], now: datetime) -> datetime:
    if builder is not None and builder.get("tenure_start"):
        return ensure_utc(builder["tenure_start"])
    if evidence:
        return min(ensure_utc(e.created_at) for e in evidence)
    return now


def _upsert_builder(dialect: str, builder_id: str, score: int, model_version: str, now: datetime, tenure_start: datetime):
    table = BuilderRow.__table__
    stmt = dialect_insert(dialect, table).values(
        id=builder_id,
        score_v3=score,
        score_v3_model=model_version,
        score_v3_computed_at=now,
        tenure_start=tenure_start,
    )
    return stmt.on_conflict_do_update(
        index_elements=["id"],
        set_={
            "score_v3": stmt.excluded.score_v3,
            "score_v3_model": stmt.excluded.score_v3_model,
            "score_v3_computed_at": stmt.excluded.score_v3_computed_at,
            # tenure_start is stamped once
            "tenure_start": func.coalesce(table.c.tenure_start, stmt.excluded.tenure_start),
        },
    )


def _upsert_rate_limit(dialect: str, builder_id: str, now: datetime):
    stmt = dialect_insert(dialect, ScoreRateLimitRow.__table__).values(
        builder_id=builder_id,
        last_computed_at=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=["builder_id"],
        set_={"last_computed_at": stmt.excluded.last_computed_at},
    )


async def compute_score_for_builder(
    dbm: DBM,
    builder_id: str,
    reason: str = RecomputeTrigger.MANUAL.value,
    has_milestone_evidence: bool = False,
    *,
    as_of: Optional[datetime] = None,
) -> ScoreResult:
    now = ensure_utc(as_of) if as_of is not None else utcnow()
    ledger = EvidenceLedger(dbm)

    model = await load_active_model(dbm)
    evidence = await ledger.query(builder_id)
    counts = await ledger.count_by_type(builder_id)
    builder = await _load_builder(dbm, builder_id)
    last = await _latest_history(dbm, builder_id)
    attestations = await ledger.attestations_by_builders(_attester_ids(evidence))

    tenure_start = _tenure_start(builder, evidence, now)
    tenure_days = max(0.0, days_between(tenure_start, now))
    current_skills = _skill_vector(builder)
    previous_skills = None
    if last is not None:
        previous_skills = last.breakdown.get("skill_scores") or None

    result = compute_forge_score_v3(
        ComputeV3Input(
            builder_id=builder_id,
            evidence=evidence,
            counts=counts,
            tenure_days=tenure_days,
            previous_score=last.score if last is not None else None,
            previous_skill_scores=previous_skills,
            current_skill_scores=current_skills,
            attestations_for_builder=attestations,
            model=model,
            trigger_reason=reason,
            has_milestone_evidence=has_milestone_evidence,
            as_of=now,
        )
    )

    breakdown = result.breakdown.as_dict()
    breakdown["skill_scores"] = current_skills
    breakdown["generation"] = SCORE_GENERATION

    await dbm.write_many(
        [
            insert(ScoreHistoryRow).values(
                builder_id=builder_id,
                score=result.score,
                previous_score=result.previous_score,
                delta=result.delta,
                breakdown=json.dumps(breakdown, sort_keys=True),
                anomaly_flags=json.dumps(result.anomaly_flags),
                evidence_snapshot_ids=json.dumps(result.evidence_ids[:MAX_SNAPSHOT_IDS]),
                model_version=model.version,
                reason=reason,
                computed_at=now,
            ),
            _upsert_builder(dbm.dialect, builder_id, result.score, model.version, now, tenure_start),
            _upsert_rate_limit(dbm.dialect, builder_id, now),
        ]
    )

    log_event(
        "recompute builder=%s score=%s delta=%s flags=%s model=%s reason=%s",
        builder_id,
        result.score,
        result.delta,
        ",".join(result.anomaly_flags) or "-",
        model.version,
        reason,
    )
    logger.info(
        f"Scored {builder_id}: {result.score} (delta {result.delta:+d}, "
        f"bcm {result.breakdown.bcm.multiplier:.2f}, {len(evidence)} evidence)"
    )
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Jobs
# ─────────────────────────────────────────────────────────────────────────────


async def is_milestone_job(dbm: DBM, job: RecomputeJob) -> bool:
    """Milestone trigger, or trigger evidence of a milestone type."""
    if job.trigger_type in MILESTONE_TRIGGERS:
        return True
    if not job.trigger_evidence_id:
        return False
    trigger = await EvidenceLedger(dbm).get(job.trigger_evidence_id)
    return trigger is not None and trigger.type.value in MILESTONE_EVIDENCE_TYPES


async def process_recompute_job(
    dbm: DBM,
    job_id: str,
    *,
    queue: Optional[RecomputeQueue] = None,
    as_of: Optional[datetime] = None,
) -> Optional[ScoreResult]:
    """Claim and run one job. None when the job was not claimed or failed."""
    queue = queue or RecomputeQueue(dbm)
    if not await queue.claim(job_id):
        logger.debug(f"Job {job_id} not claimed (missing or already taken)")
        return None

    job = await queue.get_job(job_id)
    if job is None:
        return None

    try:
        milestone = await is_milestone_job(dbm, job)
        result = await compute_score_for_builder(
            dbm,
            job.builder_id,
            job.trigger_type,
            milestone,
            as_of=as_of,
        )
    except Exception as e:
        logger.error(f"Job {job_id} failed: {e}", exc_info=True)
        await queue.fail(job_id, str(e) or type(e).__name__)
        return None

    try:
        await queue.complete(job_id)
    except Exception as e:
        # history is already committed; only the job row is left to settle
        logger.error(f"Job {job_id} scored but completion was not recorded: {e}", exc_info=True)
        await queue.fail(job_id, f"completion not recorded: {e}")
        return None
    return result


async def request_manual_recompute(
    dbm: DBM,
    builder_id: str,
    *,
    window_minutes: int = DEFAULT_RATE_LIMIT_MINUTES,
    priority: int = 0,
) -> RecomputeJob:
    """Queue a user-requested recompute, refusing inside the rate-limit window."""
    status = await check_rate_limit(dbm, builder_id, window_minutes)
    if not status.allowed:
        raise RateLimitedError(builder_id, status.retry_after_seconds)
    return await RecomputeQueue(dbm).enqueue(builder_id, RecomputeTrigger.MANUAL, priority=priority)


__all__ = [
    "RateLimitStatus",
    "ScoreHistoryEntry",
    "load_active_model",
    "get_score_history",
    "check_rate_limit",
    "compute_score_for_builder",
    "is_milestone_job",
    "process_recompute_job",
    "request_manual_recompute",
]
