"""Tests for ledger/evidence.py against a real SQLite database."""

from datetime import timedelta

import pytest

from forgescore.ledger import EvidenceLedger
from forgescore.scoring.types import (
    EvidenceParams,
    EvidenceSource,
    EvidenceType,
    ValidationError,
)


def _params(evidence_type=EvidenceType.DELIVERY_VERIFIED, builder_id="b1", **kwargs):
    kwargs.setdefault("source", EvidenceSource.PLATFORM_EVENT)
    kwargs.setdefault("payload", {"delivery": "d1"})
    return EvidenceParams(builder_id=builder_id, type=evidence_type, **kwargs)


@pytest.fixture
def ledger(dbm):
    return EvidenceLedger(dbm)


class TestIngest:
    """Tests for EvidenceLedger.ingest."""

    @pytest.mark.asyncio
    async def test_ingest_returns_row(self, ledger):
        row = await ledger.ingest(_params(confidence=0.9))
        assert row is not None
        assert row.builder_id == "b1"
        assert row.type == EvidenceType.DELIVERY_VERIFIED
        assert row.confidence == pytest.approx(0.9)
        assert len(row.hash) == 64
        assert row.superseded_by is None

        stored = await ledger.get(row.id)
        assert stored is not None
        assert stored.payload == {"delivery": "d1"}
        assert stored.hash == row.hash

    @pytest.mark.asyncio
    async def test_duplicate_returns_none(self, ledger):
        first = await ledger.ingest(_params())
        second = await ledger.ingest(_params(payload={"delivery": "d1"}))
        assert first is not None
        assert second is None
        assert await ledger.count_by_type("b1") == {"DELIVERY_VERIFIED": 1}

    @pytest.mark.asyncio
    async def test_same_payload_other_builder_is_distinct(self, ledger):
        assert await ledger.ingest(_params(builder_id="b1")) is not None
        assert await ledger.ingest(_params(builder_id="b2")) is not None

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, ledger):
        high = await ledger.ingest(_params(confidence=1.7, payload={"n": 1}))
        low = await ledger.ingest(_params(confidence=-3, payload={"n": 2}))
        assert high.confidence == 1.0
        assert low.confidence == 0.0

    @pytest.mark.asyncio
    async def test_invalid_confidence_rejected(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.ingest(_params(confidence="lots"))
        with pytest.raises(ValidationError):
            await ledger.ingest(_params(confidence=float("nan")))

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.ingest(_params(evidence_type="NOT_A_TYPE"))

    @pytest.mark.asyncio
    async def test_missing_builder_rejected(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.ingest(_params(builder_id=""))


class TestQuery:
    """Tests for EvidenceLedger.query and count_by_type."""

    @pytest.mark.asyncio
    async def test_newest_first(self, ledger, now):
        for i, days in enumerate((10, 1, 5)):
            await ledger.ingest(_params(payload={"i": i}), created_at=now - timedelta(days=days))
        rows = await ledger.query("b1")
        assert [r.payload["i"] for r in rows] == [1, 2, 0]

    @pytest.mark.asyncio
    async def test_filters(self, ledger, now):
        await ledger.ingest(_params(EvidenceType.TEAM_JOINED, payload={}), created_at=now - timedelta(days=30))
        await ledger.ingest(_params(EvidenceType.DELIVERY_VERIFIED, payload={"a": 1}), created_at=now - timedelta(days=3))
        await ledger.ingest(_params(EvidenceType.DELIVERY_VERIFIED, payload={"a": 2}), created_at=now - timedelta(days=2))

        verified = await ledger.query("b1", types=[EvidenceType.DELIVERY_VERIFIED])
        assert len(verified) == 2

        recent = await ledger.query("b1", since=now - timedelta(days=7))
        assert {r.type for r in recent} == {EvidenceType.DELIVERY_VERIFIED}

        limited = await ledger.query("b1", limit=1)
        assert limited[0].payload == {"a": 2}

        assert await ledger.query("b1", types=[]) == []
        assert await ledger.query("someone-else") == []

    @pytest.mark.asyncio
    async def test_timestamps_are_utc(self, ledger, now):
        await ledger.ingest(_params(), created_at=now)
        (row,) = await ledger.query("b1")
        assert row.created_at == now
        assert row.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_count_by_type(self, ledger):
        await ledger.ingest(_params(EvidenceType.TEAM_JOINED, payload={"p": 1}))
        await ledger.ingest(_params(EvidenceType.TEAM_JOINED, payload={"p": 2}))
        await ledger.ingest(_params(EvidenceType.NO_SHOW_FLAG, payload={}))
        assert await ledger.count_by_type("b1") == {"TEAM_JOINED": 2, "NO_SHOW_FLAG": 1}


class TestSupersede:
    """Tests for EvidenceLedger.supersede."""

    @pytest.mark.asyncio
    async def test_supersede_hides_old_row(self, ledger):
        old = await ledger.ingest(_params(payload={"status": 503}))
        new = await ledger.supersede(old.id, _params(payload={"status": 200}))

        assert new.id != old.id
        live = await ledger.query("b1")
        assert [r.id for r in live] == [new.id]

        retired = await ledger.get(old.id)
        assert retired.superseded_by == new.id
        assert await ledger.count_by_type("b1") == {"DELIVERY_VERIFIED": 1}

    @pytest.mark.asyncio
    async def test_pointer_set_once(self, ledger):
        old = await ledger.ingest(_params(payload={"v": 0}))
        first = await ledger.supersede(old.id, _params(payload={"v": 1}))
        await ledger.supersede(old.id, _params(payload={"v": 2}))
        assert (await ledger.get(old.id)).superseded_by == first.id

    @pytest.mark.asyncio
    async def test_duplicate_replacement_reuses_existing_row(self, ledger):
        old = await ledger.ingest(_params(payload={"v": 0}))
        existing = await ledger.ingest(_params(payload={"v": 1}))
        new = await ledger.supersede(old.id, _params(payload={"v": 1}))
        assert new.id == existing.id

    @pytest.mark.asyncio
    async def test_unknown_id(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.supersede("missing", _params())

    @pytest.mark.asyncio
    async def test_cannot_supersede_itself(self, ledger):
        old = await ledger.ingest(_params())
        with pytest.raises(ValidationError):
            await ledger.supersede(old.id, _params())

    @pytest.mark.asyncio
    async def test_retired_row_cannot_become_successor(self, ledger):
        first = await ledger.ingest(_params(payload={"v": 0}))
        second = await ledger.supersede(first.id, _params(payload={"v": 1}))

        with pytest.raises(ValidationError):
            await ledger.supersede(second.id, _params(payload={"v": 0}))

        assert (await ledger.get(second.id)).superseded_by is None
        assert [r.id for r in await ledger.query("b1")] == [second.id]


class TestAttestations:
    """Tests for EvidenceLedger.attestations_by_builders."""

    @pytest.mark.asyncio
    async def test_only_attestations_for_listed_builders(self, ledger):
        await ledger.ingest(_params(EvidenceType.TEAM_ATTESTATION, builder_id="b2", payload={"attester_id": "b1"}))
        await ledger.ingest(_params(EvidenceType.TEAM_ATTESTATION, builder_id="b3", payload={"attester_id": "b1"}))
        await ledger.ingest(_params(EvidenceType.TEAM_JOINED, builder_id="b2", payload={}))

        rows = await ledger.attestations_by_builders(["b2", "", "b2"])
        assert len(rows) == 1
        assert rows[0].payload["attester_id"] == "b1"
        assert await ledger.attestations_by_builders([]) == []
