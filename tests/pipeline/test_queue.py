"""Tests for pipeline/queue.py."""

import pytest

from forgescore.pipeline.queue import MAX_ERROR_MESSAGE_LENGTH, RecomputeQueue
from forgescore.scoring.types import JobNotFoundError, JobStatus, RecomputeTrigger, ValidationError


@pytest.fixture
def queue(dbm):
    return RecomputeQueue(dbm)


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_enqueue_pending(self, queue):
        job = await queue.enqueue("b1", RecomputeTrigger.DELIVERY_VERIFIED, "ev-1", priority=2)
        stored = await queue.get_job(job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.trigger_type == "delivery_verified"
        assert stored.trigger_evidence_id == "ev-1"
        assert stored.priority == 2
        assert stored.claimed_at is None

    @pytest.mark.asyncio
    async def test_string_trigger_accepted(self, queue):
        job = await queue.enqueue("b1", "manual")
        assert job.trigger_type == "manual"

    @pytest.mark.asyncio
    async def test_unknown_trigger_rejected(self, queue):
        with pytest.raises(ValidationError):
            await queue.enqueue("b1", "because")

    @pytest.mark.asyncio
    async def test_builder_required(self, queue):
        with pytest.raises(ValidationError):
            await queue.enqueue("", RecomputeTrigger.MANUAL)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_claim_once(self, queue):
        job = await queue.enqueue("b1", RecomputeTrigger.MANUAL)
        assert await queue.claim(job.id) is True
        assert await queue.claim(job.id) is False

        stored = await queue.get_job(job.id)
        assert stored.status == JobStatus.PROCESSING
        assert stored.claimed_at is not None

    @pytest.mark.asyncio
    async def test_claim_missing(self, queue):
        assert await queue.claim("no-such-job") is False

    @pytest.mark.asyncio
    async def test_complete(self, queue):
        job = await queue.enqueue("b1", RecomputeTrigger.MANUAL)
        await queue.claim(job.id)
        assert await queue.complete(job.id) is True

        stored = await queue.get_job(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.processed_at is not None
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_fail_truncates_message(self, queue):
        job = await queue.enqueue("b1", RecomputeTrigger.MANUAL)
        await queue.claim(job.id)
        assert await queue.fail(job.id, "x" * 5000) is True

        stored = await queue.get_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert len(stored.error_message) == MAX_ERROR_MESSAGE_LENGTH

    @pytest.mark.asyncio
    async def test_finish_requires_processing(self, queue):
        job = await queue.enqueue("b1", RecomputeTrigger.MANUAL)
        assert await queue.complete(job.id) is False
        assert (await queue.get_job(job.id)).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_terminal_state_is_final(self, queue):
        job = await queue.enqueue("b1", RecomputeTrigger.MANUAL)
        await queue.claim(job.id)
        await queue.complete(job.id)
        assert await queue.fail(job.id, "late failure") is False
        assert (await queue.get_job(job.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_finish_unknown_job(self, queue):
        with pytest.raises(JobNotFoundError):
            await queue.complete("missing")


class TestPendingJobs:
    @pytest.mark.asyncio
    async def test_priority_order_and_limit(self, queue):
        low = await queue.enqueue("b1", RecomputeTrigger.SCHEDULED, priority=0)
        high = await queue.enqueue("b2", RecomputeTrigger.MANUAL, priority=5)
        mid = await queue.enqueue("b3", RecomputeTrigger.PROBE_RESULT, priority=1)

        jobs = await queue.pending_jobs()
        assert [j.id for j in jobs] == [high.id, mid.id, low.id]

        assert [j.id for j in await queue.pending_jobs(limit=1)] == [high.id]

    @pytest.mark.asyncio
    async def test_claimed_jobs_excluded(self, queue):
        job = await queue.enqueue("b1", RecomputeTrigger.MANUAL)
        await queue.claim(job.id)
        assert await queue.pending_jobs() == []
