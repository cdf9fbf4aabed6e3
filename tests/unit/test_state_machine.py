"""
Unit tests for the retry/DLQ state machine.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from jobqueue.constants import EXECUTION_FAILED, MAX_RETRIES_EXCEEDED, JobStatus
from jobqueue.db.models import Job, utcnow
from jobqueue.queue.state_machine import (
    Transition,
    apply_transition,
    is_claimable,
    is_dead_lettered,
    next_transition,
)
from jobqueue.types.job import JobResult


def build_job(**overrides) -> Job:
    fields = {
        "id": uuid4(),
        "tenant_id": "test-tenant",
        "payload": "work",
        "status": JobStatus.RUNNING,
        "retry_count": 0,
        "max_retries": 3,
        "leased_until": utcnow() + timedelta(seconds=30),
        "trace_id": uuid4().hex,
    }
    fields.update(overrides)
    return Job(**fields)


class TestPredicates:
    """Tests for the derived job predicates."""

    def test_dead_lettered_requires_failed_at_ceiling(self):
        assert is_dead_lettered(build_job(status=JobStatus.FAILED, retry_count=3)) is True
        assert is_dead_lettered(build_job(status=JobStatus.FAILED, retry_count=2)) is False
        assert is_dead_lettered(build_job(status=JobStatus.DONE, retry_count=3)) is False

    @pytest.mark.parametrize(
        ("overrides", "expected"),
        [
            ({"status": JobStatus.PENDING}, True),
            ({"status": JobStatus.DONE}, False),
            ({"status": JobStatus.FAILED, "retry_count": 2}, True),
            ({"status": JobStatus.FAILED, "retry_count": 3}, False),
        ],
    )
    def test_is_claimable(self, overrides, expected):
        assert is_claimable(build_job(**overrides), utcnow()) is expected

    def test_running_claimable_only_after_lease_expiry(self):
        now = utcnow()
        job = build_job(leased_until=now + timedelta(seconds=5))

        assert is_claimable(job, now) is False
        assert is_claimable(job, now + timedelta(seconds=6)) is True


class TestNextTransition:
    """Tests for next_transition."""

    def test_success_completes(self):
        transition = next_transition(build_job(retry_count=1), JobResult(success=True))

        assert transition == Transition(status=JobStatus.DONE, retry_count=1)

    def test_failure_consumes_retry(self):
        transition = next_transition(
            build_job(retry_count=0),
            JobResult(success=False, error="boom"),
        )

        assert transition.status == JobStatus.FAILED
        assert transition.retry_count == 1
        assert transition.error_message == "boom"
        assert transition.dead_lettered is False

    def test_failure_without_error_uses_default_message(self):
        transition = next_transition(build_job(), JobResult(success=False))

        assert transition.error_message == EXECUTION_FAILED

    def test_last_failure_dead_letters(self):
        transition = next_transition(
            build_job(retry_count=2, max_retries=3),
            JobResult(success=False, error="boom"),
        )

        assert transition.status == JobStatus.FAILED
        assert transition.retry_count == 3
        assert transition.error_message == MAX_RETRIES_EXCEEDED
        assert transition.dead_lettered is True

    def test_single_attempt_job_dead_letters_on_first_failure(self):
        transition = next_transition(build_job(max_retries=1), JobResult(success=False))

        assert transition.dead_lettered is True
        assert transition.retry_count == 1


class TestApplyTransition:
    """Tests for apply_transition against a real store."""

    async def test_apply_done(self, store, make_job):
        job = await make_job()
        claimed = await store.claim_next(30)

        updated = await apply_transition(
            store, claimed, next_transition(claimed, JobResult(success=True))
        )

        assert updated.id == job.id
        assert updated.status == JobStatus.DONE

    async def test_apply_dead_letter(self, store, make_job):
        await make_job(status=JobStatus.FAILED, retry_count=2, max_retries=3)
        claimed = await store.claim_next(30)

        updated = await apply_transition(
            store, claimed, next_transition(claimed, JobResult(success=False))
        )

        assert updated.status == JobStatus.FAILED
        assert updated.retry_count == 3
        assert updated.error_message == MAX_RETRIES_EXCEEDED
        assert is_dead_lettered(updated)

    async def test_apply_to_job_no_longer_running(self, store, make_job):
        job = await make_job(status=JobStatus.DONE)

        updated = await apply_transition(
            store, job, Transition(status=JobStatus.FAILED, retry_count=1)
        )

        assert updated is None
