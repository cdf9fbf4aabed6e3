"""
Retry/DLQ state machine.

Decides the status a job moves to after an execution outcome. Dead-lettering
is never stored: a FAILED job whose retry_count has reached max_retries is
terminal, and every check derives that from the two counters.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from jobqueue.constants import EXECUTION_FAILED, MAX_RETRIES_EXCEEDED, JobStatus

if TYPE_CHECKING:
    from jobqueue.db.models import Job
    from jobqueue.db.store import JobStore
    from jobqueue.types.job import JobResult

logger = logging.getLogger(__name__)


def is_dead_lettered(job: Any) -> bool:
    """Check if the job has exhausted its retries and is quarantined."""
    return job.status == JobStatus.FAILED and job.retry_count >= job.max_retries


def is_claimable(job: Any, now: datetime) -> bool:
    """Check if a poller may claim the job at ``now``."""
    if job.status == JobStatus.PENDING:
        return True
    if job.status == JobStatus.RUNNING:
        return job.leased_until is not None and job.leased_until < now
    if job.status == JobStatus.FAILED:
        return job.retry_count < job.max_retries
    return False


@dataclass(frozen=True)
class Transition:
    """Target state for a job after one execution."""

    status: JobStatus
    retry_count: int
    error_message: str | None = None
    dead_lettered: bool = False


def next_transition(job: "Job", result: "JobResult") -> Transition:
    """
    Compute the transition for a claimed job given its execution result.

    Success completes the job. Failure consumes one retry; reaching the
    ceiling dead-letters the job, otherwise it stays schedulable.

    Args:
        job: The claimed (RUNNING) job.
        result: The execution outcome.

    Returns:
        The transition to persist.
    """
    if result.success:
        return Transition(status=JobStatus.DONE, retry_count=job.retry_count)

    retry_count = job.retry_count + 1
    if retry_count >= job.max_retries:
        return Transition(
            status=JobStatus.FAILED,
            retry_count=job.max_retries,
            error_message=MAX_RETRIES_EXCEEDED,
            dead_lettered=True,
        )

    return Transition(
        status=JobStatus.FAILED,
        retry_count=retry_count,
        error_message=result.error or EXECUTION_FAILED,
    )


async def apply_transition(
    store: "JobStore",
    job: "Job",
    transition: Transition,
) -> "Job | None":
    """
    Persist a transition through the job store.

    Args:
        store: The job store.
        job: The claimed job.
        transition: The transition computed by next_transition.

    Returns:
        The updated job, or None if the job was no longer RUNNING under the
        lease it was claimed with.
    """
    if transition.status == JobStatus.DONE:
        updated = await store.mark_done(job.id, owner=job.lease_owner)
    else:
        updated = await store.mark_failed(
            job.id,
            retry_count=transition.retry_count,
            error_message=transition.error_message or EXECUTION_FAILED,
            owner=job.lease_owner,
        )

    if updated is None:
        logger.warning(
            "Job no longer running, outcome not recorded",
            extra={"job_id": str(job.id), "trace_id": job.trace_id},
        )
    elif transition.dead_lettered:
        logger.warning(
            "Job moved to DLQ",
            extra={
                "job_id": str(job.id),
                "trace_id": job.trace_id,
                "retry_count": updated.retry_count,
            },
        )
    elif transition.status == JobStatus.FAILED:
        logger.info(
            "Job failed, will retry",
            extra={
                "job_id": str(job.id),
                "trace_id": job.trace_id,
                "retry_count": updated.retry_count,
                "max_retries": updated.max_retries,
            },
        )
    else:
        logger.info(
            "Job completed successfully",
            extra={"job_id": str(job.id), "trace_id": job.trace_id},
        )

    return updated
