"""
Job store for database operations.
Implements the core data access patterns for job management.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from jobqueue.constants import DEFAULT_LIST_LIMIT, JobStatus
from jobqueue.db.models import Job, utcnow
from jobqueue.errors import DuplicateJobError, StoreError
from jobqueue.types.job import QueueMetrics

logger = logging.getLogger(__name__)


def eligible_for_claim(model, now):
    """
    SQL predicate matching jobs a poller may claim.

    Pending jobs, running jobs whose lease has lapsed, and failed jobs that
    still have retries left.
    """
    return or_(
        model.status == JobStatus.PENDING,
        and_(model.status == JobStatus.RUNNING, model.leased_until < now),
        and_(model.status == JobStatus.FAILED, model.retry_count < model.max_retries),
    )


def held_by(job_id, owner):
    """Conditions for an outcome write: still RUNNING, and under owner's lease when given."""
    conditions = [Job.id == job_id, Job.status == JobStatus.RUNNING]
    if owner is not None:
        conditions.append(Job.lease_owner == owner)
    return conditions


class JobStore:
    """
    Store for job persistence.

    Every operation runs in its own short transaction. Implements atomic
    operations for:
    - Job insertion guarded by the idempotency-key unique constraint
    - Lease acquisition as a single conditional UPDATE ... RETURNING
    - Outcome transitions conditional on the job still being RUNNING under
      the same lease owner
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize the store with a session factory.

        Args:
            session_factory: Factory producing async database sessions.
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession]:
        """Run the body in a transaction, surfacing driver failures as StoreError."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error("Store operation failed", extra={"error": str(e)})
            raise StoreError(f"Store operation failed: {e}") from e

    async def insert(self, job: Job) -> Job:
        """
        Persist a new job.

        Args:
            job: The job to insert. Its idempotency key, if any, must be unused.

        Returns:
            The persisted job.

        Raises:
            DuplicateJobError: If another job already holds the idempotency key.
            StoreError: On any other database failure.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(job)
        except IntegrityError as e:
            raise DuplicateJobError(
                f"Idempotency key already in use: {job.idempotency_key}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Failed to insert job",
                extra={"job_id": str(job.id), "trace_id": job.trace_id, "error": str(e)},
            )
            raise StoreError(f"Failed to insert job: {e}") from e

        return job

    async def get_by_id(self, job_id: UUID) -> Job | None:
        """
        Get a job by ID.

        Returns:
            The Job or None if not found.
        """
        async with self._transaction() as session:
            result = await session.execute(select(Job).where(Job.id == job_id))
            return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, idempotency_key: str) -> Job | None:
        """
        Get a job by its idempotency key.

        Returns:
            The Job or None if not found.
        """
        async with self._transaction() as session:
            result = await session.execute(
                select(Job).where(Job.idempotency_key == idempotency_key)
            )
            return result.scalar_one_or_none()

    async def list(
        self,
        status: JobStatus | None = None,
        tenant_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Job]:
        """
        List jobs, newest first, with optional equality filters.

        Args:
            status: Optional status filter.
            tenant_id: Optional tenant filter.
            limit: Maximum number of jobs to return.

        Returns:
            Matching jobs.
        """
        stmt = select(Job)
        if status is not None:
            stmt = stmt.where(Job.status == status)
        if tenant_id is not None:
            stmt = stmt.where(Job.tenant_id == tenant_id)
        stmt = stmt.order_by(Job.created_at.desc()).limit(limit)

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def claim_next(
        self,
        lease_duration: timedelta | float,
        owner: str | None = None,
    ) -> Job | None:
        """
        Atomically claim the oldest eligible job.

        This is the critical path for job distribution. The candidate lookup
        and the flip to RUNNING happen in one UPDATE statement, and the
        eligibility predicate is repeated on the outer statement so a row
        claimed by a concurrent poller no longer matches. PostgreSQL also
        skips rows locked by another claimer; SQLite serializes writers.

        Args:
            lease_duration: How long the claim is valid, as a timedelta or seconds.
            owner: Identifier of the claiming worker, recorded on the lease.

        Returns:
            The claimed job, or None if no job is available.
        """
        if not isinstance(lease_duration, timedelta):
            lease_duration = timedelta(seconds=lease_duration)

        now = utcnow()
        candidate = aliased(Job)
        next_job_id = (
            select(candidate.id)
            .where(eligible_for_claim(candidate, now))
            .order_by(candidate.created_at.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )

        stmt = (
            update(Job)
            .where(Job.id == next_job_id, eligible_for_claim(Job, now))
            .values(
                status=JobStatus.RUNNING,
                leased_until=now + lease_duration,
                lease_owner=owner,
                updated_at=now,
            )
            .returning(Job)
            .execution_options(synchronize_session=False)
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            job = result.scalar_one_or_none()

        if job is not None:
            logger.info(
                "Claimed job",
                extra={
                    "job_id": str(job.id),
                    "trace_id": job.trace_id,
                    "retry_count": job.retry_count,
                },
            )

        return job

    async def mark_done(self, job_id: UUID, owner: str | None = None) -> Job | None:
        """
        Mark a running job as successfully completed.

        Clears the lease and any previous error message. When an owner is
        given the write only lands while that owner still holds the lease.

        Returns:
            Updated Job or None if the job is no longer running under owner.
        """
        now = utcnow()
        stmt = (
            update(Job)
            .where(*held_by(job_id, owner))
            .values(
                status=JobStatus.DONE,
                error_message=None,
                leased_until=None,
                lease_owner=None,
                updated_at=now,
            )
            .returning(Job)
            .execution_options(synchronize_session=False)
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def mark_failed(
        self,
        job_id: UUID,
        retry_count: int,
        error_message: str,
        owner: str | None = None,
    ) -> Job | None:
        """
        Record an executed failure on a running job.

        The stored retry count is clamped to the job's max_retries.

        Args:
            job_id: The job UUID.
            retry_count: The new retry count.
            error_message: Failure reason.
            owner: Lease holder the write is conditional on, if any.

        Returns:
            Updated Job or None if the job is no longer running under owner.
        """
        now = utcnow()
        stmt = (
            update(Job)
            .where(*held_by(job_id, owner))
            .values(
                status=JobStatus.FAILED,
                retry_count=case(
                    (Job.max_retries < retry_count, Job.max_retries),
                    else_=retry_count,
                ),
                error_message=error_message,
                leased_until=None,
                lease_owner=None,
                updated_at=now,
            )
            .returning(Job)
            .execution_options(synchronize_session=False)
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def ping(self) -> None:
        """Round-trip a trivial query; raises StoreError if the database is unreachable."""
        async with self._transaction() as session:
            await session.execute(select(1))

    async def count_running(self, tenant_id: str) -> int:
        """Count the tenant's jobs currently in RUNNING status."""
        stmt = select(func.count()).select_from(Job).where(
            Job.tenant_id == tenant_id,
            Job.status == JobStatus.RUNNING,
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def get_metrics(self) -> QueueMetrics:
        """
        Aggregate job counts by lifecycle state.

        Failed jobs are split into schedulable and dead-lettered by
        comparing retry_count with max_retries.
        """

        def count_where(*conditions):
            return func.coalesce(func.sum(case((and_(*conditions), 1), else_=0)), 0)

        stmt = select(
            func.count(),
            count_where(Job.status == JobStatus.PENDING),
            count_where(Job.status == JobStatus.RUNNING),
            count_where(Job.status == JobStatus.DONE),
            count_where(
                Job.status == JobStatus.FAILED,
                Job.retry_count < Job.max_retries,
            ),
            count_where(
                Job.status == JobStatus.FAILED,
                Job.retry_count >= Job.max_retries,
            ),
            func.coalesce(func.sum(Job.retry_count), 0),
        ).select_from(Job)

        async with self._transaction() as session:
            row = (await session.execute(stmt)).one()

        total, pending, running, done, failed, dead_lettered, retries = (int(v) for v in row)
        return QueueMetrics(
            total_jobs=total,
            pending_jobs=pending,
            running_jobs=running,
            completed_jobs=done,
            failed_jobs=failed,
            dlq_jobs=dead_lettered,
            total_retries=retries,
        )
