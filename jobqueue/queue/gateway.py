"""
Submission gateway.

Idempotent enqueue: composes the admission controller with the job store.
"""

import logging
from dataclasses import dataclass
from uuid import UUID, uuid4

from jobqueue.constants import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_MAX_RETRIES,
    SPAN_SUBMIT_JOB,
    JobStatus,
)
from jobqueue.db.models import Job, utcnow
from jobqueue.db.store import JobStore
from jobqueue.errors import (
    DuplicateJobError,
    NotFound,
    QuotaExceeded,
    RateLimited,
    StoreError,
    ValidationError,
)
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import job_span
from jobqueue.queue.admission import AdmissionController
from jobqueue.queue.notifier import ChangeNotifier, NullNotifier
from jobqueue.types.job import QueueMetrics

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    """Result of a submission: the job, and whether this call created it."""

    job: Job
    created: bool


class SubmissionGateway:
    """
    Entry point for submitting and querying jobs.

    A submission carrying a known idempotency key is a no-op that returns
    the existing job without consulting admission control.
    """

    def __init__(
        self,
        store: JobStore,
        admission: AdmissionController,
        notifier: ChangeNotifier | None = None,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self._store = store
        self._admission = admission
        self._notifier = notifier or NullNotifier()
        self._default_max_retries = default_max_retries

    async def submit(
        self,
        tenant_id: str,
        payload: str,
        idempotency_key: str | None = None,
        max_retries: int | None = None,
    ) -> SubmitResult:
        """
        Submit a job.

        Args:
            tenant_id: The owning tenant.
            payload: Opaque payload handed verbatim to the executor.
            idempotency_key: Optional deduplication key.
            max_retries: Retry ceiling; 0 or None selects the default.

        Returns:
            SubmitResult with the new or existing job.

        Raises:
            ValidationError: If tenant or payload is missing, or max_retries is negative.
            RateLimited: If the tenant's rate gate rejects the submission.
            QuotaExceeded: If the tenant's concurrency gate rejects the submission.
            StoreError: If the store fails.
        """
        if not tenant_id or not tenant_id.strip():
            raise ValidationError("tenant_id is required")
        if not payload:
            raise ValidationError("payload is required")
        if max_retries is not None and max_retries < 0:
            raise ValidationError("max_retries must not be negative")

        idempotency_key = idempotency_key or None

        if idempotency_key is not None:
            existing = await self._find_existing(idempotency_key)
            if existing is not None:
                return SubmitResult(job=existing, created=False)

        try:
            await self._admission.admit(tenant_id)
        except (RateLimited, QuotaExceeded):
            # A concurrent submission may have stored the key since the lookup
            if idempotency_key is None:
                raise
            existing = await self._find_existing(idempotency_key)
            if existing is None:
                raise
            return SubmitResult(job=existing, created=False)

        now = utcnow()
        job = Job(
            id=uuid4(),
            tenant_id=tenant_id,
            payload=payload,
            status=JobStatus.PENDING,
            idempotency_key=idempotency_key,
            retry_count=0,
            max_retries=max_retries or self._default_max_retries,
            leased_until=None,
            lease_owner=None,
            error_message=None,
            trace_id=uuid4().hex,
            created_at=now,
            updated_at=now,
        )

        with job_span(SPAN_SUBMIT_JOB, job):
            try:
                await self._store.insert(job)
            except DuplicateJobError:
                # Lost a race with a concurrent submission using the same key
                self._admission.refund(tenant_id)
                existing = await self._find_existing(idempotency_key)
                if existing is None:
                    raise StoreError("Job should exist after idempotency conflict")
                return SubmitResult(job=existing, created=False)

        logger.info(
            "Job submitted",
            extra={
                "job_id": str(job.id),
                "trace_id": job.trace_id,
                "tenant_id": tenant_id,
                "status": job.status.value,
            },
        )
        get_metrics().record_job_submitted(tenant_id)
        self._notifier.notify()

        return SubmitResult(job=job, created=True)

    async def _find_existing(self, idempotency_key: str) -> Job | None:
        existing = await self._store.get_by_idempotency_key(idempotency_key)
        if existing is not None:
            logger.info(
                "Returned existing job (idempotent)",
                extra={
                    "job_id": str(existing.id),
                    "trace_id": existing.trace_id,
                    "idempotency_key": idempotency_key,
                },
            )
        return existing

    async def get(self, job_id: UUID | str) -> Job:
        """
        Fetch a job by id.

        Raises:
            NotFound: If no job has this id, including ids that are not UUIDs.
        """
        if not isinstance(job_id, UUID):
            try:
                job_id = UUID(job_id)
            except ValueError:
                raise NotFound(f"Job not found: {job_id}") from None
        job = await self._store.get_by_id(job_id)
        if job is None:
            raise NotFound(f"Job not found: {job_id}")
        return job

    async def list(
        self,
        status: JobStatus | None = None,
        tenant_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Job]:
        """List jobs filtered by status and/or tenant, newest first."""
        return await self._store.list(status=status, tenant_id=tenant_id, limit=limit)

    async def metrics(self) -> QueueMetrics:
        """Aggregate counts across the queue."""
        metrics = await self._store.get_metrics()
        get_metrics().update_job_counts(metrics)
        return metrics
