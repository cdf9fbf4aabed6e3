"""
Admission control.

Two gates are consulted, in order, before a job is persisted: the tenant's
submission rate and the tenant's number of running jobs.
"""

import logging

from jobqueue.constants import DEFAULT_TENANT_MAX_RUNNING
from jobqueue.db.store import JobStore
from jobqueue.errors import QuotaExceeded, RateLimited
from jobqueue.observability.metrics import get_metrics
from jobqueue.queue.rate_limit import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


class AdmissionController:
    """
    Per-tenant admission gates.

    The concurrency gate is a point-in-time count, not a reservation:
    simultaneous submissions from one tenant can briefly push the number of
    running jobs past ``max_running`` before any of them is claimed.
    """

    def __init__(
        self,
        store: JobStore,
        rate_limiter: FixedWindowRateLimiter,
        max_running: int = DEFAULT_TENANT_MAX_RUNNING,
    ):
        self._store = store
        self._rate_limiter = rate_limiter
        self.max_running = max_running

    async def admit(self, tenant_id: str) -> None:
        """
        Run both gates for a submission.

        Args:
            tenant_id: The submitting tenant.

        Raises:
            RateLimited: If the tenant used up its window.
            QuotaExceeded: If the tenant already has max_running jobs running.
            StoreError: If the running count cannot be read.
        """
        if not self._rate_limiter.allow(tenant_id):
            retry_after = self._rate_limiter.retry_after(tenant_id)
            logger.warning(
                "Tenant exceeded rate limit",
                extra={"tenant_id": tenant_id, "retry_after": round(retry_after, 1)},
            )
            get_metrics().record_job_rejected(tenant_id, reason="rate_limited")
            raise RateLimited(
                f"Rate limit exceeded. Retry after {retry_after:.1f} seconds"
            )

        running = await self._store.count_running(tenant_id)
        if running >= self.max_running:
            logger.warning(
                "Tenant exceeded concurrent job limit",
                extra={"tenant_id": tenant_id, "running": running},
            )
            get_metrics().record_job_rejected(tenant_id, reason="quota_exceeded")
            raise QuotaExceeded(
                f"Concurrent job limit exceeded (max {self.max_running})"
            )

    def refund(self, tenant_id: str) -> None:
        """Give back the rate token taken by a submission that created nothing."""
        self._rate_limiter.refund(tenant_id)
