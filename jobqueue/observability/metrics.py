"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from jobqueue.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOBS_BY_STATUS,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_REJECTED,
    METRIC_JOBS_SUBMITTED,
    METRIC_LEASE_ACQUIRED,
    METRIC_STORE_ERRORS,
)
from jobqueue.types.job import QueueMetrics

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Jobs by lifecycle state
    - Job submissions and admission rejections
    - Execution outcomes and duration
    - Lease acquisitions
    - Store failures
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_by_status = Gauge(
            METRIC_JOBS_BY_STATUS,
            "Number of jobs in each lifecycle state",
            ["status"],
            registry=self._registry,
        )

        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of jobs submitted",
            ["tenant_id"],
            registry=self._registry,
        )

        self.jobs_rejected = Counter(
            METRIC_JOBS_REJECTED,
            "Total number of submissions rejected by admission control",
            ["tenant_id", "reason"],
            registry=self._registry,
        )

        # Outcome is done, failed (will retry) or dead_lettered
        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of job executions by outcome",
            ["tenant_id", "outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.lease_acquired = Counter(
            METRIC_LEASE_ACQUIRED,
            "Total number of leases acquired",
            ["worker_id"],
            registry=self._registry,
        )

        self.store_errors = Counter(
            METRIC_STORE_ERRORS,
            "Total number of store failures seen by the queue engine",
            ["operation"],
            registry=self._registry,
        )

    def record_job_submitted(self, tenant_id: str) -> None:
        """Record a job submission."""
        self.jobs_submitted.labels(tenant_id=tenant_id).inc()

    def record_job_rejected(self, tenant_id: str, reason: str) -> None:
        """Record a submission rejected by admission control."""
        self.jobs_rejected.labels(tenant_id=tenant_id, reason=reason).inc()

    def record_job_completed(
        self,
        tenant_id: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record one job execution."""
        self.jobs_completed.labels(tenant_id=tenant_id, outcome=outcome).inc()
        self.job_duration.labels(outcome=outcome).observe(duration_seconds)

    def record_lease_acquired(self, worker_id: str, count: int = 1) -> None:
        """Record lease acquisition."""
        self.lease_acquired.labels(worker_id=worker_id).inc(count)

    def record_store_error(self, operation: str) -> None:
        """Record a store failure."""
        self.store_errors.labels(operation=operation).inc()

    def update_job_counts(self, metrics: QueueMetrics) -> None:
        """Refresh the per-state gauge from an aggregate snapshot."""
        self.jobs_by_status.labels(status="pending").set(metrics.pending_jobs)
        self.jobs_by_status.labels(status="running").set(metrics.running_jobs)
        self.jobs_by_status.labels(status="done").set(metrics.completed_jobs)
        self.jobs_by_status.labels(status="failed").set(metrics.failed_jobs)
        self.jobs_by_status.labels(status="dead_lettered").set(metrics.dlq_jobs)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
