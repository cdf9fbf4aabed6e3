"""
Error taxonomy for the job queue.

Each error carries a short machine-readable ``code`` used by the HTTP layer
when rendering error responses.
"""


class QueueError(Exception):
    """Base class for all job queue errors."""

    code = "queue_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(QueueError):
    """Submission is missing required fields or has invalid values."""

    code = "validation_error"


class RateLimited(QueueError):
    """Tenant exceeded its submission rate."""

    code = "rate_limited"


class QuotaExceeded(QueueError):
    """Tenant has too many running jobs."""

    code = "quota_exceeded"


class NotFound(QueueError):
    """Job not found."""

    code = "not_found"


class StoreError(QueueError):
    """Durable store operation failed."""

    code = "store_error"


class DuplicateJobError(StoreError):
    """A job with this idempotency key already exists."""

    code = "duplicate_job"


class ExecutorError(QueueError):
    """Task executor failed while running a job."""

    code = "executor_error"
