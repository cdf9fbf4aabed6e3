"""
Type definitions for the job queue.
Contains input/output type definitions grouped by module.
"""

from jobqueue.types.api import (
    CreateJobRequest,
    ErrorResponse,
    HealthResponse,
    JobResponse,
)
from jobqueue.types.job import (
    JobResult,
    QueueMetrics,
)

__all__ = [
    # API types
    "CreateJobRequest",
    "JobResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "JobResult",
    "QueueMetrics",
]
