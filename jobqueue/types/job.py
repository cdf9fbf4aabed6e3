"""
Job-related type definitions for internal use.
"""

from pydantic import BaseModel


class JobResult(BaseModel):
    """
    Outcome of one job execution.
    Produced by the worker from the executor's boolean outcome or exception.
    """

    success: bool
    error: str | None = None
    duration_ms: float | None = None


class QueueMetrics(BaseModel):
    """
    Aggregate job counts across the whole queue.

    failed_jobs counts only failed jobs that are still schedulable;
    dead-lettered jobs are counted in dlq_jobs.
    """

    total_jobs: int = 0
    pending_jobs: int = 0
    running_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    dlq_jobs: int = 0
    total_retries: int = 0
