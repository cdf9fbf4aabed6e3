"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> RUNNING (claimed)
    - RUNNING -> RUNNING (lease expired, reclaimed in place)
    - RUNNING -> DONE (success)
    - RUNNING -> FAILED (failure; schedulable while retry_count < max_retries)
    - FAILED -> RUNNING (retry claim)

    A FAILED job with retry_count >= max_retries is dead-lettered.
    """

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


# Default values
DEFAULT_MAX_RETRIES = 3
DEFAULT_LEASE_DURATION_SECONDS = 30.0
DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_WORKER_COUNT = 3
DEFAULT_RATE_LIMIT = 10
DEFAULT_RATE_WINDOW_SECONDS = 60.0
DEFAULT_TENANT_MAX_RUNNING = 5
DEFAULT_LIST_LIMIT = 100

# Error messages recorded on jobs
MAX_RETRIES_EXCEEDED = "max retries exceeded"
EXECUTION_FAILED = "job execution failed"

# API constants
API_PREFIX = "/api"

# Metrics names
METRIC_JOBS_BY_STATUS = "jobs_by_status"
METRIC_JOBS_SUBMITTED = "jobs_submitted_total"
METRIC_JOBS_REJECTED = "jobs_rejected_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_LEASE_ACQUIRED = "lease_acquired_total"
METRIC_STORE_ERRORS = "store_errors_total"

# Trace span names
SPAN_SUBMIT_JOB = "submit_job"
SPAN_RECORD_OUTCOME = "record_outcome"
SPAN_EXECUTE_JOB = "execute_job"

# Change broadcast message types
WS_MESSAGE_SNAPSHOT = "snapshot"
WS_MESSAGE_PONG = "pong"
