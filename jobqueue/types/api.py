"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from jobqueue.constants import JobStatus
from jobqueue.queue.state_machine import is_dead_lettered


class CreateJobRequest(BaseModel):
    """Request body for submitting a new job."""

    tenant_id: str = Field(..., min_length=1, max_length=255, description="Owning tenant")
    payload: str = Field(..., min_length=1, description="Opaque job payload")
    idempotency_key: str | None = Field(
        default=None, max_length=255, description="Deduplicates repeated submissions"
    )
    max_retries: int | None = Field(
        default=None, ge=0, le=100, description="Retry ceiling; 0 or absent means the default"
    )


class JobResponse(BaseModel):
    """Full job details response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    payload: str
    status: JobStatus
    idempotency_key: str | None
    retry_count: int
    max_retries: int
    leased_until: datetime | None
    lease_owner: str | None = None
    error_message: str | None
    trace_id: str
    created_at: datetime
    updated_at: datetime
    dead_lettered: bool = False

    @classmethod
    def from_job(cls, job: Any) -> "JobResponse":
        """Build a response from a Job model, deriving the dead-letter flag."""
        response = cls.model_validate(job)
        response.dead_lettered = is_dead_lettered(job)
        return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: Any | None = None
