"""
SQLAlchemy database models.
Defines the Job table.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jobqueue.constants import DEFAULT_MAX_RETRIES, JobStatus


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form every timestamp column stores."""
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of work in the queue.

    This is the authoritative source of truth for job state.
    All job lifecycle transitions are managed through this table.

    Key constraints:
    - idempotency_key is unique when present (NULLs never collide)
    - leased_until and lease_owner are set only while status is RUNNING
    - retry_count never exceeds max_retries; a FAILED job at the ceiling is dead-lettered
    """

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            name="job_status",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobStatus.PENDING,
    )

    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Retry tracking
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_RETRIES,
    )

    # Lease management
    leased_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    lease_owner: Mapped[str | None] = mapped_column(String(255), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    trace_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_jobs_idempotency_key"),
        # Claim polling scans by status in creation order
        Index("ix_jobs_status_created", "status", "created_at"),
        # Concurrency gate counts running jobs per tenant
        Index("ix_jobs_tenant_status", "tenant_id", "status"),
        Index("ix_jobs_leased_until", "leased_until"),
    )

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, tenant={self.tenant_id}, "
            f"status={self.status}, retries={self.retry_count}/{self.max_retries})"
        )
