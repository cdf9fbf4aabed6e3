"""
Job management routes.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from jobqueue.api.dependencies import get_broadcaster, get_gateway
from jobqueue.api.websocket import ChangeBroadcaster
from jobqueue.constants import API_PREFIX, DEFAULT_LIST_LIMIT, JobStatus
from jobqueue.queue.gateway import SubmissionGateway
from jobqueue.types.api import CreateJobRequest, ErrorResponse, JobResponse
from jobqueue.types.events import SnapshotMessage
from jobqueue.types.job import QueueMetrics

logger = logging.getLogger(__name__)

router = APIRouter(prefix=API_PREFIX, tags=["Jobs"])

Gateway = Annotated[SubmissionGateway, Depends(get_gateway)]


@router.post(
    "/jobs",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a job",
    description=(
        "Submit a new job to the queue. A known idempotency key returns the "
        "existing job with status 200."
    ),
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)
async def submit_job(
    request: CreateJobRequest,
    response: Response,
    gateway: Gateway,
) -> JobResponse:
    """
    Submit a job.

    Args:
        request: Job submission request.
        response: Outgoing response, used to downgrade the status on replay.
        gateway: The submission gateway.

    Returns:
        The created or existing job.
    """
    result = await gateway.submit(
        tenant_id=request.tenant_id,
        payload=request.payload,
        idempotency_key=request.idempotency_key,
        max_retries=request.max_retries,
    )

    if not result.created:
        response.status_code = status.HTTP_200_OK

    return JobResponse.from_job(result.job)


@router.get(
    "/jobs",
    response_model=list[JobResponse],
    summary="List jobs",
    description="List jobs, newest first, optionally filtered by status and tenant.",
)
async def list_jobs(
    gateway: Gateway,
    status: JobStatus | None = Query(default=None),
    tenant_id: str | None = Query(default=None),
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=1000),
) -> list[JobResponse]:
    jobs = await gateway.list(status=status, tenant_id=tenant_id or None, limit=limit)
    return [JobResponse.from_job(job) for job in jobs]


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
    responses={404: {"model": ErrorResponse}},
)
async def get_job(job_id: str, gateway: Gateway) -> JobResponse:
    """
    Get job details by ID.

    Raises:
        NotFound: If the job does not exist.
    """
    job = await gateway.get(job_id)
    return JobResponse.from_job(job)


@router.get(
    "/metrics",
    response_model=QueueMetrics,
    summary="Queue metrics",
    description="Counts of total, pending, running, done, failed and dead-lettered jobs.",
)
async def get_queue_metrics(gateway: Gateway) -> QueueMetrics:
    return await gateway.metrics()


@router.get(
    "/snapshot",
    response_model=SnapshotMessage,
    summary="Queue snapshot",
    description="The same document pushed to WebSocket subscribers, for polling clients.",
)
async def get_snapshot(
    broadcaster: Annotated[ChangeBroadcaster, Depends(get_broadcaster)],
) -> SnapshotMessage:
    return await broadcaster.snapshot()
