"""
Health check routes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from jobqueue import __version__
from jobqueue.api.dependencies import QueueServices, get_services
from jobqueue.db.models import utcnow
from jobqueue.errors import StoreError
from jobqueue.observability.metrics import get_metrics
from jobqueue.types.api import HealthResponse

router = APIRouter(tags=["Health"])

Services = Annotated[QueueServices, Depends(get_services)]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and database connection.",
)
async def health_check(services: Services) -> HealthResponse:
    """
    Perform a health check.

    Checks database connectivity and returns service status.
    """
    db_status = "healthy"
    try:
        await services.store.ping()
    except StoreError:
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        version=__version__,
        database=db_status,
        timestamp=utcnow(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(services: Services) -> dict:
    try:
        await services.store.ping()
        return {"ready": True}
    except StoreError:
        return {"ready": False}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
