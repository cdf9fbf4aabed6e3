"""
FastAPI application entry point.

The API process also hosts the worker pool unless ``run_workers_in_api`` is
disabled, in which case workers run as a separate ``jobqueue-worker`` process
against the same database.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, WebSocket, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jobqueue import __version__
from jobqueue.api.dependencies import QueueServices, build_services
from jobqueue.api.routes import health_router, jobs_router
from jobqueue.api.websocket import websocket_handler
from jobqueue.config import Settings, get_settings
from jobqueue.db import JobStore, close_db, get_engine, init_db
from jobqueue.errors import (
    NotFound,
    QueueError,
    QuotaExceeded,
    RateLimited,
    StoreError,
    ValidationError,
)
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import setup_metrics
from jobqueue.observability.tracing import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
)
from jobqueue.worker.main import build_executor

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS_CODES: list[tuple[type[QueueError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (RateLimited, status.HTTP_429_TOO_MANY_REQUESTS),
    (QuotaExceeded, status.HTTP_429_TOO_MANY_REQUESTS),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (StoreError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(error: QueueError) -> int:
    """Map a queue error to its HTTP status code."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def queue_error_handler(request: Request, exc: QueueError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error": exc.message},
        )
        detail = "Internal server error"
    else:
        detail = exc.message

    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": detail},
    )


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": ValidationError.code,
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the queue services unless they were injected, starts the worker
    pool, and tears everything down in reverse order.
    """
    settings: Settings = app.state.settings

    setup_logging(settings)
    setup_metrics()
    setup_tracing(settings)

    owns_db = app.state.services is None
    if owns_db:
        session_factory = await init_db(settings)
        if settings.otel_enabled:
            instrument_sqlalchemy(get_engine())
        executor = build_executor(settings) if settings.run_workers_in_api else None
        app.state.services = build_services(settings, JobStore(session_factory), executor)

    services: QueueServices = app.state.services
    if services.pool is not None:
        services.pool.start()

    logger.info("Application started")

    yield

    if services.pool is not None:
        await services.pool.stop()
    await services.broadcaster.close()
    if owns_db:
        await close_db()
    logger.info("Application shutdown")


def create_app(
    settings: Settings | None = None,
    services: QueueServices | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override.
        services: Pre-built queue services; when given, the app uses them
            as-is and does not open its own database.

    Returns:
        FastAPI: The configured application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Job Queue API",
        description="Single-node multi-tenant job queue with leasing, retries and dead-lettering",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(QueueError, queue_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(health_router)
    app.include_router(jobs_router)

    @app.websocket("/ws")
    async def jobs_websocket(websocket: WebSocket):
        """WebSocket endpoint streaming queue snapshots on every change."""
        await websocket_handler(websocket, app.state.services.broadcaster)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
