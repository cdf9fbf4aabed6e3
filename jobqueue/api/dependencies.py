"""
Service wiring and FastAPI dependencies.
"""

from dataclasses import dataclass

from fastapi import Request

from jobqueue.api.websocket import ChangeBroadcaster
from jobqueue.config import Settings
from jobqueue.db.store import JobStore
from jobqueue.queue.admission import AdmissionController
from jobqueue.queue.gateway import SubmissionGateway
from jobqueue.queue.rate_limit import FixedWindowRateLimiter
from jobqueue.worker.executors import TaskExecutor
from jobqueue.worker.main import WorkerPool


@dataclass
class QueueServices:
    """Everything the HTTP layer needs, built once per process."""

    settings: Settings
    store: JobStore
    gateway: SubmissionGateway
    broadcaster: ChangeBroadcaster
    pool: WorkerPool | None = None


def build_services(
    settings: Settings,
    store: JobStore,
    executor: TaskExecutor | None = None,
) -> QueueServices:
    """
    Wire the queue engine around a store.

    The rate limiter is created here, once, and lives as long as the
    services do. A worker pool is created only when an executor is given.
    """
    broadcaster = ChangeBroadcaster(store, snapshot_limit=settings.list_limit)
    rate_limiter = FixedWindowRateLimiter(
        limit=settings.rate_limit_jobs_per_window,
        window_seconds=settings.rate_limit_window_seconds,
    )
    admission = AdmissionController(
        store,
        rate_limiter,
        max_running=settings.tenant_max_running_jobs,
    )
    gateway = SubmissionGateway(
        store,
        admission,
        notifier=broadcaster,
        default_max_retries=settings.default_max_retries,
    )

    pool = None
    if executor is not None:
        pool = WorkerPool(
            store=store,
            executor=executor,
            notifier=broadcaster,
            size=settings.worker_count,
            lease_duration=settings.worker_lease_duration_seconds,
            poll_interval=settings.worker_poll_interval_seconds,
        )

    return QueueServices(
        settings=settings,
        store=store,
        gateway=gateway,
        broadcaster=broadcaster,
        pool=pool,
    )


def get_services(request: Request) -> QueueServices:
    """Dependency returning the services attached to the application."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Queue services not initialized")
    return services


def get_gateway(request: Request) -> SubmissionGateway:
    return get_services(request).gateway


def get_broadcaster(request: Request) -> ChangeBroadcaster:
    return get_services(request).broadcaster
