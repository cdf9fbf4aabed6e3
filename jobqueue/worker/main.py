"""
Lease scheduler and worker pool.

Each worker polls the store on a fixed interval, claims at most one job per
tick, executes it, and records the outcome through the retry/DLQ state
machine. Workers share nothing but the store and the shutdown signal.
"""

import asyncio
import logging
import os
import signal
import time
from datetime import timedelta

from jobqueue.config import Settings, get_settings
from jobqueue.constants import SPAN_EXECUTE_JOB, SPAN_RECORD_OUTCOME, JobStatus
from jobqueue.db import JobStore, close_db, get_engine, init_db
from jobqueue.db.models import Job
from jobqueue.errors import StoreError
from jobqueue.observability.logging import bind_job_context, clear_context, setup_logging
from jobqueue.observability.metrics import get_metrics, setup_metrics
from jobqueue.observability.tracing import instrument_sqlalchemy, job_span, setup_tracing
from jobqueue.queue.notifier import ChangeNotifier, NullNotifier
from jobqueue.queue.state_machine import apply_transition, next_transition
from jobqueue.worker.executors import SimulatedExecutor, TaskExecutor, run_executor

logger = logging.getLogger(__name__)


class Worker:
    """
    A single poller.

    The executor call is awaited without a timeout. If it outlives the
    lease, another worker may claim and run the job again. Outcomes are
    recorded under the worker id that holds the lease, so a worker whose
    lease was taken over has its write ignored.
    """

    def __init__(
        self,
        worker_id: str,
        store: JobStore,
        executor: TaskExecutor,
        notifier: ChangeNotifier | None = None,
        lease_duration: float | None = None,
        poll_interval: float | None = None,
        shutdown: asyncio.Event | None = None,
    ):
        """
        Initialize the worker.

        Args:
            worker_id: Lease owner id, also used in logs and metrics.
            store: The job store.
            executor: The task executor.
            notifier: Receives a signal after each claim and transition.
            lease_duration: Seconds a claim stays valid.
            poll_interval: Seconds between the starts of consecutive ticks.
            shutdown: Shared shutdown signal; a private one is created if omitted.
        """
        settings = get_settings()

        self.worker_id = worker_id
        self.lease_duration = timedelta(
            seconds=lease_duration or settings.worker_lease_duration_seconds
        )
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds

        self._store = store
        self._executor = executor
        self._notifier = notifier or NullNotifier()
        self._shutdown = shutdown or asyncio.Event()
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Run the polling loop until shutdown is signalled."""
        logger.info("Worker started", extra={"worker_id": self.worker_id})

        while not self._shutdown.is_set():
            tick_started = time.monotonic()
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )

            delay = max(0.0, self.poll_interval - (time.monotonic() - tick_started))
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
            except TimeoutError:
                pass

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def run_once(self) -> bool:
        """
        Run one poll cycle.

        Returns:
            True if a job was claimed and executed.
        """
        try:
            job = await self._store.claim_next(self.lease_duration, owner=self.worker_id)
        except StoreError as e:
            logger.error(
                "Failed to claim job, skipping cycle",
                extra={"worker_id": self.worker_id, "error": str(e)},
            )
            self._metrics.record_store_error("claim")
            return False

        if job is None:
            return False

        self._metrics.record_lease_acquired(self.worker_id)
        self._notifier.notify()

        try:
            bind_job_context(job, worker_id=self.worker_id)
            await self._process(job)
        finally:
            clear_context()

        self._notifier.notify()
        return True

    async def _process(self, job: Job) -> None:
        """Execute a claimed job and persist the resulting transition."""
        logger.info(
            "Executing job",
            extra={
                "job_id": str(job.id),
                "trace_id": job.trace_id,
                "retry_count": job.retry_count,
                "leased_until": job.leased_until.isoformat() if job.leased_until else None,
            },
        )

        with job_span(SPAN_EXECUTE_JOB, job, worker_id=self.worker_id):
            result = await run_executor(
                self._executor,
                job.payload,
                job_id=str(job.id),
                trace_id=job.trace_id,
            )

        transition = next_transition(job, result)

        try:
            with job_span(SPAN_RECORD_OUTCOME, job, outcome=transition.status.value):
                updated = await apply_transition(self._store, job, transition)
        except StoreError as e:
            logger.error(
                "Failed to record job outcome, discarding",
                extra={"job_id": str(job.id), "trace_id": job.trace_id, "error": str(e)},
            )
            self._metrics.record_store_error("transition")
            return

        if updated is None:
            return

        if transition.dead_lettered:
            outcome = "dead_lettered"
        elif transition.status == JobStatus.DONE:
            outcome = "done"
        else:
            outcome = "failed"

        self._metrics.record_job_completed(
            tenant_id=job.tenant_id,
            outcome=outcome,
            duration_seconds=(result.duration_ms or 0.0) / 1000,
        )


class WorkerPool:
    """
    Fixed-size pool of independent workers.

    All workers observe one shutdown event. Stopping the pool lets every
    in-flight execution finish before the pool returns.
    """

    def __init__(
        self,
        store: JobStore,
        executor: TaskExecutor,
        notifier: ChangeNotifier | None = None,
        size: int | None = None,
        lease_duration: float | None = None,
        poll_interval: float | None = None,
        name_prefix: str | None = None,
    ):
        settings = get_settings()
        self.size = size or settings.worker_count
        prefix = name_prefix or f"{os.uname().nodename}-{os.getpid()}"

        self._shutdown = asyncio.Event()
        self.workers = [
            Worker(
                worker_id=f"{prefix}-{i}",
                store=store,
                executor=executor,
                notifier=notifier,
                lease_duration=lease_duration,
                poll_interval=poll_interval,
                shutdown=self._shutdown,
            )
            for i in range(1, self.size + 1)
        ]
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._shutdown.is_set()

    def start(self) -> None:
        """Start every worker as its own task."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(worker.start(), name=worker.worker_id)
            for worker in self.workers
        ]
        logger.info(f"Started {self.size} workers")

    async def stop(self) -> None:
        """Signal shutdown and wait for all workers to finish their current tick."""
        self._shutdown.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
        logger.info("Worker pool stopped")

    async def wait(self) -> None:
        """Block until all workers have exited."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


def build_executor(settings: Settings) -> TaskExecutor:
    """Create the default executor from settings."""
    return SimulatedExecutor(
        min_seconds=settings.executor_min_seconds,
        max_seconds=settings.executor_max_seconds,
        failure_rate=settings.executor_failure_rate,
    )


async def run_async() -> None:
    """Run a standalone worker pool process."""
    settings = get_settings()
    setup_logging(settings)
    setup_metrics()
    setup_tracing(settings)

    session_factory = await init_db(settings)
    if settings.otel_enabled:
        instrument_sqlalchemy(get_engine())

    pool = WorkerPool(
        store=JobStore(session_factory),
        executor=build_executor(settings),
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(pool.stop()))

    try:
        pool.start()
        await pool.wait()
    finally:
        await close_db()


def run() -> None:
    """Run the worker pool."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
