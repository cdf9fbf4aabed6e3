"""
Task executors.

The queue engine only sees the boolean outcome of an executor call. Executors
must tolerate running the same payload more than once: a job whose lease
lapses mid-execution can be claimed and run again by another poller.
"""

import asyncio
import inspect
import logging
import random
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from jobqueue.constants import EXECUTION_FAILED
from jobqueue.errors import ExecutorError
from jobqueue.types.job import JobResult

logger = logging.getLogger(__name__)


class TaskExecutor(Protocol):
    """Runs one job payload and reports success or failure."""

    async def execute(self, payload: str) -> bool: ...


class SimulatedExecutor:
    """
    Executor that pretends to work.

    Sleeps for a random duration and fails at a configurable rate. Used as
    the default executor when the service runs without real task logic.
    """

    def __init__(
        self,
        min_seconds: float = 2.0,
        max_seconds: float = 5.0,
        failure_rate: float = 0.2,
        rng: random.Random | None = None,
    ):
        if min_seconds > max_seconds:
            raise ValueError("min_seconds must not exceed max_seconds")
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()

    async def execute(self, payload: str) -> bool:
        duration = self._rng.uniform(self.min_seconds, self.max_seconds)
        logger.info(
            "Simulated job executing",
            extra={"payload": payload[:200], "duration": f"{duration:.2f}s"},
        )
        await asyncio.sleep(duration)
        return self._rng.random() >= self.failure_rate


class CallableExecutor:
    """
    Adapts a plain function to the executor interface.

    Coroutine functions are awaited; regular functions run in a worker
    thread so a blocking task does not stall the other pollers.
    """

    def __init__(self, func: Callable[[str], bool | Awaitable[bool]]):
        self._func = func

    async def execute(self, payload: str) -> bool:
        if inspect.iscoroutinefunction(self._func):
            return bool(await self._func(payload))
        return bool(await asyncio.to_thread(self._func, payload))


async def run_executor(executor: TaskExecutor, payload: str, **log_extra: Any) -> JobResult:
    """
    Execute a payload and normalise the outcome.

    A raised exception counts as a failure, exactly like a False return.

    Args:
        executor: The executor to call.
        payload: The job payload.
        **log_extra: Fields added to log records (job id, trace id, ...).

    Returns:
        JobResult describing the execution.
    """
    start = time.perf_counter()
    try:
        success = await executor.execute(payload)
    except ExecutorError as e:
        logger.warning(
            "Executor reported an error",
            extra={**log_extra, "error": str(e)},
        )
        return JobResult(
            success=False,
            error=f"Executor error: {e}",
            duration_ms=(time.perf_counter() - start) * 1000,
        )
    except Exception as e:
        logger.exception(
            "Executor raised exception",
            extra={**log_extra, "error": str(e)},
        )
        return JobResult(
            success=False,
            error=f"Executor exception: {e}",
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    duration_ms = (time.perf_counter() - start) * 1000
    if success:
        return JobResult(success=True, duration_ms=duration_ms)
    return JobResult(success=False, error=EXECUTION_FAILED, duration_ms=duration_ms)
