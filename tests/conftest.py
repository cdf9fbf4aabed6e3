"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from datetime import timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from jobqueue.api.dependencies import QueueServices, build_services
from jobqueue.api.main import create_app
from jobqueue.config import Settings
from jobqueue.constants import JobStatus
from jobqueue.db.connection import create_schema, create_session_factory, get_test_engine
from jobqueue.db.models import Job, utcnow
from jobqueue.db.store import JobStore


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """A fresh SQLite file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}"


@pytest_asyncio.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async database engine with the schema in place."""
    engine = get_test_engine(database_url)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(async_engine)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> JobStore:
    """Create a job store instance."""
    return JobStore(session_factory)


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    """Create test settings."""
    return Settings(
        database_url=database_url,
        log_level="DEBUG",
        log_format="console",
        worker_count=2,
        worker_lease_duration_seconds=5,
        worker_poll_interval_seconds=0.05,
        rate_limit_jobs_per_window=10,
        rate_limit_window_seconds=60,
        tenant_max_running_jobs=5,
        default_max_retries=3,
    )


@pytest.fixture
def services(test_settings: Settings, store: JobStore) -> QueueServices:
    """Queue services without a worker pool."""
    return build_services(test_settings, store)


@pytest.fixture
def app(test_settings: Settings, services: QueueServices) -> FastAPI:
    """Create a FastAPI app wired to the test store."""
    return create_app(test_settings, services)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def tenant_id() -> str:
    """Generate a test tenant ID."""
    return f"test-tenant-{uuid4().hex[:8]}"


@pytest.fixture
def idempotency_key() -> str:
    """Generate a unique idempotency key."""
    return f"test-{uuid4().hex}"


@pytest.fixture
def make_job(store: JobStore) -> Callable[..., Any]:
    """
    Factory inserting a job directly into the store.

    Each call gets a creation time one millisecond after the previous one
    so claim order is deterministic.
    """
    base = utcnow() - timedelta(minutes=1)
    counter = 0

    async def _make(**overrides: Any) -> Job:
        nonlocal counter
        counter += 1
        created_at = overrides.pop("created_at", base + timedelta(milliseconds=counter))
        fields: dict[str, Any] = {
            "id": uuid4(),
            "tenant_id": "test-tenant",
            "payload": f"payload-{counter}",
            "status": JobStatus.PENDING,
            "idempotency_key": None,
            "retry_count": 0,
            "max_retries": 3,
            "leased_until": None,
            "error_message": None,
            "trace_id": uuid4().hex,
            "created_at": created_at,
            "updated_at": created_at,
        }
        fields.update(overrides)
        return await store.insert(Job(**fields))

    return _make


class ScriptedExecutor:
    """
    Executor returning a scripted sequence of outcomes.

    Each outcome is a bool, or an exception instance to raise. Once the
    script runs out the last outcome repeats.
    """

    def __init__(self, *outcomes: bool | Exception):
        self.outcomes = list(outcomes) or [True]
        self.calls: list[str] = []

    async def execute(self, payload: str) -> bool:
        self.calls.append(payload)
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class GatedExecutor:
    """Executor whose first call blocks until released; later calls return at once."""

    def __init__(self, outcome: bool = True):
        self.outcome = outcome
        self.calls: list[str] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, payload: str) -> bool:
        self.calls.append(payload)
        if len(self.calls) == 1:
            self.started.set()
            await self.release.wait()
        return self.outcome


class RecordingNotifier:
    """Notifier counting how often it was signalled."""

    def __init__(self):
        self.count = 0

    def notify(self) -> None:
        self.count += 1


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def scripted_executor() -> type[ScriptedExecutor]:
    """The ScriptedExecutor class, for tests that script outcomes."""
    return ScriptedExecutor


@pytest.fixture
def gated_executor() -> GatedExecutor:
    return GatedExecutor()


@pytest.fixture
def gated_executor_class() -> type[GatedExecutor]:
    """The GatedExecutor class, for tests that need several gated workers."""
    return GatedExecutor
