"""
Database connection management.
Handles async SQLAlchemy engine and session factory creation.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from jobqueue.config import Settings, get_settings
from jobqueue.db.models import Base

logger = logging.getLogger(__name__)

# Global engine instance
_engine: AsyncEngine | None = None


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Get or create the async database engine.

    SQLite needs a busy timeout so concurrent writers queue up instead of
    failing; PostgreSQL gets a sized connection pool.

    Args:
        settings: Optional settings override, used only when the engine
            is first created.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    global _engine
    if _engine is None:
        settings = settings or get_settings()
        if _is_sqlite(settings.database_url):
            _engine = create_async_engine(
                settings.database_url,
                echo=settings.log_level == "DEBUG",
                connect_args={"timeout": settings.database_busy_timeout_seconds},
            )
        else:
            _engine = create_async_engine(
                settings.database_url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                echo=settings.log_level == "DEBUG",
                pool_pre_ping=True,
            )
    return _engine


def get_test_engine(database_url: str) -> AsyncEngine:
    """
    Create a test database engine with NullPool.

    Args:
        database_url: The database URL for testing.

    Returns:
        AsyncEngine: The test SQLAlchemy async engine instance.
    """
    connect_args = {"timeout": 30} if _is_sqlite(database_url) else {}
    return create_async_engine(
        database_url,
        poolclass=NullPool,
        echo=False,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create the jobs table and its indexes if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """
    Initialize the database connection, schema and session factory.
    Should be called on application startup.

    Returns:
        A session factory bound to the global engine.
    """
    engine = get_engine(settings)
    await create_schema(engine)
    logger.info("Database connection initialized")
    return create_session_factory(engine)


async def close_db() -> None:
    """
    Close the database connection.
    Should be called on application shutdown.
    """
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database connection closed")

