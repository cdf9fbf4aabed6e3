"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from jobqueue.constants import (
    DEFAULT_LEASE_DURATION_SECONDS,
    DEFAULT_LIST_LIMIT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RATE_LIMIT,
    DEFAULT_RATE_WINDOW_SECONDS,
    DEFAULT_TENANT_MAX_RUNNING,
    DEFAULT_WORKER_COUNT,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database (SQLite by default; any async SQLAlchemy URL, e.g. postgresql+asyncpg://...)
    database_url: str = "sqlite+aiosqlite:///./jobs.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_busy_timeout_seconds: float = 30.0

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    run_workers_in_api: bool = True

    # Worker Configuration
    worker_count: int = DEFAULT_WORKER_COUNT
    worker_lease_duration_seconds: float = DEFAULT_LEASE_DURATION_SECONDS
    worker_poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    # Simulated executor
    executor_min_seconds: float = 2.0
    executor_max_seconds: float = 5.0
    executor_failure_rate: float = 0.2

    # Admission control
    rate_limit_jobs_per_window: int = DEFAULT_RATE_LIMIT
    rate_limit_window_seconds: float = DEFAULT_RATE_WINDOW_SECONDS
    tenant_max_running_jobs: int = DEFAULT_TENANT_MAX_RUNNING

    # Job defaults
    default_max_retries: int = DEFAULT_MAX_RETRIES
    list_limit: int = DEFAULT_LIST_LIMIT

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "jobqueue"
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
