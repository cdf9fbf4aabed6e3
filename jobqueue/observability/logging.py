"""
Structured logging setup using structlog.

Call sites use the standard library logger with ``extra={...}`` fields; the
structlog formatter installed here renders those fields together with any
bound job context as JSON or colored console output.
"""

import logging
import sys
from typing import Any

import structlog
from opentelemetry import trace

from jobqueue.config import Settings, get_settings


def add_span_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Add the active OpenTelemetry span to log records.

    The job's own ``trace_id`` (bound via bind_job_context or passed in
    ``extra``) takes precedence; the span ids go under separate keys so
    both can be correlated.
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict.setdefault("otel_trace_id", format(ctx.trace_id, "032x"))
        event_dict.setdefault("span_id", format(ctx.span_id, "016x"))
    return event_dict


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structured logging for the application.

    Sets up structlog with JSON or console output based on configuration
    and routes standard library logging through the same processors.

    Args:
        settings: Optional settings override; defaults to the cached settings.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_span_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Reduce noise from third-party libraries
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def bind_job_context(job: Any, **kwargs: Any) -> None:
    """
    Bind a job's identity to every log line emitted in the current context.

    Args:
        job: The job being processed.
        **kwargs: Extra fields, e.g. the worker id.
    """
    structlog.contextvars.bind_contextvars(
        job_id=str(job.id),
        tenant_id=job.tenant_id,
        trace_id=job.trace_id,
        **kwargs,
    )


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
