"""
OpenTelemetry tracing setup.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Tracer

from jobqueue import __version__
from jobqueue.config import Settings, get_settings

# Global tracer instance
_tracer: Tracer | None = None


def setup_tracing(
    settings: Settings | None = None,
    enable_console_export: bool = False,
) -> Tracer:
    """
    Set up OpenTelemetry tracing.

    Spans are always recorded so log lines can carry span ids; they are
    only exported over OTLP when ``otel_enabled`` is set.

    Args:
        settings: Optional settings override.
        enable_console_export: If True, also export spans to console.

    Returns:
        Tracer: The tracer instance.
    """
    global _tracer

    settings = settings or get_settings()

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.otel_enabled:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    if enable_console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(settings.otel_service_name)

    return _tracer


def instrument_fastapi(app: Any) -> None:
    """Instrument FastAPI application with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine: Any) -> None:
    """
    Instrument a SQLAlchemy engine with OpenTelemetry.

    Args:
        engine: A sync or async engine; async engines are instrumented
            through their underlying sync engine.
    """
    sync_engine = getattr(engine, "sync_engine", engine)
    SQLAlchemyInstrumentor().instrument(engine=sync_engine)


def get_tracer() -> Tracer:
    """
    Get the tracer instance, setting up tracing on first use.

    Returns:
        Tracer: The tracer instance.
    """
    global _tracer
    if _tracer is None:
        _tracer = setup_tracing()
    return _tracer


@contextmanager
def job_span(name: str, job: Any, **attributes: Any) -> Iterator[Span]:
    """
    Open a span describing work on a single job.

    The job's trace id is attached so spans can be joined with the job's
    log lines and the stored record.

    Args:
        name: Span name.
        job: The job being worked on.
        **attributes: Additional span attributes; None values are skipped.
    """
    with get_tracer().start_as_current_span(name) as span:
        span.set_attribute("job.id", str(job.id))
        span.set_attribute("job.tenant_id", job.tenant_id)
        span.set_attribute("job.trace_id", job.trace_id)
        span.set_attribute("job.retry_count", job.retry_count)
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        yield span
