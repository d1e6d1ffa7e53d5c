"""Distributed tracing with OpenTelemetry.

Spans are exported through Loguru in development and over OTLP/gRPC in
production. ``trace_operation`` is the single way application code opens a
span: it makes the span current, ends it exactly once on every exit path and
tags failures consistently (``error=true``, ``error.msg``, recorded exception,
ERROR status) before re-raising the original exception unchanged.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode

from tracetour.core.context import CorrelationContext

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI
    from sqlalchemy.ext.asyncio import AsyncEngine

    from tracetour.core.config import Settings
    from tracetour.core.types import SpanAttributeValue

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"
TRACER_NAME: Final[str] = "tracetour"
EXCLUDED_URLS: Final[str] = "/health,/docs,/redoc,/openapi.json"
ERROR_MESSAGE_MAX_LENGTH: Final[int] = 500

# Spans produced by the instrumentors that only add noise to development logs
_NOISY_SPANS: Final[frozenset[str]] = frozenset(
    {"connect", "http send", "http receive"}
)


class LoguruSpanExporter(SpanExporter):
    """Span exporter that writes finished spans through Loguru."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        for span in spans:
            span_context = span.get_span_context()
            if not span_context or span.name in _NOISY_SPANS:
                continue

            attributes = dict(span.attributes or {})
            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            logger.bind(
                trace_id=format(span_context.trace_id, "032x"),
                span_id=format(span_context.span_id, "016x"),
                correlation_id=attributes.get("correlation_id"),
                span_name=span.name,
                duration_ms=duration_ms,
                attributes=attributes,
                status=span.status.status_code.name,
            ).debug("Trace span completed: {}", span.name)

        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        """Nothing to release."""


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Get the span exporter for the configured exporter type.

    Args:
        settings: Application settings.

    Returns:
        SpanExporter | None: Configured exporter or None if disabled.
    """
    exporter_type = settings.observability_config.exporter_type

    if exporter_type == "console":
        logger.info("Using Loguru span exporter")
        return LoguruSpanExporter()

    if exporter_type == "otlp":
        endpoint = (
            settings.observability_config.exporter_endpoint or "http://localhost:4317"
        )
        logger.info("Using OTLP exporter at {}", endpoint)
        return OTLPSpanExporter(
            endpoint=endpoint,
            insecure=settings.environment == "development",
        )

    logger.info("Span export disabled")
    return None


@lru_cache(maxsize=1)
def get_tracer(name: str = TRACER_NAME) -> trace.Tracer:
    """Get the application tracer.

    Args:
        name: Instrumentation scope name.

    Returns:
        trace.Tracer: OpenTelemetry tracer instance.
    """
    return trace.get_tracer(name)


def setup_tracing(settings: Settings) -> None:
    """Install the global TracerProvider.

    Sampling is parent-based so a sampled upstream trace stays sampled.

    Args:
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return

    resource = Resource.create(
        {
            SERVICE_NAME_KEY: settings.app_name,
            SERVICE_VERSION_KEY: settings.app_version,
            ENVIRONMENT_KEY: settings.environment,
        }
    )
    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(
            TraceIdRatioBased(settings.observability_config.trace_sample_rate)
        ),
    )

    if exporter := get_span_exporter(settings):
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(tracer_provider)

    logger.info(
        "Tracing configured",
        exporter_type=settings.observability_config.exporter_type,
        sample_rate=settings.observability_config.trace_sample_rate,
    )


def shutdown_tracing() -> None:
    """Flush pending spans and shut down the SDK provider, if one is installed."""
    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()


def instrument_app(
    app: FastAPI, settings: Settings, engine: AsyncEngine | None = None
) -> None:
    """Attach the FastAPI and SQLAlchemy instrumentors.

    Args:
        app: FastAPI application to instrument.
        settings: Application settings.
        engine: Engine whose queries should produce spans.
    """
    config = settings.observability_config
    if not (config.enable_tracing and config.instrument_framework):
        return

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=EXCLUDED_URLS,
        server_request_hook=add_correlation_id_to_span,
    )

    if engine is not None:
        SQLAlchemyInstrumentor().instrument(
            engine=engine.sync_engine,
            enable_commenter=True,
        )

    logger.info("Application instrumented for tracing")


def add_correlation_id_to_span(span: trace.Span, scope: dict[str, Any]) -> None:
    """Server request hook copying correlation and request IDs onto the span."""
    if not span.is_recording():
        return
    if correlation_id := CorrelationContext.get_correlation_id():
        span.set_attribute("correlation_id", correlation_id)

    headers = dict(scope.get("headers", []))
    if request_id := headers.get(b"x-request-id", b"").decode("latin-1"):
        span.set_attribute("request_id", request_id)


def add_span_attributes(
    span: trace.Span | None = None, **attributes: SpanAttributeValue | None
) -> None:
    """Set attributes on a span, skipping None values.

    Args:
        span: Target span. Defaults to the current span.
        **attributes: Key-value pairs to add. Dotted keys can be passed with
            ``**{"db.type": "postgresql"}``.
    """
    span = span or trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, value)


def mark_span_error(span: trace.Span, error: BaseException) -> None:
    """Tag a span as failed with the error message and recorded exception."""
    if not span.is_recording():
        return
    message = str(error)[:ERROR_MESSAGE_MAX_LENGTH]
    span.set_attribute("error", True)
    span.set_attribute("error.msg", message)
    notify = getattr(error, "should_notify", None)
    if notify is not None:
        span.set_attribute("error.notify", notify)
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, message))


def current_trace_ids(span: trace.Span | None = None) -> tuple[str, str]:
    """Return hex ``(trace_id, span_id)`` of a span, or empty strings.

    Args:
        span: Span to inspect. Defaults to the current span.
    """
    span_context = (span or trace.get_current_span()).get_span_context()
    if not span_context.is_valid:
        return "", ""
    return format(span_context.trace_id, "032x"), format(span_context.span_id, "016x")


@contextmanager
def trace_operation(
    name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes: SpanAttributeValue | None,
) -> Generator[trace.Span]:
    """Open a span as the current span for the duration of the block.

    The span ends exactly once whether the block returns or raises. On an
    exception the span is tagged as failed and the exception propagates
    unchanged. ``asyncio.CancelledError`` ends the span without marking it
    failed.

    Args:
        name: Operation name for the span.
        kind: Span kind.
        **attributes: Initial attributes for the span.

    Yields:
        Generator[trace.Span]: The created span.

    Example:
        >>> with trace_operation("usecase.get_user", **{"user.id": 42}) as span:
        ...     user = await repository.find_by_id(ctx, 42)
    """
    span = get_tracer().start_span(name, kind=kind)
    add_span_attributes(span, **attributes)
    if correlation_id := CorrelationContext.get_correlation_id():
        add_span_attributes(span, correlation_id=correlation_id)

    with trace.use_span(
        span, end_on_exit=True, record_exception=False, set_status_on_exception=False
    ):
        try:
            yield span
        except Exception as e:
            mark_span_error(span, e)
            raise
