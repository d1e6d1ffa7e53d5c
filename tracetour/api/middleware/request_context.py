"""Outermost middleware: request context, root span and trace headers.

Implemented as a pure ASGI middleware rather than ``BaseHTTPMiddleware`` so
it can observe ``http.disconnect`` on the receive channel and stamp headers
on every response, including the ones produced after a failure further in.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from opentelemetry import trace
from opentelemetry.propagate import extract
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from tracetour.api.constants import (
    CONTEXT_STATE_KEY,
    CORRELATION_ID_HEADER,
    SPAN_ID_HEADER,
    TRACE_ID_HEADER,
)
from tracetour.core.context import (
    CorrelationContext,
    RequestContext,
    generate_correlation_id,
)
from tracetour.core.observability import (
    add_span_attributes,
    current_trace_ids,
    get_tracer,
)

ROOT_SPAN_NAME = "http.request"


@contextmanager
def _root_span(scope: Scope, headers: Headers) -> Iterator[trace.Span]:
    """Yield the request's root span, opening one if instrumentation has not."""
    current = trace.get_current_span()
    if current.is_recording():
        yield current
        return

    with get_tracer().start_as_current_span(
        ROOT_SPAN_NAME,
        context=extract(dict(headers)),
        kind=trace.SpanKind.SERVER,
        attributes={
            "http.method": scope.get("method", ""),
            "http.target": scope.get("path", ""),
        },
    ) as span:
        yield span


class RequestContextMiddleware:
    """Create the per-request ``RequestContext`` and the root span.

    The correlation ID is taken from ``X-Correlation-ID`` when the client
    sends one. Every response carries ``X-Correlation-ID``, ``X-Trace-ID``
    and ``X-Span-ID``.

    Args:
        app: The ASGI application.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        correlation_id = headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        ctx = RequestContext(correlation_id=correlation_id)
        scope.setdefault("state", {})[CONTEXT_STATE_KEY] = ctx
        CorrelationContext.set_correlation_id(correlation_id)

        async def receive_wrapper() -> Message:
            message = await receive()
            if message["type"] == "http.disconnect":
                ctx.cancellation.cancel()
            return message

        with _root_span(scope, headers) as span:
            trace_id, span_id = current_trace_ids(span)

            async def send_wrapper(message: Message) -> None:
                if message["type"] == "http.response.start":
                    response_headers = MutableHeaders(scope=message)
                    response_headers[CORRELATION_ID_HEADER] = correlation_id
                    if trace_id:
                        response_headers[TRACE_ID_HEADER] = trace_id
                        response_headers[SPAN_ID_HEADER] = span_id
                    add_span_attributes(
                        span, **{"http.status_code": message["status"]}
                    )
                await send(message)

            with logger.contextualize(correlation_id=correlation_id):
                await self.app(scope, receive_wrapper, send_wrapper)
