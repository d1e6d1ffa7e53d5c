"""Binds a request-scoped logger into the request context."""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tracetour.api.constants import CONTEXT_STATE_KEY
from tracetour.api.dependencies import get_request_context
from tracetour.core.observability import current_trace_ids, trace_operation


class LoggerMiddleware(BaseHTTPMiddleware):
    """Attach a logger carrying the correlation and trace IDs of the request.

    Downstream code logs through ``ctx.logger``; entries written through the
    global logger still receive the IDs via ``logger.contextualize``.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        ctx = get_request_context(request)
        with trace_operation("middleware.logger") as span:
            trace_id, span_id = current_trace_ids(span)
            request_logger = logger.bind(
                correlation_id=ctx.correlation_id,
                trace_id=trace_id,
                span_id=span_id,
            )
            setattr(request.state, CONTEXT_STATE_KEY, ctx.with_logger(request_logger))

            with logger.contextualize(trace_id=trace_id, span_id=span_id):
                return await call_next(request)
