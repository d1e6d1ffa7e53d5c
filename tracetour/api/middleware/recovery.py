"""Panic recovery: the last line of defence below the request context.

Any ``Exception`` escaping the inner chain (a bug, a failed dependency the
handlers did not translate) is turned into exactly one error log entry and
exactly one 500 problem response. The server keeps serving.

Lifecycle per request::

    ARMED -> EXECUTING -> COMPLETED
                       -> RECOVERING -> RESPONDED

Trace IDs are captured while ARMED, before the inner chain runs, so the
log entry and the response can still be correlated if the failure left the
tracing context in an unknown state.

``asyncio.CancelledError`` is not an ``Exception`` and is never swallowed.
"""

import traceback
from enum import Enum

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from tracetour.api.constants import (
    CONTEXT_STATE_KEY,
    FALLBACK_PROBLEM_BODY,
    INTERNAL_SERVER_ERROR_MESSAGE,
    PROBLEM_JSON_CONTENT_TYPE,
)
from tracetour.api.schemas.problems import internal_problem
from tracetour.api.utils.responses import ProblemJSONResponse
from tracetour.core.constants import LAYER_MIDDLEWARE
from tracetour.core.context import RequestContext
from tracetour.core.exceptions import PanicRecoveredError
from tracetour.core.logging import log_error_with_trace
from tracetour.core.observability import current_trace_ids, trace_operation

RECOVERY_STATE_KEY = "recovery_state"


class RecoveryState(Enum):
    """Where a request is in the recovery lifecycle."""

    ARMED = "armed"
    EXECUTING = "executing"
    COMPLETED = "completed"
    RECOVERING = "recovering"
    RESPONDED = "responded"


class RecoveryMiddleware(BaseHTTPMiddleware):
    """Convert unhandled exceptions into a single 500 problem response.

    Args:
        app: The ASGI application.
        problem_type_base: Base URI for problem types.
    """

    def __init__(self, app: ASGIApp, *, problem_type_base: str) -> None:
        super().__init__(app)
        self.problem_type_base = problem_type_base

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        self._transition(request, RecoveryState.ARMED)
        trace_id, span_id = current_trace_ids()

        with trace_operation("middleware.recovery") as span:
            self._transition(request, RecoveryState.EXECUTING)
            try:
                response = await call_next(request)
            except Exception as exc:
                self._transition(request, RecoveryState.RECOVERING)
                response = self._recover(request, exc, span, trace_id, span_id)
                self._transition(request, RecoveryState.RESPONDED)
                return response

            self._transition(request, RecoveryState.COMPLETED)
            return response

    def _recover(
        self,
        request: Request,
        exc: Exception,
        span: trace.Span,
        trace_id: str,
        span_id: str,
    ) -> Response:
        """Log the failure once and render the 500 problem.

        Never raises: if logging or rendering fails, a fixed body is returned.
        """
        try:
            ctx: RequestContext = getattr(
                request.state, CONTEXT_STATE_KEY, None
            ) or RequestContext.background()
            log_error_with_trace(
                ctx.logger,
                LAYER_MIDDLEWARE,
                "Panic recovered",
                PanicRecoveredError(exc),
                notify=True,
                span=span,
                **{
                    "panic.value": str(exc),
                    "panic.type": type(exc).__name__,
                    "stack_trace": "".join(traceback.format_exception(exc)),
                    "http.method": request.method,
                    "http.url": str(request.url.path),
                    "trace_id": trace_id,
                    "span_id": span_id,
                },
            )
            problem = internal_problem(
                self.problem_type_base,
                "An unexpected error occurred while processing the request",
                instance=request.url.path,
                notify=True,
                trace_id=trace_id,
                span_id=span_id,
                extra={"error": INTERNAL_SERVER_ERROR_MESSAGE},
            )
            return ProblemJSONResponse(problem)
        except Exception:  # noqa: BLE001 - the recovery path must always respond
            return Response(
                FALLBACK_PROBLEM_BODY,
                status_code=500,
                media_type=PROBLEM_JSON_CONTENT_TYPE,
            )

    @staticmethod
    def _transition(request: Request, state: RecoveryState) -> None:
        setattr(request.state, RECOVERY_STATE_KEY, state)
