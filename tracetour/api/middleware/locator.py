"""Binds the repository locator into the request context."""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from tracetour.api.constants import CONTEXT_STATE_KEY
from tracetour.api.dependencies import get_request_context
from tracetour.core.observability import add_span_attributes, trace_operation
from tracetour.domain.repositories import RepositoryLocator

LOCATOR_STATE_KEY = "repository_locator"


class RepositoryLocatorMiddleware(BaseHTTPMiddleware):
    """Bind the process-wide repository locator to every request.

    Args:
        app: The ASGI application.
        locator: Locator to bind. When omitted, the one the lifespan stored
            on ``app.state`` is used.
    """

    def __init__(
        self, app: ASGIApp, *, locator: RepositoryLocator | None = None
    ) -> None:
        super().__init__(app)
        self.locator = locator

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        with trace_operation("middleware.repo_locator") as span:
            locator = self.locator or getattr(
                request.app.state, LOCATOR_STATE_KEY, None
            )
            add_span_attributes(span, **{"locator.bound": locator is not None})
            if locator is not None:
                ctx = get_request_context(request)
                setattr(
                    request.state,
                    CONTEXT_STATE_KEY,
                    ctx.with_repository_locator(locator),
                )
            return await call_next(request)
