"""CORS handling wrapped in a span."""

from collections.abc import Sequence

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from tracetour.api.constants import (
    CORRELATION_ID_HEADER,
    REQUEST_ID_HEADER,
    SPAN_ID_HEADER,
    TRACE_ID_HEADER,
)
from tracetour.core.observability import trace_operation

EXPOSED_HEADERS = [
    TRACE_ID_HEADER,
    SPAN_ID_HEADER,
    CORRELATION_ID_HEADER,
    REQUEST_ID_HEADER,
]


class TracedCORSMiddleware:
    """Starlette's ``CORSMiddleware`` inside a ``middleware.cors`` span.

    Args:
        app: The ASGI application.
        allow_origins: Allowed origins, ``*`` for any.
        allow_methods: Allowed methods.
        allow_headers: Allowed request headers.
        allow_credentials: Whether credentials are allowed.
        max_age: Preflight cache duration in seconds.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        allow_origins: Sequence[str] = (),
        allow_methods: Sequence[str] = ("GET",),
        allow_headers: Sequence[str] = (),
        allow_credentials: bool = False,
        max_age: int = 600,
    ) -> None:
        self.cors = CORSMiddleware(
            app,
            allow_origins=allow_origins,
            allow_methods=allow_methods,
            allow_headers=allow_headers,
            allow_credentials=allow_credentials,
            expose_headers=EXPOSED_HEADERS,
            max_age=max_age,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.cors(scope, receive, send)
            return

        with trace_operation(
            "middleware.cors",
            **{"cors.preflight": scope.get("method") == "OPTIONS"},
        ):
            await self.cors(scope, receive, send)
