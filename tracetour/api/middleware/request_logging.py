"""HTTP request/response logging with slow request detection.

Each request logs "Request started" and "Request completed" with timing, and
a warning when it exceeds ``slow_request_threshold_ms``. Paths listed in
``excluded_paths`` (health checks) are not logged.

An exception passing through is noted at WARNING level and re-raised; the
recovery middleware further out owns the single ERROR entry for it.
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from tracetour.api.constants import REQUEST_ID_HEADER
from tracetour.api.dependencies import get_request_context
from tracetour.core.config import LogConfig
from tracetour.core.constants import MILLISECONDS_PER_SECOND
from tracetour.core.context import generate_request_id

MAX_USER_AGENT_LENGTH = 200


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests and responses with timing.

    Args:
        app: The ASGI application.
        log_config: Logging configuration.
        trust_proxy_headers: Read the client IP from X-Forwarded-For/X-Real-IP.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        log_config: LogConfig,
        trust_proxy_headers: bool = False,
    ) -> None:
        super().__init__(app)
        self.log_config = log_config
        self.excluded_paths = set(log_config.excluded_paths)
        self.trust_proxy_headers = trust_proxy_headers

    def _get_client_ip(self, request: Request) -> str:
        if self.trust_proxy_headers:
            if forwarded_for := request.headers.get("x-forwarded-for"):
                return forwarded_for.split(",")[0].strip()
            if real_ip := request.headers.get("x-real-ip"):
                return real_ip.strip()
        if request.client:
            return request.client.host
        return "unknown"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        log = get_request_context(request).logger.bind(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_host=self._get_client_ip(request),
            user_agent=request.headers.get("user-agent", "unknown")[
                :MAX_USER_AGENT_LENGTH
            ],
        )

        log.info(
            "Request started",
            query_params=dict(request.query_params) if request.query_params else None,
        )
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            log.warning(
                "Request aborted by unhandled {}",
                type(exc).__name__,
                duration_ms=self._elapsed_ms(start_time),
            )
            raise

        duration_ms = self._elapsed_ms(start_time)
        log.info(
            "Request completed",
            status_code=response.status_code,
            duration_ms=duration_ms,
            response_size=int(response.headers.get("content-length", 0)),
        )
        response.headers[REQUEST_ID_HEADER] = request_id

        if duration_ms > self.log_config.slow_request_threshold_ms:
            log.warning(
                "Slow request detected",
                duration_ms=duration_ms,
                threshold_ms=self.log_config.slow_request_threshold_ms,
            )

        return response

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.perf_counter() - start_time) * MILLISECONDS_PER_SECOND, 2)
