"""Endpoints that produce specific telemetry on purpose.

Each one exercises a different path through logging, tracing and alerting:
a slow request, an alerting error, an expected error that must not alert, a
warning, and an unhandled failure caught by the recovery middleware.
"""

import asyncio

from fastapi import APIRouter, Request
from fastapi.responses import Response

from tracetour.api.dependencies import AppSettings, Context, UserInteractor
from tracetour.api.routers.users import request_span_attributes
from tracetour.api.schemas.problems import conflict_problem, internal_problem
from tracetour.api.schemas.responses import SuccessResponse
from tracetour.api.utils.responses import ProblemJSONResponse
from tracetour.core.constants import LAYER_HANDLER
from tracetour.core.exceptions import ConflictError, InternalError
from tracetour.core.logging import (
    log_error_with_trace,
    log_warning_with_trace,
    log_with_trace,
)
from tracetour.core.observability import add_span_attributes, trace_operation

router = APIRouter(prefix="/api", tags=["demo"])

DUPLICATE_EMAIL = "duplicate@example.com"
DEMO_DB_HOST = "postgres.example.com"
DEMO_DB_PORT = 5432


@router.get("/slow", response_model=SuccessResponse[dict[str, str]])
async def slow_endpoint(
    request: Request, ctx: Context, settings: AppSettings
) -> SuccessResponse[dict[str, str]]:
    """Respond after ``demo_slow_delay_seconds``."""
    delay = settings.demo_slow_delay_seconds
    with trace_operation(
        "handler.slow_endpoint",
        **request_span_attributes(request),
        **{"test.type": "slow_request"},
    ) as span:
        log_with_trace(
            ctx.logger,
            LAYER_HANDLER,
            f"Slow endpoint called - simulating {delay:g} second delay",
        )
        add_span_attributes(span, operation="slow_query_simulation")
        await asyncio.sleep(delay)
        log_with_trace(ctx.logger, LAYER_HANDLER, "Slow operation completed")

        return SuccessResponse[dict[str, str]](
            data={
                "message": f"This endpoint intentionally took {delay:g} seconds "
                "to respond",
                "delay": f"{delay:g}s",
            },
            message="Slow request completed successfully",
        )


@router.get("/error")
async def error_endpoint(
    request: Request, ctx: Context, settings: AppSettings
) -> Response:
    """Log an alerting error and answer with a 500 problem."""
    with trace_operation(
        "handler.error_endpoint",
        **request_span_attributes(request),
        **{"test.type": "error_simulation"},
    ) as span:
        log_with_trace(
            ctx.logger, LAYER_HANDLER, "Error endpoint called - will generate an error"
        )
        error = InternalError(
            "simulated database connection error",
            context={"error.type": "database_error"},
        )
        add_span_attributes(
            span,
            **{"error.type": "database_error", "error.stack": "user_repository.py:42"},
        )
        log_error_with_trace(
            ctx.logger, LAYER_HANDLER, "Simulated error occurred", error, span=span
        )

        problem = internal_problem(
            settings.problem_type_base,
            "Simulated database connection error for observability demonstration",
            instance=request.url.path,
            extra={
                "error.stack": "user_repository.py:42",
                "db.operation": "connection_test",
            },
        )
        return ProblemJSONResponse(problem)


@router.get("/expected-error")
async def expected_error_endpoint(
    request: Request, ctx: Context, settings: AppSettings
) -> Response:
    """Log an expected failure without alerting and answer with a 409 problem."""
    with trace_operation(
        "handler.expected_error_endpoint",
        **request_span_attributes(request),
        **{"test.type": "expected_error_simulation"},
    ) as span:
        log_with_trace(ctx.logger, LAYER_HANDLER, "Expected error endpoint called")
        error = ConflictError(
            "user already exists", context={"user.email": DUPLICATE_EMAIL}
        )
        log_error_with_trace(
            ctx.logger,
            LAYER_HANDLER,
            "Expected error occurred",
            error,
            notify=False,
            span=span,
            **{"error.type": "validation_error"},
        )

        problem = conflict_problem(
            settings.problem_type_base,
            f"User with email '{DUPLICATE_EMAIL}' already exists. This is an "
            "expected error that should not trigger alerts.",
            instance=request.url.path,
            extra={"user.email": DUPLICATE_EMAIL, "validation.field": "email"},
        )
        return ProblemJSONResponse(problem)


@router.get("/unexpected-error")
async def unexpected_error_endpoint(
    request: Request, ctx: Context, settings: AppSettings
) -> Response:
    """Log a system failure that alerts and answer with a 500 problem."""
    with trace_operation(
        "handler.unexpected_error_endpoint",
        **request_span_attributes(request),
        **{"test.type": "unexpected_error_simulation"},
    ) as span:
        log_with_trace(ctx.logger, LAYER_HANDLER, "Unexpected error endpoint called")
        error = InternalError(
            "database connection lost", context={"db.host": DEMO_DB_HOST}
        )
        log_error_with_trace(
            ctx.logger,
            LAYER_HANDLER,
            "Unexpected error occurred",
            error,
            span=span,
            **{"error.type": "system_error", "db.host": DEMO_DB_HOST},
        )

        problem = internal_problem(
            settings.problem_type_base,
            f"Database connection to {DEMO_DB_HOST} was lost unexpectedly. This "
            "system error should trigger an alert for immediate investigation.",
            instance=request.url.path,
            extra={
                "db.host": DEMO_DB_HOST,
                "db.port": DEMO_DB_PORT,
                "retry.attempted": False,
            },
        )
        return ProblemJSONResponse(problem)


@router.get("/warn", response_model=SuccessResponse[dict[str, str]])
async def warn_endpoint(
    request: Request, ctx: Context
) -> SuccessResponse[dict[str, str]]:
    """Log a performance warning and succeed."""
    with trace_operation(
        "handler.warn_endpoint",
        **request_span_attributes(request),
        **{"test.type": "warning_simulation"},
    ):
        log_with_trace(ctx.logger, LAYER_HANDLER, "Warn endpoint called")
        log_warning_with_trace(
            ctx.logger,
            LAYER_HANDLER,
            "Performance degradation detected",
            **{
                "warn.type": "performance",
                "response_time_ms": 1500,
                "threshold_ms": 1000,
            },
        )

        return SuccessResponse[dict[str, str]](
            data={
                "message": "Warning logged successfully",
                "level": "warn",
                "type": "performance_degradation",
            },
            message="Warning endpoint completed",
        )


@router.get("/panic", response_model=SuccessResponse[dict[str, str]])
async def panic_endpoint(
    request: Request, ctx: Context, interactor: UserInteractor
) -> SuccessResponse[dict[str, str]]:
    """Fail with an unhandled error below the use case.

    Nothing here catches it; the recovery middleware answers with a 500.
    """
    with trace_operation(
        "handler.panic_endpoint",
        **request_span_attributes(request),
        **{"test.type": "panic_simulation"},
    ):
        log_with_trace(
            ctx.logger,
            LAYER_HANDLER,
            "Panic endpoint called - will fail in the use case layer",
        )
        await interactor.simulate_panic(ctx)

        return SuccessResponse[dict[str, str]](
            data={"message": "This should never be returned"},
            message="Panic test completed",
        )
