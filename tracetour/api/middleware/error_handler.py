"""Exception handlers translating errors into problem detail responses.

Only errors the application understands are handled here: ``TraceTourError``,
request validation failures and ``HTTPException`` (unknown routes, wrong
methods). Deliberately, no handler is registered for ``Exception``:
anything else propagates to ``RecoveryMiddleware``.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from tracetour.api.constants import PROBLEM_BAD_REQUEST
from tracetour.api.dependencies import get_app_settings, get_request_context
from tracetour.api.schemas.problems import (
    internal_problem,
    new_problem,
    not_found_problem,
    problem_from_error,
    validation_problem,
)
from tracetour.api.utils.responses import ProblemJSONResponse
from tracetour.core.constants import LAYER_HANDLER
from tracetour.core.exceptions import TraceTourError
from tracetour.core.logging import log_error_with_trace, log_warning_with_trace


async def tracetour_error_handler(request: Request, exc: Exception) -> Response:
    """Handle TraceTourError exceptions.

    Expected errors (bad input, missing user, duplicate e-mail) are logged
    without alerting. Server faults are logged with ``error.notify=true``.

    Raises:
        TypeError: If exc is not a TraceTourError instance.
    """
    if not isinstance(exc, TraceTourError):
        raise TypeError(f"Expected TraceTourError, got {type(exc).__name__}")

    ctx = get_request_context(request)
    log_error_with_trace(
        ctx.logger,
        LAYER_HANDLER,
        f"Request failed: {exc.message}",
        exc,
        notify=exc.should_notify,
        **{"http.method": request.method, "http.url": request.url.path},
    )

    problem = problem_from_error(
        exc, get_app_settings(request).problem_type_base, instance=request.url.path
    )
    return ProblemJSONResponse(problem)


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Handle FastAPI RequestValidationError as a 400 validation problem.

    The field errors are returned as ``errors`` and summarised in
    ``parse_error``.

    Raises:
        TypeError: If exc is not a RequestValidationError instance.
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        location = error.get("loc", ())
        field_name = ".".join(str(part) for part in location[1:]) or "body"
        message = error.get("msg", "Invalid value")
        field_errors.setdefault(field_name, []).append(message)

    parse_error = "; ".join(
        f"{field}: {', '.join(messages)}" for field, messages in field_errors.items()
    )

    ctx = get_request_context(request)
    log_warning_with_trace(
        ctx.logger,
        LAYER_HANDLER,
        "Request validation failed",
        validation_errors=field_errors,
        **{"error.notify": False},
    )

    problem = validation_problem(
        get_app_settings(request).problem_type_base,
        "Invalid request",
        instance=request.url.path,
        extra={"parse_error": parse_error, "errors": field_errors},
    )
    return ProblemJSONResponse(problem)


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException (404 route, 405 method and similar).

    Raises:
        TypeError: If exc is not an HTTPException instance.
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    type_base = get_app_settings(request).problem_type_base
    detail = str(exc.detail)
    instance = request.url.path

    if exc.status_code == status.HTTP_404_NOT_FOUND:
        problem = not_found_problem(type_base, detail, instance=instance)
    elif exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        problem = internal_problem(type_base, detail, instance=instance)
    else:
        problem = new_problem(
            type_base,
            PROBLEM_BAD_REQUEST,
            detail,
            exc.status_code,
            detail,
            instance=instance,
            notify=False,
        )

    log_warning_with_trace(
        get_request_context(request).logger,
        LAYER_HANDLER,
        "HTTP exception",
        status_code=exc.status_code,
        detail=detail,
    )
    return ProblemJSONResponse(problem, headers=exc.headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Register the exception handlers with the FastAPI application."""
    app.add_exception_handler(TraceTourError, tracetour_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    logger.info("Exception handlers registered")
