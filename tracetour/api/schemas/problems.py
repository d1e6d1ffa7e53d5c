"""RFC 9457 problem details.

Every error response of the API is a ``ProblemDetail``. Besides the standard
members it carries the ``trace_id``/``span_id`` of the request, so a client
report can be joined with the trace, and ``notify``, which tells whether the
failure raised an alert.

Extension members (``provided_id``, ``user.id``...) are flattened to the top
level of the JSON body.

See: https://www.rfc-editor.org/rfc/rfc9457.html
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tracetour.api.constants import (
    HTTP_499_CLIENT_CLOSED_REQUEST,
    INTERNAL_SERVER_ERROR_MESSAGE,
    PROBLEM_CANCELLED,
    PROBLEM_CONFLICT,
    PROBLEM_INTERNAL,
    PROBLEM_NOT_FOUND,
    PROBLEM_VALIDATION,
)
from tracetour.core.error_context import sanitize_dict
from tracetour.core.exceptions import (
    ConflictError,
    NotFoundError,
    RequestCancelledError,
    TraceTourError,
    ValidationError,
)
from tracetour.core.observability import current_trace_ids


class ProblemDetail(BaseModel):
    """Problem details body with trace correlation and alerting flag."""

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "examples": [
                {
                    "type": "https://tracetour.example.com/errors/not-found",
                    "title": "Not Found",
                    "status": 404,
                    "detail": "user not found",
                    "instance": "/api/users/42",
                    "trace_id": "4bf92f3577b34da6a3ce929d0e0e4736",
                    "span_id": "00f067aa0ba902b7",
                    "notify": False,
                    "user.id": 42,
                }
            ]
        },
    )

    type: str = Field(..., description="URI identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(default="", description="Explanation of this occurrence")
    instance: str = Field(default="", description="Request path that failed")
    trace_id: str = Field(default="", description="Trace ID (32 hex characters)")
    span_id: str = Field(default="", description="Span ID (16 hex characters)")
    notify: bool = Field(..., description="Whether this failure triggers alerts")

    @property
    def extra(self) -> dict[str, Any]:
        """Extension members."""
        return dict(self.model_extra or {})


def new_problem(
    type_base: str,
    slug: str,
    title: str,
    status: int,
    detail: str,
    *,
    instance: str = "",
    notify: bool,
    trace_id: str | None = None,
    span_id: str | None = None,
    extra: dict[str, Any] | None = None,
) -> ProblemDetail:
    """Build a problem, stamping the active trace IDs unless given.

    Args:
        type_base: Base URI for problem types, without trailing slash.
        slug: Problem type slug appended to ``type_base``.
        title: Short summary.
        status: HTTP status code.
        detail: Explanation of this occurrence.
        instance: Request path.
        notify: Whether the failure triggers alerts.
        trace_id: Trace ID override, for IDs captured earlier.
        span_id: Span ID override.
        extra: Extension members. They never replace a standard member.

    Returns:
        ProblemDetail: The problem.
    """
    active_trace_id, active_span_id = current_trace_ids()
    return ProblemDetail.model_validate(
        {
            **(extra or {}),
            "type": f"{type_base}/{slug}",
            "title": title,
            "status": status,
            "detail": detail,
            "instance": instance,
            "trace_id": active_trace_id if trace_id is None else trace_id,
            "span_id": active_span_id if span_id is None else span_id,
            "notify": notify,
        }
    )


def validation_problem(
    type_base: str,
    detail: str,
    *,
    instance: str = "",
    extra: dict[str, Any] | None = None,
) -> ProblemDetail:
    return new_problem(
        type_base,
        PROBLEM_VALIDATION,
        "Validation Error",
        400,
        detail,
        instance=instance,
        notify=False,
        extra=extra,
    )


def not_found_problem(
    type_base: str,
    detail: str,
    *,
    instance: str = "",
    extra: dict[str, Any] | None = None,
) -> ProblemDetail:
    return new_problem(
        type_base,
        PROBLEM_NOT_FOUND,
        "Not Found",
        404,
        detail,
        instance=instance,
        notify=False,
        extra=extra,
    )


def conflict_problem(
    type_base: str,
    detail: str,
    *,
    instance: str = "",
    extra: dict[str, Any] | None = None,
) -> ProblemDetail:
    return new_problem(
        type_base,
        PROBLEM_CONFLICT,
        "Conflict",
        409,
        detail,
        instance=instance,
        notify=False,
        extra=extra,
    )


def internal_problem(
    type_base: str,
    detail: str,
    *,
    instance: str = "",
    notify: bool = True,
    trace_id: str | None = None,
    span_id: str | None = None,
    extra: dict[str, Any] | None = None,
) -> ProblemDetail:
    """Build a 500 problem. ``notify`` defaults to true for server faults."""
    return new_problem(
        type_base,
        PROBLEM_INTERNAL,
        INTERNAL_SERVER_ERROR_MESSAGE,
        500,
        detail,
        instance=instance,
        notify=notify,
        trace_id=trace_id,
        span_id=span_id,
        extra=extra,
    )


def problem_from_error(
    exc: TraceTourError, type_base: str, *, instance: str = ""
) -> ProblemDetail:
    """Translate an application error into a problem.

    Expected errors expose their (sanitized) context as extension members.
    Server faults never do; their detail stays on the logs and the trace.
    """
    extra = sanitize_dict(exc.context) if exc.is_expected else {}

    if isinstance(exc, ValidationError):
        return validation_problem(
            type_base, exc.message, instance=instance, extra=extra
        )
    if isinstance(exc, NotFoundError):
        return not_found_problem(type_base, exc.message, instance=instance, extra=extra)
    if isinstance(exc, ConflictError):
        return conflict_problem(type_base, exc.message, instance=instance, extra=extra)
    if isinstance(exc, RequestCancelledError):
        return new_problem(
            type_base,
            PROBLEM_CANCELLED,
            "Client Closed Request",
            HTTP_499_CLIENT_CLOSED_REQUEST,
            exc.message,
            instance=instance,
            notify=False,
        )
    return internal_problem(
        type_base, exc.message, instance=instance, notify=exc.should_notify
    )
