"""User endpoints.

Handlers parse the request, call the use case inside a ``handler.*`` span and
wrap the result in the success envelope. Errors are not caught here; the
exception handlers render them as problem details.
"""

import re
from typing import Final

from fastapi import APIRouter, Request, status

from tracetour.api.dependencies import InteractorContext, UserInteractor
from tracetour.api.schemas.responses import SuccessResponse
from tracetour.api.schemas.users import CreateUserRequest, UserResponse
from tracetour.core.constants import LAYER_HANDLER
from tracetour.core.error_context import mask_email
from tracetour.core.exceptions import ValidationError
from tracetour.core.logging import log_with_trace
from tracetour.core.observability import add_span_attributes, trace_operation

router = APIRouter(prefix="/api/users", tags=["users"])

BIGINT_MIN: Final[int] = -(2**63)
BIGINT_MAX: Final[int] = 2**63 - 1
_USER_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"[+-]?[0-9]+")


def request_span_attributes(request: Request) -> dict[str, str]:
    """Span attributes describing the inbound request."""
    return {
        "http.method": request.method,
        "http.url": request.url.path,
        "http.user_agent": request.headers.get("user-agent", ""),
    }


def parse_user_id(raw: str) -> int:
    """Parse a user ID from the path.

    Only optionally signed ASCII digits within the BIGINT range are accepted.

    Raises:
        ValidationError: If the value is not an integer the store can hold.
    """
    if _USER_ID_PATTERN.fullmatch(raw) is not None:
        user_id = int(raw)
        if BIGINT_MIN <= user_id <= BIGINT_MAX:
            return user_id
    raise ValidationError(
        "User ID must be a valid integer", context={"provided_id": raw}
    )


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[UserResponse],
)
async def create_user(
    request: Request,
    body: CreateUserRequest,
    interactor: UserInteractor,
    ctx: InteractorContext,
) -> SuccessResponse[UserResponse]:
    """Create a user. A duplicate e-mail address is a 409 problem."""
    with trace_operation(
        "handler.create_user",
        **request_span_attributes(request),
        **{"user.name": body.name, "user.email": mask_email(body.email)},
    ) as span:
        user = await interactor.create_user(ctx, body.name, body.email)

        add_span_attributes(span, **{"user.id": user.id})
        log_with_trace(
            ctx.logger,
            LAYER_HANDLER,
            "User created successfully",
            **{"user.id": user.id},
        )
        return SuccessResponse[UserResponse](
            data=UserResponse.from_entity(user),
            message="User created successfully",
        )


@router.get("", response_model=SuccessResponse[list[UserResponse]])
async def get_all_users(
    request: Request,
    interactor: UserInteractor,
    ctx: InteractorContext,
) -> SuccessResponse[list[UserResponse]]:
    """List up to 100 users, newest first."""
    with trace_operation(
        "handler.get_all_users", **request_span_attributes(request)
    ) as span:
        users = await interactor.get_all_users(ctx)

        add_span_attributes(span, **{"users.count": len(users)})
        log_with_trace(
            ctx.logger,
            LAYER_HANDLER,
            "Users retrieved successfully",
            **{"users.count": len(users)},
        )
        return SuccessResponse[list[UserResponse]](
            data=[UserResponse.from_entity(user) for user in users],
        )


@router.get("/{user_id}", response_model=SuccessResponse[UserResponse])
async def get_user(
    request: Request,
    user_id: str,
    interactor: UserInteractor,
    ctx: InteractorContext,
) -> SuccessResponse[UserResponse]:
    """Get one user, served from the cache when possible.

    The ID is taken as a string so a non-numeric value yields a validation
    problem carrying ``provided_id``.
    """
    with trace_operation(
        "handler.get_user", **request_span_attributes(request)
    ) as span:
        parsed_id = parse_user_id(user_id)
        add_span_attributes(span, **{"user.id": parsed_id})

        user = await interactor.get_user(ctx, parsed_id)

        add_span_attributes(span, **{"user.name": user.name})
        log_with_trace(
            ctx.logger,
            LAYER_HANDLER,
            "User retrieved successfully",
            **{"user.id": user.id},
        )
        return SuccessResponse[UserResponse](data=UserResponse.from_entity(user))
