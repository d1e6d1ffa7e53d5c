"""FastAPI dependencies resolving request-scoped values from the context.

The middleware chain stores the ``RequestContext`` on ``request.state``.
Handlers never reach into ``request.state`` themselves; they declare one of
the annotated aliases below.
"""

from typing import Annotated

from fastapi import Depends, Request

from tracetour.api.constants import CONTEXT_STATE_KEY
from tracetour.core.config import Settings, get_settings
from tracetour.core.context import RequestContext
from tracetour.core.exceptions import InternalError
from tracetour.domain.repositories import RepositoryLocator
from tracetour.usecase.user_usecase import UserUseCase


def get_request_context(request: Request) -> RequestContext:
    """Return the context built by the middleware chain.

    Requests that bypassed the chain (e.g. a router mounted in a bare test
    app) get a fresh background context.
    """
    ctx = getattr(request.state, CONTEXT_STATE_KEY, None)
    if ctx is None:
        ctx = RequestContext.background()
        setattr(request.state, CONTEXT_STATE_KEY, ctx)
    return ctx


Context = Annotated[RequestContext, Depends(get_request_context)]


def get_repository_locator(ctx: Context) -> RepositoryLocator:
    """Return the bound repository locator.

    Raises:
        InternalError: If no locator was bound; a wiring bug, so it alerts.
    """
    locator = ctx.repository_locator
    if locator is None:
        msg = "repository locator is not bound to the request context"
        raise InternalError(msg, context={"component": "repository_locator"})
    return locator


Locator = Annotated[RepositoryLocator, Depends(get_repository_locator)]


def get_user_usecase(
    request: Request, ctx: Context, locator: Locator
) -> UserUseCase:
    """Build the user use case and bind it to the context as the interactor."""
    interactor = UserUseCase(locator.users, locator.cache, ctx.logger)
    setattr(request.state, CONTEXT_STATE_KEY, ctx.with_interactor(interactor))
    return interactor


UserInteractor = Annotated[UserUseCase, Depends(get_user_usecase)]


def get_interactor_context(
    request: Request, _interactor: UserInteractor
) -> RequestContext:
    """Return the context after the interactor has been bound to it."""
    return get_request_context(request)


InteractorContext = Annotated[RequestContext, Depends(get_interactor_context)]


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    settings: Settings | None = getattr(request.app.state, "settings", None)
    return settings or get_settings()


AppSettings = Annotated[Settings, Depends(get_app_settings)]
