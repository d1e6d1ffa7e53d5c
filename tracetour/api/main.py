"""FastAPI application initialization and configuration module.

This module builds the TraceTour API application. It handles:
- Application lifecycle management (startup/shutdown)
- Middleware registration in the correct order
- Exception handler registration
- Router registration
- Database and Redis connection verification
- OpenTelemetry instrumentation

Middleware are executed in reverse order of registration: the last one
added is the outermost.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from tracetour.api.middleware.cors import TracedCORSMiddleware
from tracetour.api.middleware.error_handler import register_exception_handlers
from tracetour.api.middleware.locator import (
    LOCATOR_STATE_KEY,
    RepositoryLocatorMiddleware,
)
from tracetour.api.middleware.logger import LoggerMiddleware
from tracetour.api.middleware.recovery import RecoveryMiddleware
from tracetour.api.middleware.request_context import RequestContextMiddleware
from tracetour.api.middleware.request_logging import RequestLoggingMiddleware
from tracetour.api.routers import demo, health, users
from tracetour.api.utils.responses import ORJSONResponse
from tracetour.core.config import Settings, get_settings
from tracetour.core.logging import setup_logging
from tracetour.core.observability import (
    instrument_app,
    setup_tracing,
    shutdown_tracing,
)
from tracetour.domain.repositories import RepositoryLocator
from tracetour.infrastructure.cache.redis_repository import (
    check_redis_connection,
    create_redis_client,
)
from tracetour.infrastructure.database.session import (
    check_database_connection,
    close_database,
    get_engine,
)
from tracetour.infrastructure.locator import build_repository_locator


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan events.

    When the application was created without a locator it owns its backends:
    the database and Redis are checked on startup, the locator is built and
    stored on ``app.state``, and both connections are closed on shutdown.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.

    Raises:
        RuntimeError: If the database or Redis is unreachable during startup.
    """
    settings: Settings = app_instance.state.settings
    owns_locator = getattr(app_instance.state, LOCATOR_STATE_KEY, None) is None
    redis_client = None

    if owns_locator:
        is_healthy, error_msg = await check_database_connection()
        if not is_healthy:
            logger.error("Database connection failed during startup: {}", error_msg)
            msg = f"Database connection failed: {error_msg}"
            raise RuntimeError(msg)
        logger.info("Database connection successful")

        redis_client = create_redis_client(settings.cache_config)
        is_healthy, error_msg = await check_redis_connection(redis_client)
        if not is_healthy:
            await redis_client.aclose()
            await close_database()
            logger.error("Redis connection failed during startup: {}", error_msg)
            msg = f"Redis connection failed: {error_msg}"
            raise RuntimeError(msg)
        logger.info("Redis connection successful")

        setattr(
            app_instance.state,
            LOCATOR_STATE_KEY,
            build_repository_locator(settings, redis_client),
        )

    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )

    yield

    logger.info("Application shutdown initiated")
    if redis_client is not None:
        await redis_client.aclose()
        await close_database()
        setattr(app_instance.state, LOCATOR_STATE_KEY, None)
    if settings.observability_config.enable_tracing:
        shutdown_tracing()
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None, locator: RepositoryLocator | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use
            get_settings().
        locator: Repositories to serve requests with. If not provided, the
            lifespan connects to the database and Redis and builds them.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    setup_tracing(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    application.state.settings = settings
    setattr(application.state, LOCATOR_STATE_KEY, locator)

    # Register exception handlers BEFORE middleware
    register_exception_handlers(application)

    # Last added runs first. Innermost:
    # 6. CORS
    cors = settings.cors_config
    application.add_middleware(
        TracedCORSMiddleware,
        allow_origins=cors.allow_origins,
        allow_methods=cors.allow_methods,
        allow_headers=cors.allow_headers,
        allow_credentials=cors.allow_credentials,
        max_age=cors.max_age,
    )

    # 5. Repository locator
    application.add_middleware(RepositoryLocatorMiddleware, locator=locator)

    # 4. Request logging
    # Proxy headers are only trusted behind the production load balancer
    application.add_middleware(
        RequestLoggingMiddleware,
        log_config=settings.log_config,
        trust_proxy_headers=settings.environment == "production",
    )

    # 3. Request-scoped logger
    application.add_middleware(LoggerMiddleware)

    # 2. Panic recovery
    application.add_middleware(
        RecoveryMiddleware, problem_type_base=settings.problem_type_base
    )

    # 1. Request context, root span and trace headers
    application.add_middleware(RequestContextMiddleware)

    application.include_router(health.router)
    application.include_router(users.router)
    application.include_router(demo.router)

    # Instrument application for tracing (at the end)
    instrument_app(application, settings, None if locator else get_engine())

    return application
