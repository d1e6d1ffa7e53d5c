"""Main entry point for running the TraceTour FastAPI application."""

import os

import uvicorn
from loguru import logger

from tracetour.core.config import get_settings
from tracetour.core.logging import setup_logging

APP_FACTORY = "tracetour.api.main:create_app"


def main() -> None:
    """Main entry point for the TraceTour application."""
    settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    # Container platforms set PORT to the port the container should listen on
    port = int(os.environ.get("PORT", settings.api_port))

    # Configure uvicorn to use our logging
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "default": {
                "class": "tracetour.core.logging.InterceptHandler",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False,
            },
        },
    }

    reload = settings.debug
    logger.info(
        "Starting Uvicorn on http://{}:{} ({})",
        settings.api_host,
        port,
        "development mode with auto-reload" if reload else "production mode",
    )
    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host=settings.api_host,
        port=port,
        reload=reload,
        log_config=log_config,
    )


if __name__ == "__main__":
    main()
