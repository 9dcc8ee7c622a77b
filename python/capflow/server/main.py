"""Main entry point for capflow Server."""

from __future__ import annotations

import uvicorn
from loguru import logger

from capflow.config.logging import setup_logging
from capflow.config.settings import get_settings
from capflow.server.api.app import create_app


def main() -> None:
    """Configure logging, build the app and serve it with uvicorn."""
    setup_logging()
    settings = get_settings()
    app = create_app()

    config = uvicorn.Config(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="debug" if settings.API_DEBUG else "info",
    )
    server = uvicorn.Server(config)

    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt caught; shutting down")


if __name__ == "__main__":
    main()
