"""FastAPI application factory for capflow Server."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from capflow.config.settings import get_settings
from capflow.core.engine import PollingEngine

from .routers import flows, health


def create_app(
    engine: Optional[PollingEngine] = None, *, start_engine: bool = True
) -> FastAPI:
    """Create and configure FastAPI application.

    The engine is built from settings when not supplied; a bad configuration
    raises ``ConfigurationError`` here, before the server starts.
    """
    settings = get_settings()
    engine = engine or PollingEngine.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(
            "capflow Server starting up on {}:{}...", settings.API_HOST, settings.API_PORT
        )
        if start_engine:
            await engine.start()
        try:
            yield
        finally:
            # Shutdown
            await engine.close()
            logger.info("capflow Server shut down")

    app = FastAPI(
        title="capflow Server API",
        description="Latest capital-flow samples and sliding history per instrument",
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.API_DEBUG else None,
        redoc_url="/redoc" if settings.API_DEBUG else None,
    )
    app.state.engine = engine

    # Add middleware
    _add_middleware(app, settings)

    # Add routes
    _add_routes(app)

    return app


def _add_middleware(app: FastAPI, settings) -> None:
    """Add middleware to the application."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _add_routes(app: FastAPI) -> None:
    """Add routes to the application."""
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(flows.router, prefix="/api/v1/flows", tags=["flows"])
