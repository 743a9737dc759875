"""FastAPI application entry point."""
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import yt_dlp.version
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from media_relay.api.errors import (
    generic_exception_handler,
    media_relay_error_handler,
    request_validation_error_handler,
)
from media_relay.api.router import api_router
from media_relay.core.config import Settings, get_settings
from media_relay.core.logging import get_logger, setup_logging
from media_relay.models.media import HealthResponse
from media_relay.services.errors import MediaRelayError

API_VERSION = "0.1.0"

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info(f"Starting application in {settings.ENV} mode")
    logger.info(f"API prefix: {settings.API_PREFIX}")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    if shutil.which(settings.YTDLP_BINARY) is None:
        logger.warning(
            f"{settings.YTDLP_BINARY} not found; install yt-dlp and make sure it is on PATH"
        )

    yield

    # Shutdown
    logger.info("Shutting down application")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration to run with (defaults to the environment)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="Media Relay API",
        description="Metadata and streaming downloads backed by yt-dlp",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(MediaRelayError, media_relay_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix=settings.API_PREFIX)

    # Health check endpoint
    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
        description="Check if the service is running and yt-dlp is installed",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint.

        Returns:
            Health status response
        """
        return HealthResponse(
            status="healthy",
            version=API_VERSION,
            tool=settings.YTDLP_BINARY,
            tool_available=shutil.which(settings.YTDLP_BINARY) is not None,
            yt_dlp_version=yt_dlp.version.__version__,
        )

    # Static frontend, mounted last so API routes take precedence
    static_dir = Path(settings.STATIC_DIR)
    if settings.SERVE_STATIC:
        if static_dir.is_dir():
            app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        else:
            logger.info(f"Static directory {static_dir} not found; not serving frontend")

    return app


# Create application instance
app = create_app()


def run() -> None:
    """Run the API with uvicorn using settings from the environment."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "media_relay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
