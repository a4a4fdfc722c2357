"""
BookDrop API

FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .schemas import HealthResponse
from .routes import books, detection, geocode, lists, mini_library, users
from .middleware import (
    LoggingConfig,
    RateLimitConfig,
    setup_exception_handlers,
    setup_logging,
    setup_rate_limiting,
)
from .dependencies import (
    ServiceContainer,
    Settings,
    get_service_container,
    get_settings,
    init_services,
)

VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Startup creates the service container and the database schema;
    shutdown closes the catalog and geocoding HTTP clients.
    """
    settings = getattr(app.state, "settings", None) or get_settings()
    logger.info(f"Starting BookDrop in {settings.environment} mode")

    services = init_services(settings)
    app.state.services = services

    try:
        # Touch the engine so schema creation happens before the first request
        _ = services.engine
        logger.info("BookDrop started successfully")

        yield

    finally:
        logger.info("Shutting down BookDrop...")
        await services.close()
        logger.info("Shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Settings = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from environment.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="BookDrop",
        description="Turn photos of books into shareable, location-aware book lists.",
        version=VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ==========================================================================
    # Middleware (the last one added runs first)
    # ==========================================================================

    setup_exception_handlers(app)

    if settings.rate_limit_enabled:
        setup_rate_limiting(
            app,
            config=RateLimitConfig(
                requests_per_minute=settings.rate_limit_requests_per_minute,
                enabled=settings.rate_limit_enabled,
            ),
        )

    setup_logging(
        app,
        config=LoggingConfig(
            enabled=True,
            log_request_body=settings.debug,
        ),
        structured=settings.environment != "development",
    )

    # ==========================================================================
    # Routers
    # ==========================================================================

    api_prefix = "/api/v1"

    for module in (detection, books, lists, users, mini_library, geocode):
        app.include_router(module.router, prefix=api_prefix)

    # ==========================================================================
    # Root Routes
    # ==========================================================================

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "BookDrop",
            "version": VERSION,
            "status": "running",
            "docs": "/docs" if settings.debug else None,
        }

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(
        services: ServiceContainer = Depends(get_service_container),
    ) -> HealthResponse:
        """
        Health check endpoint.

        The database must answer; missing API keys only mark their
        feature as not configured.
        """
        components = {}
        overall_healthy = True

        try:
            with services.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            components["database"] = "healthy"
        except SQLAlchemyError as e:
            components["database"] = f"unhealthy: {str(e)}"
            overall_healthy = False

        components["vision"] = "configured" if services.vision_extractor.is_configured else "not_configured"
        components["book_catalogs"] = (
            "configured" if services.settings.google_books_api_key else "keyless"
        )
        components["geocoding"] = "configured" if services.geocoder.is_configured else "not_configured"

        return HealthResponse(
            status="healthy" if overall_healthy else "degraded",
            version=VERSION,
            components=components,
        )

    return app


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

def main():
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "bookdrop.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        workers=1 if settings.debug else 4,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
