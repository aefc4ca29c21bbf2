"""
Academy Auth API - FastAPI Application

Main entry point for the authentication service.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from academy_auth.config import Settings, get_settings
from academy_auth.core.cache import close_redis
from academy_auth.core.database import close_db, init_db
from academy_auth.core.errors import StoreUnavailable
from academy_auth.models.contracts.common import ErrorResponse
from academy_auth.routers import (
    backup_codes_router,
    health_router,
    security_events_router,
    two_factor_router,
    webauthn_router,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

# Seconds a client should wait before re-initiating a step after a store outage
RETRY_AFTER_SECONDS = 2


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting Academy Auth API...")
    settings: Settings = app.state.settings

    logger.info("Initializing database connection...")
    await init_db(settings)
    logger.info("Database connection established")

    logger.info(f"Academy Auth API started in {settings.environment} mode")

    yield

    logger.info("Shutting down Academy Auth API...")
    await close_redis()
    await close_db()
    logger.info("Academy Auth API shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Configuration for this application (loaded from the
            environment when omitted). Routes receive it via AppSettings.

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Academy Auth API",
        description="WebAuthn device login, backup codes and two-factor verification",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ==========================================================================
    # CORS Middleware
    # ==========================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==========================================================================
    # Global Exception Handlers
    # ==========================================================================

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Request body/query validation errors -> 422."""
        field_errors = {
            ".".join(str(loc) for loc in e["loc"]): e["msg"] for e in exc.errors()
        }
        return JSONResponse(
            status_code=422,
            content=ErrorResponse(
                error="validation_error",
                message="Validation failed",
                details={"fields": field_errors},
            ).model_dump(),
        )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        """Backing store timeout or outage -> 503 (safe to retry the step)."""
        logger.error(f"Store unavailable on {request.method} {request.url.path}: {exc.store}")
        return JSONResponse(
            status_code=503,
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
            content=ErrorResponse(
                error="service_unavailable",
                message="Service temporarily unavailable",
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions -> 500."""
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="internal_error",
                message="An unexpected error occurred",
            ).model_dump(),
        )

    # ==========================================================================
    # Register Routers
    # ==========================================================================
    app.include_router(health_router)
    app.include_router(webauthn_router)
    app.include_router(backup_codes_router)
    app.include_router(two_factor_router)
    app.include_router(security_events_router)

    @app.get("/")
    async def root():
        return {
            "name": "Academy Auth API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "academy_auth.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
