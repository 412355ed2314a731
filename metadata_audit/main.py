"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from metadata_audit.api.v1.router import api_router
from metadata_audit.config import settings
from metadata_audit.core.exceptions import (
    ConfigurationError,
    FragmentStoreError,
    MetadataValidationError,
)
from metadata_audit.core.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()

    logger.info(
        "Starting MetadataAudit",
        extra={
            "environment": settings.environment,
            "version": settings.app_version,
            "fragment_store": settings.fragment_store,
            "ruleset_cache_ttl_seconds": settings.ruleset_cache_ttl_seconds,
        },
    )

    yield

    logger.info("Shutting down MetadataAudit")


async def metadata_validation_handler(request: Request, exc: MetadataValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.message, "errors": exc.errors},
    )


async def fragment_store_handler(request: Request, exc: FragmentStoreError) -> JSONResponse:
    logger.error("Fragment store unavailable", extra={"error": exc.message})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": exc.message},
    )


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Ruleset configuration error", extra={"error": exc.message, "details": exc.details})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": exc.message, **exc.details},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Deterministic scoring and recommendations for app-store listing metadata",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_exception_handler(MetadataValidationError, metadata_validation_handler)
    app.add_exception_handler(FragmentStoreError, fragment_store_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get(
        "/health",
        summary="Health check",
        description="Return service health status and version information.",
    )
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    return app


app = create_app()
