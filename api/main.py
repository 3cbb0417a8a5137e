"""
Main FastAPI application definitions, middleware, and request handlers.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import RedirectResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from api.exceptions import add_exception_handlers
from api.routes import content, patterns, system
from config.settings import Settings, get_settings
from container import Container, ContainerManager, container
from infrastructure.monitoring import configure_logging

# ============================================================================
# MIDDLEWARE STACK (Cross-Cutting Concerns)
# ============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for distributed tracing and correlation."""

    async def dispatch(self, request: Request, call_next):
        # Get request ID from header or generate new one
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ============================================================================
# STARTUP VALIDATION
# ============================================================================


def validate_environment(settings: Settings) -> list[str]:
    """
    Check that a production deployment is wired to real infrastructure.

    Returns:
        Validation errors (empty when the configuration is usable)

    Raises:
        RuntimeError: In production, when any check fails
    """
    validation_errors = []
    if not settings.database.enabled:
        validation_errors.append("DATABASE_URL is not set (patterns and L3 cache are in-memory)")
    if not settings.redis.enabled:
        validation_errors.append("REDIS_URL is not set (L2 cache is process-local)")
    if settings.embedding.provider == "openai" and settings.embedding.openai_api_key is None:
        validation_errors.append("EMBEDDING_OPENAI_API_KEY is required for the openai embedding provider")

    if validation_errors:
        error_msg = "Environment configuration validation failed:\n" + "\n".join(
            f"  - {err}" for err in validation_errors
        )
        if settings.is_production:
            logger.error(error_msg)
            raise RuntimeError(error_msg)
        logger.warning(error_msg)
        logger.warning("Continuing with development configuration")
    else:
        logger.info("Environment configuration validated successfully")

    return validation_errors


# ============================================================================
# FASTAPI APPLICATION INITIALIZATION
# ============================================================================


def create_app(app_container: Optional[Container] = None, start_maintenance: bool = True) -> FastAPI:
    """
    Build the broker API around a container.

    Args:
        app_container: Composition root to serve from (the global one by default)
        start_maintenance: Run the background cache sweeps while the app is up

    Returns:
        Configured FastAPI application
    """
    app_container = app_container or container
    settings = app_container.config()
    configure_logging(settings.monitoring)
    manager = ContainerManager(app_container)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        validate_environment(settings)
        await manager.initialize(start_maintenance=start_maintenance)
        logger.info("application_startup_complete")

        yield  # Application runs here

        await manager.cleanup()
        logger.info("application_shutdown_complete")

    app = FastAPI(
        title=settings.app_name,
        description="Content generation broker with multi-tier caching and pattern learning",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = app_container

    add_exception_handlers(app)

    app.include_router(content.router)
    app.include_router(patterns.router)
    app.include_router(system.router)

    @app.get("/", include_in_schema=False)
    async def root():
        """Redirect root to API documentation."""
        return RedirectResponse(url="/docs")

    # Middleware stack (order matters: last added = first executed)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=get_settings().monitoring.log_level.lower(),
        access_log=True,
    )
