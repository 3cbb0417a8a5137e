"""
API Exception Handlers: Domain Error → HTTP Error Mapping

Centralized exception handling for clean error responses.
Maps domain-specific exceptions to appropriate HTTP status codes.
"""

from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from core.exceptions import (
    CacheKeyError,
    ClassificationError,
    ContentBrokerException,
    PipelineError,
    RoutingError,
    ValidationError,
)


def _error_body(request: Request, error: str, detail) -> dict:
    return {
        "error": error,
        "detail": detail,
        "timestamp": datetime.utcnow().isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(request, "Validation Error", jsonable_encoder(exc.errors())),
    )


async def domain_validation_handler(request: Request, exc: ValidationError):
    """Handle domain validation errors raised below the API layer."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(request, "Validation Error", exc.message),
    )


async def pipeline_error_handler(request: Request, exc: PipelineError):
    """Handle generation pipeline failures (a collaborator failed upstream)."""
    logger.error(f"Pipeline failure: {exc.to_dict()}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_error_body(request, "Generation Failed", exc.message),
    )


async def invariant_error_handler(request: Request, exc: ContentBrokerException):
    """Handle broker invariant violations (classification, cache keys, routing)."""
    logger.critical(f"Broker invariant violated: {exc.to_dict()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "Internal Error", exc.message),
    )


def add_exception_handlers(app: FastAPI):
    """Add all exception handlers to the FastAPI app."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, domain_validation_handler)
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(ClassificationError, invariant_error_handler)
    app.add_exception_handler(CacheKeyError, invariant_error_handler)
    app.add_exception_handler(RoutingError, invariant_error_handler)
