"""
System Routes: Health Check and Monitoring Endpoints

Provides system-level endpoints for health monitoring, metrics collection,
cache administration and background maintenance status.

Architectural Pattern: System API + Health Check Pattern
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from api.schemas import HealthCheckResponse
from container import Container
from core.exceptions import InfrastructureError
from infrastructure.monitoring import MetricsCollector
from services.content_service import ContentService

router = APIRouter(prefix="/system", tags=["System"])


# Simple dependency functions for FastAPI
def get_container_dependency(request: Request) -> Container:
    """Get the application container for FastAPI dependency injection."""
    return request.app.state.container


def get_metrics_dependency(request: Request) -> MetricsCollector:
    """Get MetricsCollector instance for FastAPI dependency injection."""
    return request.app.state.container.metrics()


def get_content_service_dependency(request: Request) -> ContentService:
    """Get ContentService instance for FastAPI dependency injection."""
    return request.app.state.container.content_service()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="System health check with dependency status",
)
async def health_check(
    app_container: Container = Depends(get_container_dependency),
) -> HealthCheckResponse:
    """
    System health check with dependency status.

    Returns health status of:
    - Database and Redis connectivity (when configured)
    - Pattern learning engine
    - Gateway and cache tiers
    """
    settings = app_container.config()
    dependencies: Dict[str, Any] = {}

    if settings.database.enabled:
        try:
            await app_container.database().health_check()
            dependencies["database"] = "healthy"
        except InfrastructureError as e:
            dependencies["database"] = f"unhealthy: {e.message}"
    else:
        dependencies["database"] = "disabled"

    if settings.redis.enabled:
        ok = await app_container.redis().ping()
        dependencies["redis"] = "healthy" if ok else "unhealthy"
    else:
        dependencies["redis"] = "disabled"

    engine_health = await app_container.pattern_engine().health_check()
    dependencies["pattern_engine"] = engine_health["status"]

    gateway_health = await app_container.gateway().health_check()
    dependencies["gateway"] = gateway_health["status"]

    overall_status = (
        "healthy"
        if all(v in ("healthy", "disabled") for v in dependencies.values())
        else "degraded"
    )

    return HealthCheckResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        dependencies=dependencies,
    )


@router.get(
    "/metrics",
    summary="System metrics (Prometheus format)",
    description="Export metrics in Prometheus format for monitoring systems",
)
async def get_system_metrics(
    metrics: MetricsCollector = Depends(get_metrics_dependency),
    app_container: Container = Depends(get_container_dependency),
) -> Response:
    """
    Export metrics in Prometheus format.

    Includes request counts and latency, cache hits/misses/writes per tier,
    token usage, pipeline failures and pattern learning outcomes.
    """
    if not app_container.config().monitoring.enable_prometheus:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Metrics export is disabled")

    return Response(content=metrics.export_metrics(), media_type=metrics.get_content_type())


@router.get("/cache/stats", summary="Response cache statistics")
async def get_cache_stats(
    service: ContentService = Depends(get_content_service_dependency),
) -> Dict[str, Any]:
    return await service.get_cache_stats()


@router.delete("/cache", summary="Clear the response cache in every tier")
async def clear_cache(
    service: ContentService = Depends(get_content_service_dependency),
) -> Dict[str, Any]:
    removed = await service.clear_cache()
    return {"cleared": True, "removed": removed}


@router.get(
    "/status",
    summary="Detailed system status",
    description="Gateway, pattern engine and maintenance job statistics",
)
async def get_system_status(
    app_container: Container = Depends(get_container_dependency),
) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": app_container.config().app_version,
        "gateway": app_container.gateway().get_metrics(),
        "patterns": app_container.pattern_engine().get_stats(),
        "maintenance": app_container.maintenance().get_status(),
        "metrics": app_container.metrics().get_metrics_summary(),
    }
