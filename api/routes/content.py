"""
Content Routes: Generation and Cost Reporting

- Generation through the gateway (cached or fresh)
- Per-user cost report with optimisation hints

Design Pattern: Command Query Responsibility Segregation (CQRS)
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from loguru import logger

from api.schemas import GenerateContentRequest, GenerateContentResponse
from services.content_service import ContentService

router = APIRouter(prefix="/content", tags=["Content"])


# Simple dependency function for FastAPI
def get_content_service_dependency(request: Request) -> ContentService:
    """Get ContentService instance for FastAPI dependency injection."""
    return request.app.state.container.content_service()


# ============================================================================
# COMMAND ENDPOINTS (Write Operations)
# ============================================================================


@router.post(
    "/generate",
    response_model=GenerateContentResponse,
    status_code=status.HTTP_200_OK,
    summary="Generate content",
    description="Route a draft through the cache tiers and, on a miss, research and generation",
)
async def generate_content(
    body: GenerateContentRequest,
    service: ContentService = Depends(get_content_service_dependency),
) -> GenerateContentResponse:
    """
    Generate a post from a draft.

    Identical requests are served from the response cache; the response
    metadata reports whether it was a hit and from which tier.
    """
    content_request = body.to_domain()
    logger.info(f"Generation requested | request_id={content_request.request_id} user={content_request.user_id}")

    result = await service.generate_content(content_request, personalize=body.personalize)
    return GenerateContentResponse(request_id=content_request.request_id, data=result)


# ============================================================================
# QUERY ENDPOINTS (Read Operations)
# ============================================================================


@router.get(
    "/costs/{user_id}",
    summary="Cost report",
    description="Accumulated cost, provider breakdown and optimisation hints for a user",
)
async def get_cost_report(
    user_id: str,
    service: ContentService = Depends(get_content_service_dependency),
) -> Dict[str, Any]:
    return await service.get_cost_report(user_id)


@router.get("/metrics", summary="Gateway and cost metrics")
async def get_content_metrics(
    service: ContentService = Depends(get_content_service_dependency),
) -> Dict[str, Any]:
    return service.get_metrics()
