"""
Pattern Routes: Learning and Personalization

- Feed published-post engagement back into the learning engine
- Recommendations for a draft request
- Per-user insights and content analysis
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request

from api.schemas import LearnRequest, LearnResponse, RecommendationRequest
from core.models import ContentAnalysis, Recommendations
from services.content_service import ContentService
from services.personalization_service import PersonalizationService

router = APIRouter(prefix="/patterns", tags=["Patterns"])


# Simple dependency functions for FastAPI
def get_personalization_dependency(request: Request) -> PersonalizationService:
    """Get PersonalizationService instance for FastAPI dependency injection."""
    return request.app.state.container.personalization_service()


def get_content_service_dependency(request: Request) -> ContentService:
    """Get ContentService instance for FastAPI dependency injection."""
    return request.app.state.container.content_service()


@router.post(
    "/learn",
    response_model=LearnResponse,
    summary="Learn from a published post",
    description="Creates or reinforces a pattern when engagement clears the threshold",
)
async def learn_from_post(
    body: LearnRequest,
    service: ContentService = Depends(get_content_service_dependency),
) -> LearnResponse:
    content_request = body.request.to_domain().model_copy(update={"user_id": body.user_id})
    outcome = await service.record_engagement(
        content_request, body.published_content, body.engagement
    )
    return LearnResponse(**outcome)


@router.post(
    "/recommendations",
    response_model=Recommendations,
    summary="Recommendations for a draft",
)
async def get_recommendations(
    body: RecommendationRequest,
    service: PersonalizationService = Depends(get_personalization_dependency),
) -> Recommendations:
    return await service.get_recommendations(body.request.to_domain(), body.user_id)


@router.get("/insights/{user_id}", summary="What has been learned for a user")
async def get_pattern_insights(
    user_id: str,
    service: PersonalizationService = Depends(get_personalization_dependency),
) -> Dict[str, Any]:
    return await service.get_pattern_insights(user_id)


@router.post("/analyze", response_model=ContentAnalysis, summary="Analyse a post")
async def analyze_content(
    content: str = Body(..., embed=True, min_length=1),
    service: PersonalizationService = Depends(get_personalization_dependency),
) -> ContentAnalysis:
    return service.analyze_content(content)
