"""
Content Service: Business Logic Layer for Content Generation

Encapsulates the operations the API exposes around the gateway:
- Personalised generation (learned defaults applied before routing)
- Learning from published posts
- Cache administration and reporting

Design Pattern: Service Layer over the gateway and personalization service
"""

from typing import Any, Dict

from loguru import logger

from core.models import ContentRequest, ContentResponse, EngagementMetrics
from optimization.cost_tracker import CostTracker
from orchestration.gateway import ContentGateway
from services.personalization_service import PersonalizationService

ANONYMOUS_USER = "anonymous"


class ContentService:
    """
    Service layer for content business logic.

    Provides high-level business operations for content generation,
    abstracting the gateway pipeline from the API layer.
    """

    def __init__(
        self,
        gateway: ContentGateway,
        personalization: PersonalizationService,
        cost_tracker: CostTracker,
    ):
        """
        Initialize service with required dependencies.

        Args:
            gateway: Content gateway running the request pipeline
            personalization: Pattern-driven defaults and learning
            cost_tracker: Per-user cost accounting
        """
        self.gateway = gateway
        self.personalization = personalization
        self.costs = cost_tracker
        logger.debug("ContentService initialized")

    async def generate_content(
        self, request: ContentRequest, personalize: bool = True
    ) -> ContentResponse:
        """
        Generate content for a request.

        Args:
            request: Validated content request
            personalize: Fill unset fields from the user's learned defaults

        Returns:
            Generated or cached response

        Raises:
            PipelineError: Generation failed
        """
        if personalize and request.user_id != ANONYMOUS_USER:
            request = await self.personalization.apply_defaults(request)

        return await self.gateway.process_request(request)

    async def record_engagement(
        self,
        request: ContentRequest,
        content: str,
        engagement: EngagementMetrics,
    ) -> Dict[str, Any]:
        """
        Feed a published post's engagement back into pattern learning.

        Returns:
            Learning outcome for the caller
        """
        learned = await self.personalization.learn_from_success(
            request.user_id, request, content, engagement
        )
        return {
            "user_id": request.user_id,
            "learned": learned,
            "total_engagement": engagement.total_engagement,
        }

    async def get_cost_report(self, user_id: str) -> Dict[str, Any]:
        metrics = self.costs.get_cost_metrics(user_id)
        return {
            "metrics": metrics.to_dict() if metrics else None,
            "optimizations": [vars(o) for o in self.costs.get_cost_optimizations(user_id)],
        }

    async def get_cache_stats(self) -> Dict[str, Any]:
        return await self.gateway.get_cache_stats()

    async def clear_cache(self) -> int:
        removed = await self.gateway.clear_cache()
        logger.warning(f"Response cache cleared ({removed} entries)")
        return removed

    def get_metrics(self) -> Dict[str, Any]:
        return {"gateway": self.gateway.get_metrics(), "costs": self.costs.get_summary()}


__all__ = ["ContentService"]
