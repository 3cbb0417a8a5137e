"""
Personalization Service: Pattern-Driven Recommendations

Business layer over the pattern learning engine:
- Recommendations for a draft request (similar patterns, smart defaults, keywords)
- Filling unset request fields from a user's learned defaults
- Learning from published posts
- Per-user pattern insights

Recommendation reads never raise; a failure yields an empty recommendation.
"""

from collections import defaultdict
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from config.constants import PATTERN_LEARNING
from core.enums import PatternType
from core.exceptions import ContentBrokerException, PersistenceError
from core.models import (
    ContentAnalysis,
    ContentRequest,
    ContentResponse,
    EngagementMetrics,
    Recommendations,
    SimilarityMatch,
    SmartDefaults,
    UserPattern,
)
from intelligence.pattern_learning import PatternLearningEngine
from knowledge.content_analysis import analyze_content
from knowledge.pattern_store import PatternStore

DEFAULTABLE_FIELDS = ("purpose", "format", "tone", "target_audience")

RECOMMENDATION_TYPES = (PatternType.SUCCESSFUL_POST, PatternType.TEMPLATE)


def recommend_keywords(matches: List[SimilarityMatch], limit: int) -> List[str]:
    """Keywords ranked by summed similarity of the patterns carrying them."""
    scores: Dict[str, float] = defaultdict(float)
    for match in matches:
        for keyword in match.pattern.pattern_data.keywords:
            scores[keyword] += match.similarity_score
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [keyword for keyword, _ in ranked[:limit]]


def average_match_confidence(matches: List[SimilarityMatch]) -> float:
    if not matches:
        return 0.0
    return sum(m.weighted_score for m in matches) / len(matches)


def _most_successful(patterns: List[UserPattern], attribute: str) -> Optional[str]:
    totals: Dict[str, int] = defaultdict(int)
    for pattern in patterns:
        value = getattr(pattern.pattern_data, attribute)
        if value:
            totals[value] += pattern.pattern_data.engagement
    if not totals:
        return None
    return max(totals.items(), key=lambda item: item[1])[0]


class PersonalizationService:
    """
    Service layer for personalization.

    Provides high-level operations over learned patterns for the API and the
    content service.
    """

    def __init__(self, engine: PatternLearningEngine, store: PatternStore):
        """
        Initialize service with required dependencies.

        Args:
            engine: Pattern learning engine
            store: Pattern store for insight queries
        """
        self.engine = engine
        self.store = store
        logger.debug("PersonalizationService initialized")

    async def get_recommendations(
        self, request: ContentRequest, user_id: Optional[str] = None
    ) -> Recommendations:
        """
        Recommend settings for a draft request.

        Fields the caller set explicitly are kept; the rest are suggested
        from the user's smart defaults.

        Args:
            request: Draft request
            user_id: Pattern owner (defaults to ``request.user_id``)

        Returns:
            Recommendations; empty with zero confidence on any failure
        """
        user_id = user_id or request.user_id
        try:
            matches = await self.engine.find_similar_patterns(
                request,
                user_id,
                pattern_types=RECOMMENDATION_TYPES,
                min_confidence=PATTERN_LEARNING.RECOMMENDATION_MIN_CONFIDENCE,
                max_results=PATTERN_LEARNING.RECOMMENDATION_MAX_RESULTS,
            )
            defaults = await self.engine.generate_smart_defaults(user_id)
        except ContentBrokerException as e:
            logger.error(f"Pattern recommendation failed for user {user_id}: {e}")
            return Recommendations()

        suggested = self._merge(request, defaults)
        return Recommendations(
            similar_patterns=matches,
            defaults=defaults,
            suggested_purpose=suggested["purpose"],
            suggested_format=suggested["format"],
            suggested_tone=suggested["tone"],
            suggested_audience=suggested["target_audience"],
            keywords=recommend_keywords(matches, PATTERN_LEARNING.RECOMMENDATION_KEYWORDS),
            confidence=max(defaults.confidence, average_match_confidence(matches)),
        )

    @staticmethod
    def _merge(request: ContentRequest, defaults: SmartDefaults) -> Dict[str, Any]:
        merged = {}
        for name in DEFAULTABLE_FIELDS:
            learned = getattr(defaults, name)
            if name in request.model_fields_set or learned is None:
                merged[name] = getattr(request, name)
            else:
                merged[name] = learned
        return merged

    async def apply_defaults(self, request: ContentRequest) -> ContentRequest:
        """Fill fields the caller left unset from the user's smart defaults."""
        defaults = await self.engine.generate_smart_defaults(request.user_id, request)
        if defaults.patterns_used == 0 or defaults.confidence == 0:
            return request

        merged = self._merge(request, defaults)
        updates = {k: v for k, v in merged.items() if v != getattr(request, k)}
        if updates:
            logger.debug(f"Applied learned defaults to {request.request_id}: {updates}")
        return request.model_copy(update=updates)

    async def build_request(self, user_id: str, draft: Dict[str, Any]) -> ContentRequest:
        """
        Build a request from a partial draft, personalised for ``user_id``.

        Raises:
            pydantic.ValidationError: Draft is not a valid request
        """
        request = ContentRequest(**{**draft, "user_id": user_id})
        return await self.apply_defaults(request)

    async def learn_from_success(
        self,
        user_id: str,
        request: ContentRequest,
        response: Union[ContentResponse, str],
        engagement: EngagementMetrics,
    ) -> bool:
        """
        Record a published post's engagement.

        Returns:
            True if a pattern was created or reinforced
        """
        content = response.content.selected if isinstance(response, ContentResponse) else response
        pattern = await self.engine.learn_from_success(user_id, request, content, engagement)
        return pattern is not None

    def analyze_content(self, content: str) -> ContentAnalysis:
        return analyze_content(content)

    async def get_pattern_insights(self, user_id: str) -> Dict[str, Any]:
        """
        Summarise what the engine has learned for a user.

        Returns:
            total_patterns, most_successful_purpose, most_successful_format,
            average_engagement and pattern_confidence
        """
        try:
            patterns = await self.store.list_user_patterns(user_id)
        except PersistenceError as e:
            logger.error(f"Pattern insights failed for user {user_id}: {e}")
            patterns = []

        if not patterns:
            return {
                "total_patterns": 0,
                "most_successful_purpose": None,
                "most_successful_format": None,
                "average_engagement": 0,
                "pattern_confidence": 0.0,
            }

        return {
            "total_patterns": len(patterns),
            "most_successful_purpose": _most_successful(patterns, "purpose"),
            "most_successful_format": _most_successful(patterns, "format"),
            "average_engagement": round(
                sum(p.pattern_data.engagement for p in patterns) / len(patterns)
            ),
            "pattern_confidence": sum(p.confidence_score for p in patterns) / len(patterns),
        }

    async def health_check(self) -> Dict[str, Any]:
        return await self.engine.health_check()


__all__ = [
    "PersonalizationService",
    "average_match_confidence",
    "recommend_keywords",
]
