"""
Pattern Learning Engine - Personalization Core
===============================================

Learns what works for each user and turns it into recommendations:
- Similarity search between a draft request and the user's learned patterns
- Reinforcement learning from high-engagement posts
- Smart defaults by confidence-weighted voting over top patterns

Failure policy:
- Embedding failures never surface (deterministic fallback vectors)
- Pattern reads degrade to "no match"
- Pattern writes are best-effort: logged, reported as ``learning:error``,
  and never raised into a content-generation request
"""

import math
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from config.constants import EVENTS, PATTERN_LEARNING
from config.settings import PatternSettings
from core.enums import PatternType
from core.events import EventHub
from core.exceptions import PersistenceError, VectorStoreError
from core.models import (
    ContentRequest,
    EngagementMetrics,
    PatternData,
    SimilarityMatch,
    SmartDefaults,
    UserPattern,
)
from infrastructure.monitoring import MetricsCollector
from intelligence.embedding_provider import EmbeddingProvider, cosine_similarity
from knowledge.content_analysis import (
    character_range,
    count_hashtags,
    detect_structure,
    has_emojis,
)
from knowledge.pattern_store import PatternStore
from knowledge.vector_store import VectorStore


def reinforced_confidence(sample_size: int) -> float:
    return min(
        PATTERN_LEARNING.CONFIDENCE_CAP,
        PATTERN_LEARNING.REINFORCEMENT_BASE + sample_size * PATTERN_LEARNING.REINFORCEMENT_STEP,
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _weighted_mode(values: Sequence[Optional[str]], weights: Sequence[float]) -> Optional[str]:
    """Value with the largest summed weight; first seen wins ties."""
    votes: Dict[str, float] = {}
    for value, weight in zip(values, weights):
        if value is None:
            continue
        votes[value] = votes.get(value, 0.0) + weight

    mode, best = None, 0.0
    for value, total in votes.items():
        if total > best:
            mode, best = value, total
    return mode


class PatternLearningEngine:
    """
    Per-user pattern learning and similarity search.

    Owns no state beyond what its collaborators cache; safe to share across
    requests on one event loop.
    """

    def __init__(
        self,
        store: PatternStore,
        embedder: EmbeddingProvider,
        events: EventHub,
        settings: Optional[PatternSettings] = None,
        vector_store: Optional[VectorStore] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._store = store
        self._embedder = embedder
        self._events = events
        self._settings = settings or PatternSettings()
        self._vector_store = vector_store
        self._metrics = metrics

        self._searches = 0
        self._patterns_created = 0
        self._patterns_reinforced = 0
        self._learning_errors = 0

        logger.info(
            f"Pattern learning engine initialized "
            f"(threshold={self._settings.similarity_threshold}, "
            f"engagement>{self._settings.engagement_threshold})"
        )

    # =========================================================================
    # SIMILARITY SEARCH
    # =========================================================================

    async def find_similar_patterns(
        self,
        request: ContentRequest,
        user_id: Optional[str] = None,
        pattern_types: Optional[Sequence[PatternType]] = None,
        min_confidence: Optional[float] = None,
        max_results: Optional[int] = None,
    ) -> List[SimilarityMatch]:
        """
        Rank the user's patterns by similarity to ``request``.

        Args:
            request: Draft content request
            user_id: Pattern owner; no user means no matches
            pattern_types: Optional type filter
            min_confidence: Drop matches whose pattern confidence is lower
            max_results: Result cap (defaults to the configured maximum)

        Returns:
            Matches with similarity >= threshold, ordered by
            similarity x confidence, highest first
        """
        started = time.perf_counter()
        self._searches += 1

        try:
            patterns = await self._store.list_user_patterns(user_id, pattern_types)
        except PersistenceError as e:
            logger.warning(f"Pattern lookup failed for user {user_id}, treating as no match: {e.message}")
            return []

        if not patterns:
            return []

        request_vector = await self._embedder.embed_request(request)
        threshold = self._settings.similarity_threshold

        matches: List[SimilarityMatch] = []
        for pattern in patterns:
            pattern_vector = await self._embedder.embed_pattern(pattern)
            similarity = cosine_similarity(request_vector, pattern_vector)
            if similarity >= threshold:
                matches.append(
                    SimilarityMatch(
                        pattern=pattern,
                        similarity_score=similarity,
                        confidence=pattern.confidence_score,
                        reasons=self.similarity_reasons(request, pattern),
                    )
                )

        if min_confidence:
            matches = [m for m in matches if m.confidence >= min_confidence]

        matches.sort(key=lambda m: m.weighted_score, reverse=True)
        matches = matches[: max_results or self._settings.max_results]

        self._events.emit(
            EVENTS.SIMILARITY_SEARCH,
            {
                "user_id": user_id,
                "patterns_searched": len(patterns),
                "matches_found": len(matches),
                "duration_ms": (time.perf_counter() - started) * 1000,
            },
        )
        return matches

    @staticmethod
    def similarity_reasons(request: ContentRequest, pattern: UserPattern) -> List[str]:
        data = pattern.pattern_data
        reasons = []

        if request.purpose == data.purpose:
            reasons.append(f"Same purpose: {request.purpose}")
        if request.format == data.format:
            reasons.append(f"Same format: {request.format}")
        if request.tone == data.tone:
            reasons.append(f"Same tone: {request.tone}")
        if request.target_audience == data.target_audience:
            reasons.append(f"Same target audience: {request.target_audience}")
        if request.language and request.language == data.language:
            reasons.append(f"Same language: {request.language}")
        if data.engagement > PATTERN_LEARNING.HIGH_ENGAGEMENT_REASON:
            reasons.append(f"High engagement: {data.engagement}")

        return reasons

    # =========================================================================
    # LEARNING
    # =========================================================================

    def extract_pattern_data(
        self, request: ContentRequest, content: str, total_engagement: int
    ) -> PatternData:
        return PatternData(
            purpose=request.purpose,
            format=request.format,
            tone=request.tone,
            target_audience=request.target_audience,
            language=request.language,
            engagement=total_engagement,
            character_range=character_range(content),
            structure=detect_structure(content),
            keywords=list(request.keywords),
            posting_time=datetime.now().hour,
            hashtag_count=count_hashtags(content),
            emoji_usage=has_emojis(content),
        )

    async def learn_from_success(
        self,
        user_id: str,
        request: ContentRequest,
        content: str,
        engagement: EngagementMetrics,
    ) -> Optional[UserPattern]:
        """
        Create or reinforce a successful-post pattern.

        Args:
            user_id: Pattern owner
            request: Request that produced the post
            content: Published post text
            engagement: Observed engagement

        Returns:
            The created or reinforced pattern; ``None`` when engagement is
            at or below the threshold or persistence failed
        """
        total = engagement.total_engagement
        if total <= self._settings.engagement_threshold:
            logger.debug(f"Engagement {total} below learning threshold for user {user_id}")
            if self._metrics:
                self._metrics.record_pattern_learned("skipped")
            return None

        pattern_data = self.extract_pattern_data(request, content, total)

        try:
            existing = await self._store.find_existing(user_id, pattern_data)
            if existing:
                pattern = await self._reinforce(existing, total)
            else:
                pattern = await self._create(user_id, pattern_data)
        except PersistenceError as e:
            self._learning_errors += 1
            logger.error(f"Pattern learning failed for user {user_id}: {e}")
            self._events.emit(EVENTS.LEARNING_ERROR, {"user_id": user_id, "error": e.to_dict()})
            if self._metrics:
                self._metrics.record_pattern_learned("failed")
            return None

        await self._index(pattern)
        return pattern

    async def _reinforce(self, existing: UserPattern, engagement: int) -> UserPattern:
        sample_size = existing.sample_size + 1
        average = (existing.pattern_data.engagement * existing.sample_size + engagement) / sample_size
        confidence = reinforced_confidence(sample_size)
        now = datetime.utcnow()

        updated = existing.model_copy(
            update={
                "pattern_data": existing.pattern_data.model_copy(
                    update={"engagement": _round_half_up(average)}
                ),
                "confidence_score": confidence,
                "sample_size": sample_size,
                "last_reinforced": now,
                "updated_at": now,
            }
        )
        pattern = await self._store.update(updated)

        self._patterns_reinforced += 1
        if self._metrics:
            self._metrics.record_pattern_learned("reinforced")
        self._events.emit(
            EVENTS.PATTERN_REINFORCED,
            {"pattern_id": pattern.id, "sample_size": sample_size, "confidence": confidence},
        )
        logger.info(f"Reinforced pattern {pattern.id}: n={sample_size}, confidence={confidence:.2f}")
        return pattern

    async def _create(self, user_id: str, pattern_data: PatternData) -> UserPattern:
        pattern = await self._store.create(
            UserPattern(
                user_id=user_id,
                pattern_type=PatternType.SUCCESSFUL_POST,
                pattern_data=pattern_data,
                confidence_score=PATTERN_LEARNING.INITIAL_CONFIDENCE,
                sample_size=PATTERN_LEARNING.INITIAL_SAMPLE_SIZE,
            )
        )

        self._patterns_created += 1
        if self._metrics:
            self._metrics.record_pattern_learned("created")
        self._events.emit(
            EVENTS.PATTERN_CREATED,
            {"pattern_id": pattern.id, "user_id": user_id, "pattern_type": pattern.pattern_type.value},
        )
        logger.info(f"Created pattern {pattern.id} for user {user_id}")
        return pattern

    async def _index(self, pattern: UserPattern) -> None:
        if self._vector_store is None:
            return
        try:
            await self._vector_store.upsert_patterns([pattern], self._embedder)
        except VectorStoreError as e:
            logger.warning(f"Failed to index pattern {pattern.id}: {e.message}")

    # =========================================================================
    # SMART DEFAULTS
    # =========================================================================

    async def generate_smart_defaults(
        self, user_id: str, partial_request: Optional[ContentRequest] = None
    ) -> SmartDefaults:
        """
        Confidence-weighted vote over the user's top successful posts.

        Args:
            user_id: Pattern owner
            partial_request: Request being personalized; the vote depends only
                on stored patterns, so fields it already sets are not consulted

        Returns:
            Defaults with ``confidence == 0`` when nothing can be inferred
        """
        try:
            top = await self._store.top_patterns(
                user_id,
                PatternType.SUCCESSFUL_POST,
                limit=PATTERN_LEARNING.DEFAULTS_PATTERN_LIMIT,
            )
        except PersistenceError as e:
            logger.warning(f"Smart defaults unavailable for user {user_id}: {e.message}")
            return SmartDefaults()

        if not top:
            return SmartDefaults()

        weights = [p.weight for p in top]
        total_weight = sum(weights)
        if total_weight == 0:
            return SmartDefaults(patterns_used=len(top))

        data = [p.pattern_data for p in top]
        defaults = SmartDefaults(
            purpose=_weighted_mode([d.purpose for d in data], weights),
            format=_weighted_mode([d.format for d in data], weights),
            tone=_weighted_mode([d.tone for d in data], weights),
            target_audience=_weighted_mode([d.target_audience for d in data], weights),
            confidence=min(
                PATTERN_LEARNING.CONFIDENCE_CAP,
                total_weight / (len(top) * PATTERN_LEARNING.DEFAULTS_WEIGHT_NORMALIZER),
            ),
            patterns_used=len(top),
        )

        self._events.emit(
            EVENTS.DEFAULTS_GENERATED,
            {"user_id": user_id, "defaults": defaults.model_dump(), "patterns_used": len(top)},
        )
        return defaults

    # =========================================================================
    # MAINTENANCE & HEALTH
    # =========================================================================

    def sweep_embeddings(self) -> int:
        removed = self._embedder.sweep_memo()
        if removed:
            self._events.emit(EVENTS.CACHE_CLEANED, {"type": "embeddings", "removed": removed})
        return removed

    def sweep_patterns(self) -> int:
        removed = self._store.sweep()
        if removed:
            self._events.emit(EVENTS.CACHE_CLEANED, {"type": "patterns", "removed": removed})
        return removed

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self._store.ping()
            database = True
        except PersistenceError as e:
            logger.error(f"Pattern store health check failed: {e.message}")
            database = False

        embedder_stats = self._embedder.get_stats()
        return {
            "status": "healthy" if database else "unhealthy",
            "details": {
                "database": database,
                "cache_size": embedder_stats["memo_entries"] + self._store.cached_lists,
                "embedding_strategy": embedder_stats["strategy"],
                "similarity_threshold": self._settings.similarity_threshold,
            },
        }

    def get_stats(self) -> Dict[str, Any]:
        return {
            "searches": self._searches,
            "patterns_created": self._patterns_created,
            "patterns_reinforced": self._patterns_reinforced,
            "learning_errors": self._learning_errors,
            "embeddings": self._embedder.get_stats(),
            "cached_pattern_lists": self._store.cached_lists,
        }


__all__ = ["PatternLearningEngine", "reinforced_confidence"]
