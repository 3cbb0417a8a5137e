"""
Smart Router
============

Front half of the gateway pipeline: computes the cache key, consults the
multi-layer cache and, on a miss, classifies the request, selects a
generation provider and the cache tier/TTL the response will be stored with.

Provider decision rule (first match wins):
1. Explicit preference: ``gpt``/``openai`` -> OpenAI, ``claude``/``anthropic`` -> Anthropic
2. Complex requests or thought-leadership purpose -> OpenAI
3. Casual tone or story format -> Anthropic
4. Configured default provider
"""

from typing import Any, Dict, NamedTuple, Optional

from loguru import logger

from config.settings import CacheSettings, GatewaySettings
from core.enums import CacheTier, Complexity, ContentFormat, Provider, Purpose, Tone
from core.exceptions import RoutingError
from core.models import Classification, ContentRequest, RouteDecision
from optimization.cache_keys import build_cache_key
from optimization.cache_manager import MultiLayerCache
from optimization.cache_strategy import determine_cache_strategy
from optimization.request_classifier import RequestClassifier


class RouteOutcome(NamedTuple):
    decision: RouteDecision
    cached: Optional[Dict[str, Any]]
    classification: Optional[Classification]


def preferred_provider(request: ContentRequest) -> Optional[Provider]:
    """Provider named by the caller's ``preferred_model``, if recognisable."""
    if not request.preferences or not request.preferences.preferred_model:
        return None

    preference = request.preferences.preferred_model.lower()
    if "gpt" in preference or preference == Provider.OPENAI.value:
        return Provider.OPENAI
    if "claude" in preference or preference == Provider.ANTHROPIC.value:
        return Provider.ANTHROPIC
    return None


def select_provider(
    request: ContentRequest,
    complexity: Complexity,
    default: Provider = Provider.OPENAI,
) -> Provider:
    explicit = preferred_provider(request)
    if explicit is not None:
        return explicit

    if complexity == Complexity.COMPLEX or request.purpose == Purpose.THOUGHT_LEADERSHIP.value:
        return Provider.OPENAI
    if request.tone == Tone.CASUAL.value or request.format == ContentFormat.STORY.value:
        return Provider.ANTHROPIC
    return default


class SmartRouter:
    """
    Cache-first request router.

    Holds no per-request state; one instance serves the whole process.
    """

    def __init__(
        self,
        cache: MultiLayerCache,
        classifier: Optional[RequestClassifier] = None,
        cache_settings: Optional[CacheSettings] = None,
        gateway_settings: Optional[GatewaySettings] = None,
    ):
        self.cache = cache
        self.classifier = classifier or RequestClassifier()
        self._cache_settings = cache_settings or CacheSettings()
        self._gateway_settings = gateway_settings or GatewaySettings()
        self._default_provider = Provider(self._gateway_settings.default_provider)

    def cache_key(self, request: ContentRequest) -> str:
        return build_cache_key(request, prefix=self._cache_settings.key_prefix)

    def select_provider(self, request: ContentRequest, complexity: Complexity) -> Provider:
        return select_provider(request, complexity, default=self._default_provider)

    def plan(self, request: ContentRequest, cache_key: str) -> RouteOutcome:
        """
        Build the miss-path decision: classification, provider, cache tier.

        Raises:
            ClassificationError: Classifier invariant violated
            RoutingError: No cache tier could be chosen
        """
        classification = self.classifier.classify(request)
        provider = self.select_provider(request, classification.complexity)
        strategy = determine_cache_strategy(
            request, classification.complexity, self._cache_settings
        )
        if strategy.tier == CacheTier.NONE:
            raise RoutingError(context={"request_id": request.request_id})

        decision = RouteDecision(
            cache_hit=False,
            cache_key=cache_key,
            complexity=classification.complexity,
            estimated_tokens=classification.estimated_tokens,
            provider=provider,
            cache_tier=strategy.tier,
            ttl_seconds=strategy.ttl_seconds,
        )

        logger.debug(
            f"Routed {request.request_id}: complexity={classification.complexity.value} "
            f"provider={provider.value} tier={strategy.tier.value} ttl={strategy.ttl_seconds}s"
        )
        return RouteOutcome(decision=decision, cached=None, classification=classification)

    async def route(self, request: ContentRequest) -> RouteOutcome:
        """
        Resolve a request against the cache.

        Returns:
            RouteOutcome carrying the cached payload on a hit, or the
            classification and provider decision on a miss
        """
        key = self.cache_key(request)
        found = await self.cache.lookup(key)

        if found is not None:
            logger.debug(f"Cache hit for {request.request_id} in {found.tier.value}")
            decision = RouteDecision(cache_hit=True, cache_key=key, cache_tier=found.tier)
            return RouteOutcome(decision=decision, cached=found.value, classification=None)

        return self.plan(request, key)


__all__ = ["RouteOutcome", "SmartRouter", "preferred_provider", "select_provider"]
