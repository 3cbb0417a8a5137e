"""
Smart Router Unit Tests

- Provider selection rules in priority order
- Model resolution per provider
- Cache-first routing: hits short-circuit classification
"""

import pytest

from config.settings import GatewaySettings
from core.enums import CacheTier, Complexity, Provider
from core.models import RequestPreferences
from optimization.smart_router import SmartRouter, preferred_provider, select_provider


def with_model(request_factory, model: str, **overrides):
    return request_factory(preferences=RequestPreferences(preferred_model=model), **overrides)


# ============================================================================
# PROVIDER SELECTION
# ============================================================================


@pytest.mark.unit
@pytest.mark.parametrize(
    "model, expected",
    [
        ("gpt-4o", Provider.OPENAI),
        ("openai", Provider.OPENAI),
        ("claude-3-opus", Provider.ANTHROPIC),
        ("anthropic", Provider.ANTHROPIC),
        ("mistral-large", None),
    ],
)
def test_preferred_provider_from_model_name(request_factory, model, expected):
    assert preferred_provider(with_model(request_factory, model)) == expected


@pytest.mark.unit
def test_explicit_preference_wins_over_other_rules(request_factory):
    request = with_model(request_factory, "claude-3-opus", purpose="thought-leadership")

    assert select_provider(request, Complexity.COMPLEX) == Provider.ANTHROPIC


@pytest.mark.unit
def test_complex_request_goes_to_openai(request_factory):
    request = request_factory(purpose="value", tone="casual")

    assert select_provider(request, Complexity.COMPLEX) == Provider.OPENAI


@pytest.mark.unit
def test_thought_leadership_goes_to_openai(request_factory):
    request = request_factory(purpose="thought-leadership", format="story")

    assert select_provider(request, Complexity.SIMPLE) == Provider.OPENAI


@pytest.mark.unit
@pytest.mark.parametrize("overrides", [{"tone": "casual"}, {"format": "story"}])
def test_casual_or_story_goes_to_anthropic(request_factory, overrides):
    request = request_factory(purpose="value", **overrides)

    assert select_provider(request, Complexity.MEDIUM) == Provider.ANTHROPIC


@pytest.mark.unit
def test_fallback_uses_configured_default(cache, request_factory):
    router = SmartRouter(cache, gateway_settings=GatewaySettings(default_provider="anthropic"))
    request = request_factory(purpose="value")

    assert router.select_provider(request, Complexity.SIMPLE) == Provider.ANTHROPIC


# ============================================================================
# ROUTING
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_miss_carries_classification_and_plan(router, request_factory):
    outcome = await router.route(request_factory(purpose="value"))

    assert outcome.cached is None
    assert outcome.classification is not None
    assert outcome.decision.cache_hit is False
    assert outcome.decision.complexity == Complexity.SIMPLE
    assert outcome.decision.provider == Provider.OPENAI
    assert outcome.decision.cache_tier == CacheTier.L1
    assert outcome.decision.ttl_seconds == 300


@pytest.mark.unit
@pytest.mark.asyncio
async def test_hit_returns_payload_and_tier(router, cache, request_factory):
    request = request_factory()
    await cache.set(router.cache_key(request), {"content": "cached"}, 60, CacheTier.L2)

    outcome = await router.route(request)

    assert outcome.cached == {"content": "cached"}
    assert outcome.classification is None
    assert outcome.decision.cache_hit is True
    assert outcome.decision.cache_tier == CacheTier.L2
    assert outcome.decision.provider is None


@pytest.mark.unit
def test_cache_key_uses_configured_prefix(router, request_factory):
    assert router.cache_key(request_factory()).startswith("content:")
