"""
Gateway Pipeline Integration Tests

End-to-end runs over the in-memory stack:
- Miss then hit for the same request
- Research path and quality scoring
- Collaborator failures surface as PipelineError with no cache write
- Fire-and-forget cost events and lifecycle event order
- Content service personalization and engagement learning
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from core.enums import CacheTier, GatewayState, Provider
from core.exceptions import ClassificationError, PipelineError, RoutingError
from core.models import ContentRequest, EngagementMetrics
from execution.template_generator import TemplateContentGenerator, TemplateResearchProvider
from orchestration.gateway import ContentGateway
from services.content_service import ContentService
from services.personalization_service import PersonalizationService


@pytest.fixture
def failing_gateway(router, cost_tracker, events, metrics) -> ContentGateway:
    generator = Mock(spec=TemplateContentGenerator)
    generator.generate = AsyncMock(side_effect=RuntimeError("model overloaded"))
    return ContentGateway(
        router=router,
        generators={Provider.OPENAI: generator},
        cost_sink=cost_tracker,
        events=events,
        metrics=metrics,
    )


@pytest.fixture
def content_service(gateway, engine, pattern_store, cost_tracker) -> ContentService:
    return ContentService(gateway, PersonalizationService(engine, pattern_store), cost_tracker)


# ============================================================================
# MISS / HIT
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_second_identical_request_is_served_from_cache(gateway, request_factory):
    first = await gateway.process_request(request_factory())
    second = await gateway.process_request(request_factory())

    assert first.metadata.cache_hit is False
    assert first.metadata.cache_tier == CacheTier.L1
    assert first.metadata.provider == Provider.OPENAI
    assert 0.7 <= first.quality_score <= 1.0
    assert all(first.content.as_tuple())

    assert second.metadata.cache_hit is True
    assert second.metadata.cache_tier == CacheTier.L1
    assert second.content.selected == first.content.selected
    assert gateway.get_metrics()["cache_hit_rate"] == 0.5


@pytest.mark.integration
@pytest.mark.asyncio
async def test_equivalent_requests_share_a_cache_entry(gateway, request_factory):
    await gateway.process_request(request_factory(content="AI in healthcare", user_id="a"))
    hit = await gateway.process_request(request_factory(content="  ai IN healthcare ", user_id="b"))

    assert hit.metadata.cache_hit is True


@pytest.mark.integration
@pytest.mark.asyncio
async def test_research_request_uses_research_and_l2(gateway, request_factory):
    request = request_factory(enable_research=True, keywords=("telemedicine",))

    response = await gateway.process_request(request)

    assert response.metadata.research_used is True
    assert response.metadata.cache_tier == CacheTier.L2
    assert response.insights and "telemedicine" in response.insights[0]
    assert GatewayState.RESEARCHING in gateway.recent[-1].transitions
    assert gateway.recent[-1].state == GatewayState.DONE


@pytest.mark.integration
@pytest.mark.asyncio
async def test_casual_story_routes_to_anthropic(gateway, request_factory):
    response = await gateway.process_request(
        request_factory(purpose="value", tone="casual", format="story")
    )

    assert response.metadata.provider == Provider.ANTHROPIC
    assert response.metadata.model == "template-anthropic"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_malformed_cached_payload_is_regenerated(gateway, router, cache, request_factory):
    request = request_factory()
    await cache.set(router.cache_key(request), {"garbage": True}, 60, CacheTier.L1)

    response = await gateway.process_request(request)

    assert response.metadata.cache_hit is False
    assert (await gateway.process_request(request)).metadata.cache_hit is True


# ============================================================================
# FAILURES
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_generator_failure_raises_pipeline_error_without_caching(
    failing_gateway, router, cache, request_factory, events, metrics
):
    request = request_factory()

    with pytest.raises(PipelineError) as exc_info:
        await failing_gateway.process_request(request)

    assert exc_info.value.stage == "generating"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert await cache.get(router.cache_key(request)) is None
    assert failing_gateway.recent[-1].state == GatewayState.FAILED
    assert failing_gateway.get_metrics()["failures"] == 1
    assert events.history("request:failed")[0].payload["stage"] == "generating"
    assert metrics.get_sample_value("broker_pipeline_failures_total", {"stage": "generating"}) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_research_failure_stops_before_generation(
    router, cache, cost_tracker, events, metrics, request_factory
):
    researcher = Mock(spec=TemplateResearchProvider)
    researcher.research = AsyncMock(side_effect=TimeoutError("search backend unavailable"))
    generator = Mock(spec=TemplateContentGenerator)
    generator.generate = AsyncMock()
    gateway = ContentGateway(
        router=router,
        generators={Provider.OPENAI: generator},
        researcher=researcher,
        cost_sink=cost_tracker,
        events=events,
        metrics=metrics,
    )
    request = request_factory(enable_research=True, keywords=("telemedicine",))

    with pytest.raises(PipelineError) as exc_info:
        await gateway.process_request(request)

    assert exc_info.value.stage == "researching"
    assert isinstance(exc_info.value.__cause__, TimeoutError)
    researcher.research.assert_awaited_once()
    generator.generate.assert_not_called()
    assert await cache.get(router.cache_key(request)) is None
    assert metrics.get_sample_value("broker_pipeline_failures_total", {"stage": "researching"}) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_classifier_errors_propagate_unwrapped(gateway, router, request_factory):
    router.classifier.classify = Mock(side_effect=ClassificationError())

    with pytest.raises(ClassificationError):
        await gateway.process_request(request_factory())


@pytest.mark.integration
def test_gateway_requires_a_generator(router):
    with pytest.raises(RoutingError):
        ContentGateway(router=router, generators={})


# ============================================================================
# COST EVENTS & LIFECYCLE
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cost_events_are_recorded_after_drain(gateway, cost_tracker, request_factory):
    await gateway.process_request(request_factory())
    await gateway.process_request(request_factory())
    await gateway.drain()

    metrics = cost_tracker.get_cost_metrics("user-1")
    assert metrics.request_count == 1
    assert metrics.cache_hits == 1
    assert metrics.total_tokens > 0
    assert gateway.get_metrics()["pending_cost_events"] == 0


@pytest.mark.integration
@pytest.mark.asyncio
async def test_lifecycle_event_order(gateway, events, request_factory):
    names = []
    events.subscribe("*", lambda event: names.append(event.name))

    await gateway.process_request(request_factory())
    await gateway.process_request(request_factory())

    assert names == [
        "request:received",
        "cache:miss",
        "request:classified",
        "request:completed",
        "request:received",
        "cache:hit",
        "request:completed",
    ]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_clear_cache_forces_regeneration(gateway, request_factory):
    await gateway.process_request(request_factory())

    assert await gateway.clear_cache() == 1
    assert (await gateway.process_request(request_factory())).metadata.cache_hit is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_health_check_lists_tiers_and_providers(gateway):
    health = await gateway.health_check()

    assert health["status"] == "healthy"
    assert health["details"]["cache_tiers"] == ["L1", "L2", "L3"]
    assert set(health["details"]["providers"]) == {"openai", "anthropic"}


# ============================================================================
# CONTENT SERVICE
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_learned_defaults_shape_later_requests(content_service, request_factory):
    published = await content_service.generate_content(request_factory(tone="casual"))
    outcome = await content_service.record_engagement(
        request_factory(tone="casual"),
        published.content.selected,
        EngagementMetrics(likes=700, comments=50),
    )

    gateway = content_service.gateway
    with patch.object(gateway, "process_request", wraps=gateway.process_request) as process:
        personalised = await content_service.generate_content(
            ContentRequest(content="Startups and hiring in a slow market", user_id="user-1")
        )

    routed = process.await_args.args[0]
    assert outcome == {"user_id": "user-1", "learned": True, "total_engagement": 750}
    assert routed.tone == "casual"
    assert routed.purpose == "thought-leadership"
    assert personalised.metadata.cache_hit is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_anonymous_requests_skip_personalization(content_service, request_factory):
    content_service.personalization.apply_defaults = AsyncMock()

    await content_service.generate_content(request_factory(user_id="anonymous"))

    content_service.personalization.apply_defaults.assert_not_awaited()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cost_report_and_metrics(content_service, request_factory):
    await content_service.generate_content(request_factory())
    await content_service.gateway.drain()

    report = await content_service.get_cost_report("user-1")
    metrics = content_service.get_metrics()

    assert report["metrics"]["request_count"] == 1
    assert isinstance(report["optimizations"], list)
    assert metrics["gateway"]["total_requests"] == 1
    assert metrics["costs"]["requests"] == 1
