"""
API Integration Tests

Exercises the FastAPI surface over a fresh in-memory container:
- Generation (miss then hit), validation errors, pipeline failures
- Pattern learning, recommendations, insights and analysis
- Health, Prometheus metrics, cache administration and status
"""

from unittest.mock import AsyncMock, Mock

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from core.enums import Provider
from execution.template_generator import TemplateContentGenerator

LEARN_PAYLOAD = {
    "user_id": "api-user",
    "request": {
        "content": "AI in healthcare is changing how clinicians spend their day",
        "purpose": "thought-leadership",
        "format": "story",
        "tone": "casual",
    },
    "published_content": "When we rolled out the new triage flow, nurses got an hour back. Comment below",
    "engagement": {"likes": 640, "comments": 60},
}


# ============================================================================
# CONTENT GENERATION
# ============================================================================


@pytest.mark.integration
def test_generate_then_serve_from_cache(api_client, generate_payload):
    first = api_client.post("/content/generate", json=generate_payload)
    second = api_client.post("/content/generate", json=generate_payload)

    assert first.status_code == 200
    assert second.status_code == 200

    first_data = first.json()
    second_data = second.json()
    assert first_data["success"] is True
    assert first_data["data"]["metadata"]["cache_hit"] is False
    assert first_data["data"]["metadata"]["cache_tier"] == "L1"
    assert second_data["data"]["metadata"]["cache_hit"] is True
    assert second_data["data"]["content"]["selected"] == first_data["data"]["content"]["selected"]
    assert second_data["request_id"] != first_data["request_id"]


@pytest.mark.integration
def test_request_id_header_is_echoed(api_client, generate_payload):
    response = api_client.post(
        "/content/generate", json=generate_payload, headers={"X-Request-ID": "trace-123"}
    )

    assert response.headers["X-Request-ID"] == "trace-123"


@pytest.mark.integration
@pytest.mark.parametrize(
    "override",
    [
        {"content": "too short"},
        {"tone": "sarcastic"},
        {"url_reference": "not a url"},
        {"keywords": [f"k{i}" for i in range(21)]},
    ],
)
def test_invalid_requests_are_rejected(api_client, generate_payload, override):
    response = api_client.post("/content/generate", json={**generate_payload, **override})

    assert response.status_code == 422
    assert response.json()["error"] == "Validation Error"


@pytest.mark.integration
def test_generator_failure_maps_to_bad_gateway(app_container, generate_payload):
    from api.main import create_app

    generator = Mock(spec=TemplateContentGenerator)
    generator.generate = AsyncMock(side_effect=RuntimeError("model overloaded"))
    app_container.generators.override(providers.Object({Provider.OPENAI: generator}))

    try:
        with TestClient(create_app(app_container, start_maintenance=False)) as client:
            response = client.post("/content/generate", json=generate_payload)
    finally:
        app_container.generators.reset_override()

    assert response.status_code == 502
    assert response.json()["error"] == "Generation Failed"


@pytest.mark.integration
def test_cost_report_shape(api_client, generate_payload):
    api_client.post("/content/generate", json=generate_payload)

    response = api_client.get("/content/costs/api-user")

    assert response.status_code == 200
    assert set(response.json()) >= {"metrics", "optimizations"}


# ============================================================================
# PATTERNS
# ============================================================================


@pytest.mark.integration
def test_learn_then_reinforce(api_client):
    first = api_client.post("/patterns/learn", json=LEARN_PAYLOAD)
    second = api_client.post("/patterns/learn", json=LEARN_PAYLOAD)

    assert first.json() == {"user_id": "api-user", "learned": True, "total_engagement": 700}
    assert second.json()["learned"] is True

    insights = api_client.get("/patterns/insights/api-user").json()
    assert insights["total_patterns"] == 1
    assert insights["most_successful_format"] == "story"


@pytest.mark.integration
def test_low_engagement_is_not_learned(api_client):
    payload = {**LEARN_PAYLOAD, "engagement": {"likes": 100}}

    response = api_client.post("/patterns/learn", json=payload)

    assert response.status_code == 200
    assert response.json()["learned"] is False


@pytest.mark.integration
def test_recommendations_reflect_learned_defaults(api_client):
    api_client.post("/patterns/learn", json=LEARN_PAYLOAD)

    response = api_client.post(
        "/patterns/recommendations",
        json={"user_id": "api-user", "request": {"content": "Hiring engineers in a slow market"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["defaults"]["patterns_used"] == 1
    assert body["suggested_tone"] == "casual"
    assert body["suggested_format"] == "story"


@pytest.mark.integration
def test_analyze_content(api_client):
    response = api_client.post("/patterns/analyze", json={"content": "What would you change? #teams"})

    assert response.status_code == 200
    assert response.json()["hashtag_count"] == 1
    assert "hook" in response.json()["structure"]


# ============================================================================
# SYSTEM
# ============================================================================


@pytest.mark.integration
def test_health_reports_offline_dependencies_as_disabled(api_client):
    response = api_client.get("/system/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["dependencies"]["database"] == "disabled"
    assert body["dependencies"]["redis"] == "disabled"
    assert body["dependencies"]["pattern_engine"] == "healthy"
    assert body["dependencies"]["gateway"] == "healthy"


@pytest.mark.integration
def test_prometheus_metrics_after_generation(api_client, generate_payload):
    api_client.post("/content/generate", json=generate_payload)

    response = api_client.get("/system/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "broker_requests_total" in response.text
    assert "broker_cache_writes_total" in response.text


@pytest.mark.integration
def test_cache_stats_and_clear(api_client, generate_payload):
    api_client.post("/content/generate", json=generate_payload)

    stats = api_client.get("/system/cache/stats").json()
    cleared = api_client.delete("/system/cache").json()
    regenerated = api_client.post("/content/generate", json=generate_payload).json()

    assert stats["by_tier"]["L1"]["sets"] == 1
    assert cleared == {"cleared": True, "removed": 1}
    assert regenerated["data"]["metadata"]["cache_hit"] is False


@pytest.mark.integration
def test_system_status(api_client, generate_payload):
    api_client.post("/content/generate", json=generate_payload)

    body = api_client.get("/system/status").json()

    assert body["gateway"]["total_requests"] == 1
    assert set(body["maintenance"]) == {"cache_expiry", "embedding_memo", "pattern_cache"}
    assert "searches" in body["patterns"]


@pytest.mark.integration
def test_root_redirects_to_docs(api_client):
    response = api_client.get("/", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == "/docs"
