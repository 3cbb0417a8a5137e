"""
Pytest Configuration and Fixture Library

Shared test infrastructure:
- In-memory persistence and cache tiers (no Redis or PostgreSQL needed)
- Gateway, router and pattern engine wired the way the container wires them
- A keyword-driven embedding strategy with predictable similarities
- API client over a fresh container

Design Pattern: Test Data Builder + Fixture Factory
"""

from typing import Dict, Iterator

import numpy as np
import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from config.settings import CacheSettings, GatewaySettings, PatternSettings, Settings
from container import Container, build_generators
from core.enums import CacheTier
from core.events import EventHub
from core.models import ContentRequest
from execution.template_generator import TemplateResearchProvider
from infrastructure.monitoring import MetricsCollector
from infrastructure.persistence import InMemoryBackend
from intelligence.embedding_provider import EmbeddingProvider, EmbeddingStrategy
from intelligence.pattern_learning import PatternLearningEngine
from intelligence.quality_evaluator import QualityEvaluator
from knowledge.pattern_store import PatternStore
from knowledge.vector_store import VectorStore
from optimization.cache_manager import DurableLayer, MemoryLayer, MultiLayerCache
from optimization.cost_tracker import CostTracker
from optimization.smart_router import SmartRouter
from orchestration.gateway import ContentGateway

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")


# ============================================================================
# TEST DATA BUILDERS
# ============================================================================


def make_request(**overrides) -> ContentRequest:
    """ContentRequest with sensible defaults for tests."""
    data = {
        "content": "AI in healthcare is changing how clinicians spend their day",
        "purpose": "thought-leadership",
        "format": "insight",
        "tone": "professional",
        "enable_research": False,
        "user_id": "user-1",
    }
    data.update(overrides)
    return ContentRequest(**data)


@pytest.fixture
def request_factory():
    """Builder for ContentRequest objects."""
    return make_request


class KeywordEmbeddingStrategy(EmbeddingStrategy):
    """
    Maps text onto axes named by keywords.

    Texts sharing a topic keyword point the same way (similarity 1.0);
    texts with no topic keyword share a neutral axis.
    """

    name = "keyword"
    TOPICS = ("healthcare", "finance", "hiring", "startups", "climate", "education")

    def __init__(self):
        super().__init__(dimension=len(self.TOPICS) + 1)
        self.calls = 0

    async def embed(self, text: str) -> np.ndarray:
        self.calls += 1
        vector = np.zeros(self.dimension)
        lowered = text.lower()
        for index, topic in enumerate(self.TOPICS):
            if topic in lowered:
                vector[index] = 1.0
        if not vector.any():
            vector[-1] = 1.0
        return vector


# ============================================================================
# INFRASTRUCTURE FIXTURES
# ============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def events() -> EventHub:
    return EventHub()


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend(native_similarity=True)


@pytest.fixture
def cache_settings() -> CacheSettings:
    return CacheSettings(layer_timeout_seconds=0.5)


@pytest.fixture
def pattern_settings() -> PatternSettings:
    return PatternSettings()


# ============================================================================
# CACHE & ROUTING FIXTURES
# ============================================================================


@pytest.fixture
def cache(backend, cache_settings, metrics) -> MultiLayerCache:
    layers = [
        MemoryLayer(tier=CacheTier.L1, max_entries=100),
        MemoryLayer(tier=CacheTier.L2, max_entries=1000),
        DurableLayer(backend),
    ]
    return MultiLayerCache(layers, settings=cache_settings, metrics=metrics)


@pytest.fixture
def router(cache, cache_settings) -> SmartRouter:
    return SmartRouter(cache, cache_settings=cache_settings, gateway_settings=GatewaySettings())


@pytest.fixture
def cost_tracker(metrics) -> CostTracker:
    return CostTracker(GatewaySettings(), metrics)


@pytest.fixture
def gateway(router, cost_tracker, events, metrics) -> ContentGateway:
    return ContentGateway(
        router=router,
        generators=build_generators(),
        researcher=TemplateResearchProvider(),
        cost_sink=cost_tracker,
        quality=QualityEvaluator(),
        events=events,
        metrics=metrics,
    )


# ============================================================================
# PATTERN LEARNING FIXTURES
# ============================================================================


@pytest.fixture
def embedding_strategy() -> KeywordEmbeddingStrategy:
    return KeywordEmbeddingStrategy()


@pytest.fixture
def embedder(embedding_strategy, metrics) -> EmbeddingProvider:
    return EmbeddingProvider(strategy=embedding_strategy, metrics=metrics)


@pytest.fixture
def pattern_store(backend, pattern_settings) -> PatternStore:
    return PatternStore(backend, pattern_settings)


@pytest.fixture
def vector_store(backend) -> VectorStore:
    return VectorStore(backend, default_threshold=0.75)


@pytest.fixture
def engine(pattern_store, embedder, events, pattern_settings, vector_store, metrics) -> PatternLearningEngine:
    return PatternLearningEngine(
        store=pattern_store,
        embedder=embedder,
        events=events,
        settings=pattern_settings,
        vector_store=vector_store,
        metrics=metrics,
    )


# ============================================================================
# API CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def app_container() -> Container:
    """Fresh container on offline settings (no database, no Redis)."""
    app_container = Container()
    app_container.config.override(providers.Object(Settings(_env_file=None)))
    yield app_container
    app_container.config.reset_override()


@pytest.fixture
def api_client(app_container) -> Iterator[TestClient]:
    """
    FastAPI test client fixture.

    Runs the app lifespan against ``app_container`` without the background
    maintenance loop.
    """
    from api.main import create_app

    app = create_app(app_container, start_maintenance=False)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def generate_payload() -> Dict:
    return {
        "content": "AI in healthcare is changing how clinicians spend their day",
        "purpose": "thought-leadership",
        "format": "insight",
        "tone": "professional",
        "enable_research": False,
        "user_id": "api-user",
    }
