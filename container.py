"""
Dependency Injection Container: Centralized Object Lifecycle Management

Composition root for the broker, built with dependency-injector. Every
long-lived component (cache, router, gateway, pattern engine) is a singleton
constructed here and handed to its consumers; nothing else creates them.

Backends are chosen from configuration:
- DATABASE_URL set -> SQLBackend over PostgreSQL, else InMemoryBackend
- REDIS_URL set -> Redis as the L2 tier, else a process-local L2 map

Dependency Graph (DAG):
Settings -> Infrastructure -> Knowledge -> Intelligence -> Optimization -> Orchestration -> Services
"""

from typing import Dict, List, Optional

from dependency_injector import containers, providers
from loguru import logger

from config.settings import Settings, get_settings
from core.enums import CacheTier, Provider
from core.events import EventHub
from core.exceptions import InfrastructureError
from execution.collaborators import ContentGenerator
from execution.template_generator import TemplateContentGenerator, TemplateResearchProvider
from infrastructure.database import DatabaseManager
from infrastructure.monitoring import MetricsCollector
from infrastructure.persistence import InMemoryBackend, PersistenceBackend, SQLBackend
from infrastructure.redis_client import RedisClient
from intelligence.embedding_provider import EmbeddingProvider
from intelligence.pattern_learning import PatternLearningEngine
from intelligence.quality_evaluator import QualityEvaluator
from knowledge.pattern_store import PatternStore
from knowledge.vector_store import VectorStore
from optimization.cache_manager import (
    CacheLayer,
    DurableLayer,
    MemoryLayer,
    MultiLayerCache,
    RedisLayer,
)
from optimization.cost_tracker import CostTracker
from optimization.request_classifier import RequestClassifier
from optimization.smart_router import SmartRouter
from orchestration.gateway import ContentGateway
from orchestration.maintenance import MaintenanceScheduler
from services.content_service import ContentService
from services.personalization_service import PersonalizationService


def build_backend(settings: Settings, database: DatabaseManager) -> PersistenceBackend:
    if settings.database.enabled:
        return SQLBackend(database)
    logger.info("DATABASE_URL not set, using in-memory persistence")
    return InMemoryBackend(native_similarity=True)


def build_cache_layers(
    settings: Settings, redis: RedisClient, backend: PersistenceBackend
) -> List[CacheLayer]:
    l2: CacheLayer
    if settings.redis.enabled:
        l2 = RedisLayer(redis)
    else:
        logger.info("REDIS_URL not set, L2 cache is process-local")
        l2 = MemoryLayer(tier=CacheTier.L2, max_entries=settings.cache.l1_max_entries * 10)

    return [
        MemoryLayer(tier=CacheTier.L1, max_entries=settings.cache.l1_max_entries),
        l2,
        DurableLayer(backend),
    ]


def build_generators() -> Dict[Provider, ContentGenerator]:
    return {provider: TemplateContentGenerator(provider) for provider in Provider}


class Container(containers.DeclarativeContainer):
    """
    Central dependency injection container.

    Singletons for infrastructure and stateful components; factories for the
    stateless service layer.
    """

    # Configuration providers (singletons)
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    # Infrastructure layer providers (singletons)
    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(MetricsCollector)

    events: providers.Singleton[EventHub] = providers.Singleton(EventHub)

    database: providers.Singleton[DatabaseManager] = providers.Singleton(
        DatabaseManager,
        settings=config.provided.database,
    )

    redis: providers.Singleton[RedisClient] = providers.Singleton(
        RedisClient,
        settings=config.provided.redis,
    )

    backend: providers.Singleton[PersistenceBackend] = providers.Singleton(
        build_backend,
        settings=config,
        database=database,
    )

    # Knowledge layer providers (singletons: they own caches)
    pattern_store: providers.Singleton[PatternStore] = providers.Singleton(
        PatternStore,
        backend=backend,
        settings=config.provided.patterns,
    )

    vector_store: providers.Singleton[VectorStore] = providers.Singleton(
        VectorStore,
        backend=backend,
        default_threshold=config.provided.patterns.similarity_threshold,
        default_top_k=config.provided.patterns.max_results,
        query_timeout=config.provided.patterns.query_timeout_seconds,
    )

    # Intelligence layer providers
    embedder: providers.Singleton[EmbeddingProvider] = providers.Singleton(
        EmbeddingProvider,
        settings=config.provided.embedding,
        metrics=metrics,
    )

    pattern_engine: providers.Singleton[PatternLearningEngine] = providers.Singleton(
        PatternLearningEngine,
        store=pattern_store,
        embedder=embedder,
        events=events,
        settings=config.provided.patterns,
        vector_store=vector_store,
        metrics=metrics,
    )

    quality: providers.Singleton[QualityEvaluator] = providers.Singleton(QualityEvaluator)

    # Optimization layer providers
    cache_layers = providers.Singleton(
        build_cache_layers,
        settings=config,
        redis=redis,
        backend=backend,
    )

    cache: providers.Singleton[MultiLayerCache] = providers.Singleton(
        MultiLayerCache,
        layers=cache_layers,
        settings=config.provided.cache,
        metrics=metrics,
    )

    classifier: providers.Singleton[RequestClassifier] = providers.Singleton(RequestClassifier)

    router: providers.Singleton[SmartRouter] = providers.Singleton(
        SmartRouter,
        cache=cache,
        classifier=classifier,
        cache_settings=config.provided.cache,
        gateway_settings=config.provided.gateway,
    )

    cost_tracker: providers.Singleton[CostTracker] = providers.Singleton(
        CostTracker,
        settings=config.provided.gateway,
        metrics=metrics,
    )

    # Execution layer providers
    generators = providers.Singleton(build_generators)

    researcher: providers.Singleton[TemplateResearchProvider] = providers.Singleton(
        TemplateResearchProvider
    )

    # Orchestration layer providers
    gateway: providers.Singleton[ContentGateway] = providers.Singleton(
        ContentGateway,
        router=router,
        generators=generators,
        researcher=researcher,
        cost_sink=cost_tracker,
        quality=quality,
        events=events,
        metrics=metrics,
    )

    maintenance: providers.Singleton[MaintenanceScheduler] = providers.Singleton(
        MaintenanceScheduler.for_broker,
        cache=cache,
        engine=pattern_engine,
        cache_settings=config.provided.cache,
        pattern_settings=config.provided.patterns,
    )

    # Service layer providers (factories)
    personalization_service: providers.Factory[PersonalizationService] = providers.Factory(
        PersonalizationService,
        engine=pattern_engine,
        store=pattern_store,
    )

    content_service: providers.Factory[ContentService] = providers.Factory(
        ContentService,
        gateway=gateway,
        personalization=personalization_service,
        cost_tracker=cost_tracker,
    )


# Global container instance
container = Container()


class ContainerManager:
    """
    Container lifecycle manager.

    Handles async initialization and cleanup of infrastructure and the
    maintenance loop.
    """

    def __init__(self, app_container: Optional[Container] = None) -> None:
        self._container: Container = app_container or container
        self._initialized: bool = False

    @property
    def container(self) -> Container:
        return self._container

    async def initialize(self, start_maintenance: bool = True) -> None:
        """
        Initialize configured infrastructure and start background sweeps.

        A configured database is critical; Redis is not (its tier degrades
        to cache misses).

        Raises:
            InfrastructureError: If the configured database cannot be reached
        """
        if self._initialized:
            logger.warning("Container already initialized - skipping re-initialization")
            return

        logger.info("Initializing dependency injection container")
        settings = self._container.config()
        degraded = []

        if settings.database.enabled:
            try:
                await self._container.database().initialize()
                logger.info("Database initialized successfully")
            except InfrastructureError as e:
                logger.error(f"Database is a critical component - cannot continue without it: {e}")
                raise

        if settings.redis.enabled:
            try:
                await self._container.redis().initialize()
                logger.info("Redis initialized successfully")
            except InfrastructureError as e:
                logger.warning(f"Continuing without Redis - L2 reads will miss: {e}")
                degraded.append("redis")

        if start_maintenance:
            self._container.maintenance().start()

        if degraded:
            logger.warning(f"Container initialized with degraded components: {', '.join(degraded)}")
        else:
            logger.info("All container components initialized successfully")

        self._initialized = True

    async def cleanup(self) -> None:
        """Stop background work and close connections. Idempotent."""
        if not self._initialized:
            logger.debug("Container not initialized - skipping cleanup")
            return

        logger.info("Cleaning up dependency injection container")
        settings = self._container.config()

        await self._container.maintenance().stop()
        await self._container.gateway().drain()

        if settings.redis.enabled:
            await self._container.redis().close()
        if settings.database.enabled:
            await self._container.database().close()

        logger.info("Container cleanup completed")
        self._initialized = False


# Global container manager instance
container_manager = ContainerManager()


__all__ = [
    "Container",
    "ContainerManager",
    "build_backend",
    "build_cache_layers",
    "build_generators",
    "container",
    "container_manager",
]
