"""
Monitoring Infrastructure: Logging and Prometheus Metrics

Configures the loguru sink for the process and exposes a Prometheus
metrics collector for routing, cache, token and pattern-learning activity.
"""

import sys
from typing import Any, Dict, Optional

from loguru import logger
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from config.settings import MonitoringSettings


def configure_logging(monitoring: Optional[MonitoringSettings] = None) -> None:
    """
    Install a single stderr sink at the configured level.

    JSON-serialised records when ``log_format == "json"``, human-readable
    lines otherwise.
    """
    monitoring = monitoring or MonitoringSettings()
    logger.remove()
    if monitoring.log_format == "json":
        logger.add(sys.stderr, level=monitoring.log_level, serialize=True)
    else:
        logger.add(
            sys.stderr,
            level=monitoring.log_level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
            ),
        )


class MetricsCollector:
    """
    Prometheus metrics collector for broker observability.

    Each instance owns its registry, so several collectors (e.g. one per test)
    can coexist without duplicate-registration errors.

    Tracks:
    - Request volume and latency by complexity/provider
    - Cache hits, misses and writes per tier
    - Token consumption and estimated cost
    - Pattern learning outcomes and embedding fallbacks
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # Request metrics
        self.requests_total = Counter(
            "broker_requests_total",
            "Processed content requests",
            labelnames=["complexity", "provider", "cache_hit"],
            registry=self.registry,
        )

        self.request_latency_seconds = Histogram(
            "broker_request_latency_seconds",
            "End-to-end request processing time",
            buckets=[0.005, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            labelnames=["cache_hit"],
            registry=self.registry,
        )

        self.pipeline_failures_total = Counter(
            "broker_pipeline_failures_total",
            "Requests aborted by a collaborator failure",
            labelnames=["stage"],
            registry=self.registry,
        )

        # Token & cost metrics
        self.tokens_total = Counter(
            "broker_tokens_total",
            "Tokens consumed by generation and research",
            labelnames=["provider"],
            registry=self.registry,
        )

        self.cost_usd_total = Counter(
            "broker_cost_usd_total",
            "Estimated generation cost in USD",
            labelnames=["provider"],
            registry=self.registry,
        )

        # Cache metrics
        self.cache_hits_total = Counter(
            "broker_cache_hits_total",
            "Cache hits",
            labelnames=["tier"],
            registry=self.registry,
        )

        self.cache_misses_total = Counter(
            "broker_cache_misses_total",
            "Cache misses",
            labelnames=["tier"],
            registry=self.registry,
        )

        self.cache_writes_total = Counter(
            "broker_cache_writes_total",
            "Cache writes",
            labelnames=["tier"],
            registry=self.registry,
        )

        self.cache_entries = Gauge(
            "broker_cache_entries",
            "Entries currently held in the process-local tier",
            registry=self.registry,
        )

        # Pattern learning metrics
        self.patterns_learned_total = Counter(
            "broker_patterns_learned_total",
            "Pattern learning outcomes",
            labelnames=["outcome"],
            registry=self.registry,
        )

        self.embedding_fallbacks_total = Counter(
            "broker_embedding_fallbacks_total",
            "Embeddings served by the deterministic fallback after a backend error",
            registry=self.registry,
        )

        logger.debug("Metrics collector initialized")

    def record_request(
        self,
        complexity: str,
        provider: str,
        cache_hit: bool,
        latency_seconds: float,
    ) -> None:
        self.requests_total.labels(
            complexity=complexity, provider=provider, cache_hit=str(cache_hit).lower()
        ).inc()
        self.request_latency_seconds.labels(cache_hit=str(cache_hit).lower()).observe(
            latency_seconds
        )

    def record_pipeline_failure(self, stage: str) -> None:
        self.pipeline_failures_total.labels(stage=stage).inc()

    def record_tokens(self, provider: str, tokens: int, cost_usd: float = 0.0) -> None:
        self.tokens_total.labels(provider=provider).inc(tokens)
        if cost_usd > 0:
            self.cost_usd_total.labels(provider=provider).inc(cost_usd)

    def record_cache_hit(self, tier: str) -> None:
        self.cache_hits_total.labels(tier=tier).inc()

    def record_cache_miss(self, tier: str) -> None:
        self.cache_misses_total.labels(tier=tier).inc()

    def record_cache_write(self, tier: str) -> None:
        self.cache_writes_total.labels(tier=tier).inc()

    def update_cache_entries(self, count: int) -> None:
        self.cache_entries.set(count)

    def record_pattern_learned(self, outcome: str) -> None:
        """Outcome is one of ``created``, ``reinforced``, ``skipped``, ``failed``."""
        self.patterns_learned_total.labels(outcome=outcome).inc()

    def record_embedding_fallback(self) -> None:
        self.embedding_fallbacks_total.inc()

    def export_metrics(self) -> bytes:
        """
        Export metrics in Prometheus text format.

        Returns:
            Prometheus exposition bytes for this collector's registry
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of a sample, 0.0 when it has not been recorded yet."""
        value = self.registry.get_sample_value(name, labels or {})
        return value or 0.0

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {
            "metrics_initialized": True,
            "cache_entries": self.get_sample_value("broker_cache_entries"),
            "embedding_fallbacks": self.get_sample_value("broker_embedding_fallbacks_total"),
        }


__all__ = ["MetricsCollector", "configure_logging"]
