"""
Cost Tracker - Token Spend Accounting
=====================================

Per-user accounting of generation cost, fed by the gateway's fire-and-forget
cost events:

- Token and USD totals with a per-provider breakdown
- Cache hit rate (hits served without generation)
- Budget alerts at 80% and 100% of a user's limit
- Optimization recommendations (low hit rate, provider skew, high unit cost)

Pricing is per 1K tokens; usage is split 60/40 between input and output.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import GatewaySettings
from core.enums import Provider
from core.models import ProcessingRecord
from infrastructure.monitoring import MetricsCollector

INPUT_SHARE = 0.6
BUDGET_WARNING_RATIO = 0.8

# Recommendation thresholds
LOW_HIT_RATE = 0.4
PROVIDER_SKEW_RATIO = 2.0
HIGH_AVERAGE_COST = 0.05
TARGET_AVERAGE_COST = 0.02


@dataclass
class ProviderUsage:
    tokens: int = 0
    cost: float = 0.0
    requests: int = 0


@dataclass
class CostMetrics:
    """Running totals for one user."""

    user_id: str
    total_tokens: int = 0
    total_cost: float = 0.0
    request_count: int = 0
    cache_hits: int = 0
    providers: Dict[Provider, ProviderUsage] = field(
        default_factory=lambda: {p: ProviderUsage() for p in Provider}
    )
    period_start: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def average_cost_per_request(self) -> float:
        return self.total_cost / self.request_count if self.request_count else 0.0

    @property
    def cache_hit_rate(self) -> float:
        total = self.cache_hits + self.request_count
        return self.cache_hits / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_tokens": self.total_tokens,
            "total_cost": round(self.total_cost, 6),
            "request_count": self.request_count,
            "cache_hits": self.cache_hits,
            "cache_hit_rate": self.cache_hit_rate,
            "average_cost_per_request": round(self.average_cost_per_request, 6),
            "provider_breakdown": {
                p.value: {"tokens": u.tokens, "cost": round(u.cost, 6), "requests": u.requests}
                for p, u in self.providers.items()
            },
            "period_start": self.period_start.isoformat(),
        }


@dataclass
class CostOptimization:
    type: str
    priority: str
    message: str
    potential_savings: float


class CostTracker:
    """
    In-process CostSink implementation.

    Counters are mutated synchronously inside each coroutine, so concurrent
    events never interleave mid-update.
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._settings = settings or GatewaySettings()
        self._metrics = metrics
        self._users: Dict[str, CostMetrics] = {}
        self._budgets: Dict[str, float] = {}
        self._alerted: Dict[str, str] = {}

    def _user(self, user_id: str) -> CostMetrics:
        if user_id not in self._users:
            self._users[user_id] = CostMetrics(user_id=user_id)
        return self._users[user_id]

    def default_model(self, provider: Provider) -> str:
        if provider == Provider.ANTHROPIC:
            return self._settings.anthropic_model
        return self._settings.openai_model

    def calculate_cost(self, record: ProcessingRecord) -> float:
        """
        Estimated USD cost of a processing record.

        Unknown models cost 0.0 and are logged.
        """
        model = record.model or self.default_model(record.provider)
        pricing = self._settings.model_pricing.get(model)
        if pricing is None:
            logger.warning(f"No pricing found for {record.provider.value}:{model}")
            return 0.0

        input_tokens = round(record.tokens_used * INPUT_SHARE)
        output_tokens = record.tokens_used - input_tokens
        return (input_tokens / 1000) * pricing["input"] + (output_tokens / 1000) * pricing["output"]

    # =========================================================================
    # COST SINK
    # =========================================================================

    async def record_processing(self, record: ProcessingRecord) -> None:
        cost = self.calculate_cost(record)
        metrics = self._user(record.user_id)

        metrics.total_tokens += record.tokens_used
        metrics.total_cost += cost
        metrics.request_count += 1

        usage = metrics.providers[record.provider]
        usage.tokens += record.tokens_used
        usage.cost += cost
        usage.requests += 1

        if self._metrics:
            self._metrics.record_tokens(record.provider.value, record.tokens_used, cost)

        logger.debug(
            f"Recorded {record.tokens_used} tokens (${cost:.4f}) for {record.user_id} "
            f"via {record.provider.value}"
        )
        self._check_budget(metrics)

    async def record_cache_hit(self, user_id: str) -> None:
        self._user(user_id).cache_hits += 1

    # =========================================================================
    # BUDGETS & REPORTING
    # =========================================================================

    def set_budget_limit(self, user_id: str, limit_usd: float) -> None:
        self._budgets[user_id] = limit_usd
        self._alerted.pop(user_id, None)
        logger.info(f"Budget limit set for {user_id}: ${limit_usd:.2f}")

    def budget_for(self, user_id: str) -> float:
        return self._budgets.get(user_id, self._settings.cost_alert_threshold)

    def _check_budget(self, metrics: CostMetrics) -> None:
        limit = self.budget_for(metrics.user_id)
        if limit <= 0:
            return

        level = None
        if metrics.total_cost >= limit:
            level = "limit_exceeded"
        elif metrics.total_cost >= limit * BUDGET_WARNING_RATIO:
            level = "approaching_limit"

        if level is None or self._alerted.get(metrics.user_id) == level:
            return

        self._alerted[metrics.user_id] = level
        logger.warning(
            f"Budget alert ({level}) for {metrics.user_id}: "
            f"${metrics.total_cost:.2f} of ${limit:.2f}"
        )

    def get_cost_metrics(self, user_id: str) -> Optional[CostMetrics]:
        return self._users.get(user_id)

    def get_cost_optimizations(self, user_id: str) -> List[CostOptimization]:
        """
        Recommendations for reducing a user's spend.

        Returns:
            Empty list for users with no recorded activity
        """
        metrics = self._users.get(user_id)
        if metrics is None:
            return []

        recommendations = []
        if metrics.cache_hit_rate < LOW_HIT_RATE:
            recommendations.append(
                CostOptimization(
                    type="cache_optimization",
                    priority="high",
                    message=(
                        f"Cache hit rate is {metrics.cache_hit_rate * 100:.1f}%. "
                        "Reusing templates and research could save 25% on costs."
                    ),
                    potential_savings=metrics.total_cost * 0.25,
                )
            )

        openai = metrics.providers[Provider.OPENAI]
        anthropic = metrics.providers[Provider.ANTHROPIC]
        if openai.cost > anthropic.cost * PROVIDER_SKEW_RATIO:
            recommendations.append(
                CostOptimization(
                    type="provider_optimization",
                    priority="medium",
                    message="Route narrative content to Anthropic to reduce costs by ~40%.",
                    potential_savings=openai.cost * 0.4,
                )
            )

        if metrics.average_cost_per_request > HIGH_AVERAGE_COST:
            recommendations.append(
                CostOptimization(
                    type="request_optimization",
                    priority="medium",
                    message="Average request cost is high. Templates and patterns reduce complexity.",
                    potential_savings=metrics.request_count
                    * (metrics.average_cost_per_request - TARGET_AVERAGE_COST),
                )
            )

        return recommendations

    def get_summary(self) -> Dict[str, Any]:
        users = list(self._users.values())
        requests = sum(m.request_count for m in users)
        hits = sum(m.cache_hits for m in users)
        return {
            "users": len(users),
            "total_cost": round(sum(m.total_cost for m in users), 6),
            "total_tokens": sum(m.total_tokens for m in users),
            "requests": requests,
            "cache_hits": hits,
            "cache_hit_rate": hits / (hits + requests) if hits + requests else 0.0,
        }

    def reset(self) -> None:
        self._users.clear()
        self._alerted.clear()


__all__ = ["CostMetrics", "CostOptimization", "CostTracker", "ProviderUsage"]
