"""
Content Gateway

Single entry point for content requests. Runs each request through a small
state machine:

    received -> classified -> (cache hit: done)
                           -> (cache miss: researching?) -> generating
                           -> scoring -> caching -> done

A collaborator failure moves the request to ``failed`` and surfaces as one
PipelineError; nothing is written to the cache on that path. Cost events are
scheduled fire-and-forget so accounting never delays a response.
"""

import asyncio
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional, Set

from loguru import logger
from pydantic import ValidationError as ModelValidationError

from config.constants import EVENTS
from core.enums import GatewayState, Provider
from core.events import EventHub
from core.exceptions import PipelineError, RoutingError
from core.models import (
    ContentRequest,
    ContentResponse,
    GenerationResult,
    ProcessingRecord,
    ResearchResult,
    ResponseMetadata,
    RouteDecision,
)
from execution.collaborators import ContentGenerator, CostSink, ResearchProvider
from infrastructure.monitoring import MetricsCollector
from intelligence.quality_evaluator import QualityEvaluator
from optimization.smart_router import SmartRouter


@dataclass
class RequestTrace:
    """State transitions of one request through the gateway."""

    request_id: str
    state: GatewayState = GatewayState.RECEIVED
    transitions: List[GatewayState] = field(default_factory=lambda: [GatewayState.RECEIVED])
    started: float = field(default_factory=time.perf_counter)

    def advance(self, state: GatewayState) -> None:
        logger.debug(f"Request {self.request_id} | {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


@dataclass
class GatewayStats:
    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    failures: int = 0
    total_tokens: int = 0
    total_processing_ms: float = 0.0
    by_complexity: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    by_provider: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


class ContentGateway:
    """
    Cache-first content broker.

    Generators are registered per provider; when the routed provider has no
    generator the first registered one serves the request.
    """

    def __init__(
        self,
        router: SmartRouter,
        generators: Mapping[Provider, ContentGenerator],
        researcher: Optional[ResearchProvider] = None,
        cost_sink: Optional[CostSink] = None,
        quality: Optional[QualityEvaluator] = None,
        events: Optional[EventHub] = None,
        metrics: Optional[MetricsCollector] = None,
        trace_history: int = 50,
    ):
        if not generators:
            raise RoutingError("At least one content generator must be registered")

        self.router = router
        self.cache = router.cache
        self._generators: Dict[Provider, ContentGenerator] = dict(generators)
        self._researcher = researcher
        self._cost_sink = cost_sink
        self._quality = quality or QualityEvaluator()
        self._events = events or EventHub()
        self._metrics = metrics

        self.stats = GatewayStats()
        self.recent: Deque[RequestTrace] = deque(maxlen=trace_history)
        self._pending: Set[asyncio.Task] = set()

        logger.info(
            f"ContentGateway initialized | providers={[p.value for p in self._generators]} | "
            f"research={'on' if researcher else 'off'}"
        )

    def generator_for(self, provider: Provider) -> ContentGenerator:
        if provider in self._generators:
            return self._generators[provider]
        fallback = next(iter(self._generators))
        logger.warning(f"No generator for {provider.value}, using {fallback.value}")
        return self._generators[fallback]

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def process_request(self, request: ContentRequest) -> ContentResponse:
        """
        Fulfil a content request from cache or by generation.

        Args:
            request: Validated content request

        Returns:
            ContentResponse; ``metadata.cache_hit`` tells whether it was served
            from cache

        Raises:
            PipelineError: A research or generation collaborator failed
            ClassificationError: Classifier invariant violated
            CacheKeyError: Request has no content to key on
        """
        trace = RequestTrace(request_id=request.request_id)
        self.recent.append(trace)
        self.stats.total_requests += 1
        self._events.emit(
            EVENTS.REQUEST_RECEIVED,
            {"request_id": request.request_id, "user_id": request.user_id},
        )

        outcome = await self.router.route(request)
        trace.advance(GatewayState.CLASSIFIED)
        decision = outcome.decision

        if outcome.cached is not None:
            response = self._from_cache(outcome.cached, decision, trace)
            if response is not None:
                return self._complete_hit(request, response, decision, trace)
            outcome = self.router.plan(request, decision.cache_key)
            decision = outcome.decision

        self.stats.cache_misses += 1
        self._events.emit(
            EVENTS.CACHE_MISS, {"request_id": request.request_id, "cache_key": decision.cache_key}
        )
        self._events.emit(
            EVENTS.REQUEST_CLASSIFIED,
            {
                "request_id": request.request_id,
                "complexity": decision.complexity.value,
                "estimated_tokens": decision.estimated_tokens,
                "provider": decision.provider.value,
                "cache_tier": decision.cache_tier.value,
            },
        )

        try:
            research = None
            if request.needs_research and self._researcher is not None:
                trace.advance(GatewayState.RESEARCHING)
                research = await self._researcher.research(request)

            trace.advance(GatewayState.GENERATING)
            generated = await self.generator_for(decision.provider).generate(request, research)

        except Exception as e:
            stage = trace.state.value
            trace.advance(GatewayState.FAILED)
            self.stats.failures += 1
            if self._metrics:
                self._metrics.record_pipeline_failure(stage)
            self._events.emit(
                EVENTS.REQUEST_FAILED,
                {"request_id": request.request_id, "stage": stage, "error": type(e).__name__},
            )
            logger.error(f"Request {request.request_id} failed during {stage}: {e}")
            raise PipelineError(stage=stage, request_id=request.request_id, cause=e) from e

        trace.advance(GatewayState.SCORING)
        response = self._assemble(generated, research, decision, trace)

        trace.advance(GatewayState.CACHING)
        await self.cache.set(
            decision.cache_key,
            response.model_dump(mode="json"),
            decision.ttl_seconds,
            decision.cache_tier,
        )

        trace.advance(GatewayState.DONE)
        response.metadata.processing_time_ms = trace.elapsed_ms
        self._record_success(request, response, decision)
        return response

    def _from_cache(
        self, payload: Dict[str, Any], decision: RouteDecision, trace: RequestTrace
    ) -> Optional[ContentResponse]:
        try:
            response = ContentResponse.model_validate(payload)
        except ModelValidationError as e:
            logger.error(f"Discarding malformed cached response {decision.cache_key}: {e}")
            return None

        response.metadata.cache_hit = True
        response.metadata.cache_tier = decision.cache_tier
        response.metadata.processing_time_ms = trace.elapsed_ms
        return response

    def _complete_hit(
        self,
        request: ContentRequest,
        response: ContentResponse,
        decision: RouteDecision,
        trace: RequestTrace,
    ) -> ContentResponse:
        trace.advance(GatewayState.DONE)
        self.stats.cache_hits += 1
        self.stats.total_processing_ms += response.metadata.processing_time_ms

        self._events.emit(
            EVENTS.CACHE_HIT,
            {
                "request_id": request.request_id,
                "cache_key": decision.cache_key,
                "tier": decision.cache_tier.value,
            },
        )
        self._events.emit(
            EVENTS.REQUEST_COMPLETED,
            {"request_id": request.request_id, "cache_hit": True},
        )
        if self._metrics:
            self._metrics.record_request(
                complexity=response.metadata.complexity.value if response.metadata.complexity else "unknown",
                provider=response.metadata.provider.value if response.metadata.provider else "cache",
                cache_hit=True,
                latency_seconds=response.metadata.processing_time_ms / 1000,
            )
        if self._cost_sink is not None:
            self._schedule(self._cost_sink.record_cache_hit(request.user_id), "cache hit")

        logger.info(
            f"Served {request.request_id} from {decision.cache_tier.value} "
            f"in {response.metadata.processing_time_ms:.1f}ms"
        )
        return response

    def _assemble(
        self,
        generated: GenerationResult,
        research: Optional[ResearchResult],
        decision: RouteDecision,
        trace: RequestTrace,
    ) -> ContentResponse:
        tokens = generated.tokens_used + (research.tokens_used if research else 0)
        return ContentResponse(
            content=generated.content,
            sources=research.sources if research else [],
            insights=research.insights if research else [],
            quality_score=self._quality.score(generated.content),
            metadata=ResponseMetadata(
                processing_time_ms=trace.elapsed_ms,
                tokens_used=tokens,
                cache_hit=False,
                cache_tier=decision.cache_tier,
                provider=generated.provider,
                model=generated.model,
                confidence=generated.confidence,
                complexity=decision.complexity,
                research_used=research is not None,
            ),
        )

    def _record_success(
        self, request: ContentRequest, response: ContentResponse, decision: RouteDecision
    ) -> None:
        meta = response.metadata
        self.stats.total_tokens += meta.tokens_used
        self.stats.total_processing_ms += meta.processing_time_ms
        self.stats.by_complexity[decision.complexity.value] += 1
        self.stats.by_provider[meta.provider.value] += 1

        self._events.emit(
            EVENTS.REQUEST_COMPLETED,
            {
                "request_id": request.request_id,
                "cache_hit": False,
                "tokens_used": meta.tokens_used,
                "quality_score": response.quality_score,
            },
        )
        if self._metrics:
            self._metrics.record_request(
                complexity=decision.complexity.value,
                provider=meta.provider.value,
                cache_hit=False,
                latency_seconds=meta.processing_time_ms / 1000,
            )
        if self._cost_sink is not None:
            record = ProcessingRecord(
                user_id=request.user_id,
                tokens_used=meta.tokens_used,
                processing_time_ms=meta.processing_time_ms,
                provider=meta.provider,
                model=meta.model,
                complexity=decision.complexity,
            )
            self._schedule(self._cost_sink.record_processing(record), "processing")

        logger.info(
            f"Generated {request.request_id} | provider={meta.provider.value} | "
            f"tokens={meta.tokens_used} | quality={response.quality_score:.2f} | "
            f"tier={decision.cache_tier.value} | {meta.processing_time_ms:.1f}ms"
        )

    # =========================================================================
    # FIRE-AND-FORGET COST EVENTS
    # =========================================================================

    def _schedule(self, coro, label: str) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_cost_done(t, label))

    def _on_cost_done(self, task: asyncio.Task, label: str) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Cost recording ({label}) failed: {task.exception()}")

    async def drain(self) -> None:
        """Wait for outstanding cost events (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def get_metrics(self) -> Dict[str, Any]:
        s = self.stats
        served = s.cache_hits + s.cache_misses
        return {
            "total_requests": s.total_requests,
            "cache_hits": s.cache_hits,
            "cache_misses": s.cache_misses,
            "cache_hit_rate": s.cache_hits / served if served else 0.0,
            "failures": s.failures,
            "total_tokens": s.total_tokens,
            "average_processing_ms": s.total_processing_ms / served if served else 0.0,
            "by_complexity": dict(s.by_complexity),
            "by_provider": dict(s.by_provider),
            "pending_cost_events": len(self._pending),
        }

    async def get_cache_stats(self) -> Dict[str, Any]:
        return await self.cache.get_statistics()

    async def clear_cache(self) -> int:
        removed = await self.cache.clear()
        self._events.emit(EVENTS.CACHE_CLEANED, {"type": "response_cache", "removed": removed})
        return removed

    async def health_check(self) -> Dict[str, Any]:
        details = {
            "cache_tiers": [t.value for t in self.cache.tiers],
            "providers": [p.value for p in self._generators],
            "research": self._researcher is not None,
            "cost_tracking": self._cost_sink is not None,
        }
        return {"status": "healthy", "details": details}


__all__ = ["ContentGateway", "GatewayStats", "RequestTrace"]
