"""
External Collaborator Interfaces
================================

Structural protocols for the services the gateway depends on but does not
implement:

- ContentGenerator: produces short/medium/long variants for a request
- ResearchProvider: gathers sources and insights before generation
- CostSink: receives cache-hit and processing cost events

Any object with matching async methods satisfies a protocol; no base class
is required.
"""

from typing import Optional, Protocol, runtime_checkable

from core.models import ContentRequest, GenerationResult, ProcessingRecord, ResearchResult


@runtime_checkable
class ContentGenerator(Protocol):
    async def generate(
        self,
        request: ContentRequest,
        research: Optional[ResearchResult] = None,
    ) -> GenerationResult:
        """
        Generate three length variants for ``request``.

        Args:
            request: The request being fulfilled
            research: Research output to ground the content, if any

        Returns:
            GenerationResult with variants, token usage and provider
        """
        ...


@runtime_checkable
class ResearchProvider(Protocol):
    async def research(self, request: ContentRequest) -> ResearchResult:
        ...


@runtime_checkable
class CostSink(Protocol):
    """Fire-and-forget cost accounting; failures never reach the caller."""

    async def record_cache_hit(self, user_id: str) -> None:
        ...

    async def record_processing(self, record: ProcessingRecord) -> None:
        ...


__all__ = ["ContentGenerator", "CostSink", "ResearchProvider"]
