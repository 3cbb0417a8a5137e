"""
Cache Tier Strategy

Picks the cache tier and TTL for a generated response:

- research-backed responses -> L2 (time-sensitive)
- template responses -> L3 (stable, reusable)
- responses shaped by personalization patterns -> L2
- otherwise by complexity: simple -> L1, medium/complex -> L2

The tier's base TTL is scaled by 0.5 when research was used and by 2 when a
template id is present; both factors apply together.
"""

from typing import NamedTuple, Optional

from config.constants import CACHE_TTL_POLICY
from config.settings import CacheSettings
from core.enums import CacheTier, Complexity
from core.models import ContentRequest


class CacheStrategy(NamedTuple):
    tier: CacheTier
    ttl_seconds: int


def base_ttl(tier: CacheTier, settings: CacheSettings) -> int:
    return {
        CacheTier.L1: settings.l1_ttl,
        CacheTier.L2: settings.l2_ttl,
        CacheTier.L3: settings.l3_ttl,
    }[tier]


def select_tier(request: ContentRequest, complexity: Complexity) -> CacheTier:
    if request.needs_research:
        return CacheTier.L2
    if request.template_id:
        return CacheTier.L3
    if request.patterns:
        return CacheTier.L2
    return CacheTier.L1 if complexity == Complexity.SIMPLE else CacheTier.L2


def ttl_multiplier(request: ContentRequest) -> float:
    multiplier = 1.0
    if request.needs_research:
        multiplier *= CACHE_TTL_POLICY.RESEARCH_MULTIPLIER
    if request.template_id:
        multiplier *= CACHE_TTL_POLICY.TEMPLATE_MULTIPLIER
    return multiplier


def determine_cache_strategy(
    request: ContentRequest,
    complexity: Complexity,
    settings: Optional[CacheSettings] = None,
) -> CacheStrategy:
    """
    Tier and TTL for caching the response to ``request``.

    Args:
        request: The request being fulfilled
        complexity: Classifier output for the request
        settings: Base TTLs per tier

    Returns:
        CacheStrategy(tier, ttl_seconds)
    """
    settings = settings or CacheSettings()
    tier = select_tier(request, complexity)
    ttl = int(base_ttl(tier, settings) * ttl_multiplier(request))
    return CacheStrategy(tier=tier, ttl_seconds=max(ttl, 1))


__all__ = [
    "CacheStrategy",
    "base_ttl",
    "determine_cache_strategy",
    "select_tier",
    "ttl_multiplier",
]
