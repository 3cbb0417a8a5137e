"""
Cache Manager - Multi-Layer Response Cache
==========================================

Three tiers along a latency/durability spectrum:

L1: In-process memory - hot data, microsecond access, 5 min base TTL
L2: Redis - shared across workers, millisecond access, 24 h base TTL
L3: Durable table (content_cache) - long-lived, 7 day base TTL

Features:
- Fastest-first lookup with promotion of slower-tier hits
- Per-layer timeout; a slow or failing layer reads as a miss
- LRU eviction in L1
- Pattern invalidation, warm-up, expiry sweeps and statistics

Design Philosophy: a cache failure is never a request failure.
"""

import asyncio
import fnmatch
import json
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from loguru import logger

from config.settings import CacheSettings
from core.enums import CacheTier
from core.exceptions import CacheError, CacheWriteError, PersistenceError
from infrastructure.monitoring import MetricsCollector
from infrastructure.persistence import PersistenceBackend
from infrastructure.redis_client import RedisClient

TIER_ORDER: Tuple[CacheTier, ...] = (CacheTier.L1, CacheTier.L2, CacheTier.L3)


@dataclass
class CacheStats:
    """Per-tier counters."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    promotions: int = 0
    invalidations: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0


@dataclass
class CacheEntry:
    """L1 entry with access metadata."""

    key: str
    value: Any
    tier: CacheTier
    ttl_seconds: int
    created_at: float = field(default_factory=time.time)
    accessed_at: float = field(default_factory=time.time)
    access_count: int = 0

    def is_expired(self, now: Optional[float] = None) -> bool:
        return ((now or time.time()) - self.created_at) > self.ttl_seconds

    def touch(self) -> None:
        self.accessed_at = time.time()
        self.access_count += 1


class CacheLookup(NamedTuple):
    value: Any
    tier: CacheTier


# =============================================================================
# LAYERS
# =============================================================================


class CacheLayer(ABC):
    """One cache tier."""

    def __init__(self, tier: CacheTier):
        self.tier = tier

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> None:
        """Store ``value``; raises CacheWriteError on failure."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def invalidate(self, pattern: str) -> int:
        ...

    @abstractmethod
    async def cleanup_expired(self) -> int:
        ...

    @abstractmethod
    async def size(self) -> int:
        ...


class MemoryLayer(CacheLayer):
    """
    Process-local LRU map.

    Also stands in for L2 in single-process deployments with no Redis.
    """

    def __init__(self, tier: CacheTier = CacheTier.L1, max_entries: int = 1000):
        super().__init__(tier)
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._entries[key]
            return None
        entry.touch()
        self._entries.move_to_end(key)
        return entry.value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        self._entries[key] = CacheEntry(key=key, value=value, tier=self.tier, ttl_seconds=ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted LRU entry: {evicted}")

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def invalidate(self, pattern: str) -> int:
        matching = [k for k in self._entries if fnmatch.fnmatch(k, pattern)]
        for key in matching:
            del self._entries[key]
        return len(matching)

    async def cleanup_expired(self) -> int:
        now = time.time()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def size(self) -> int:
        return len(self._entries)

    def entry(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)


class RedisLayer(CacheLayer):
    """Shared tier over RedisClient; Redis expires keys itself."""

    def __init__(self, client: RedisClient):
        super().__init__(CacheTier.L2)
        self._client = client

    async def get(self, key: str) -> Optional[Any]:
        return await self._client.get(key)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self._client.set(key, value, ttl=ttl)
        except CacheError as e:
            raise CacheWriteError(str(e.message), cache_key=key, tier=self.tier.value, cause=e) from e

    async def delete(self, key: str) -> bool:
        return await self._client.delete(key)

    async def invalidate(self, pattern: str) -> int:
        return await self._client.flush_cache(pattern)

    async def cleanup_expired(self) -> int:
        return 0

    async def size(self) -> int:
        return -1


class DurableLayer(CacheLayer):
    """Long-lived tier stored in the ``content_cache`` table as JSON text."""

    TABLE = "content_cache"

    def __init__(self, backend: PersistenceBackend):
        super().__init__(CacheTier.L3)
        self._backend = backend

    async def get(self, key: str) -> Optional[Any]:
        try:
            rows = await self._backend.select(self.TABLE, where={"id": key}, limit=1)
        except PersistenceError as e:
            logger.warning(f"Durable cache read failed for {key}: {e.message}")
            return None

        if not rows:
            return None

        row = rows[0]
        if row["expires_at"] < time.time():
            await self.delete(key)
            return None

        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt durable cache payload for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            row = {
                "id": key,
                "value": json.dumps(value),
                "expires_at": time.time() + ttl,
                "created_at": datetime.utcnow(),
            }
            await self._backend.upsert(self.TABLE, row)
        except (PersistenceError, TypeError, ValueError) as e:
            raise CacheWriteError(str(e), cache_key=key, tier=self.tier.value, cause=e) from e

    async def delete(self, key: str) -> bool:
        try:
            return await self._backend.delete(self.TABLE, [key]) > 0
        except PersistenceError as e:
            logger.warning(f"Durable cache delete failed for {key}: {e.message}")
            return False

    async def _keys(self) -> List[Dict[str, Any]]:
        return await self._backend.select(self.TABLE)

    async def invalidate(self, pattern: str) -> int:
        rows = await self._keys()
        matching = [r["id"] for r in rows if fnmatch.fnmatch(r["id"], pattern)]
        if not matching:
            return 0
        return await self._backend.delete(self.TABLE, matching)

    async def cleanup_expired(self) -> int:
        now = time.time()
        rows = await self._keys()
        expired = [r["id"] for r in rows if r["expires_at"] < now]
        if not expired:
            return 0
        return await self._backend.delete(self.TABLE, expired)

    async def size(self) -> int:
        return len(await self._keys())


# =============================================================================
# MULTI-LAYER CACHE
# =============================================================================


class MultiLayerCache:
    """
    Unified L1/L2/L3 cache.

    Reads walk the tiers fastest-first. A hit in a slower tier is written
    forward into every faster tier (promotion) with that tier's base TTL.
    Writes go to exactly the tier chosen by the cache strategy.
    """

    def __init__(
        self,
        layers: Sequence[CacheLayer],
        settings: Optional[CacheSettings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._settings = settings or CacheSettings()
        self._layers: Dict[CacheTier, CacheLayer] = {layer.tier: layer for layer in layers}
        self._order = [tier for tier in TIER_ORDER if tier in self._layers]
        self._metrics = metrics
        self._timeout = self._settings.layer_timeout_seconds

        self.stats_by_tier: Dict[CacheTier, CacheStats] = {tier: CacheStats() for tier in self._order}
        self._warming_in_progress = False
        self._warm_keys: set = set()

        logger.info(f"Multi-layer cache initialized (tiers: {[t.value for t in self._order]})")

    @property
    def tiers(self) -> List[CacheTier]:
        return list(self._order)

    def layer(self, tier: CacheTier) -> CacheLayer:
        return self._layers[tier]

    def base_ttl(self, tier: CacheTier) -> int:
        return {
            CacheTier.L1: self._settings.l1_ttl,
            CacheTier.L2: self._settings.l2_ttl,
            CacheTier.L3: self._settings.l3_ttl,
        }[tier]

    async def _bounded(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self._timeout)

    # =========================================================================
    # GET / SET
    # =========================================================================

    async def lookup(self, key: str) -> Optional[CacheLookup]:
        """
        Find ``key`` in the fastest tier holding it.

        Returns:
            CacheLookup(value, tier) or None on a miss in every tier
        """
        for index, tier in enumerate(self._order):
            stats = self.stats_by_tier[tier]
            try:
                value = await self._bounded(self._layers[tier].get(key))
            except asyncio.TimeoutError:
                logger.warning(f"Cache tier {tier.value} timed out reading {key}")
                stats.errors += 1
                value = None
            except CacheError as e:
                logger.warning(f"Cache tier {tier.value} read failed for {key}: {e.message}")
                stats.errors += 1
                value = None

            if value is None:
                stats.misses += 1
                if self._metrics:
                    self._metrics.record_cache_miss(tier.value)
                continue

            stats.hits += 1
            if self._metrics:
                self._metrics.record_cache_hit(tier.value)

            await self._promote(key, value, self._order[:index])
            return CacheLookup(value=value, tier=tier)

        return None

    async def get(self, key: str) -> Optional[Any]:
        found = await self.lookup(key)
        return found.value if found else None

    async def _promote(self, key: str, value: Any, faster: Sequence[CacheTier]) -> None:
        for tier in faster:
            try:
                await self._bounded(
                    self._layers[tier].set(key, value, self.base_ttl(tier))
                )
                self.stats_by_tier[tier].promotions += 1
            except (asyncio.TimeoutError, CacheError) as e:
                logger.warning(f"Promotion of {key} into {tier.value} failed: {e}")
                self.stats_by_tier[tier].errors += 1

    async def set(self, key: str, value: Any, ttl: int, tier: CacheTier) -> bool:
        """
        Store ``value`` in one tier.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time-to-live in seconds
            tier: Target tier

        Returns:
            True if the write succeeded; failures are logged, not raised
        """
        if tier not in self._layers:
            logger.warning(f"Cache tier {tier.value} not configured, skipping write for {key}")
            return False

        try:
            await self._bounded(self._layers[tier].set(key, value, ttl))
        except asyncio.TimeoutError:
            logger.warning(f"Cache tier {tier.value} timed out writing {key}")
            self.stats_by_tier[tier].errors += 1
            return False
        except CacheError as e:
            logger.error(f"Cache write failed: {e}")
            self.stats_by_tier[tier].errors += 1
            return False

        self.stats_by_tier[tier].sets += 1
        if self._metrics:
            self._metrics.record_cache_write(tier.value)
            if tier == CacheTier.L1:
                self._metrics.update_cache_entries(await self._layers[tier].size())
        return True

    async def delete(self, key: str) -> bool:
        deleted = False
        for tier in self._order:
            try:
                deleted = await self._layers[tier].delete(key) or deleted
            except (CacheError, PersistenceError) as e:
                logger.warning(f"Cache delete failed in {tier.value} for {key}: {e}")
        return deleted

    # =========================================================================
    # INVALIDATION & WARMING
    # =========================================================================

    async def invalidate_pattern(
        self, pattern: str, tiers: Optional[Sequence[CacheTier]] = None
    ) -> int:
        """
        Invalidate keys matching a glob pattern (e.g. ``"content:*"``).

        Returns:
            Number of keys invalidated across tiers
        """
        count = 0
        for tier in tiers or self._order:
            if tier not in self._layers:
                continue
            try:
                removed = await self._layers[tier].invalidate(pattern)
            except (CacheError, PersistenceError) as e:
                logger.error(f"Invalidation failed in {tier.value}: {e}")
                self.stats_by_tier[tier].errors += 1
                continue
            self.stats_by_tier[tier].invalidations += removed
            count += removed

        logger.info(f"Invalidated {count} keys matching pattern: {pattern}")
        return count

    async def warm_cache(
        self,
        entries: Sequence[Tuple[str, Callable[[], Awaitable[Any]], CacheTier]],
    ) -> int:
        """
        Preload values.

        Args:
            entries: ``(key, async loader, tier)`` triples

        Returns:
            Number of keys successfully warmed
        """
        if self._warming_in_progress:
            logger.warning("Cache warming already in progress")
            return 0

        self._warming_in_progress = True
        logger.info(f"Starting cache warming for {len(entries)} keys...")
        warmed = 0
        try:
            for key, loader, tier in entries:
                value = await loader()
                if value is None:
                    continue
                if await self.set(key, value, self.base_ttl(tier), tier):
                    self._warm_keys.add(key)
                    warmed += 1
        finally:
            self._warming_in_progress = False

        logger.info(f"Cache warming complete: {warmed}/{len(entries)} keys warmed")
        return warmed

    # =========================================================================
    # MAINTENANCE & STATISTICS
    # =========================================================================

    async def cleanup_expired(self) -> int:
        """
        Sweep expired entries from every tier.

        Returns:
            Number of entries removed
        """
        removed = 0
        for tier in self._order:
            try:
                removed += await self._layers[tier].cleanup_expired()
            except (CacheError, PersistenceError) as e:
                logger.warning(f"Expiry sweep failed in {tier.value}: {e}")

        if removed:
            logger.info(f"Cleaned up {removed} expired cache entries")
        if self._metrics and CacheTier.L1 in self._layers:
            self._metrics.update_cache_entries(await self._layers[CacheTier.L1].size())
        return removed

    async def clear(self) -> int:
        """Drop every entry in every tier and reset statistics."""
        logger.warning("Clearing ALL cache tiers...")
        removed = await self.invalidate_pattern("*")
        self._warm_keys.clear()
        self.reset_statistics()
        return removed

    def reset_statistics(self) -> None:
        self.stats_by_tier = {tier: CacheStats() for tier in self._order}

    async def get_statistics(self) -> Dict[str, Any]:
        hits = sum(s.hits for s in self.stats_by_tier.values())
        # a request misses overall only if it missed the slowest tier
        misses = self.stats_by_tier[self._order[-1]].misses if self._order else 0
        total = hits + misses

        sizes = {}
        for tier in self._order:
            try:
                sizes[tier.value] = await self._layers[tier].size()
            except (CacheError, PersistenceError):
                sizes[tier.value] = -1

        return {
            "global": {
                "hits": hits,
                "misses": misses,
                "hit_rate": (hits / total * 100) if total else 0.0,
            },
            "by_tier": {
                tier.value: {
                    "hit_rate": stats.hit_rate,
                    "hits": stats.hits,
                    "misses": stats.misses,
                    "sets": stats.sets,
                    "promotions": stats.promotions,
                    "invalidations": stats.invalidations,
                    "errors": stats.errors,
                    "entries": sizes[tier.value],
                }
                for tier, stats in self.stats_by_tier.items()
            },
            "warmed_keys": len(self._warm_keys),
        }


__all__ = [
    "CacheEntry",
    "CacheLayer",
    "CacheLookup",
    "CacheStats",
    "DurableLayer",
    "MemoryLayer",
    "MultiLayerCache",
    "RedisLayer",
]
