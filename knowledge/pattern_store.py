"""
Pattern Store
=============
Persistence for learned user patterns (``user_patterns`` table) with a
short-lived per-user list cache.

- Listing keeps only patterns at or above the minimum stored confidence,
  ordered by confidence (highest first), optionally filtered by type
- List cache keys are ``user_{id}_{types|all}``; any write for a user drops
  every cached list for that user
- Every backend call is bounded by the query timeout. Listing reads degrade
  to an empty, uncached result; lookups that feed a write raise instead
"""

import asyncio
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from config.settings import PatternSettings
from core.enums import PatternType
from core.exceptions import PatternStoreError, PersistenceError
from core.models import PatternData, UserPattern
from infrastructure.persistence import PersistenceBackend

TABLE = "user_patterns"


def pattern_to_row(pattern: UserPattern) -> Dict[str, Any]:
    return {
        "id": pattern.id,
        "user_id": pattern.user_id,
        "pattern_type": pattern.pattern_type.value,
        "pattern_data": pattern.pattern_data.model_dump(mode="json"),
        "confidence_score": pattern.confidence_score,
        "sample_size": pattern.sample_size,
        "last_reinforced": pattern.last_reinforced,
        "created_at": pattern.created_at,
        "updated_at": pattern.updated_at,
    }


def pattern_from_row(row: Dict[str, Any]) -> UserPattern:
    return UserPattern(
        id=str(row["id"]),
        user_id=row["user_id"],
        pattern_type=PatternType(row["pattern_type"]),
        pattern_data=PatternData.from_storage(row.get("pattern_data") or {}),
        confidence_score=row["confidence_score"],
        sample_size=row.get("sample_size") or 1,
        last_reinforced=row.get("last_reinforced") or datetime.utcnow(),
        created_at=row.get("created_at") or datetime.utcnow(),
        updated_at=row.get("updated_at") or datetime.utcnow(),
    )


class PatternStore:
    """Repository for UserPattern rows."""

    def __init__(self, backend: PersistenceBackend, settings: Optional[PatternSettings] = None):
        self._backend = backend
        self._settings = settings or PatternSettings()
        self._cache: "OrderedDict[str, Tuple[float, List[UserPattern]]]" = OrderedDict()
        self._timeout = self._settings.query_timeout_seconds

    # =========================================================================
    # CACHE
    # =========================================================================

    @staticmethod
    def cache_key(user_id: str, pattern_types: Optional[Sequence[PatternType]] = None) -> str:
        types = ",".join(t.value for t in pattern_types) if pattern_types else "all"
        return f"user_{user_id}_{types}"

    def _cache_get(self, key: str) -> Optional[List[UserPattern]]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, patterns = entry
        if time.monotonic() - stored_at > self._settings.pattern_cache_ttl_seconds:
            del self._cache[key]
            return None
        return patterns

    def _cache_put(self, key: str, patterns: List[UserPattern]) -> None:
        self._cache[key] = (time.monotonic(), patterns)
        self._cache.move_to_end(key)
        while len(self._cache) > self._settings.pattern_cache_max_entries:
            self._cache.popitem(last=False)

    def invalidate_user(self, user_id: str) -> int:
        prefix = f"user_{user_id}_"
        doomed = [k for k in self._cache if k.startswith(prefix)]
        for key in doomed:
            del self._cache[key]
        return len(doomed)

    def sweep(self) -> int:
        """
        Drop expired lists, and everything once the cache has filled up.

        Returns:
            Number of cached lists removed
        """
        if len(self._cache) >= self._settings.pattern_cache_max_entries:
            removed = len(self._cache)
            self._cache.clear()
            return removed

        now = time.monotonic()
        expired = [
            k
            for k, (stored_at, _) in self._cache.items()
            if now - stored_at > self._settings.pattern_cache_ttl_seconds
        ]
        for key in expired:
            del self._cache[key]
        return len(expired)

    @property
    def cached_lists(self) -> int:
        return len(self._cache)

    # =========================================================================
    # READS
    # =========================================================================

    async def _bounded(self, operation: str, user_id: Optional[str], call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise PatternStoreError(
                f"Pattern {operation} timed out after {self._timeout}s",
                user_id=user_id,
                operation=operation,
                cause=e,
            ) from e
        except PersistenceError as e:
            raise PatternStoreError(
                f"Pattern {operation} failed: {e.message}", user_id=user_id, operation=operation, cause=e
            ) from e

    async def _select(
        self, operation: str, user_id: Optional[str], degrade: bool = True, **query
    ) -> Optional[List[Dict[str, Any]]]:
        """
        Bounded select against the pattern table.

        Returns:
            Matching rows, or ``None`` when the query timed out and ``degrade``
            is set

        Raises:
            PatternStoreError: Backend failure, or a timeout with ``degrade`` off
        """
        try:
            return await self._bounded(operation, user_id, self._backend.select(TABLE, **query))
        except PatternStoreError as e:
            if degrade and isinstance(e.__cause__, asyncio.TimeoutError):
                logger.warning(e.message)
                return None
            raise

    async def list_user_patterns(
        self,
        user_id: Optional[str],
        pattern_types: Optional[Sequence[PatternType]] = None,
    ) -> List[UserPattern]:
        """
        Patterns for a user at or above the minimum stored confidence.

        Args:
            user_id: Owner; ``None`` yields an empty list
            pattern_types: Optional type filter

        Returns:
            Patterns ordered by confidence, highest first
        """
        if not user_id:
            return []

        key = self.cache_key(user_id, pattern_types)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        query: Dict[str, Any] = {
            "where": {"user_id": user_id},
            "gte": {"confidence_score": self._settings.min_stored_confidence},
            "order_by": "confidence_score",
            "descending": True,
        }
        if pattern_types:
            query["where_in"] = {"pattern_type": [t.value for t in pattern_types]}

        rows = await self._select("list", user_id, **query)
        if rows is None:
            return []
        patterns = [pattern_from_row(r) for r in rows]
        self._cache_put(key, patterns)
        return patterns

    async def top_patterns(
        self,
        user_id: str,
        pattern_type: PatternType = PatternType.SUCCESSFUL_POST,
        limit: int = 3,
    ) -> List[UserPattern]:
        rows = await self._select(
            "top",
            user_id,
            where={"user_id": user_id, "pattern_type": pattern_type.value},
            order_by="confidence_score",
            descending=True,
            limit=limit,
        )
        return [pattern_from_row(r) for r in rows or []]

    async def find_existing(self, user_id: str, pattern_data: PatternData) -> Optional[UserPattern]:
        """
        Successful-post pattern with the same purpose, format and tone.

        Raises:
            PatternStoreError: Including on timeout, so a slow backend is never
                mistaken for "no match"
        """
        rows = await self._select(
            "find_existing",
            user_id,
            degrade=False,
            where={"user_id": user_id, "pattern_type": PatternType.SUCCESSFUL_POST.value},
            order_by="confidence_score",
            descending=True,
        )
        for row in rows:
            data = row.get("pattern_data") or {}
            if (
                data.get("purpose") == pattern_data.purpose
                and data.get("format") == pattern_data.format
                and data.get("tone") == pattern_data.tone
            ):
                return pattern_from_row(row)
        return None

    async def get(self, pattern_id: str) -> Optional[UserPattern]:
        rows = await self._select("get", None, where={"id": pattern_id}, limit=1)
        return pattern_from_row(rows[0]) if rows else None

    async def get_many(self, pattern_ids: Sequence[str]) -> List[UserPattern]:
        if not pattern_ids:
            return []
        rows = await self._select("get_many", None, where_in={"id": list(pattern_ids)})
        return [pattern_from_row(r) for r in rows or []]

    async def ping(self) -> bool:
        await self._bounded("ping", None, self._backend.select(TABLE, limit=1))
        return True

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create(self, pattern: UserPattern) -> UserPattern:
        row = await self._bounded(
            "create", pattern.user_id, self._backend.insert(TABLE, pattern_to_row(pattern))
        )

        self.invalidate_user(pattern.user_id)
        return pattern_from_row(row)

    async def update(self, pattern: UserPattern) -> UserPattern:
        values = pattern_to_row(pattern)
        values.pop("id")
        row = await self._bounded(
            "update", pattern.user_id, self._backend.update(TABLE, pattern.id, values)
        )

        if row is None:
            raise PatternStoreError(
                f"Pattern {pattern.id} not found", user_id=pattern.user_id, operation="update"
            )

        self.invalidate_user(pattern.user_id)
        return pattern_from_row(row)


__all__ = ["PatternStore", "pattern_to_row", "pattern_from_row"]
