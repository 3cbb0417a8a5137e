"""
Redis Client for the Shared Cache Tier
=======================================

Async Redis operations for the L2 response cache:
- JSON serialization of cached responses
- Key namespacing with a configurable prefix
- Pattern-based invalidation
- Circuit breaker so an unavailable Redis degrades to cache misses

Architecture: connection pool owned by the client instance, wired by the
composition root.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from loguru import logger
from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError

from config.settings import RedisSettings
from core.exceptions import CacheError, InfrastructureError


class RedisConnectionPool:
    """
    Connection pool with circuit breaker.

    After three consecutive connection failures the breaker opens; calls fail
    fast until an exponentially growing backoff window elapses.
    """

    def __init__(self, settings: RedisSettings):
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._circuit_breaker_open = False
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._backoff_multiplier = 1
        self._max_backoff = 300

    @property
    def circuit_open(self) -> bool:
        return self._circuit_breaker_open

    async def initialize(self) -> None:
        """Create the pool and verify connectivity."""
        if not self._settings.url:
            raise InfrastructureError("Redis URL not configured")

        try:
            self._pool = ConnectionPool.from_url(
                self._settings.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self._settings.max_connections,
                socket_timeout=self._settings.socket_timeout,
                socket_connect_timeout=self._settings.socket_connect_timeout,
                socket_keepalive=True,
                health_check_interval=30,
            )

            async with self.get_connection() as conn:
                await conn.ping()

            logger.info("Redis connection pool initialized successfully")
            self._circuit_breaker_open = False
            self._failure_count = 0

        except CacheError as e:
            logger.error(f"Failed to initialize Redis connection pool: {e}")
            raise InfrastructureError(f"Redis initialization failed: {e}", cause=e) from e

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[Redis, None]:
        """
        Acquire a Redis connection, honouring the circuit breaker.

        Raises:
            CacheError: When the breaker is open or the connection fails
        """
        if self._circuit_breaker_open:
            now = asyncio.get_running_loop().time()
            elapsed = now - (self._last_failure_time or 0)
            backoff_time = min(60 * self._backoff_multiplier, self._max_backoff)

            if elapsed < backoff_time:
                raise CacheError(
                    f"Circuit breaker open: Redis unavailable. "
                    f"Retry in {backoff_time - elapsed:.1f}s"
                )

            logger.info(f"Attempting to close Redis circuit breaker (backoff: {backoff_time}s)")
            self._circuit_breaker_open = False
            self._failure_count = 0

        if self._pool is None:
            raise CacheError("Redis connection pool not initialized")

        connection = Redis(connection_pool=self._pool)
        try:
            yield connection
            self._failure_count = 0
            self._backoff_multiplier = 1

        except (ConnectionError, TimeoutError) as e:
            self._failure_count += 1
            self._last_failure_time = asyncio.get_running_loop().time()

            if self._failure_count >= 3:
                self._circuit_breaker_open = True
                self._backoff_multiplier = min(self._backoff_multiplier * 2, 16)
                logger.error(
                    f"Circuit breaker opened after {self._failure_count} failures. "
                    f"Backoff multiplier: {self._backoff_multiplier}x"
                )

            raise CacheError(f"Redis connection error: {e}", cause=e) from e

        finally:
            await connection.aclose()

    async def close(self) -> None:
        if self._pool:
            await self._pool.disconnect()
            self._pool = None
            logger.info("Redis connection pool closed")


class RedisClient:
    """
    JSON key-value client used as the shared cache tier.

    All keys are namespaced with ``settings.key_prefix``. Read failures return
    ``None``; write failures raise ``CacheError`` for the cache layer to log.
    """

    def __init__(self, settings: Optional[RedisSettings] = None):
        self._settings = settings or RedisSettings()
        self._pool = RedisConnectionPool(self._settings)
        self._prefix = self._settings.key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def initialize(self) -> None:
        await self._pool.initialize()

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Store a JSON-serializable value.

        Args:
            key: Storage key (unprefixed)
            value: JSON-serializable value
            ttl: Time-to-live in seconds

        Returns:
            True if stored successfully
        """
        try:
            serialized = json.dumps(value)
            async with self._pool.get_connection() as conn:
                await conn.set(self._key(key), serialized, ex=ttl)
            return True
        except (CacheError, TypeError, ValueError) as e:
            logger.error(f"Failed to set key {key}: {e}")
            raise CacheError(f"Set operation failed: {e}", cause=e) from e

    async def get(self, key: str) -> Optional[Any]:
        try:
            async with self._pool.get_connection() as conn:
                data = await conn.get(self._key(key))
        except CacheError as e:
            logger.warning(f"Failed to get key {key}: {e}")
            return None

        if data is None:
            return None

        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt cache payload for {key}: {e}")
            return None

    async def delete(self, key: str) -> bool:
        try:
            async with self._pool.get_connection() as conn:
                result = await conn.delete(self._key(key))
            return bool(result)
        except CacheError as e:
            logger.error(f"Failed to delete key {key}: {e}")
            return False

    async def flush_cache(self, pattern: str = "*") -> int:
        """
        Delete keys matching ``pattern`` within this client's namespace.

        Returns:
            Number of keys deleted
        """
        deleted = 0
        try:
            async with self._pool.get_connection() as conn:
                async for raw_key in conn.scan_iter(match=self._key(pattern), count=500):
                    deleted += await conn.delete(raw_key)
        except CacheError as e:
            logger.error(f"Failed to flush cache: {e}")
            raise

        if deleted:
            logger.warning(f"Flushed {deleted} keys matching '{pattern}'")
        return deleted

    async def ping(self) -> bool:
        try:
            async with self._pool.get_connection() as conn:
                await conn.ping()
            return True
        except CacheError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self._pool.close()


__all__ = ["RedisClient", "RedisConnectionPool"]
