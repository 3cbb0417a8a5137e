"""
Database Infrastructure: PostgreSQL for Patterns and the Durable Cache
======================================================================
Only used when DATABASE_URL is set; otherwise the broker runs on the
in-memory backend.

- Pooled asyncpg engine, broker tables created on first start
- Row-dict helpers consumed by SQLBackend
- Connectivity check for /system/health
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import DatabaseSettings
from core.exceptions import DatabaseConnectionError
from infrastructure.schema import metadata


class DatabaseManager:
    """
    Engine and session owner for the broker tables.

    Initialized by ContainerManager at startup; SQLBackend issues every
    query through the row helpers below.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self._settings = settings or DatabaseSettings()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._is_initialized: bool = False

    async def initialize(self, create_tables: bool = True) -> None:
        """
        Initialize engine and session factory.

        Args:
            create_tables: Create broker tables if they do not exist
        """
        if self._is_initialized:
            logger.warning("Database already initialized")
            return

        if not self._settings.enabled:
            raise DatabaseConnectionError("DATABASE_URL not configured")

        try:
            self._engine = create_async_engine(
                self._settings.async_url,
                echo=self._settings.echo_sql,
                pool_size=self._settings.pool_size,
                max_overflow=self._settings.max_overflow,
                pool_timeout=self._settings.pool_timeout,
                pool_recycle=self._settings.pool_recycle,
                pool_pre_ping=True,
            )

            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            await self.health_check()

            if create_tables:
                async with self._engine.begin() as conn:
                    await conn.run_sync(metadata.create_all)

            self._is_initialized = True
            logger.info("Database initialized successfully")

        except (OperationalError, DBAPIError, OSError) as e:
            logger.error(f"Database initialization failed: {e}")
            raise DatabaseConnectionError(
                "Failed to initialize database connection",
                host=self._settings.host,
                database=self._settings.database,
                cause=e,
            ) from e

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._is_initialized = False
            logger.info("Database connections closed")

    async def health_check(self) -> bool:
        """
        Verify database connectivity.

        Returns:
            True if healthy, raises otherwise
        """
        if not self._engine:
            raise DatabaseConnectionError("Database engine not initialized")

        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except (OperationalError, DBAPIError) as e:
            logger.error(f"Database health check failed: {e}")
            raise DatabaseConnectionError("Database health check failed", cause=e) from e

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session that commits on exit and rolls back on any error.

        SQLBackend.upsert uses it directly to run select-then-write atomically.
        """
        if not self._session_factory:
            raise DatabaseConnectionError("Database not initialized")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Session error, rolled back: {e}")
            raise
        finally:
            await session.close()

    async def fetch_all(self, statement: Any) -> list[dict[str, Any]]:
        """Execute a select and return rows as dictionaries."""
        async with self.session() as session:
            result = await session.execute(statement)
            return [dict(row) for row in result.mappings().all()]

    async def fetch_one(self, statement: Any) -> Optional[dict[str, Any]]:
        async with self.session() as session:
            result = await session.execute(statement)
            row = result.mappings().first()
            return dict(row) if row else None

    async def execute(self, statement: Any) -> int:
        """Execute a write statement and return affected row count."""
        async with self.session() as session:
            result = await session.execute(statement)
            return result.rowcount or 0


__all__ = ["DatabaseManager"]
