"""
Configuration Management System
================================
Environment-driven configuration with type-safe validation through
pydantic-settings. Every section has working defaults so the broker boots
offline (in-memory persistence, deterministic embeddings, no Redis).

Architecture: one BaseSettings class per concern, composed into Settings
"""

from functools import lru_cache
from typing import Dict, Literal, Optional
from urllib.parse import urlparse, urlunparse

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL configuration. Unset URL selects the in-memory backend."""

    url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    pool_size: int = Field(default=10, ge=1, le=50, alias="DB_POOL_SIZE")
    max_overflow: int = Field(default=20, ge=0, le=100, alias="DB_MAX_OVERFLOW")
    pool_timeout: int = Field(default=30, ge=1, le=120, alias="DB_POOL_TIMEOUT")
    pool_recycle: int = Field(default=3600, ge=300, alias="DB_POOL_RECYCLE")
    echo_sql: bool = Field(default=False, alias="DB_ECHO_SQL")

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @property
    def host(self) -> str:
        return urlparse(self.url or "").hostname or ""

    @property
    def database(self) -> str:
        return urlparse(self.url or "").path.lstrip("/")

    @property
    def async_url(self) -> str:
        parsed = urlparse(self.url or "")
        return urlunparse(parsed._replace(scheme="postgresql+asyncpg"))


class RedisSettings(BaseSettings):
    """Redis configuration for the shared (L2) cache tier."""

    url: Optional[str] = Field(default=None, alias="REDIS_URL")
    max_connections: int = Field(default=50, ge=1, le=200, alias="REDIS_MAX_CONNECTIONS")
    socket_timeout: int = Field(default=5, ge=1, le=30, alias="REDIS_SOCKET_TIMEOUT")
    socket_connect_timeout: int = Field(
        default=5, ge=1, le=30, alias="REDIS_SOCKET_CONNECT_TIMEOUT"
    )
    key_prefix: str = Field(default="broker:", alias="REDIS_KEY_PREFIX")

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    @property
    def enabled(self) -> bool:
        return bool(self.url)


class EmbeddingSettings(BaseSettings):
    """Embedding strategy selection."""

    provider: Literal["deterministic", "openai"] = Field(default="deterministic")
    openai_api_key: Optional[SecretStr] = Field(default=None)
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    model: str = Field(default="text-embedding-ada-002")
    dimension: int = Field(default=1536, ge=8, le=4096)
    memo_size: int = Field(default=1000, ge=10)
    request_timeout: float = Field(default=10.0, ge=1.0, le=60.0)
    max_retries: int = Field(default=3, ge=1, le=10)

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_", case_sensitive=False, extra="ignore"
    )


class CacheSettings(BaseSettings):
    """Multi-tier response cache configuration (TTLs in seconds)."""

    l1_ttl: int = Field(default=300, ge=1)
    l2_ttl: int = Field(default=86400, ge=1)
    l3_ttl: int = Field(default=604800, ge=1)
    l1_max_entries: int = Field(default=1000, ge=10)
    layer_timeout_seconds: float = Field(default=3.0, ge=0.1, le=30.0)
    sweep_interval_seconds: int = Field(default=300, ge=10)
    key_prefix: str = Field(default="content:")

    model_config = SettingsConfigDict(env_prefix="CACHE_", case_sensitive=False, extra="ignore")


class PatternSettings(BaseSettings):
    """Pattern learning thresholds and caching."""

    similarity_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    max_results: int = Field(default=10, ge=1, le=100)
    engagement_threshold: int = Field(default=500, ge=0)
    min_stored_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    pattern_cache_ttl_seconds: int = Field(default=60, ge=1)
    pattern_cache_max_entries: int = Field(default=100, ge=1)
    query_timeout_seconds: float = Field(default=5.0, ge=0.1, le=30.0)
    embedding_sweep_interval_seconds: int = Field(default=1800, ge=10)
    pattern_sweep_interval_seconds: int = Field(default=900, ge=10)

    model_config = SettingsConfigDict(env_prefix="PATTERN_", case_sensitive=False, extra="ignore")


class GatewaySettings(BaseSettings):
    """Provider routing and cost accounting."""

    default_provider: Literal["openai", "anthropic"] = Field(default="openai")
    openai_model: str = Field(default="gpt-4-turbo")
    anthropic_model: str = Field(default="claude-3-sonnet")
    # USD per 1K tokens, blended input/output estimate per model family
    model_pricing: Dict[str, Dict[str, float]] = Field(
        default={
            "gpt-4-turbo": {"input": 0.01, "output": 0.03},
            "gpt-4": {"input": 0.03, "output": 0.06},
            "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
            "claude-3-opus": {"input": 0.015, "output": 0.075},
            "claude-3-sonnet": {"input": 0.003, "output": 0.015},
            "claude-3-haiku": {"input": 0.00025, "output": 0.00125},
        }
    )
    cost_alert_threshold: float = Field(default=10.0, ge=0.0)

    model_config = SettingsConfigDict(env_prefix="GATEWAY_", case_sensitive=False, extra="ignore")


class MonitoringSettings(BaseSettings):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")
    enable_prometheus: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="MONITORING_", case_sensitive=False, extra="ignore"
    )


class Settings(BaseSettings):
    """
    Master configuration.

    Composes the per-concern sections; nested values can be overridden with
    the ``__`` delimiter (e.g. ``CACHE__L1_TTL``) in addition to each section's
    own prefix.
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    debug: bool = Field(default=False, alias="DEBUG")

    app_name: str = Field(default="Content Broker")
    app_version: str = Field(default="1.0.0")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    patterns: PatternSettings = Field(default_factory=PatternSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    cors_origins: list[str] = Field(default=["http://localhost:3000"])

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("debug")
    @classmethod
    def validate_debug_mode(cls, v: bool, info) -> bool:
        """Ensure debug mode is disabled in production."""
        if info.data.get("environment") == "production" and v:
            raise ValueError("Debug mode must be disabled in production")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Process-wide settings instance.

    Returns:
        Settings: Validated settings, built once per process
    """
    return Settings()


__all__ = [
    "Settings",
    "DatabaseSettings",
    "RedisSettings",
    "EmbeddingSettings",
    "CacheSettings",
    "PatternSettings",
    "GatewaySettings",
    "MonitoringSettings",
    "get_settings",
]
