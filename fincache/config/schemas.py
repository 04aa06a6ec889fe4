"""
fincache — Configuration Schemas

Defines typed configuration models using Pydantic for validation and type safety.
All configuration is defined here and validated at startup.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class StoreBackend(str, Enum):
    """Supported durable stores for cross-session persistence."""

    NONE = "none"
    MEMORY = "memory"
    JSON = "json"
    REDIS = "redis"  # Requires redis client


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheConfig(BaseModel):
    """Cache configuration."""

    namespace: str = Field(
        default="fincache",
        min_length=1,
        pattern=r"^[^:]+$",
        description="Prefix for persisted keys (per-user scope), without ':'",
    )
    default_ttl_seconds: float = Field(default=300.0, gt=0, description="TTL used when resolve() gets none")
    stale_ratio: float = Field(
        default=0.5,
        gt=0,
        le=1,
        description="Default staleness threshold as a fraction of the TTL",
    )
    max_size: int = Field(default=1000, ge=1, description="Max in-memory entries before eviction")

    store: StoreBackend = Field(default=StoreBackend.NONE, description="Durable store backend")
    store_path: str | None = Field(
        default="./data/cache", validate_default=True, description="Directory for the json store"
    )

    # Redis-specific settings (only used when store=redis)
    redis_url: str | None = Field(default=None, validate_default=True, description="Redis connection URL")
    redis_socket_timeout: float = Field(default=5.0, gt=0, description="Redis socket timeout in seconds")
    redis_expiry_grace_seconds: int = Field(
        default=86400,
        ge=0,
        description="Extra lifetime of persisted entries past their TTL (kept as fetch-failure fallback)",
    )

    @field_validator("store_path")
    @classmethod
    def validate_store_path(cls, v: str | None, info: Any) -> str | None:
        """Ensure store_path is provided when store is json."""
        store = info.data.get("store")
        if store == StoreBackend.JSON and not v:
            raise ValueError("store_path is required when cache store is 'json'")
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str | None, info: Any) -> str | None:
        """Ensure redis_url is provided when store is redis."""
        store = info.data.get("store")
        if store == StoreBackend.REDIS and not v:
            raise ValueError("redis_url is required when cache store is 'redis'")
        return v

    @property
    def default_stale_seconds(self) -> float:
        return self.default_ttl_seconds * self.stale_ratio


class ObservabilityConfig(BaseModel):
    """Observability and logging configuration."""

    enable_metrics: bool = Field(default=True, description="Enable in-process metrics collection")
    json_logs: bool = Field(default=False, description="Emit structured JSON log lines")


class FinCacheConfig(BaseModel):
    """Root configuration for fincache."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    cache: CacheConfig = Field(default_factory=CacheConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
