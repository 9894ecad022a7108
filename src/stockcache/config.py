"""
Cache Engine Configuration - Settings and Environment Management
Centralized configuration for the stockcache engine.

This module provides:
- Environment-based configuration (STOCKCACHE_* variables, .env files)
- Type-safe settings with validation
- The default set of named cache stores
- Cleanup scheduling and memory governance parameters
"""
from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


StrategyName = Literal["lru", "lfu", "ttl", "adaptive"]


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Console log output formats."""
    JSON = "json"
    COLORED = "colored"
    STANDARD = "standard"


class StoreSettings(BaseModel):
    """
    Configuration for a single named cache store.

    Unset limits fall back to ``CacheSettings.default_max_size`` and
    ``CacheSettings.default_ttl_ms``.
    """

    name: str
    max_size: Optional[int] = None
    ttl_ms: Optional[int] = None
    strategy: StrategyName = "lru"

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Store name must not be empty")
        return v

    @field_validator("max_size", "ttl_ms")
    @classmethod
    def validate_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError("Store limits must be at least 1")
        return v

    @field_validator("strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, v):
        if isinstance(v, Enum):
            v = v.value
        if isinstance(v, str):
            return v.strip().lower()
        return v


def default_store_settings() -> List[StoreSettings]:
    """Stores registered by default, one per kind of client data."""
    return [
        # Short TTL, high frequency access
        StoreSettings(name="dashboard", max_size=50, ttl_ms=60000, strategy="lru"),
        StoreSettings(name="leaderboard", max_size=20, ttl_ms=300000, strategy="ttl"),
        # Long TTL, low frequency changes
        StoreSettings(name="users", max_size=200, ttl_ms=900000, strategy="lfu"),
        StoreSettings(name="api", max_size=100, ttl_ms=180000, strategy="adaptive"),
        StoreSettings(name="static", max_size=30, ttl_ms=3600000, strategy="ttl"),
    ]


class CacheSettings(BaseSettings):
    """Main cache engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOCKCACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Memory and capacity
    global_memory_budget: int = Field(50 * 1024 * 1024, description="Byte ceiling shared by all stores")
    default_ttl_ms: int = 300000  # 5 minutes
    default_max_size: int = 100

    # Performance recorder
    performance_buffer_size: int = 1000
    metrics_retention_ms: int = 3600000  # 1 hour

    # Cleanup intervals
    cache_cleanup_interval_ms: int = 60000  # 1 minute
    memory_check_interval_ms: int = 30000  # 30 seconds
    performance_cleanup_interval_ms: int = 300000  # 5 minutes

    # Memory governance
    memory_cleanup_target_ratio: float = 0.2
    memory_cleanup_store_fraction: float = 0.25
    memory_overflow_evict_fraction: float = 0.1

    # Aggressive cleanup on host visibility loss
    volatile_store: str = "api"
    trimmed_store: str = "dashboard"
    trimmed_store_max_age_ms: int = 30000

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: LogFormat = LogFormat.COLORED

    stores: List[StoreSettings] = Field(default_factory=default_store_settings)

    @field_validator(
        "global_memory_budget",
        "default_ttl_ms",
        "default_max_size",
        "performance_buffer_size",
        "metrics_retention_ms",
        "cache_cleanup_interval_ms",
        "memory_check_interval_ms",
        "performance_cleanup_interval_ms",
        "trimmed_store_max_age_ms",
    )
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator(
        "memory_cleanup_target_ratio",
        "memory_cleanup_store_fraction",
        "memory_overflow_evict_fraction",
    )
    @classmethod
    def validate_fraction(cls, v):
        if not 0 < v <= 1:
            raise ValueError("Fraction must be in the range (0, 1]")
        return v

    @field_validator("stores")
    @classmethod
    def validate_unique_store_names(cls, v):
        names = [store.name for store in v]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate store names: {', '.join(duplicates)}")
        return v


@lru_cache()
def get_settings() -> CacheSettings:
    """
    Get cache engine settings.

    The instance is built once from the environment and reused.
    """
    return CacheSettings()


def get_config_summary(settings: CacheSettings = None) -> Dict[str, Any]:
    """
    Get a summary of the current configuration.

    Returns:
        Plain dictionary suitable for logging or diagnostics
    """
    settings = settings or get_settings()

    return {
        "global_memory_budget": settings.global_memory_budget,
        "performance_buffer_size": settings.performance_buffer_size,
        "metrics_retention_ms": settings.metrics_retention_ms,
        "intervals_ms": {
            "cache_cleanup": settings.cache_cleanup_interval_ms,
            "memory_check": settings.memory_check_interval_ms,
            "performance_cleanup": settings.performance_cleanup_interval_ms,
        },
        "stores": {
            store.name: {
                "max_size": store.max_size or settings.default_max_size,
                "ttl_ms": store.ttl_ms or settings.default_ttl_ms,
                "strategy": store.strategy,
            }
            for store in settings.stores
        },
        "log_level": settings.log_level.value,
    }
