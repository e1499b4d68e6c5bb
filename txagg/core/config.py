from __future__ import annotations

from functools import lru_cache
from typing import Dict, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    This uses pydantic-settings so that we get type validation and defaults.
    Settings are loaded from environment variables with optional .env file override.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: affects logging and which sources are registered."""

    DEBUG: bool = True
    """Enable debug mode: verbose logging and development features."""

    SERVICE_NAME: str = "Transaction Aggregation API"
    """Human-readable service name reported by the health endpoint."""

    # Auth
    API_KEY: Optional[str] = None
    """Expected value of the X-Api-Key header. If None, auth is disabled."""

    # Cache
    CACHE_BACKEND: Literal["memory", "redis"] = "memory"
    """Cache backing store: in-process dict or Redis."""

    REDIS_URL: Optional[str] = None
    """Redis connection URL, required when CACHE_BACKEND is 'redis'."""

    CACHE_TTL_MINUTES: int = 10
    """Lifetime of a cached aggregation result."""

    # Resilience
    SOURCE_TIMEOUT_SECONDS: float = 5.0
    """Upper bound for a single attempt against one source."""

    SOURCE_MAX_RETRIES: int = 3
    """Additional attempts after a transient failure."""

    SOURCE_RETRY_BASE: float = 2.0
    """Exponential backoff base; retry n waits base**n seconds."""

    BREAKER_FAILURE_THRESHOLD: int = 5
    """Consecutive failed calls before a source's circuit opens."""

    BREAKER_COOLDOWN_SECONDS: float = 30.0
    """How long an open circuit rejects calls before admitting a probe."""

    # Sources
    MOCK_SOURCES_ENABLED: bool = True
    """Register the built-in BankA/BankB/BankC mock sources."""

    HTTP_SOURCES: Dict[str, str] = {}
    """Upstream HTTP sources as a JSON object of name -> base URL."""

    HTTP_SOURCE_API_KEY: Optional[str] = None
    """Bearer token sent to HTTP sources, if they require one."""

    # Model config
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()
