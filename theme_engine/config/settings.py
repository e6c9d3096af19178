"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the theme-engine application.

    All settings can be overridden via environment variables.
    Component-specific settings (embedding, LLM, clustering, ...) live in
    their own config classes with dedicated prefixes; this class holds the
    process-wide knobs shared by every component.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # Optional long-lived embedding cache shared across runs
    redis_url: RedisDsn | None = Field(
        default=None,
        description="Redis URL for the cross-run embedding cache (disabled when unset)",
    )

    # Metrics
    metrics_enabled: bool = False
    metrics_port: int = Field(default=8000, ge=1, le=65535)

    # Run defaults
    default_purpose: str | None = Field(
        default=None,
        description="Purpose preset applied when a request does not name one",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def redis_cache_configured(self) -> bool:
        """Check if the cross-run Redis embedding cache is configured."""
        return self.redis_url is not None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
