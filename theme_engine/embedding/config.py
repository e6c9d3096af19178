"""
Embedding service configuration.

Provides Pydantic settings for embedding generation including provider and
model selection, concurrency, timeouts, retries and caching.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmbeddingConfig(BaseSettings):
    """
    Configuration for the embedding generation service.

    Settings can be overridden via environment variables prefixed with EMBEDDING_.
    """

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider selection
    provider: Literal["transformer", "openai"] = Field(
        default="transformer",
        description="Embedding backend: local HuggingFace model or OpenAI API",
    )
    model_name: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="HuggingFace model name for local transformer embeddings",
    )
    openai_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model name",
    )
    max_sequence_length: int = Field(
        default=256,
        ge=16,
        le=8192,
        description="Maximum token sequence length for the local model",
    )
    device: Literal["auto", "cpu", "cuda", "mps"] = Field(
        default="auto",
        description="Device for model inference (auto detects best available)",
    )
    use_fp16: bool = Field(
        default=True,
        description="Use FP16 (half precision) for GPU acceleration",
    )

    # Dimension guard
    max_expected_dimension: int = Field(
        default=4096,
        ge=2,
        description="Dimensions above this are accepted but logged as unusual",
    )

    # Concurrency, timeouts and retries
    max_concurrency: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Maximum embedding calls in flight",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Timeout for a single embedding call",
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries after the first failed attempt",
    )
    backoff_base_delay: float = Field(default=0.5, ge=0.0, le=30.0)
    backoff_max_delay: float = Field(default=8.0, ge=0.0, le=300.0)

    # Caching configuration
    cache_enabled: bool = Field(
        default=True,
        description="Enable the in-memory embedding cache",
    )
    cache_max_entries: int = Field(
        default=10_000,
        ge=1,
        description="Maximum cached embeddings before LRU eviction",
    )
    cache_ttl_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Optional time-to-live for in-memory entries (None = no expiry)",
    )
    redis_cache_ttl_hours: int = Field(
        default=168,
        ge=1,
        description="TTL in hours for the cross-run Redis cache (default: 1 week)",
    )
    cache_key_prefix: str = Field(
        default="theme_emb:",
        description="Redis key prefix for cached embeddings",
    )

    @property
    def active_model(self) -> str:
        """Model identifier for the selected provider (part of cache keys)."""
        return self.openai_model if self.provider == "openai" else self.model_name

    @property
    def redis_cache_ttl_seconds(self) -> int:
        """Get Redis cache TTL in seconds."""
        return self.redis_cache_ttl_hours * 3600
