"""Configuration for language-model access.

Provides Pydantic settings for API keys, provider and model selection,
request timeouts, retries, the per-run call budget, and circuit breaker
tuning. All settings can be overridden via LLM_* environment variables.
"""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """Configuration for the language-model client.

    Settings can be overridden via environment variables prefixed with LLM_.

    Example:
        LLM_PROVIDER=anthropic
        LLM_ANTHROPIC_API_KEY=sk-ant-...
        LLM_CALL_BUDGET=40
    """

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider and API keys
    provider: Literal["openai", "anthropic"] = Field(
        default="openai",
        description="Which vendor SDK serves completion requests",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key",
    )
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key",
    )

    # Model selection
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model for extraction, splitting and labeling",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Anthropic model for extraction, splitting and labeling",
    )
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for generation calls",
    )
    max_output_tokens: int = Field(
        default=4096,
        ge=256,
        le=32_768,
        description="Maximum tokens per completion",
    )

    # Budget and concurrency
    call_budget: int = Field(
        default=100,
        ge=0,
        description="Maximum enrichment and labeling calls per run (0 disables both)",
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum language-model calls in flight",
    )

    # Request timeout and retries
    llm_timeout: float = Field(
        default=60.0,
        ge=5.0,
        le=600.0,
        description="Timeout in seconds for a single completion call",
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries after the first failed attempt",
    )
    backoff_base_delay: float = Field(default=1.0, ge=0.0, le=30.0)
    backoff_max_delay: float = Field(default=20.0, ge=0.0, le=300.0)

    # Circuit breaker settings
    circuit_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before opening circuit",
    )
    circuit_recovery_timeout: float = Field(
        default=60.0,
        ge=1.0,
        description="Seconds before attempting recovery probe",
    )

    @property
    def active_model(self) -> str:
        """Model name for the selected provider."""
        return self.anthropic_model if self.provider == "anthropic" else self.openai_model
