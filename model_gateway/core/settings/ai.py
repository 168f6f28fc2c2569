"""AI gateway settings for retry policy, availability and provider access."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_ai_yaml_source

if TYPE_CHECKING:
    from model_gateway.infra.ai.availability import RetryPolicy


class AISettings(BaseSettings):
    """Model gateway configuration settings.

    Environment variables use AI_ prefix.
    Example: AI_RETRY_MAX_ATTEMPTS=5, AI_FAILOVER_ENABLED=true, AI_OPENAI_API_KEY=sk-...
    """

    # ===== Retry Policy =====
    retry_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum dispatch attempts per model for transient failures",
    )
    retry_base_delay: float = Field(
        default=0.5,
        ge=0.0,
        le=60.0,
        description="Base backoff delay in seconds (doubled per attempt)",
    )
    retry_max_delay: float = Field(
        default=30.0,
        ge=0.0,
        le=600.0,
        description="Upper bound for a single backoff delay in seconds",
    )
    retry_jitter: bool = Field(
        default=True,
        description="Randomize backoff delays to avoid synchronized retries",
    )

    # ===== Availability =====
    failover_enabled: bool = Field(
        default=False,
        description="Transparently retry on the next cheapest online model after a hard failure",
    )
    online_cooldown_seconds: float | None = Field(
        default=None,
        ge=0.0,
        description="Seconds before an offline model is considered online again (None = manual reset only)",
    )

    # ===== Provider Access =====
    request_timeout: float = Field(
        default=120.0,
        gt=0.0,
        description="HTTP request timeout in seconds for provider modules",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="API key for the OpenAI-compatible provider module",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for the OpenAI-compatible provider module",
    )
    groq_api_key: SecretStr | None = Field(default=None, description="API key for Groq")
    mistral_api_key: SecretStr | None = Field(default=None, description="API key for Mistral")
    deepseek_api_key: SecretStr | None = Field(default=None, description="API key for DeepSeek")
    cohere_api_key: SecretStr | None = Field(default=None, description="API key for Cohere rerank")
    jina_api_key: SecretStr | None = Field(default=None, description="API key for Jina rerank")

    # ===== Catalog =====
    catalog_path: Path | None = Field(
        default=None,
        description="Optional YAML file with additional or overriding model descriptors",
    )

    @field_validator("openai_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def to_retry_policy(self) -> RetryPolicy:
        """Build the retry policy used by the availability controller."""
        from model_gateway.infra.ai.availability import RetryPolicy

        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            jitter=self.retry_jitter,
        )

    model_config = SettingsConfigDict(
        env_prefix="AI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Customize settings source precedence: init > yaml > env > dotenv > secrets."""
        return (
            init_settings,
            create_ai_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
