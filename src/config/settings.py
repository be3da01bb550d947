# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for pipeline pacing, cache, checkpoint, LLM and
logging settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class PipelineOptions(BaseModel):
    """Read-only snapshot of the batch pacing options."""

    model_config = ConfigDict(frozen=True)

    batch_size: int = 10
    delay_between_batches_ms: int = 2000
    timeout_ms: int = 120_000


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Batch pipeline ===
    batch_size: int = 10
    delay_between_batches_ms: int = 2000
    batch_timeout_ms: int = 120_000
    max_rate_limit_retries: int = 3
    initial_rate_limit_delay_ms: int = 60_000
    max_json_parse_retries: int = 1
    max_html_chars: int = 150_000

    # === Instructions ===
    instructions_path: str = ""

    # === Cache ===
    cache_enabled: bool = True
    cache_backend: Literal["json", "sqlite", "redis"] = "json"
    cache_root: Path = Path(".wcagverify/cache")
    cache_ttl_days: float = 7
    cache_max_entries: int = 1000
    cache_redis_url: str = ""
    cache_key_includes_instruction_version: bool = True

    # === Checkpoints ===
    checkpoint_dir: Path = Path(".wcagverify/checkpoints")

    # === LLM ===
    llm_provider: Literal["anthropic", "openai"] = "anthropic"
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 8192
    llm_temperature: float = 0.0
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: str = ""
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("batch_size", "cache_max_entries")
    @classmethod
    def validate_positive(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        for name in (
            "delay_between_batches_ms",
            "initial_rate_limit_delay_ms",
            "max_rate_limit_retries",
            "max_json_parse_retries",
        ):
            if getattr(self, name) < 0:
                errors.append(f"{name.upper()} must be >= 0")

        if self.batch_timeout_ms <= 0:
            errors.append("BATCH_TIMEOUT_MS must be > 0")

        if self.cache_ttl_days <= 0:
            errors.append("CACHE_TTL_DAYS must be > 0")

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_REDIS_URL must be set when CACHE_BACKEND=redis")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    def pipeline_options(self) -> PipelineOptions:
        """Pacing options exposed read-only by the pipeline."""
        return PipelineOptions(
            batch_size=self.batch_size,
            delay_between_batches_ms=self.delay_between_batches_ms,
            timeout_ms=self.batch_timeout_ms,
        )

    @property
    def llm_api_key(self) -> str:
        """API key for the configured provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        return self.anthropic_api_key


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-scan config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
