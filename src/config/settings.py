# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === LLM PROVIDER ===
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_analysis_temperature: float = 0.2
    llm_extraction_temperature: float = 0.1
    llm_extraction_max_tokens: int = 4000
    llm_timeout_s: float = 60.0

    openai_api_key: str = ""
    openai_base_url: str = ""

    # === Cache ===
    cache_enabled: bool = True
    cache_backend: Literal["sqlite", "json", "redis"] = "sqlite"
    cache_root: Path = Path("~/.medcache")
    cache_redis_url: str = ""
    cache_ttl_days: int = 365

    # === Consultation history ===
    history_backend: Literal["sqlite", "jsonl"] = "sqlite"

    # === Medication enrichment ===
    enrichment_enabled: bool = True
    extraction_enabled: bool = True

    # === Store retry ===
    store_retry_max_attempts: int = 3
    store_retry_delay_s: float = 1.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("store_retry_max_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:  # noqa: N805
        """At least one attempt is always made."""
        if v < 1:
            raise ValueError("store_retry_max_attempts must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.cache_ttl_days < 1:
            errors.append("CACHE_TTL_DAYS must be >= 1")

        if self.llm_timeout_s <= 0:
            errors.append("LLM_TIMEOUT_S must be > 0")

        if self.store_retry_delay_s < 0:
            errors.append("STORE_RETRY_DELAY_S must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def database_path(self) -> Path:
        """SQLite file shared by the cache, history and catalog stores."""
        return Path(self.cache_root).expanduser() / "medcache.db"

    @property
    def history_path(self) -> Path:
        """JSON Lines file used by the jsonl history backend."""
        return Path(self.cache_root).expanduser() / "consultation_history.jsonl"


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-call config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
