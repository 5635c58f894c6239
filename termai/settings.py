"""
Application settings using Pydantic Settings.

Loads configuration from environment variables and .env file. The CLI
builds a :class:`Settings` once and hands it to the client through
:meth:`termai.llm.config.ClientConfig.from_settings`.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .llm.config import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL,
    REASONING_EFFORTS,
    STANDARD_TEMPERATURE,
    is_reasoning_model,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # API
    # ==========================================================================

    openai_api_key: str = Field(
        default="",
        description="API key for the chat-completions service"
    )

    openai_base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Base URL of an OpenAI-compatible API"
    )

    openai_org_id: Optional[str] = Field(
        default=None,
        description="Optional organization ID sent with each request"
    )

    request_timeout: int = Field(
        default=60,
        description="Request timeout in seconds"
    )

    # ==========================================================================
    # Generation Defaults
    # ==========================================================================

    model: str = Field(
        default=DEFAULT_MODEL,
        description="Default model identifier"
    )

    temperature: float = Field(
        default=STANDARD_TEMPERATURE,
        description="Sampling temperature (0-2)"
    )

    max_tokens: int = Field(
        default=4096,
        description="Maximum completion tokens"
    )

    top_p: float = Field(
        default=0.0,
        description="Nucleus sampling (0 = service default)"
    )

    n: int = Field(
        default=1,
        description="Number of choices to request"
    )

    stop: str = Field(
        default="",
        description="Comma-separated stop sequences"
    )

    reasoning_effort: str = Field(
        default="",
        description="Reasoning effort for reasoning models: minimal, low, medium or high"
    )

    @property
    def stop_list(self) -> List[str]:
        """Get stop sequences as a list."""
        return [s for s in self.stop.split(",") if s]

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0 <= v <= 2:
            raise ValueError(f"Invalid temperature: {v}. Must be between 0 and 2")
        return v

    @field_validator("top_p")
    @classmethod
    def validate_top_p(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError(f"Invalid top_p: {v}. Must be between 0 and 1")
        return v

    @field_validator("max_tokens", "n", "request_timeout")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Must be positive, got {v}")
        return v

    @field_validator("reasoning_effort")
    @classmethod
    def validate_reasoning_effort(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower and v_lower not in REASONING_EFFORTS:
            raise ValueError(
                f"Invalid reasoning effort: {v}. Must be one of {set(REASONING_EFFORTS)}"
            )
        return v_lower

    @model_validator(mode="after")
    def adjust_for_model(self) -> "Settings":
        """Reasoning models take a fixed temperature and a reasoning effort."""
        if is_reasoning_model(self.model):
            self.temperature = 1.0
            if not self.reasoning_effort:
                self.reasoning_effort = "low"
        else:
            if self.temperature == 1.0:
                self.temperature = STANDARD_TEMPERATURE
            if self.reasoning_effort:
                logger.debug(f"Ignoring reasoning_effort for non-reasoning model {self.model}")
                self.reasoning_effort = ""
        return self

    # ==========================================================================
    # Cache
    # ==========================================================================

    cache_enabled: bool = Field(
        default=True,
        description="Cache chat responses"
    )

    cache_ttl_seconds: int = Field(
        default=24 * 60 * 60,
        description="Default cache entry lifetime in seconds"
    )

    cache_max_size_mb: int = Field(
        default=100,
        description="Cache capacity in megabytes"
    )

    cache_strategy: str = Field(
        default="lru",
        description="Eviction strategy: lru, fifo or lfu (only lru is implemented)"
    )

    cache_dir: str = Field(
        default="",
        description="Directory for the cache snapshot (empty disables persistence)"
    )

    @field_validator("cache_ttl_seconds", "cache_max_size_mb")
    @classmethod
    def validate_cache_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Must be positive, got {v}")
        return v

    @field_validator("cache_strategy")
    @classmethod
    def validate_cache_strategy(cls, v: str) -> str:
        valid_strategies = {"lru", "fifo", "lfu"}
        v_lower = v.lower()
        if v_lower not in valid_strategies:
            raise ValueError(f"Invalid cache strategy: {v}. Must be one of {valid_strategies}")
        return v_lower

    @property
    def cache_path(self) -> Optional[Path]:
        """Get the cache directory as an expanded path, or None."""
        if not self.cache_dir:
            return None
        return Path(self.cache_dir).expanduser()

    # ==========================================================================
    # Logging
    # ==========================================================================

    log_level: str = Field(
        default="WARNING",
        description="Log level"
    )

    log_format: str = Field(
        default="text",
        description="Log format: text or json"
    )

    log_file: str = Field(
        default="",
        description="Optional log file path (JSON lines)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        valid_formats = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower

    @property
    def log_file_path(self) -> Optional[Path]:
        return Path(self.log_file).expanduser() if self.log_file else None

    # ==========================================================================
    # Computed Properties
    # ==========================================================================

    @property
    def has_api_key(self) -> bool:
        return self.openai_api_key != ""

    def to_safe_dict(self) -> dict:
        """Return settings as dict with secrets redacted."""
        data = {
            "openai_base_url": self.openai_base_url,
            "openai_org_id": self.openai_org_id,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "n": self.n,
            "stop": self.stop_list,
            "reasoning_effort": self.reasoning_effort,
            "request_timeout": self.request_timeout,
            "cache_enabled": self.cache_enabled,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "cache_max_size_mb": self.cache_max_size_mb,
            "cache_strategy": self.cache_strategy,
            "cache_dir": str(self.cache_path) if self.cache_path else None,
            "log_level": self.log_level,
            "log_format": self.log_format,
        }

        # Redact secrets
        if self.openai_api_key:
            key = self.openai_api_key
            data["openai_api_key"] = f"{key[:8]}...{key[-4:]}" if len(key) > 12 else "***"
        else:
            data["openai_api_key"] = "(not set)"

        return data


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function to reload settings (clears cache)
def reload_settings() -> Settings:
    """Reload settings from environment."""
    get_settings.cache_clear()
    return get_settings()
