"""Configuration for the LLM client."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Tuple

from .exceptions import ConfigError

if TYPE_CHECKING:
    from ..settings import Settings


DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
STANDARD_TEMPERATURE = 0.7

# Models that accept reasoning_effort and reject a custom temperature
REASONING_MODELS = (
    "gpt-5",
    "gpt-5-mini",
    "gpt-5-nano",
    "o1",
    "o1-mini",
    "o3",
    "o3-mini",
    "o4-mini",
)

REASONING_EFFORTS = ("minimal", "low", "medium", "high")


def is_reasoning_model(model: str) -> bool:
    """Check whether a model takes reasoning_effort instead of temperature."""
    return model in REASONING_MODELS


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    initial_delay: float = 1.0  # Initial delay in seconds
    max_delay: float = 30.0  # Maximum delay in seconds
    backoff_multiplier: float = 2.0
    jitter: bool = False  # Multiply delays by a random 0.5-1.5 factor

    # Which status codes to retry
    retryable_status_codes: Tuple[int, ...] = (408, 429, 500, 502, 503, 504)


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for client-side request pacing."""

    min_interval: float = 1.0  # Seconds between consecutive requests
    requests_per_window: int = 60
    window_seconds: float = 60.0


@dataclass(frozen=True)
class PoolConfig:
    """Connection pool limits for the shared HTTP client."""

    max_connections: int = 100
    max_keepalive_connections: int = 10
    keepalive_expiry: float = 90.0


@dataclass(frozen=True)
class TimeoutConfig:
    """Configuration for request timeouts."""

    connect_timeout: float = 10.0  # Time to establish connection
    read_timeout: float = 60.0  # Time to receive response


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for the response cache."""

    enabled: bool = True
    ttl_seconds: float = 24 * 60 * 60
    max_size_mb: float = 100
    strategy: str = "lru"
    directory: Optional[Path] = None
    cleanup_interval: float = 60.0

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)


@dataclass
class ClientConfig:
    """Complete configuration for :class:`~termai.client.LLMClient`."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    organization: Optional[str] = None

    # Request defaults
    model: str = DEFAULT_MODEL
    temperature: float = STANDARD_TEMPERATURE
    max_tokens: int = 4096
    top_p: float = 0.0
    n: int = 1
    stop: Tuple[str, ...] = ()
    reasoning_effort: str = ""

    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    def validate(self) -> None:
        """Raise ConfigError if the client cannot be built from this config."""
        if not self.api_key:
            raise ConfigError("API key is required (set OPENAI_API_KEY)")
        if not self.base_url:
            raise ConfigError("Base URL is required")
        if not self.model:
            raise ConfigError("Model is required")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ClientConfig":
        """Build a client config from application settings."""
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            organization=settings.openai_org_id,
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            top_p=settings.top_p,
            n=settings.n,
            stop=tuple(settings.stop_list),
            reasoning_effort=settings.reasoning_effort,
            timeout=TimeoutConfig(read_timeout=float(settings.request_timeout)),
            cache=CacheConfig(
                enabled=settings.cache_enabled,
                ttl_seconds=float(settings.cache_ttl_seconds),
                max_size_mb=settings.cache_max_size_mb,
                strategy=settings.cache_strategy,
                directory=settings.cache_path,
            ),
        )
