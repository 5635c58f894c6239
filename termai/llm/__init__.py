"""
LLM request package.

Building blocks used by :class:`termai.client.LLMClient`:
- Request/response types and payload translation
- Retry with exponential backoff
- Client-side rate limiting
- Tagged error classification
"""

from .config import (
    CacheConfig,
    ClientConfig,
    PoolConfig,
    RateLimitConfig,
    RetryConfig,
    TimeoutConfig,
    is_reasoning_model,
)
from .exceptions import (
    AuthenticationError,
    CacheCapacityError,
    CacheError,
    ClientClosedError,
    ConfigError,
    ErrorKind,
    InvalidRequestError,
    InvalidResponseError,
    LLMConnectionError,
    LLMError,
    LLMTimeoutError,
    ModelNotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ServerError,
    StreamCancelledError,
    ValidationError,
)
from .rate_limiter import RateLimiter, RateLimiterStats
from .retry import RetryableOperation, RetryController, calculate_delay, with_retry
from .types import ChatOptions, ChatResponse, Message, Usage

__all__ = [
    # Config
    "ClientConfig",
    "RetryConfig",
    "RateLimitConfig",
    "PoolConfig",
    "TimeoutConfig",
    "CacheConfig",
    "is_reasoning_model",
    # Types
    "Message",
    "ChatOptions",
    "ChatResponse",
    "Usage",
    # Rate limiting
    "RateLimiter",
    "RateLimiterStats",
    # Retry
    "RetryController",
    "RetryableOperation",
    "calculate_delay",
    "with_retry",
    # Exceptions
    "ErrorKind",
    "LLMError",
    "ConfigError",
    "ValidationError",
    "AuthenticationError",
    "PermissionDeniedError",
    "ModelNotFoundError",
    "InvalidRequestError",
    "InvalidResponseError",
    "RateLimitError",
    "ServerError",
    "LLMConnectionError",
    "LLMTimeoutError",
    "CacheError",
    "CacheCapacityError",
    "StreamCancelledError",
    "ClientClosedError",
]
