"""Exception hierarchy for the LLM request pipeline.

Every error is tagged with an :class:`ErrorKind` and a ``retryable`` flag
when it is constructed, so callers classify failures by attribute instead
of by message text.
"""

from enum import Enum
from typing import Optional

import httpx


class ErrorKind(str, Enum):
    """Category of a pipeline failure."""

    CONFIG = "config"
    VALIDATION = "validation"
    AUTH = "auth"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    INVALID_RESPONSE = "invalid_response"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    NETWORK = "network"
    TIMEOUT = "timeout"
    CACHE = "cache"
    CANCELLED = "cancelled"
    CLOSED = "closed"
    UNKNOWN = "unknown"


USER_MESSAGES = {
    ErrorKind.RATE_LIMIT: "You've made too many requests. Please wait a moment and try again.",
    ErrorKind.AUTH: "Authentication failed. Please check your API key or credentials.",
    ErrorKind.NETWORK: "Network connection issue. Please check your internet connection.",
    ErrorKind.TIMEOUT: "The request took too long. Please try again.",
    ErrorKind.PERMISSION: "You don't have permission to perform this action.",
    ErrorKind.NOT_FOUND: "The requested resource was not found.",
    ErrorKind.SERVER: "The service is temporarily unavailable. Please try again later.",
}


class LLMError(Exception):
    """Base exception for pipeline errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def user_message(self) -> str:
        """Short message suitable for showing to a terminal user."""
        if self.kind == ErrorKind.VALIDATION:
            return f"Invalid input: {self.message}"
        if self.kind in USER_MESSAGES:
            return USER_MESSAGES[self.kind]
        return self.message or "An unexpected error occurred. Please try again."


class ConfigError(LLMError):
    """Raised when the client is built from unusable configuration."""

    kind = ErrorKind.CONFIG


class ValidationError(LLMError):
    """Raised when caller input is rejected before any request is sent."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AuthenticationError(LLMError):
    """Raised for 401 responses."""

    kind = ErrorKind.AUTH

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message, status_code=401)


class PermissionDeniedError(LLMError):
    """Raised for 403 responses."""

    kind = ErrorKind.PERMISSION

    def __init__(self, message: str = "Access forbidden"):
        super().__init__(message, status_code=403)


class ModelNotFoundError(LLMError):
    """Raised when the requested model doesn't exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, model: str):
        super().__init__(f"Model not found: {model}", status_code=404)
        self.model = model


class InvalidRequestError(LLMError):
    """Raised for 4xx client errors not covered by a narrower class."""

    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code=status_code)


class InvalidResponseError(LLMError):
    """Raised when the service answers with a body we cannot use."""

    kind = ErrorKind.INVALID_RESPONSE


class RateLimitError(LLMError):
    """Raised when rate limit is exceeded."""

    kind = ErrorKind.RATE_LIMIT
    retryable = True

    def __init__(self, retry_after: Optional[float] = None):
        wait = f" Retry after {retry_after:g} seconds." if retry_after else ""
        super().__init__(
            f"Rate limit exceeded.{wait}",
            status_code=429,
            retry_after=retry_after,
        )


class ServerError(LLMError):
    """Raised for 5xx server errors."""

    kind = ErrorKind.SERVER
    retryable = True

    def __init__(self, message: str = "LLM service error", status_code: int = 500):
        super().__init__(message, status_code=status_code)


class LLMConnectionError(LLMError):
    """Raised for network connectivity issues."""

    kind = ErrorKind.NETWORK
    retryable = True

    def __init__(self, message: str = "Failed to connect to the LLM service"):
        super().__init__(message)


class LLMTimeoutError(LLMError):
    """Raised when request times out."""

    kind = ErrorKind.TIMEOUT
    retryable = True

    def __init__(self, timeout: Optional[float] = None):
        if timeout:
            message = f"Request timed out after {timeout:g} seconds"
        else:
            message = "Request timed out"
        super().__init__(message)
        self.timeout = timeout


class CacheError(LLMError):
    """Raised for cache failures. The client logs these and carries on."""

    kind = ErrorKind.CACHE


class CacheCapacityError(CacheError):
    """Raised when a single entry is larger than the whole cache."""

    def __init__(self, size_bytes: int, max_size_bytes: int):
        super().__init__(
            f"Entry of {size_bytes} bytes exceeds cache capacity of {max_size_bytes} bytes"
        )
        self.size_bytes = size_bytes
        self.max_size_bytes = max_size_bytes


class StreamCancelledError(LLMError):
    """Carried by the terminal chunk of a stream that was cancelled."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Stream cancelled"):
        super().__init__(message)


class ClientClosedError(LLMError):
    """Raised when a closed client is used."""

    kind = ErrorKind.CLOSED

    def __init__(self, message: str = "Client is closed"):
        super().__init__(message)


def raise_for_response(response: httpx.Response, model: str = "") -> None:
    """Convert an HTTP error response to the matching exception.

    Returns silently for 2xx responses. The response body must already be
    read.
    """
    status = response.status_code
    if status < 400:
        return

    try:
        error_data = response.json()
        message = error_data.get("error", {}).get("message") or response.text
    except (ValueError, AttributeError):
        message = response.text

    if status == 429:
        raise RateLimitError(_parse_retry_after(response.headers.get("Retry-After")))

    elif status == 401:
        raise AuthenticationError()

    elif status == 403:
        raise PermissionDeniedError()

    elif status == 404:
        raise ModelNotFoundError(model or message)

    elif status >= 500:
        raise ServerError(message, status)

    else:
        raise InvalidRequestError(message, status)


def map_transport_error(error: httpx.HTTPError, timeout: Optional[float] = None) -> LLMError:
    """Wrap an httpx failure that produced no response."""
    if isinstance(error, httpx.TimeoutException):
        return LLMTimeoutError(timeout)
    return LLMConnectionError(f"Failed to connect to the LLM service: {error}")


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None
