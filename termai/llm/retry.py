"""Retry with exponential backoff."""

import asyncio
import functools
import logging
import random
from typing import Any, Awaitable, Callable, Optional

from .config import RetryConfig
from .exceptions import LLMError

logger = logging.getLogger(__name__)

RetryCallback = Callable[[int, float, Exception], None]


def calculate_delay(
    attempt: int,
    config: RetryConfig,
    retry_after: Optional[float] = None,
) -> float:
    """Calculate delay before next retry attempt."""
    if retry_after:
        # Respect Retry-After header
        return min(float(retry_after), config.max_delay)

    # Exponential backoff
    delay = config.initial_delay * (config.backoff_multiplier**attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        delay = delay * (0.5 + random.random())

    return delay


def is_retryable(error: BaseException, config: RetryConfig) -> bool:
    """
    Classify an error by the tag it was constructed with.

    Only pipeline errors are ever retried: those flagged retryable and
    those whose HTTP status is in ``config.retryable_status_codes``.
    """
    if not isinstance(error, LLMError):
        return False
    if error.retryable:
        return True
    return error.status_code is not None and error.status_code in config.retryable_status_codes


class RetryableOperation:
    """
    Context manager for retryable operations with progress tracking.

    Usage:
        async with RetryableOperation(config, "chat") as op:
            result = await op.execute(my_async_func, *args, **kwargs)
    """

    def __init__(
        self,
        config: RetryConfig,
        operation_name: str,
        on_retry: Optional[RetryCallback] = None,
    ):
        self.config = config
        self.operation_name = operation_name
        self.on_retry = on_retry
        self.attempts = 0
        self.last_error: Optional[Exception] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs):
        """
        Execute function with retry logic.

        Fatal errors and the error of the final attempt are re-raised
        unchanged. Task cancellation is never intercepted.
        """
        for attempt in range(self.config.max_retries + 1):
            self.attempts = attempt + 1

            try:
                return await func(*args, **kwargs)

            except LLMError as e:
                self.last_error = e

                if not is_retryable(e, self.config):
                    logger.debug(f"{self.operation_name}: non-retryable {e.kind.value} error: {e}")
                    raise

                if attempt == self.config.max_retries:
                    logger.error(
                        f"{self.operation_name}: max retries ({self.config.max_retries}) "
                        f"exceeded: {e}"
                    )
                    raise

                delay = calculate_delay(attempt, self.config, e.retry_after)

                logger.warning(
                    f"{self.operation_name}: retry {attempt + 1}/{self.config.max_retries} "
                    f"after {delay:.1f}s: {e}",
                    extra={'extra_data': {
                        'operation': self.operation_name,
                        'attempt': attempt + 1,
                        'delay': delay,
                        'error_kind': e.kind.value,
                    }}
                )
                if self.on_retry is not None:
                    self.on_retry(attempt + 1, delay, e)

                await asyncio.sleep(delay)

        # Unreachable: the last attempt either returns or raises
        raise RuntimeError(f"{self.operation_name}: retry loop exited without result")


class RetryController:
    """
    Runs async operations under a shared retry policy.

    ``on_retry`` is called with ``(attempt, delay, error)`` before each
    backoff sleep.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        on_retry: Optional[RetryCallback] = None,
    ):
        self.config = config or RetryConfig()
        self.on_retry = on_retry

    def is_retryable(self, error: BaseException) -> bool:
        return is_retryable(error, self.config)

    def operation(self, name: str) -> RetryableOperation:
        """Create a tracked operation bound to this controller's policy."""
        return RetryableOperation(self.config, name, self.on_retry)

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs):
        """Run ``func`` with retries, named after the function."""
        name = getattr(func, "__name__", "operation")
        async with self.operation(name) as op:
            return await op.execute(func, *args, **kwargs)


def with_retry(config: Optional[RetryConfig] = None):
    """
    Decorator for retrying async functions with exponential backoff.

    Usage:
        @with_retry(RetryConfig(max_retries=3))
        async def my_function():
            ...
    """
    config = config or RetryConfig()

    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            async with RetryableOperation(config, func.__name__) as op:
                return await op.execute(func, *args, **kwargs)

        return wrapper

    return decorator
