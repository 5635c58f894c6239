"""Orchestrating client for chat completions."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from . import __version__
from .cache import CacheEntry, ResponseCache, generate_chat_key, generate_key
from .llm.config import ClientConfig
from .llm.exceptions import (
    CacheError,
    ClientClosedError,
    InvalidResponseError,
    LLMError,
    ValidationError,
    map_transport_error,
    raise_for_response,
)
from .llm.rate_limiter import RateLimiter
from .llm.request import apply_defaults, build_payload, validate_messages
from .llm.retry import RetryController
from .llm.types import ChatOptions, ChatResponse, Message
from .logging_config import set_request_id, setup_logging
from .metrics import MetricsCollector
from .settings import Settings, get_settings
from .streaming import ChunkStream, StreamHandler, process_stream_with_callback
from .streaming.processor import TokenCallback

logger = logging.getLogger(__name__)


class LLMClient:
    """
    Client for an OpenAI-compatible chat-completions API.

    Features:
    - Response cache (LRU + TTL, optional disk snapshot)
    - Client-side rate limiting
    - Retry with exponential backoff on transient failures
    - Streaming with cancellation
    - Metrics per client instance

    Usage:
        async with LLMClient.from_settings() as client:
            answer = await client.query("How do I list open ports?")
    """

    def __init__(
        self,
        config: ClientConfig,
        cache: Optional[ResponseCache] = None,
        metrics: Optional[MetricsCollector] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Build the client and its connection pool.

        Args:
            config: Client configuration; must carry an API key
            cache: Cache to use instead of one built from ``config.cache``
            metrics: Collector to use instead of a fresh one
            rate_limiter: Limiter to use instead of one built from ``config.rate_limit``
            transport: Custom httpx transport (tests use ``httpx.MockTransport``)

        Raises:
            ConfigError: if the configuration is unusable
        """
        config.validate()
        self.config = config
        self.metrics = metrics or MetricsCollector()

        if cache is None and config.cache.enabled:
            cache = ResponseCache(config.cache, metrics=self.metrics)
        self.cache = cache

        self.rate_limiter = rate_limiter or RateLimiter(config.rate_limit)
        self.retry = RetryController(config.retry, on_retry=self._on_retry)

        self._http = self._create_http_client(transport)
        self._stream_handler = StreamHandler(
            self._http,
            retry=self.retry,
            timeout=config.timeout,
            metrics=self.metrics,
        )

        self._closed = False
        self._close_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "LLMClient":
        """
        Configure logging from ``settings`` and build a client from them.

        Uses the process-wide settings when none are given. Extra keyword
        arguments are passed to the constructor.
        """
        settings = settings or get_settings()
        setup_logging(settings.log_level, settings.log_format, settings.log_file_path)
        return cls(ClientConfig.from_settings(settings), **kwargs)

    def _create_http_client(
        self, transport: Optional[httpx.AsyncBaseTransport]
    ) -> httpx.AsyncClient:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "User-Agent": f"termai/{__version__}",
        }
        if self.config.organization:
            headers["OpenAI-Organization"] = self.config.organization

        pool = self.config.pool
        timeout = self.config.timeout
        return httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout.read_timeout, connect=timeout.connect_timeout),
            limits=httpx.Limits(
                max_connections=pool.max_connections,
                max_keepalive_connections=pool.max_keepalive_connections,
                keepalive_expiry=pool.keepalive_expiry,
            ),
            transport=transport,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClientClosedError()

    def _on_retry(self, attempt: int, delay: float, error: Exception) -> None:
        reason = error.kind.value if isinstance(error, LLMError) else "unknown"
        self.metrics.record_retry(reason)

    def default_options(self) -> ChatOptions:
        """Options used by query() and stream_query()."""
        return ChatOptions(
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            top_p=self.config.top_p,
            reasoning_effort=self.config.reasoning_effort,
        )

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def _cache_get(self, key: str) -> Optional[CacheEntry]:
        if self.cache is None:
            return None
        return self.cache.get(key)

    def _cache_set(self, key: str, response: ChatResponse, ttl: Optional[float]) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(key, CacheEntry.from_response(response), ttl)
        except CacheError as e:
            logger.warning(f"Failed to cache response: {e}")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def query(self, prompt: str) -> str:
        """
        Answer a single prompt with the default options.

        Results are cached under the prompt itself, so repeating a prompt
        never reaches the network while the entry lives.
        """
        self._ensure_open()
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt must not be empty", field="prompt")

        key = generate_key(prompt)
        cached = self._cache_get(key)
        if cached is not None:
            logger.debug(f"Cache hit for query {key[:8]} (accesses: {cached.access_count})")
            return cached.response.content

        response = await self.chat([Message(role="user", content=prompt)], self.default_options())
        self._cache_set(key, response, None)
        return response.content

    async def chat(
        self,
        messages: Sequence[Message],
        options: Optional[ChatOptions] = None,
        *,
        ttl: Optional[float] = None,
    ) -> ChatResponse:
        """
        Send a chat request and return the first choice.

        Args:
            messages: Conversation so far
            options: Generation options; unset fields take client defaults
            ttl: Cache lifetime for this response (None uses the default)

        Raises:
            LLMError subclass on failure
        """
        self._ensure_open()
        validate_messages(messages)
        opts = apply_defaults(options or ChatOptions(), self.config)

        key = generate_chat_key(messages, opts)
        cached = self._cache_get(key)
        if cached is not None:
            logger.debug(f"Cache hit for chat {key[:8]} (accesses: {cached.access_count})")
            return cached.response

        set_request_id()
        await self.rate_limiter.wait()

        payload = build_payload(messages, opts)
        logger.info(f"Chat request: model={opts.model}, messages={len(messages)}")

        start = time.monotonic()
        async with self.retry.operation("chat") as op:
            response = await op.execute(self._post_chat, payload, opts.model)
        self.metrics.record_operation("chat", time.monotonic() - start)

        logger.info(
            f"Chat response: model={response.model or opts.model}, "
            f"tokens={response.usage.total_tokens}, attempts={op.attempts}"
        )
        self.metrics.record_tokens(
            response.model or opts.model,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
        )

        self._cache_set(key, response, ttl)
        return response

    async def _post_chat(self, payload: Dict[str, Any], model: str) -> ChatResponse:
        data = await self._request("POST", "/chat/completions", "chat_completions", model, json=payload)
        return ChatResponse.from_api(data)

    async def _request(
        self,
        method: str,
        path: str,
        endpoint: str,
        model: str = "",
        **kwargs,
    ) -> Dict[str, Any]:
        """Send one HTTP request and return the decoded JSON body."""
        start = time.monotonic()
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            self.metrics.record_api_call(endpoint, time.monotonic() - start, error=True)
            raise map_transport_error(e, self.config.timeout.read_timeout) from e

        status = response.status_code
        self.metrics.record_api_call(
            endpoint, time.monotonic() - start, status_code=status, error=status >= 400
        )
        raise_for_response(response, model)

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseError(f"Response is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise InvalidResponseError("Response is not a JSON object")
        return data

    async def chat_stream(
        self,
        messages: Sequence[Message],
        options: Optional[ChatOptions] = None,
    ) -> ChunkStream:
        """
        Open a streaming chat request.

        Streams bypass the cache entirely. Iterate the returned stream and
        stop at its terminal chunk, or call ``cancel()`` to abandon it.
        """
        self._ensure_open()
        validate_messages(messages)
        opts = apply_defaults(options or ChatOptions(), self.config)

        set_request_id()
        await self.rate_limiter.wait()
        return await self._stream_handler.handle_stream(messages, opts)

    async def stream_query(self, prompt: str, callback: TokenCallback) -> str:
        """
        Stream the answer to a single prompt through ``callback``.

        Returns the full text once the stream completes.
        """
        self._ensure_open()
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt must not be empty", field="prompt")

        stream = await self.chat_stream(
            [Message(role="user", content=prompt)], self.default_options()
        )
        return await process_stream_with_callback(stream, callback)

    async def list_models(self) -> List[str]:
        """List the model IDs available to this API key."""
        self._ensure_open()
        set_request_id()
        await self.rate_limiter.wait()

        async with self.retry.operation("list_models") as op:
            data = await op.execute(self._request, "GET", "/models", "models")

        return [item["id"] for item in data.get("data", []) if isinstance(item, dict) and "id" in item]

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def get_cache_stats(self) -> Optional[Dict[str, Any]]:
        """Cache statistics, or None when caching is disabled."""
        self._ensure_open()
        if self.cache is None:
            return None
        stats = self.cache.stats()
        return {
            "hits": stats.hits,
            "misses": stats.misses,
            "evictions": stats.evictions,
            "entries": stats.entries,
            "size_bytes": stats.size_bytes,
            "max_size_bytes": stats.max_size_bytes,
            "hit_rate": stats.hit_rate,
            "last_cleanup": stats.last_cleanup,
        }

    def clear_cache(self) -> int:
        """Remove every cached response. Returns the number removed."""
        self._ensure_open()
        if self.cache is None:
            return 0
        return self.cache.clear()

    def invalidate_cache_pattern(self, prefix: str) -> int:
        """Remove cached responses whose key starts with ``prefix``."""
        self._ensure_open()
        if self.cache is None:
            return 0
        return self.cache.invalidate_pattern(prefix)

    def get_metrics(self) -> Dict[str, Any]:
        self._ensure_open()
        return self.metrics.get_all_stats()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop background work and release connections. Safe to call twice."""
        async with self._close_lock:
            if self._closed:
                return
            self._closed = True

            if self.cache is not None:
                # close() joins the sweep thread
                await asyncio.to_thread(self.cache.close)

            await self.metrics.stop_reporter()
            await self._http.aclose()
            logger.debug("LLM client closed")

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
