"""Streaming chat completions."""

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

import httpx

from ..llm.config import TimeoutConfig
from ..llm.exceptions import (
    InvalidResponseError,
    LLMError,
    StreamCancelledError,
    map_transport_error,
    raise_for_response,
)
from ..llm.request import build_payload
from ..llm.retry import RetryController
from ..llm.types import ChatOptions, Message
from .events import StreamChunk, StreamState
from .sse import parse_sse

if TYPE_CHECKING:
    from ..metrics import MetricsCollector

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class ChunkStream:
    """
    Async iterator over the chunks of one streaming response.

    A single pump task reads SSE events from the HTTP response and is the
    only writer to a bounded queue; the consumer reads from the queue.
    Iteration yields content chunks followed by exactly one terminal chunk
    and then stops.

    Usage:
        async with await handler.handle_stream(messages, options) as stream:
            async for chunk in stream:
                ...
    """

    def __init__(
        self,
        response: httpx.Response,
        model: str = "",
        metrics: Optional["MetricsCollector"] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self._response = response
        self.model = model
        self._metrics = metrics
        self._queue: "asyncio.Queue[StreamChunk]" = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self._finished = False

        self.state = StreamState.CONNECTING
        self.finish_reason = ""
        self.content_chunks = 0
        self._started_at = time.monotonic()

    def start(self) -> None:
        """Start the pump task. Called once by the handler."""
        if self._task is None and not self.state.is_final:
            self.state = StreamState.EMITTING
            self._task = asyncio.create_task(self._pump())

    def __aiter__(self) -> "ChunkStream":
        return self

    async def __anext__(self) -> StreamChunk:
        if self._finished:
            raise StopAsyncIteration

        try:
            chunk = await self._queue.get()
        except asyncio.CancelledError:
            # Consumer went away: stop the producer too
            if self._task is not None and not self._task.done():
                self._task.cancel()
            raise

        if chunk.is_terminal:
            self._finished = True
        return chunk

    async def __aenter__(self) -> "ChunkStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.cancel()

    async def cancel(self) -> None:
        """
        Stop the stream.

        Unread content is discarded and a single cancellation terminal is
        queued in its place. Does nothing once the stream has finished.
        """
        if self._task is None:
            if not self.state.is_final:
                await self._response.aclose()
                self._emit_cancelled()
            return

        if not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)

    aclose = cancel

    async def _pump(self) -> None:
        try:
            try:
                await self._read_events()
            finally:
                await self._response.aclose()
        except asyncio.CancelledError:
            self._emit_cancelled()
            return
        except LLMError as e:
            error: Exception = e
        except httpx.HTTPError as e:
            error = map_transport_error(e)
        except Exception as e:
            logger.exception(f"Unexpected stream failure for {self.model}")
            error = InvalidResponseError(f"Stream failed: {e}")
        else:
            await self._emit_terminal(StreamChunk(done=True), StreamState.COMPLETED)
            return

        logger.warning(f"Stream failed for {self.model}: {error}")
        await self._emit_terminal(StreamChunk(error=error, done=True), StreamState.FAILED)

    async def _read_events(self) -> None:
        async for event in parse_sse(self._response.aiter_lines()):
            if event.is_done:
                return

            try:
                data = json.loads(event.data)
            except json.JSONDecodeError as e:
                raise InvalidResponseError(f"Malformed stream event: {e}") from e

            if isinstance(data, dict) and data.get("error"):
                error = data["error"]
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise InvalidResponseError(f"Stream error: {message}")

            content = self._extract_content(data)
            if content:
                self.content_chunks += 1
                await self._queue.put(StreamChunk(content=content))

    def _extract_content(self, data: Any) -> str:
        if not isinstance(data, dict):
            raise InvalidResponseError("Malformed stream event: expected an object")

        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise InvalidResponseError("Malformed stream event: choices is not a list")
        if not choices:
            return ""

        choice = choices[0]
        if not isinstance(choice, dict):
            raise InvalidResponseError("Malformed stream event: choice is not an object")

        finish_reason = choice.get("finish_reason")
        if finish_reason:
            self.finish_reason = str(finish_reason)
            logger.debug(f"Stream finish reason for {self.model}: {finish_reason}")

        delta = choice.get("delta") or {}
        if not isinstance(delta, dict):
            raise InvalidResponseError("Malformed stream event: delta is not an object")

        content = delta.get("content") or ""
        if not isinstance(content, str):
            raise InvalidResponseError("Malformed stream event: content is not a string")
        return content

    async def _emit_terminal(self, chunk: StreamChunk, state: StreamState) -> None:
        try:
            await self._queue.put(chunk)
        except asyncio.CancelledError:
            self._emit_cancelled()
            return
        self.state = state
        self._record(state)

    def _emit_cancelled(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(StreamChunk(error=StreamCancelledError(), done=True))
        self.state = StreamState.CANCELLED
        logger.debug(f"Stream cancelled for {self.model}")
        self._record(StreamState.CANCELLED)

    def _record(self, state: StreamState) -> None:
        duration = time.monotonic() - self._started_at
        logger.debug(
            f"Stream {state.value}: {self.content_chunks} chunks in {duration:.2f}s",
            extra={'extra_data': {
                'model': self.model,
                'chunks': self.content_chunks,
                'finish_reason': self.finish_reason,
            }}
        )
        if self._metrics:
            self._metrics.record_operation(f"stream_{state.value}", duration)


class StreamHandler:
    """Opens streaming chat completions on a shared HTTP client."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry: Optional[RetryController] = None,
        timeout: Optional[TimeoutConfig] = None,
        metrics: Optional["MetricsCollector"] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self._client = http_client
        self.retry = retry or RetryController()
        self.timeout = timeout or TimeoutConfig()
        self._metrics = metrics
        self.queue_size = queue_size

    async def handle_stream(
        self,
        messages: Sequence[Message],
        options: ChatOptions,
    ) -> ChunkStream:
        """
        Open a stream for a chat request.

        ``options`` are sent as given. Connection and status check are
        retried; a failure to connect raises the classified error here
        instead of producing a stream.
        """
        payload = build_payload(messages, options, stream=True)

        logger.info(f"Stream request: model={options.model}, messages={len(messages)}")

        async with self.retry.operation("chat_stream") as op:
            response = await op.execute(self._connect, payload, options.model)

        stream = ChunkStream(
            response,
            model=options.model,
            metrics=self._metrics,
            queue_size=self.queue_size,
        )
        stream.start()
        return stream

    async def _connect(self, payload: Dict[str, Any], model: str) -> httpx.Response:
        request = self._client.build_request(
            "POST",
            "/chat/completions",
            json=payload,
            timeout=httpx.Timeout(self.timeout.read_timeout, connect=self.timeout.connect_timeout),
        )

        start = time.monotonic()
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            if self._metrics:
                self._metrics.record_api_call("chat_stream", time.monotonic() - start, error=True)
            raise map_transport_error(e, self.timeout.read_timeout) from e

        if self._metrics:
            self._metrics.record_api_call(
                "chat_stream",
                time.monotonic() - start,
                status_code=response.status_code,
                error=response.status_code >= 400,
            )

        if response.status_code >= 400:
            try:
                await response.aread()
            finally:
                await response.aclose()
            raise_for_response(response, model)

        return response
