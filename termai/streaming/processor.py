"""Callback-style consumers of a :class:`ChunkStream`."""

import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .handler import ChunkStream

logger = logging.getLogger(__name__)

TokenCallback = Callable[[str], Any]


async def _call(handler: Callable, *args) -> None:
    """Call a sync or async handler."""
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


async def process_stream_with_callback(stream: ChunkStream, callback: TokenCallback) -> str:
    """
    Forward every content fragment to ``callback``.

    ``callback`` may be a plain function or a coroutine function. Returns
    the full text once the stream completes; raises the error carried by
    the terminal chunk otherwise. If the callback raises, the stream is
    cancelled and the callback's exception propagates.
    """
    parts: List[str] = []

    async for chunk in stream:
        if chunk.error is not None:
            raise chunk.error
        if chunk.done:
            break
        if chunk.content:
            parts.append(chunk.content)
            try:
                await _call(callback, chunk.content)
            except Exception:
                await stream.cancel()
                raise

    return "".join(parts)


@dataclass
class StreamStats:
    """Summary of one processed stream."""

    tokens: int = 0
    characters: int = 0
    duration: float = 0.0

    @property
    def tokens_per_second(self) -> float:
        if self.duration <= 0:
            return 0.0
        return self.tokens / self.duration


class StreamProcessor:
    """
    Stream consumer configured with optional handlers.

    Usage:
        text = await (
            StreamProcessor()
            .on_token(print_token)
            .on_complete(lambda: print())
            .enable_stats()
            .process(stream)
        )

    Each content chunk counts as one token for the statistics.
    """

    def __init__(self):
        self._on_token: Optional[TokenCallback] = None
        self._on_error: Optional[Callable[[Exception], Any]] = None
        self._on_complete: Optional[Callable[[], Any]] = None
        self._enable_stats = False
        self.stats = StreamStats()

    def on_token(self, handler: TokenCallback) -> "StreamProcessor":
        self._on_token = handler
        return self

    def on_error(self, handler: Callable[[Exception], Any]) -> "StreamProcessor":
        self._on_error = handler
        return self

    def on_complete(self, handler: Callable[[], Any]) -> "StreamProcessor":
        self._on_complete = handler
        return self

    def enable_stats(self) -> "StreamProcessor":
        self._enable_stats = True
        return self

    async def process(self, stream: ChunkStream) -> str:
        """
        Consume ``stream`` until its terminal chunk.

        The error handler is called before a terminal error is raised. The
        completion handler is called only when the stream ends cleanly.
        """
        self.stats = StreamStats()
        parts: List[str] = []
        start = time.monotonic()

        async for chunk in stream:
            if chunk.error is not None:
                self.stats.duration = time.monotonic() - start
                if self._on_error is not None:
                    await _call(self._on_error, chunk.error)
                raise chunk.error

            if chunk.done:
                break

            if chunk.content:
                parts.append(chunk.content)
                self.stats.tokens += 1
                self.stats.characters += len(chunk.content)
                if self._on_token is not None:
                    try:
                        await _call(self._on_token, chunk.content)
                    except Exception:
                        await stream.cancel()
                        raise

        self.stats.duration = time.monotonic() - start

        if self._on_complete is not None:
            await _call(self._on_complete)

        if self._enable_stats:
            logger.info(
                "Stream processing stats",
                extra={'extra_data': {
                    'tokens': self.stats.tokens,
                    'duration': round(self.stats.duration, 3),
                    'tokens_per_second': round(self.stats.tokens_per_second, 2),
                }}
            )

        return "".join(parts)
