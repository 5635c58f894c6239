"""
Streaming package.

Turns a streaming chat-completions response into an async iterator of
chunks, with callback helpers on top.
"""

from .events import StreamChunk, StreamState
from .handler import ChunkStream, StreamHandler
from .processor import StreamProcessor, StreamStats, process_stream_with_callback
from .sse import SSEEvent, parse_sse

__all__ = [
    "StreamChunk",
    "StreamState",
    "ChunkStream",
    "StreamHandler",
    "StreamProcessor",
    "StreamStats",
    "process_stream_with_callback",
    "SSEEvent",
    "parse_sse",
]
