"""Request pipeline for a terminal AI assistant."""

__version__ = "1.0.0"

from .cache import CacheEntry, CacheStats, ResponseCache
from .client import LLMClient
from .llm import ChatOptions, ChatResponse, ClientConfig, LLMError, Message, Usage
from .metrics import MetricsCollector
from .streaming import ChunkStream, StreamChunk, StreamState

__all__ = [
    "LLMClient",
    "ClientConfig",
    "Message",
    "ChatOptions",
    "ChatResponse",
    "Usage",
    "LLMError",
    "ResponseCache",
    "CacheEntry",
    "CacheStats",
    "MetricsCollector",
    "ChunkStream",
    "StreamChunk",
    "StreamState",
]
