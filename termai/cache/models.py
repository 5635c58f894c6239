"""Cache entry and statistics types."""

import time
from dataclasses import dataclass, field
from typing import Optional

from ..llm.types import ChatResponse, Usage

# Fixed bookkeeping cost charged per entry and per response
ENTRY_OVERHEAD_BYTES = 200
RESPONSE_OVERHEAD_BYTES = 100


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""

    response: ChatResponse
    prompt_hash: str = ""
    token_usage: Usage = field(default_factory=Usage)
    created_at: float = field(default_factory=time.time)
    last_accessed_at: float = field(default_factory=time.time)
    expires_at: float = 0.0
    access_count: int = 0
    size_bytes: int = 0

    @classmethod
    def from_response(cls, response: ChatResponse) -> "CacheEntry":
        """Wrap a response, copying its usage."""
        usage = response.usage
        return cls(
            response=response,
            token_usage=Usage(
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            ),
        )

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if entry has expired."""
        if now is None:
            now = time.time()
        return now >= self.expires_at

    def record_hit(self, now: Optional[float] = None) -> None:
        """Record a cache hit."""
        self.access_count += 1
        self.last_accessed_at = now if now is not None else time.time()

    def estimate_size(self, key: str) -> int:
        """Approximate memory footprint used for capacity accounting."""
        response_size = (
            len(self.response.content)
            + len(self.response.model)
            + len(self.response.id)
            + RESPONSE_OVERHEAD_BYTES
        )
        return response_size + len(key) + ENTRY_OVERHEAD_BYTES


@dataclass
class CacheStats:
    """Point-in-time cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    entries: int = 0
    size_bytes: int = 0
    max_size_bytes: int = 0
    last_cleanup: Optional[float] = None

    @property
    def hit_rate(self) -> float:
        """Hits over total lookups, 0.0 when there were none."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total
