"""
Response cache package.

Provides an in-memory LRU cache with TTL expiry, byte-size capacity,
a background sweep and optional on-disk snapshots.
"""

from .keys import generate_chat_key, generate_key
from .models import CacheEntry, CacheStats
from .persistence import load_snapshot, save_snapshot, snapshot_path
from .response_cache import ResponseCache

__all__ = [
    "ResponseCache",
    "CacheEntry",
    "CacheStats",
    "generate_key",
    "generate_chat_key",
    "load_snapshot",
    "save_snapshot",
    "snapshot_path",
]
