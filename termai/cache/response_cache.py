"""
Response cache for chat completions.

In-memory LRU cache bounded by an estimated byte size, with per-entry TTL,
a background sweep thread and optional snapshot persistence. All public
methods are thread-safe.
"""

import logging
import pickle
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from ..llm.config import CacheConfig
from ..llm.exceptions import CacheCapacityError
from .models import CacheEntry, CacheStats
from .persistence import load_snapshot, remove_snapshot, save_snapshot, snapshot_path

if TYPE_CHECKING:
    from ..metrics import MetricsCollector

logger = logging.getLogger(__name__)

SUPPORTED_STRATEGIES = ("lru",)


class ResponseCache:
    """
    LRU + TTL cache of chat responses.

    Entries live in an ``OrderedDict`` ordered from least to most recently
    used; a hit moves the entry to the end and eviction pops from the front.
    ``current_size_bytes`` always equals the sum of the entry sizes and never
    exceeds ``max_size_bytes`` after a mutation returns.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        """
        Initialize the cache.

        Args:
            config: Cache configuration (defaults to 100 MB, 24 h TTL)
            metrics: Optional collector that receives hit/miss/write/eviction counts

        A snapshot found in ``config.directory`` is loaded, and the sweep
        thread is started when ``config.cleanup_interval`` is positive.
        """
        self.config = config or CacheConfig()
        self._metrics = metrics

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        # Held across snapshot writes and removal; taken before _lock
        self._persist_lock = threading.Lock()
        self._enabled = self.config.enabled
        self._max_size_bytes = self.config.max_size_bytes
        self._default_ttl = self.config.ttl_seconds
        self._current_size = 0

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._last_cleanup: Optional[float] = None

        if self.config.strategy.lower() not in SUPPORTED_STRATEGIES:
            logger.warning(
                f"Cache strategy {self.config.strategy!r} is not supported, using LRU"
            )

        self._snapshot_path: Optional[Path] = None
        if self.config.directory:
            self._snapshot_path = snapshot_path(self.config.directory)
            self._load()

        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        self._closed = False
        if self._enabled and self.config.cleanup_interval > 0:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name="termai-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    @property
    def enabled(self) -> bool:
        """Check if caching is enabled."""
        return self._enabled

    @property
    def max_size_bytes(self) -> int:
        return self._max_size_bytes

    @property
    def current_size_bytes(self) -> int:
        with self._lock:
            return self._current_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> List[str]:
        """Keys ordered from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired()

    def get(self, key: str) -> Optional[CacheEntry]:
        """
        Retrieve an entry from cache.

        A hit promotes the entry to most recently used and bumps its access
        count. An expired entry is removed and counted as a miss.
        """
        if not self._enabled:
            return None

        with self._lock:
            entry = self._entries.get(key)
            now = time.time()

            if entry is not None and entry.is_expired(now):
                self._remove_entry(key)
                logger.debug(f"Cache expired: {key[:8]}...")
                entry = None

            if entry is None:
                self._misses += 1
                hit = False
            else:
                self._entries.move_to_end(key)
                entry.record_hit(now)
                self._hits += 1
                hit = True

        if hit:
            logger.debug(f"Cache hit: {key[:8]}... (hits: {entry.access_count})")
            if self._metrics:
                self._metrics.record_cache_hit()
        else:
            logger.debug(f"Cache miss: {key[:8]}...")
            if self._metrics:
                self._metrics.record_cache_miss()

        return entry

    def set(self, key: str, entry: CacheEntry, ttl: Optional[float] = None) -> None:
        """
        Store an entry in cache.

        Args:
            key: Cache key
            entry: Entry to store; its ``prompt_hash``, ``expires_at`` and
                ``size_bytes`` are filled in here
            ttl: Time-to-live in seconds (None or 0 uses the default)

        Raises:
            CacheCapacityError: if the entry alone is larger than the cache
        """
        if not self._enabled:
            return

        size = entry.estimate_size(key)
        if size > self._max_size_bytes:
            raise CacheCapacityError(size, self._max_size_bytes)

        effective_ttl = ttl if ttl else self._default_ttl
        now = time.time()

        entry.prompt_hash = key
        entry.size_bytes = size
        entry.expires_at = now + effective_ttl
        entry.last_accessed_at = now

        with self._lock:
            if key in self._entries:
                self._remove_entry(key)

            evicted = 0
            while self._entries and self._current_size + size > self._max_size_bytes:
                self._evict_lru()
                evicted += 1

            self._entries[key] = entry
            self._current_size += size

        logger.debug(f"Cache set: {key[:8]}... (ttl: {effective_ttl:g}s, size: {size}B)")
        if self._metrics:
            self._metrics.record_cache_write()
            for _ in range(evicted):
                self._metrics.record_cache_eviction()

    def delete(self, key: str) -> bool:
        """
        Remove a specific cache entry.

        Returns:
            True if entry was found and removed
        """
        with self._lock:
            if key in self._entries:
                self._remove_entry(key)
                return True
            return False

    def clear(self) -> int:
        """
        Clear all cache entries, reset statistics and drop the snapshot.

        Returns:
            Number of entries cleared
        """
        with self._persist_lock:
            with self._lock:
                count = len(self._entries)
                self._entries.clear()
                self._current_size = 0
                self._hits = 0
                self._misses = 0
                self._evictions = 0
            if self._snapshot_path:
                remove_snapshot(self._snapshot_path)

        logger.info(f"Cache cleared: {count} entries removed")
        return count

    def invalidate_pattern(self, prefix: str) -> int:
        """
        Remove every entry whose key starts with ``prefix``.

        An empty prefix matches nothing.

        Returns:
            Number of entries removed
        """
        if not prefix:
            return 0

        with self._lock:
            matched = [key for key in self._entries if key.startswith(prefix)]
            for key in matched:
                self._remove_entry(key)

        if matched:
            logger.debug(f"Cache invalidated {len(matched)} entries matching {prefix!r}")
        return len(matched)

    def warm(self, entries: Dict[str, CacheEntry]) -> int:
        """
        Preload entries with the default TTL.

        Entries that cannot be stored are logged and skipped.

        Returns:
            Number of entries stored
        """
        stored = 0
        for key, entry in entries.items():
            try:
                self.set(key, entry)
            except CacheCapacityError as e:
                logger.warning(f"Cache warm skipped {key[:8]}...: {e}")
                continue
            stored += 1
        logger.info(f"Cache warmed with {stored}/{len(entries)} entries")
        return stored

    def stats(self) -> CacheStats:
        """Get a snapshot of cache statistics."""
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                entries=len(self._entries),
                size_bytes=self._current_size,
                max_size_bytes=self._max_size_bytes,
                last_cleanup=self._last_cleanup,
            )

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries and persist what remains.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = time.time()
            expired_keys = [
                key for key, entry in self._entries.items()
                if entry.is_expired(now)
            ]
            for key in expired_keys:
                self._remove_entry(key)
            self._last_cleanup = now
            remaining = len(self._entries)

        if expired_keys:
            logger.debug(f"Cleaned up {len(expired_keys)} expired entries")

        if remaining and self._snapshot_path:
            self.save()

        return len(expired_keys)

    def save(self) -> None:
        """Write the current entries to the snapshot file, if one is configured."""
        if not self._snapshot_path:
            return

        with self._persist_lock:
            with self._lock:
                entries = list(self._entries.items())

            try:
                save_snapshot(self._snapshot_path, entries)
            except (OSError, pickle.PickleError, TypeError) as e:
                logger.error(f"Failed to save cache snapshot: {e}")

    def close(self) -> None:
        """Stop the sweep thread and write a final snapshot. Idempotent."""
        if self._closed:
            return
        self._closed = True

        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join()
            self._sweeper = None

        self.save()

        stats = self.stats()
        logger.info(
            "Cache closed",
            extra={'extra_data': {
                'entries': stats.entries,
                'size_bytes': stats.size_bytes,
                'hits': stats.hits,
                'misses': stats.misses,
                'hit_rate': round(stats.hit_rate, 4),
            }}
        )

    def _sweep_loop(self) -> None:
        """Background thread body: sweep until close() is called."""
        while not self._stop_event.wait(self.config.cleanup_interval):
            try:
                self.cleanup_expired()
            except Exception:
                logger.exception("Cache sweep failed")

    def _load(self) -> None:
        """Restore entries from the snapshot (most recent kept under capacity)."""
        entries = load_snapshot(self._snapshot_path)

        kept = []
        total = 0
        for key, entry in reversed(entries):
            if total + entry.size_bytes > self._max_size_bytes:
                continue
            kept.append((key, entry))
            total += entry.size_bytes

        with self._lock:
            for key, entry in reversed(kept):
                self._entries[key] = entry
            self._current_size = total

        if kept:
            logger.info(f"Loaded {len(kept)} cache entries from {self._snapshot_path}")

    def _remove_entry(self, key: str) -> None:
        """Remove an entry (must hold lock)."""
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._current_size -= entry.size_bytes

    def _evict_lru(self) -> None:
        """Evict least recently used entry (must hold lock)."""
        lru_key, entry = self._entries.popitem(last=False)
        self._current_size -= entry.size_bytes
        self._evictions += 1
        logger.debug(f"Cache evicted (LRU): {lru_key[:8]}...")
