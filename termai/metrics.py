"""
Metrics for the LLM request pipeline.

Each :class:`MetricsCollector` owns a private Prometheus registry, so
several collectors (one per client, one per test) never share counters.
Alongside the Prometheus series it keeps plain in-process aggregates that
the CLI can print without scraping anything.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


@dataclass
class TimingStats:
    """Running min/max/avg of durations, in seconds."""

    count: int = 0
    errors: int = 0
    total: float = 0.0
    min: Optional[float] = None
    max: Optional[float] = None
    last_at: Optional[float] = None
    status_codes: Dict[int, int] = field(default_factory=dict)

    def observe(self, duration: float) -> None:
        self.count += 1
        self.total += duration
        self.min = duration if self.min is None else min(self.min, duration)
        self.max = duration if self.max is None else max(self.max, duration)
        self.last_at = time.time()

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "errors": self.errors,
            "avg_latency": self.average,
            "min_latency": self.min or 0.0,
            "max_latency": self.max or 0.0,
            "last_call": self.last_at,
            "status_codes": dict(self.status_codes),
        }


class MetricsCollector:
    """Collects API, cache, token and timing metrics for one client."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._lock = threading.Lock()
        self._reporter: Optional[asyncio.Task] = None
        self._create_series()
        self._reset_aggregates()

    def _create_series(self) -> None:
        # Request metrics
        self.api_calls = Counter(
            "termai_api_calls_total",
            "Total number of API calls",
            ["endpoint", "status"],
            registry=self.registry,
        )
        self.api_errors = Counter(
            "termai_api_errors_total",
            "Total number of failed API calls",
            ["endpoint"],
            registry=self.registry,
        )
        self.api_latency = Histogram(
            "termai_api_latency_seconds",
            "API call latency in seconds",
            ["endpoint"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.retries = Counter(
            "termai_retries_total",
            "Total number of retries",
            ["reason"],  # error kind that triggered the retry
            registry=self.registry,
        )

        # Cache metrics
        self.cache_events = Counter(
            "termai_cache_events_total",
            "Cache lookups, writes and evictions",
            ["event"],  # hit, miss, write, eviction
            registry=self.registry,
        )

        # Token usage metrics
        self.tokens = Counter(
            "termai_tokens_total",
            "Total token usage",
            ["model", "type"],  # type: prompt, completion
            registry=self.registry,
        )

        self.operation_latency = Histogram(
            "termai_operation_duration_seconds",
            "Duration of named client operations",
            ["operation"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )

    def _reset_aggregates(self) -> None:
        self._started_at = time.time()
        self._api: Dict[str, TimingStats] = {}
        self._operations: Dict[str, TimingStats] = {}
        self._cache = {"hits": 0, "misses": 0, "writes": 0, "evictions": 0}
        self._tokens: Dict[str, Dict[str, int]] = {}
        self._retries: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_api_call(
        self,
        endpoint: str,
        duration: float,
        status_code: int = 0,
        error: bool = False,
    ) -> None:
        """Record one HTTP call. ``status_code`` 0 means no response was received."""
        status = str(status_code) if status_code else "none"
        self.api_calls.labels(endpoint=endpoint, status=status).inc()
        self.api_latency.labels(endpoint=endpoint).observe(duration)
        if error:
            self.api_errors.labels(endpoint=endpoint).inc()

        with self._lock:
            stats = self._api.setdefault(endpoint, TimingStats())
            stats.observe(duration)
            if error:
                stats.errors += 1
            if status_code:
                stats.status_codes[status_code] = stats.status_codes.get(status_code, 0) + 1

    def record_retry(self, reason: str) -> None:
        self.retries.labels(reason=reason).inc()
        with self._lock:
            self._retries[reason] = self._retries.get(reason, 0) + 1

    def record_cache_hit(self) -> None:
        self._record_cache("hit", "hits")

    def record_cache_miss(self) -> None:
        self._record_cache("miss", "misses")

    def record_cache_write(self) -> None:
        self._record_cache("write", "writes")

    def record_cache_eviction(self) -> None:
        self._record_cache("eviction", "evictions")

    def _record_cache(self, event: str, name: str) -> None:
        self.cache_events.labels(event=event).inc()
        with self._lock:
            self._cache[name] += 1

    def record_tokens(self, model: str, prompt_tokens: int, completion_tokens: int) -> None:
        """Record token usage for a model query."""
        self.tokens.labels(model=model, type="prompt").inc(prompt_tokens)
        self.tokens.labels(model=model, type="completion").inc(completion_tokens)
        with self._lock:
            usage = self._tokens.setdefault(model, {"prompt": 0, "completion": 0, "total": 0})
            usage["prompt"] += prompt_tokens
            usage["completion"] += completion_tokens
            usage["total"] += prompt_tokens + completion_tokens

    def record_operation(self, operation: str, duration: float) -> None:
        self.operation_latency.labels(operation=operation).observe(duration)
        with self._lock:
            self._operations.setdefault(operation, TimingStats()).observe(duration)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_cache_hit_rate(self) -> float:
        """Cache hit rate as a percentage (0-100)."""
        with self._lock:
            total = self._cache["hits"] + self._cache["misses"]
            if total == 0:
                return 0.0
            return self._cache["hits"] / total * 100

    def get_api_stats(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {endpoint: s.to_dict() for endpoint, s in self._api.items()}

    def get_retry_stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._retries)

    def get_cache_stats(self) -> Dict[str, Any]:
        hit_rate = self.get_cache_hit_rate()
        with self._lock:
            data: Dict[str, Any] = dict(self._cache)
        data["hit_rate"] = hit_rate
        return data

    def get_token_stats(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {model: dict(usage) for model, usage in self._tokens.items()}

    def get_performance_stats(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {name: s.to_dict() for name, s in self._operations.items()}

    def get_all_stats(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": time.time() - self._started_at,
            "api": self.get_api_stats(),
            "cache": self.get_cache_stats(),
            "retries": self.get_retry_stats(),
            "tokens": self.get_token_stats(),
            "performance": self.get_performance_stats(),
        }

    def reset(self) -> None:
        """Clear in-process aggregates and start a fresh Prometheus registry."""
        with self._lock:
            self.registry = CollectorRegistry()
            self._create_series()
            self._reset_aggregates()

    def render(self) -> bytes:
        """Prometheus text exposition of this collector's series."""
        return generate_latest(self.registry)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def log_summary(self) -> None:
        stats = self.get_all_stats()
        api_calls = sum(s["count"] for s in stats["api"].values())
        api_errors = sum(s["errors"] for s in stats["api"].values())
        total_tokens = sum(u["total"] for u in stats["tokens"].values())
        logger.info(
            f"Metrics summary: {api_calls} API calls ({api_errors} errors), "
            f"cache hit rate {stats['cache']['hit_rate']:.1f}%, {total_tokens} tokens",
            extra={'extra_data': stats},
        )

    def start_reporter(self, interval: float = 60.0) -> asyncio.Task:
        """Log a summary every ``interval`` seconds until stop_reporter()."""
        if self._reporter is None or self._reporter.done():
            self._reporter = asyncio.create_task(self._report_loop(interval))
        return self._reporter

    async def stop_reporter(self) -> None:
        if self._reporter is not None:
            self._reporter.cancel()
            await asyncio.gather(self._reporter, return_exceptions=True)
            self._reporter = None

    async def _report_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.log_summary()
