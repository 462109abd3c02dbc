"""In-memory cache store with TTL, hit/miss accounting and LRU-bounded cleanup.

This module provides a CacheStore class that handles:
- TTL-based key-value caching of derived values
- Hit/miss statistics and an approximate memory footprint
- Regex-based invalidation of related keys
- A periodic background sweep that drops expired and least-recently-used entries
- Best-effort preloading of values from async loaders
"""

import asyncio
import json
import re
import threading
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

import structlog

from src.clock import Clock, SystemClock, epoch_ms

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL_MS = 5 * 60 * 1000
DEFAULT_CLEANUP_INTERVAL_MS = 10 * 60 * 1000
DEFAULT_MAX_ENTRIES = 100


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its lifetime bookkeeping (times in epoch ms)."""

    data: T
    timestamp: int
    ttl: int
    hits: int = 0
    last_accessed: int = 0

    def is_expired(self, now_ms: int) -> bool:
        return now_ms - self.timestamp > self.ttl

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "timestamp": self.timestamp,
            "ttl": self.ttl,
            "hits": self.hits,
            "lastAccessed": self.last_accessed,
        }


@dataclass
class CacheStats:
    """Aggregate cache statistics."""

    total_entries: int = 0
    total_hits: int = 0
    total_misses: int = 0
    hit_rate: float = 0.0
    memory_usage: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "total_hits": self.total_hits,
            "total_misses": self.total_misses,
            "hit_rate": self.hit_rate,
            "memory_usage": self.memory_usage,
        }


class CacheStore:
    """In-memory TTL cache for expensive derived values.

    All synchronous operations run under a re-entrant lock, so a mutation is
    never observed half-applied, whether callers share one event loop or
    several worker threads.

    Usage:
        cache = CacheStore()
        await cache.initialize()   # starts the background sweep
        cache.set("transactions:stats:month", stats, ttl=60_000)
        cache.get("transactions:stats:month")
        await cache.close()        # stops the background sweep

    Attributes:
        default_ttl: Default TTL in milliseconds for cached entries.
        cleanup_interval: Milliseconds between background sweeps.
        max_entries: Entries kept by a sweep, most recently accessed first.
    """

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL_MS,
        cleanup_interval: int = DEFAULT_CLEANUP_INTERVAL_MS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Clock | None = None,
    ) -> None:
        """Initialize CacheStore.

        Args:
            default_ttl: Default TTL in milliseconds (default: 5 minutes).
            cleanup_interval: Sweep interval in milliseconds (default: 10 minutes).
            max_entries: Upper bound on entries kept by a sweep (default: 100).
            clock: Time source; defaults to the system clock.
        """
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self.max_entries = max_entries
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._stats = CacheStats()
        self._cleanup_task: asyncio.Task[None] | None = None

        logger.info(
            "cache_store_initialized",
            default_ttl=default_ttl,
            cleanup_interval=cleanup_interval,
            max_entries=max_entries,
        )

    async def initialize(self) -> None:
        """Start the periodic cleanup task on the running event loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            logger.info("cache_cleanup_already_running")
            return

        self._cleanup_task = asyncio.create_task(self._run_cleanup())
        logger.info("cache_cleanup_started", interval_ms=self.cleanup_interval)

    async def close(self) -> None:
        """Stop the periodic cleanup task."""
        if self._cleanup_task is None:
            return

        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        logger.info("cache_cleanup_stopped")

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _run_cleanup(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval / 1000)
            self.cleanup()

    def _now_ms(self) -> int:
        return epoch_ms(self._clock.now())

    @staticmethod
    def _entry_size(key: str, entry: CacheEntry[Any]) -> int:
        try:
            encoded = json.dumps({key: entry.to_dict()}, default=str)
        except (TypeError, ValueError):
            # Non-string dict keys or circular references: estimate from repr
            encoded = repr((key, entry.data)) + json.dumps(
                {k: v for k, v in entry.to_dict().items() if k != "data"}
            )
        return len(encoded.encode("utf-8"))

    def _measure(self) -> int:
        return sum(self._entry_size(key, entry) for key, entry in self._entries.items())

    def _refresh_size(self) -> None:
        self._stats.total_entries = len(self._entries)
        self._stats.memory_usage = self._measure()

    def _refresh_hit_rate(self) -> None:
        lookups = self._stats.total_hits + self._stats.total_misses
        self._stats.hit_rate = self._stats.total_hits / lookups * 100 if lookups else 0.0

    def set(self, key: str, data: T, ttl: int | None = None) -> None:
        """Store a value, replacing any existing entry for the key.

        Args:
            key: Cache key.
            data: Value to cache.
            ttl: Time to live in milliseconds. If None, uses default_ttl.
        """
        ttl_ms = ttl if ttl is not None else self.default_ttl
        with self._lock:
            now = self._now_ms()
            self._entries[key] = CacheEntry(
                data=data, timestamp=now, ttl=ttl_ms, hits=0, last_accessed=now
            )
            self._refresh_size()

        logger.debug("cache_set", key=key, ttl_ms=ttl_ms)

    def get(self, key: str) -> Any | None:
        """Get a cached value by key.

        Returns None if the key doesn't exist or its TTL has expired; an
        expired entry is removed. Every call updates the hit/miss counters.

        Args:
            key: Cache key.

        Returns:
            Cached value or None.
        """
        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                self._stats.total_misses += 1
                self._refresh_hit_rate()
                logger.debug("cache_miss", key=key)
                return None

            now = self._now_ms()
            if entry.is_expired(now):
                del self._entries[key]
                self._stats.total_misses += 1
                self._refresh_hit_rate()
                self._refresh_size()
                logger.debug("cache_expired", key=key)
                return None

            entry.hits += 1
            entry.last_accessed = now
            self._stats.total_hits += 1
            self._refresh_hit_rate()
            self._refresh_size()
            logger.debug("cache_hit", key=key, hits=entry.hits)
            return entry.data

    def entry(self, key: str) -> CacheEntry[Any] | None:
        """Return a copy of the raw entry for a key, expired or not, without counting a lookup."""
        with self._lock:
            found = self._entries.get(key)
            return replace(found) if found is not None else None

    def invalidate(self, key: str) -> None:
        """Remove a cache entry if present.

        Args:
            key: Cache key to remove.
        """
        with self._lock:
            self._entries.pop(key, None)
            self._refresh_size()

        logger.debug("cache_invalidated", key=key)

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every entry whose key matches a regular expression.

        The pattern matches anywhere in the key (``re.search``), so anchor it
        with ``^`` to restrict to a prefix.

        Args:
            pattern: Regular expression.

        Returns:
            Number of entries removed.
        """
        regex = re.compile(pattern)
        with self._lock:
            doomed = [key for key in self._entries if regex.search(key)]
            for key in doomed:
                del self._entries[key]
            self._refresh_size()

        logger.debug("cache_pattern_invalidated", pattern=pattern, removed=len(doomed))
        return len(doomed)

    def clear(self) -> None:
        """Drop every entry and reset all statistics."""
        with self._lock:
            self._entries.clear()
            self._stats = CacheStats()

        logger.info("cache_cleared")

    def cleanup(self) -> int:
        """Remove expired entries and keep only the most recently accessed ones.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._now_ms()
            before = len(self._entries)
            live = [
                (key, entry)
                for key, entry in self._entries.items()
                if not entry.is_expired(now)
            ]
            live.sort(key=lambda item: item[1].last_accessed, reverse=True)
            self._entries = dict(live[: self.max_entries])
            self._refresh_size()
            removed = before - len(self._entries)

        logger.info("cache_cleanup_completed", removed_count=removed, remaining=len(self._entries))
        return removed

    def get_stats(self) -> CacheStats:
        """Return a snapshot of the cache statistics."""
        with self._lock:
            return replace(self._stats)

    def keys(self) -> list[str]:
        """Return the keys currently held, expired or not."""
        with self._lock:
            return list(self._entries)

    async def preload(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
    ) -> None:
        """Load a value and cache it, leaving the cache untouched on failure.

        Args:
            key: Cache key.
            loader: Async callable producing the value.
            ttl: Time to live in milliseconds. If None, uses default_ttl.
        """
        try:
            data = await loader()
        except Exception as e:
            logger.error("cache_preload_failed", key=key, error=str(e), exc_info=True)
            return

        self.set(key, data, ttl)
        logger.debug("cache_preloaded", key=key)

    async def warmup(
        self,
        keys: Sequence[str],
        loaders: Sequence[Callable[[], Awaitable[Any]]],
        ttl: int | None = None,
    ) -> None:
        """Preload several keys concurrently.

        Each key is paired with the loader at the same position. A failing
        loader is logged by ``preload`` and does not affect the others.

        Args:
            keys: Cache keys.
            loaders: Async callables, one per key.
            ttl: Time to live in milliseconds for every loaded value.
        """
        if len(keys) != len(loaders):
            logger.warning(
                "cache_warmup_length_mismatch",
                keys=len(keys),
                loaders=len(loaders),
            )

        async with asyncio.TaskGroup() as group:
            for key, loader in zip(keys, loaders):
                group.create_task(self.preload(key, loader, ttl))

        logger.info("cache_warmup_completed", requested=len(keys))
