"""Tests for the in-memory cache store.

This module tests the CacheStore class including TTL expiry, hit/miss
statistics, pattern invalidation, the LRU-bounded sweep and preloading.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from src.cache import keys
from src.cache.memory_cache import CacheStore
from src.clock import FrozenClock


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache(clock):
    return CacheStore(default_ttl=5000, clock=clock)


def test_cache_miss_counts(cache):
    """Test that a miss returns None and increments total_misses."""
    assert cache.get("nonexistent_key") is None
    assert cache.get("other_key") is None

    stats = cache.get_stats()
    assert stats.total_misses == 2
    assert stats.total_hits == 0
    assert stats.hit_rate == 0.0


def test_cache_set_and_get(cache):
    """Test basic set and get with entry hit accounting."""
    test_data = {"key1": "value1", "key2": 123}

    cache.set("test_key", test_data)
    result = cache.get("test_key")

    assert result == test_data
    assert cache.entry("test_key").hits == 1
    assert cache.get_stats().total_hits == 1
    assert cache.get_stats().total_entries == 1


def test_cache_hit_updates_last_accessed(cache, clock):
    cache.set("k", 1)
    clock.advance(milliseconds=250)
    cache.get("k")

    entry = cache.entry("k")
    assert entry.last_accessed - entry.timestamp == 250


def test_cache_ttl_expiration(cache, clock):
    """Test the expiry example: 42 is served within its TTL and gone after."""
    cache.set("x", 42, ttl=1000)

    assert cache.get("x") == 42

    clock.advance(milliseconds=1001)

    assert cache.get("x") is None
    assert cache.get_stats().total_entries == 0
    assert cache.entry("x") is None


def test_cache_entry_alive_at_exact_ttl(cache, clock):
    cache.set("x", 42, ttl=1000)
    clock.advance(milliseconds=1000)

    assert cache.get("x") == 42


def test_cache_default_ttl(cache, clock):
    cache.set("x", "value")
    assert cache.entry("x").ttl == 5000

    clock.advance(milliseconds=5001)
    assert cache.get("x") is None


def test_hit_rate(cache):
    cache.set("a", 1)
    cache.get("a")
    cache.get("a")
    cache.get("a")
    cache.get("missing")

    stats = cache.get_stats()
    assert stats.total_hits == 3
    assert stats.total_misses == 1
    assert stats.hit_rate == pytest.approx(75.0)


def test_cache_update(cache):
    """Test overwriting an existing entry resets its hits."""
    cache.set("update_test", {"version": 1})
    cache.get("update_test")
    cache.set("update_test", {"version": 2})

    assert cache.entry("update_test").hits == 0
    assert cache.get("update_test") == {"version": 2}
    assert cache.get_stats().total_entries == 1


def test_memory_usage_tracks_contents(cache):
    cache.set("small", 1)
    small = cache.get_stats().memory_usage
    assert small > 0

    cache.set("large", "x" * 1000)
    large = cache.get_stats().memory_usage
    assert large > small + 1000

    cache.invalidate("large")
    assert cache.get_stats().memory_usage < large


def test_invalidate(cache):
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    cache.invalidate("never-set")

    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get_stats().total_entries == 1


def test_invalidate_pattern(cache):
    """Test regex invalidation matches anywhere in the key."""
    cache.set(keys.wallet_balance("w1"), 100)
    cache.set(keys.wallet_balance("w2"), 200)
    cache.set(keys.total_balance(), 300)
    cache.set(keys.transaction_stats("month"), {"income": 1})

    removed = cache.invalidate_pattern("balance:w")

    assert removed == 2
    assert sorted(cache.keys()) == ["transactions:stats:month", "wallet:total:balance"]
    assert cache.get_stats().total_entries == 2

    assert cache.invalidate_pattern(r"^wallet:") == 1
    assert cache.keys() == ["transactions:stats:month"]


def test_clear_resets_stats(cache):
    cache.set("a", 1)
    cache.get("a")
    cache.get("b")

    cache.clear()

    stats = cache.get_stats()
    assert stats.total_entries == 0
    assert stats.total_hits == 0
    assert stats.total_misses == 0
    assert stats.hit_rate == 0.0
    assert stats.memory_usage == 0


def test_cleanup_removes_expired(cache, clock):
    """Test cleanup of expired cache entries."""
    cache.set("short_ttl", {"data": 1}, ttl=1000)
    cache.set("long_ttl", {"data": 2}, ttl=10000)

    clock.advance(milliseconds=1500)

    removed = cache.cleanup()

    assert removed == 1
    assert cache.keys() == ["long_ttl"]
    assert cache.get("long_ttl") == {"data": 2}


def test_cleanup_keeps_most_recently_accessed(clock):
    cache = CacheStore(default_ttl=10 * 60 * 1000, max_entries=100, clock=clock)

    for i in range(150):
        cache.set(f"k{i}", i)
        clock.advance(milliseconds=1)

    # Touch the oldest entry so it becomes the most recently accessed
    assert cache.get("k0") == 0

    removed = cache.cleanup()

    assert removed == 50
    assert cache.get_stats().total_entries == 100
    remaining = set(cache.keys())
    assert "k0" in remaining
    assert "k149" in remaining
    assert "k1" not in remaining
    assert "k50" not in remaining
    assert "k51" in remaining


def test_cleanup_recomputes_memory_usage(cache, clock):
    cache.set("a", "x" * 500, ttl=100)
    before = cache.get_stats().memory_usage

    clock.advance(milliseconds=101)
    cache.cleanup()

    assert cache.get_stats().memory_usage < before


def test_get_stats_returns_snapshot(cache):
    stats = cache.get_stats()
    cache.set("a", 1)

    assert stats.total_entries == 0
    assert cache.get_stats().total_entries == 1


def test_cache_with_complex_data(cache):
    """Test caching complex nested data structures."""
    complex_data = {
        "transactions": [
            {"date": "2025-01-01", "amount": 1000, "category": "Food"},
            {"date": "2025-01-02", "amount": 2000, "category": "Transport"},
        ],
        "metadata": {
            "total": 3000,
            "count": 2,
        },
    }

    cache.set("complex_test", complex_data)
    result = cache.get("complex_test")

    assert result == complex_data
    assert len(result["transactions"]) == 2
    assert result["metadata"]["total"] == 3000


def test_cache_with_non_json_data(cache, clock):
    """Tuple-keyed and circular values are cached and sized without errors."""
    by_pair = {("w1", "food"): 10}
    circular: list = []
    circular.append(circular)

    cache.set("ok", 1)
    cache.set("by_pair", by_pair)
    cache.set("circular", circular, ttl=100)

    assert cache.get("by_pair") == by_pair
    assert cache.get("ok") == 1
    assert cache.get_stats().memory_usage > 0

    cache.invalidate("by_pair")
    assert cache.entry("by_pair") is None

    clock.advance(milliseconds=200)
    assert cache.cleanup() == 1
    assert cache.keys() == ["ok"]
    assert cache.get_stats().memory_usage > 0


@pytest.mark.asyncio
async def test_preload_success(cache):
    async def loader():
        return {"balance": 1500}

    await cache.preload("wallet:balance:w1", loader, ttl=2000)

    assert cache.get("wallet:balance:w1") == {"balance": 1500}
    assert cache.entry("wallet:balance:w1").ttl == 2000


@pytest.mark.asyncio
async def test_preload_failure_leaves_cache_unchanged(cache):
    cache.set("existing", "old")

    async def failing_loader():
        raise RuntimeError("database unavailable")

    await cache.preload("existing", failing_loader)
    await cache.preload("new", failing_loader)

    assert cache.get("existing") == "old"
    assert cache.entry("new") is None


@pytest.mark.asyncio
async def test_warmup_settles_all_loaders(cache):
    """Test that one failing loader does not stop the others."""
    async def slow_loader():
        await asyncio.sleep(0.01)
        return "slow"

    async def failing_loader():
        raise ValueError("boom")

    async def fast_loader():
        return "fast"

    await cache.warmup(
        ["slow", "failing", "fast"],
        [slow_loader, failing_loader, fast_loader],
    )

    assert cache.get("slow") == "slow"
    assert cache.get("fast") == "fast"
    assert cache.entry("failing") is None


@pytest.mark.asyncio
async def test_background_cleanup_runs_and_stops(clock):
    cache = CacheStore(default_ttl=1000, cleanup_interval=10, clock=clock)
    cache.set("stale", 1, ttl=100)
    clock.advance(milliseconds=200)

    await cache.initialize()
    assert cache.running

    await asyncio.sleep(0.05)
    assert cache.keys() == []

    await cache.close()
    assert not cache.running


@pytest.mark.asyncio
async def test_close_without_initialize(cache):
    await cache.close()
    assert not cache.running
