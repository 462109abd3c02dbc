"""Cache management module for the finance tracker MCP server.

This module provides an in-memory TTL cache with hit/miss statistics,
pattern invalidation and a periodic LRU-bounded sweep.
"""

from src.cache.memory_cache import CacheEntry, CacheStats, CacheStore

__all__ = ["CacheEntry", "CacheStats", "CacheStore"]
