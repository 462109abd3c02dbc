"""MCP tools for inspecting and maintaining the cache.

This module provides tools to read cache statistics, invalidate keys by
pattern, run the cleanup sweep on demand and clear the cache.
"""

import re
from typing import Any

import structlog

from src.tools.common import build_error_response, build_success_response

logger = structlog.get_logger(__name__)


async def get_cache_stats(cache: Any) -> dict[str, Any]:
    """Get cache statistics and the keys currently held.

    Args:
        cache: CacheStore instance.

    Returns:
        Standardized response containing:
            - total_entries, total_hits, total_misses, hit_rate, memory_usage
            - keys: Cached keys
    """
    logger.info("get_cache_stats_called")

    data = cache.get_stats().to_dict()
    data["keys"] = cache.keys()
    return build_success_response(data, source="cache", cached=False)


async def invalidate_cache(cache: Any, pattern: str) -> dict[str, Any]:
    """Remove every cache entry whose key matches a regular expression.

    Args:
        cache: CacheStore instance.
        pattern: Regular expression matched anywhere in the key.

    Returns:
        Standardized response containing the number of removed entries.
    """
    logger.info("invalidate_cache_called", pattern=pattern)

    try:
        removed = cache.invalidate_pattern(pattern)
    except re.error as e:
        logger.warning("invalid_cache_pattern", pattern=pattern, error=str(e))
        return build_error_response(
            message=f"Invalid pattern '{pattern}': {e}",
            error_type="VALIDATION_ERROR",
        )

    return build_success_response(
        {"pattern": pattern, "removed": removed}, source="cache", cached=False
    )


async def cleanup_cache(cache: Any) -> dict[str, Any]:
    """Drop expired entries and trim the cache to its size bound."""
    logger.info("cleanup_cache_called")

    removed = cache.cleanup()
    return build_success_response(
        {"removed": removed, "stats": cache.get_stats().to_dict()},
        source="cache",
        cached=False,
    )


async def clear_cache(cache: Any) -> dict[str, Any]:
    """Empty the cache and reset its statistics."""
    logger.info("clear_cache_called")

    cache.clear()
    return build_success_response(cache.get_stats().to_dict(), source="cache", cached=False)
