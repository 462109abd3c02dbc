"""Common utilities for MCP tools.

This module provides shared functionality for all MCP tools including:
- Unified response formatting
- Error handling
- Caching patterns
"""

from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import structlog

from src.config import settings

logger = structlog.get_logger(__name__)


def now_iso() -> str:
    return datetime.now(ZoneInfo(settings.timezone)).isoformat()


def build_success_response(
    data: Any,
    source: str = "store",
    cached: bool = False,
) -> dict[str, Any]:
    """Build a standardized success response.

    Args:
        data: The response data.
        source: Data source ("store", "storage", "cache" or "config").
        cached: Whether the data came from cache.

    Returns:
        Standardized response dictionary.
    """
    return {
        "status": "success",
        "data": data,
        "metadata": {
            "fetched_at": now_iso(),
            "source": source,
            "cached": cached,
            "cache_ttl_ms": settings.cache_default_ttl_ms,
        },
    }


def build_error_response(
    message: str,
    error_type: str = "UNKNOWN_ERROR",
) -> dict[str, Any]:
    """Build a standardized error response.

    Args:
        message: Error message.
        error_type: Error type identifier.

    Returns:
        Standardized error response dictionary.
    """
    return {
        "status": "error",
        "error": {
            "message": message,
            "type": error_type,
        },
        "metadata": {
            "fetched_at": now_iso(),
        },
    }


async def cached_tool_call(
    cache: Any,
    cache_key: str,
    load_fn: Any,
    *args: Any,
    ttl: int | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """Execute a tool with caching support.

    This pattern checks cache first, then falls back to the loader if needed.

    Args:
        cache: CacheStore instance.
        cache_key: Key for caching the result.
        load_fn: Async function to call if cache miss.
        *args: Positional arguments for load_fn.
        ttl: Cache TTL in milliseconds; None uses the cache default.
        **kwargs: Keyword arguments for load_fn.

    Returns:
        Standardized response dictionary.
    """
    # Try cache first
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        return build_success_response(cached_data, source="cache", cached=True)

    try:
        data = await load_fn(*args, **kwargs)

        cache.set(cache_key, data, ttl)

        return build_success_response(data, source="store", cached=False)

    except Exception as e:
        logger.error(
            "tool_load_failed",
            cache_key=cache_key,
            error=str(e),
            exc_info=True,
        )
        raise
