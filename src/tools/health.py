"""MCP tool for health checking.

This module provides the health_check tool which verifies the status of
the state database, the cache sweep and the recurring transaction store.
"""

from typing import Any

import structlog

from src.tools.common import build_error_response, build_success_response, now_iso

logger = structlog.get_logger(__name__)


async def health_check(
    store: Any,
    storage: Any,
    cache: Any,
) -> dict[str, Any]:
    """Check health of MCP server components.

    Verifies the status of:
    - State database connection
    - Cache background sweep
    - Recurring transaction store

    Args:
        store: RecurringTransactionStore instance.
        storage: StateStorage instance.
        cache: CacheStore instance.

    Returns:
        Standardized response containing:
            - storage_status: State database status
            - cache_status: "ok" while the sweep runs, "stopped" otherwise
            - cache_entries: Number of cached entries
            - recurring_count: Number of recurring transactions
            - checked_at: Timestamp of health check

    Examples:
        >>> response = await health_check(store, storage, cache)
        >>> print(response["data"]["storage_status"])
        ok
    """
    logger.info("health_check_called")

    try:
        storage_status = "ok"
        try:
            # Try a simple query to verify connection
            await storage.namespaces()
        except Exception as e:
            logger.warning("storage_health_check_failed", error=str(e))
            storage_status = f"error: {str(e)}"

        result = {
            "storage_status": storage_status,
            "cache_status": "ok" if cache.running else "stopped",
            "cache_entries": cache.get_stats().total_entries,
            "recurring_count": len(store.list_transactions()),
            "checked_at": now_iso(),
        }

        return build_success_response(result, source="health_check", cached=False)

    except Exception as e:
        logger.error("health_check_failed", error=str(e), exc_info=True)
        return build_error_response(
            message=f"Health check failed: {str(e)}",
            error_type="HEALTH_CHECK_ERROR",
        )
