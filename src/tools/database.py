"""MCP tools for database maintenance.

This module provides tools for reading database statistics, optimizing and
reindexing the state database, pruning old backups and creating or
restoring backups.
"""

from typing import Any

import structlog

from src.cache import keys
from src.tools.common import build_error_response, build_success_response, cached_tool_call

logger = structlog.get_logger(__name__)


def _result_response(result: dict[str, Any], error_type: str) -> dict[str, Any]:
    if not result.get("success"):
        return build_error_response(message=result.get("message", ""), error_type=error_type)
    return build_success_response(result, source="storage", cached=False)


async def get_database_stats(maintenance: Any, cache: Any) -> dict[str, Any]:
    """Get storage statistics.

    Returns:
        Standardized response containing:
            - total_recurring_transactions, total_namespaces, total_backups
            - data_size: Bytes of stored JSON
            - last_optimized: ISO 8601 timestamp or ""
            - indexed_fields: Indexed ``table.column`` names
    """
    logger.info("get_database_stats_called")

    async def load() -> dict[str, Any]:
        stats = await maintenance.collect_stats()
        return stats.to_dict()

    try:
        return await cached_tool_call(cache, keys.database_stats(), load)
    except Exception as e:
        logger.error("get_database_stats_failed", error=str(e), exc_info=True)
        return build_error_response(
            message=f"Failed to get database stats: {e}",
            error_type="DATABASE_ERROR",
        )


async def optimize_database(maintenance: Any, cache: Any) -> dict[str, Any]:
    logger.info("optimize_database_called")

    result = await maintenance.optimize()
    cache.invalidate_pattern(keys.DATABASE_PATTERN)
    return _result_response(result.to_dict(), "DATABASE_ERROR")


async def rebuild_indexes(maintenance: Any, cache: Any) -> dict[str, Any]:
    logger.info("rebuild_indexes_called")

    result = await maintenance.rebuild_indexes()
    cache.invalidate_pattern(keys.DATABASE_PATTERN)
    return _result_response(result, "DATABASE_ERROR")


async def cleanup_old_data(maintenance: Any, cache: Any, days_old: int = 90) -> dict[str, Any]:
    """Delete backups older than ``days_old`` days (minimum 1)."""
    days_old = max(1, days_old)
    logger.info("cleanup_old_data_called", days_old=days_old)

    result = await maintenance.cleanup_old_data(days_old)
    cache.invalidate_pattern(keys.DATABASE_PATTERN)
    return _result_response(result, "DATABASE_ERROR")


async def create_backup(maintenance: Any, cache: Any) -> dict[str, Any]:
    logger.info("create_backup_called")

    result = await maintenance.create_backup()
    cache.invalidate_pattern(keys.DATABASE_PATTERN)
    return _result_response(result, "BACKUP_ERROR")


async def list_backups(storage: Any) -> dict[str, Any]:
    """List stored backups, newest first."""
    logger.info("list_backups_called")

    try:
        backups = await storage.list_backups()
    except Exception as e:
        logger.error("list_backups_failed", error=str(e), exc_info=True)
        return build_error_response(
            message=f"Failed to list backups: {e}",
            error_type="STORAGE_ERROR",
        )

    return build_success_response(
        {"backups": backups, "count": len(backups)}, source="storage", cached=False
    )


async def restore_backup(maintenance: Any, cache: Any, backup_id: str) -> dict[str, Any]:
    """Restore every namespace from a backup and drop cached views."""
    logger.info("restore_backup_called", backup_id=backup_id)

    result = await maintenance.restore_backup(backup_id)
    if result.get("success"):
        cache.invalidate_pattern(keys.RECURRING_PATTERN)
    cache.invalidate_pattern(keys.DATABASE_PATTERN)
    return _result_response(result, "NOT_FOUND" if result.get("not_found") else "BACKUP_ERROR")
