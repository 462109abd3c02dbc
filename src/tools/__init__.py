"""MCP tools module for the finance tracker.

This module provides FastMCP tool implementations for:
- Cache statistics and maintenance
- Recurring transactions and reminders
- Database statistics, optimization and backups
- Health check
"""

from src.tools.cache import cleanup_cache, clear_cache, get_cache_stats, invalidate_cache
from src.tools.database import (
    cleanup_old_data,
    create_backup,
    get_database_stats,
    list_backups,
    optimize_database,
    rebuild_indexes,
    restore_backup,
)
from src.tools.health import health_check
from src.tools.recurring import (
    add_recurring_transaction,
    delete_recurring_transaction,
    get_overdue_transactions,
    get_recurring_reminders,
    get_upcoming_transactions,
    list_recurring_transactions,
    mark_recurring_executed,
    toggle_recurring_active,
    update_recurring_transaction,
)

__all__ = [
    "get_cache_stats",
    "invalidate_cache",
    "cleanup_cache",
    "clear_cache",
    "list_recurring_transactions",
    "add_recurring_transaction",
    "update_recurring_transaction",
    "delete_recurring_transaction",
    "get_upcoming_transactions",
    "get_overdue_transactions",
    "get_recurring_reminders",
    "mark_recurring_executed",
    "toggle_recurring_active",
    "get_database_stats",
    "optimize_database",
    "rebuild_indexes",
    "cleanup_old_data",
    "create_backup",
    "list_backups",
    "restore_backup",
    "health_check",
]
