"""FastMCP server entry point for the finance tracker MCP server.

This module provides the main MCP server that exposes the cache, recurring
transaction scheduler and database maintenance through FastMCP tools.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any
from zoneinfo import ZoneInfo

import structlog
from fastmcp import FastMCP
from starlette.responses import JSONResponse

from src.cache.memory_cache import CacheStore
from src.config import load_recurring_seed, settings
from src.database.maintenance import DatabaseMaintenance
from src.recurring.scheduler import RecurringTransactionStore
from src.storage.sqlite_storage import StateStorage


# Configure structlog
def configure_logging() -> None:
    """Configure structlog for JSON or console output."""
    if settings.log_format == "json":
        processors = [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        cache_logger_on_first_use=True,
    )


# Initialize logging
configure_logging()
logger = structlog.get_logger(__name__)

# Global instances (initialized in lifespan)
storage: StateStorage | None = None
cache: CacheStore | None = None
recurring_store: RecurringTransactionStore | None = None
maintenance: DatabaseMaintenance | None = None


async def load_recurring_state(store: RecurringTransactionStore, state_storage: StateStorage) -> int:
    """Load persisted recurring transactions, seeding from YAML on first start.

    Returns:
        Number of records in the store afterwards.
    """
    state = await state_storage.load(settings.recurring_storage_key)
    if state is not None:
        return store.load_state(state)

    try:
        seed = load_recurring_seed()
    except FileNotFoundError as e:
        logger.info("recurring_seed_not_found", error=str(e))
        return 0

    for record in seed:
        store.add_recurring_transaction(record)
    await state_storage.save(settings.recurring_storage_key, store.to_state())
    logger.info("recurring_seed_loaded", count=len(seed))
    return len(seed)


@asynccontextmanager
async def lifespan(server):
    """Manage server startup and shutdown."""
    global storage, cache, recurring_store, maintenance

    logger.info(
        "mcp_server_starting",
        log_level=settings.log_level,
        log_format=settings.log_format,
    )

    # Initialize state storage
    try:
        storage = StateStorage(db_path=settings.storage_db_path)
        await storage.initialize()
        logger.info("state_storage_ready")
    except Exception as e:
        logger.error("storage_initialization_failed", error=str(e), exc_info=True)
        sys.exit(1)

    # Initialize recurring transaction store
    try:
        recurring_store = RecurringTransactionStore(
            default_days=settings.upcoming_days,
            tz=ZoneInfo(settings.timezone),
        )
        count = await load_recurring_state(recurring_store, storage)
        logger.info("recurring_store_initialized", count=count)
    except Exception as e:
        logger.error("recurring_store_initialization_failed", error=str(e), exc_info=True)
        sys.exit(1)

    # Initialize cache store
    try:
        cache = CacheStore(
            default_ttl=settings.cache_default_ttl_ms,
            cleanup_interval=settings.cache_cleanup_interval_ms,
            max_entries=settings.cache_max_entries,
        )
        await cache.initialize()
        logger.info("cache_store_ready")
    except Exception as e:
        logger.error("cache_initialization_failed", error=str(e), exc_info=True)
        sys.exit(1)

    maintenance = DatabaseMaintenance(
        storage,
        cache,
        recurring_store,
        recurring_key=settings.recurring_storage_key,
    )

    logger.info("mcp_server_startup_complete")

    try:
        yield
    finally:
        logger.info("mcp_server_shutting_down")

        if cache:
            try:
                await cache.close()
                logger.info("cache_store_closed")
            except Exception as e:
                logger.warning("cache_close_error", error=str(e))

        if storage:
            try:
                await storage.close()
                logger.info("state_storage_closed")
            except Exception as e:
                logger.warning("storage_close_error", error=str(e))

        logger.info("mcp_server_shutdown_complete")


# Create FastMCP instance
mcp = FastMCP("Finance Tracker MCP Server", lifespan=lifespan)


def _not_initialized() -> dict:
    logger.error("server_not_initialized")
    return {
        "status": "error",
        "error": {"message": "Server not initialized", "type": "INITIALIZATION_ERROR"},
    }


# Tool: Cache Statistics
@mcp.tool()
async def get_cache_stats() -> dict:
    """Get cache statistics.

    Returns:
        Dictionary containing:
            - status: "success" or "error"
            - data: total_entries, total_hits, total_misses, hit_rate (percent),
              memory_usage (bytes) and keys
            - metadata: Response metadata
    """
    from src.tools.cache import get_cache_stats as get_cache_stats_impl

    if not cache:
        return _not_initialized()

    return await get_cache_stats_impl(cache)


# Tool: Invalidate Cache
@mcp.tool()
async def invalidate_cache(pattern: str) -> dict:
    """Remove cache entries whose key matches a regular expression.

    Args:
        pattern: Regular expression, e.g. "^recurring:" or "wallet:balance:"

    Returns:
        Dictionary containing:
            - status: "success" or "error"
            - data: pattern and number of removed entries
    """
    from src.tools.cache import invalidate_cache as invalidate_cache_impl

    if not cache:
        return _not_initialized()

    return await invalidate_cache_impl(cache, pattern)


# Tool: Cleanup Cache
@mcp.tool()
async def cleanup_cache() -> dict:
    """Remove expired cache entries and keep the most recently used ones."""
    from src.tools.cache import cleanup_cache as cleanup_cache_impl

    if not cache:
        return _not_initialized()

    return await cleanup_cache_impl(cache)


# Tool: Clear Cache
@mcp.tool()
async def clear_cache() -> dict:
    """Remove every cache entry and reset cache statistics."""
    from src.tools.cache import clear_cache as clear_cache_impl

    if not cache:
        return _not_initialized()

    return await clear_cache_impl(cache)


# Tool: List Recurring Transactions
@mcp.tool()
async def list_recurring_transactions() -> dict:
    """List every recurring transaction with its due state.

    Returns:
        Dictionary containing:
            - status: "success" or "error"
            - data:
                - transactions: List of records (id, name, amount, category,
                  type, frequency, nextDueDate, walletId, description,
                  isActive, createdAt, lastExecuted, dueState, daysUntilDue)
                - count: Number of records
    """
    from src.tools.recurring import list_recurring_transactions as list_impl

    if not recurring_store:
        return _not_initialized()

    return await list_impl(recurring_store)


# Tool: Add Recurring Transaction
@mcp.tool()
async def add_recurring_transaction(
    name: str,
    amount: float,
    category: str,
    type: str,
    frequency: str,
    next_due_date: str,
    wallet_id: str,
    description: str | None = None,
    is_active: bool = True,
) -> dict:
    """Create a recurring income or expense.

    Args:
        name: Display name (e.g. "Rent")
        amount: Positive amount
        category: Category name
        type: "income" or "expense"
        frequency: "daily", "weekly", "monthly" or "yearly"
        next_due_date: ISO 8601 timestamp of the first due date
        wallet_id: Wallet the transaction is charged to or paid into
        description: Optional description
        is_active: Whether the transaction is active (default: true)

    Returns:
        Dictionary containing the created record or a VALIDATION_ERROR.
    """
    from src.tools.recurring import add_recurring_transaction as add_impl

    if not recurring_store or not storage or not cache:
        return _not_initialized()

    data: dict[str, Any] = {
        "name": name,
        "amount": amount,
        "category": category,
        "type": type,
        "frequency": frequency,
        "next_due_date": next_due_date,
        "wallet_id": wallet_id,
        "description": description,
        "is_active": is_active,
    }
    return await add_impl(recurring_store, storage, cache, data)


# Tool: Update Recurring Transaction
@mcp.tool()
async def update_recurring_transaction(transaction_id: str, changes: dict) -> dict:
    """Update fields of a recurring transaction.

    Args:
        transaction_id: Record id
        changes: Field names (snake_case or camelCase) mapped to new values.
            id and createdAt cannot be changed.
    """
    from src.tools.recurring import update_recurring_transaction as update_impl

    if not recurring_store or not storage or not cache:
        return _not_initialized()

    return await update_impl(recurring_store, storage, cache, transaction_id, changes)


# Tool: Delete Recurring Transaction
@mcp.tool()
async def delete_recurring_transaction(transaction_id: str) -> dict:
    """Delete a recurring transaction."""
    from src.tools.recurring import delete_recurring_transaction as delete_impl

    if not recurring_store or not storage or not cache:
        return _not_initialized()

    return await delete_impl(recurring_store, storage, cache, transaction_id)


# Tool: Upcoming Recurring Transactions
@mcp.tool()
async def get_upcoming_transactions(days: int | None = None) -> dict:
    """List active recurring transactions due within the next days, soonest first.

    Args:
        days: Lookahead window in days (0-366, default: 7)
    """
    from src.tools.recurring import get_upcoming_transactions as upcoming_impl

    if not recurring_store or not cache:
        return _not_initialized()

    return await upcoming_impl(recurring_store, cache, days)


# Tool: Overdue Recurring Transactions
@mcp.tool()
async def get_overdue_transactions() -> dict:
    """List active recurring transactions past their due date, oldest first."""
    from src.tools.recurring import get_overdue_transactions as overdue_impl

    if not recurring_store or not cache:
        return _not_initialized()

    return await overdue_impl(recurring_store, cache)


# Tool: Recurring Reminders
@mcp.tool()
async def get_recurring_reminders(days: int | None = None) -> dict:
    """List overdue recurring transactions followed by those due soon.

    Args:
        days: Lookahead window in days (0-366, default: 3)
    """
    from src.tools.recurring import get_recurring_reminders as reminders_impl

    if not recurring_store or not cache:
        return _not_initialized()

    return await reminders_impl(recurring_store, cache, days)


# Tool: Mark Recurring Transaction Executed
@mcp.tool()
async def mark_recurring_executed(transaction_id: str) -> dict:
    """Move a recurring transaction to its next due date.

    The next due date is one frequency step after the current due date.
    Wallet balances are not changed by this tool.
    """
    from src.tools.recurring import mark_recurring_executed as execute_impl

    if not recurring_store or not storage or not cache:
        return _not_initialized()

    return await execute_impl(recurring_store, storage, cache, transaction_id)


# Tool: Toggle Recurring Transaction
@mcp.tool()
async def toggle_recurring_active(transaction_id: str) -> dict:
    """Activate or deactivate a recurring transaction."""
    from src.tools.recurring import toggle_recurring_active as toggle_impl

    if not recurring_store or not storage or not cache:
        return _not_initialized()

    return await toggle_impl(recurring_store, storage, cache, transaction_id)


# Tool: Database Statistics
@mcp.tool()
async def get_database_stats() -> dict:
    """Get state database statistics.

    Returns:
        Dictionary containing total_recurring_transactions, total_namespaces,
        total_backups, data_size (bytes), last_optimized and indexed_fields.
    """
    from src.tools.database import get_database_stats as stats_impl

    if not maintenance or not cache:
        return _not_initialized()

    return await stats_impl(maintenance, cache)


# Tool: Optimize Database
@mcp.tool()
async def optimize_database() -> dict:
    """Persist state, compact the database and sweep the cache."""
    from src.tools.database import optimize_database as optimize_impl

    if not maintenance or not cache:
        return _not_initialized()

    return await optimize_impl(maintenance, cache)


# Tool: Rebuild Indexes
@mcp.tool()
async def rebuild_indexes() -> dict:
    """Rebuild state database indexes."""
    from src.tools.database import rebuild_indexes as reindex_impl

    if not maintenance or not cache:
        return _not_initialized()

    return await reindex_impl(maintenance, cache)


# Tool: Cleanup Old Data
@mcp.tool()
async def cleanup_old_data(days_old: int = 90) -> dict:
    """Delete backups older than the given number of days.

    Args:
        days_old: Age threshold in days (minimum 1, default: 90)
    """
    from src.tools.database import cleanup_old_data as cleanup_impl

    if not maintenance or not cache:
        return _not_initialized()

    return await cleanup_impl(maintenance, cache, days_old)


# Tool: Create Backup
@mcp.tool()
async def create_backup() -> dict:
    """Back up every stored namespace. Returns the backup id."""
    from src.tools.database import create_backup as backup_impl

    if not maintenance or not cache:
        return _not_initialized()

    return await backup_impl(maintenance, cache)


# Tool: List Backups
@mcp.tool()
async def list_backups() -> dict:
    """List backups, newest first."""
    from src.tools.database import list_backups as list_backups_impl

    if not storage:
        return _not_initialized()

    return await list_backups_impl(storage)


# Tool: Restore Backup
@mcp.tool()
async def restore_backup(backup_id: str) -> dict:
    """Restore every stored namespace from a backup.

    Args:
        backup_id: Id returned by create_backup (e.g. "backup_1735689600000")
    """
    from src.tools.database import restore_backup as restore_impl

    if not maintenance or not cache:
        return _not_initialized()

    return await restore_impl(maintenance, cache, backup_id)


# Tool: Health Check
@mcp.tool()
async def health_check() -> dict:
    """Check health of MCP server components.

    Verifies the state database, the cache sweep and the recurring store.
    """
    from src.tools.health import health_check as health_check_impl

    if not recurring_store or not storage or not cache:
        return _not_initialized()

    return await health_check_impl(recurring_store, storage, cache)


# HTTP health endpoint (for Docker healthcheck)
@mcp.custom_route("/health", methods=["GET"])
async def http_health(request) -> JSONResponse:
    """HTTP endpoint for Docker healthcheck.

    Returns:
        Simple health status for container orchestration.
    """
    if not storage or not cache or not recurring_store:
        return JSONResponse({"status": "initializing"})

    try:
        await storage.namespaces()
    except Exception as e:
        logger.error("http_health_check_failed", error=str(e))
        return JSONResponse({"status": "unhealthy", "error": str(e)}, status_code=503)

    return JSONResponse({"status": "healthy", "cache_running": cache.running})


if __name__ == "__main__":
    # This allows running the server directly with `python src/server.py`
    # but the recommended way is: fastmcp run src/server.py
    logger.info("starting_mcp_server_directly")
    mcp.run()
