"""MCP tools for managing recurring transactions.

This module provides tools for listing, creating, updating and deleting
recurring transactions, reading the upcoming/overdue/reminder views and
marking a transaction as executed. Read views are cached; every mutation
persists the store and invalidates the cached views.
"""

from typing import Any

import structlog
from pydantic import ValidationError

from src.cache import keys
from src.config import settings
from src.tools.common import build_error_response, build_success_response, cached_tool_call

logger = structlog.get_logger(__name__)

MAX_DAYS = 366


def _clamp_days(days: int | None, default: int) -> int:
    if days is None:
        return default
    return max(0, min(days, MAX_DAYS))


def serialize_transaction(store: Any, tx: Any, days: int | None = None) -> dict[str, Any]:
    """Serialize a record with its derived due state."""
    data = tx.to_storage()
    data["dueState"] = store.due_state(tx, days).value
    data["daysUntilDue"] = store.days_until_due(tx)
    return data


async def _persist(store: Any, storage: Any, cache: Any) -> None:
    # The store is already mutated, so cached views are stale even if the save fails
    cache.invalidate_pattern(keys.RECURRING_PATTERN)
    cache.invalidate_pattern(keys.DATABASE_PATTERN)
    await storage.save(settings.recurring_storage_key, store.to_state())


def _not_found(transaction_id: str) -> dict[str, Any]:
    return build_error_response(
        message=f"Recurring transaction '{transaction_id}' not found",
        error_type="NOT_FOUND",
    )


async def list_recurring_transactions(store: Any) -> dict[str, Any]:
    """List every recurring transaction in creation order.

    Args:
        store: RecurringTransactionStore instance.

    Returns:
        Standardized response containing:
            - transactions: Serialized records with dueState and daysUntilDue
            - count: Number of records
    """
    logger.info("list_recurring_transactions_called")

    transactions = [serialize_transaction(store, tx) for tx in store.list_transactions()]
    return build_success_response(
        {"transactions": transactions, "count": len(transactions)}, source="store"
    )


async def add_recurring_transaction(
    store: Any,
    storage: Any,
    cache: Any,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Create a recurring transaction.

    Args:
        store: RecurringTransactionStore instance.
        storage: StateStorage instance.
        cache: CacheStore instance.
        data: Template fields (name, amount, category, type, frequency,
            nextDueDate, walletId, description, isActive).

    Returns:
        Standardized response containing the created record.
    """
    logger.info("add_recurring_transaction_called", name=data.get("name"))

    try:
        tx = store.add_recurring_transaction(data)
        await _persist(store, storage, cache)
        return build_success_response(serialize_transaction(store, tx), source="store")

    except ValidationError as e:
        logger.warning("recurring_validation_failed", errors=e.error_count())
        return build_error_response(
            message=f"Invalid recurring transaction: {e}",
            error_type="VALIDATION_ERROR",
        )
    except Exception as e:
        logger.error("add_recurring_transaction_failed", error=str(e), exc_info=True)
        return build_error_response(
            message=f"Failed to add recurring transaction: {e}",
            error_type="STORAGE_ERROR",
        )


async def update_recurring_transaction(
    store: Any,
    storage: Any,
    cache: Any,
    transaction_id: str,
    changes: dict[str, Any],
) -> dict[str, Any]:
    """Update fields of a recurring transaction."""
    logger.info(
        "update_recurring_transaction_called",
        transaction_id=transaction_id,
        fields=sorted(changes),
    )

    try:
        tx = store.update_recurring_transaction(transaction_id, **changes)
        if tx is None:
            return _not_found(transaction_id)

        await _persist(store, storage, cache)
        return build_success_response(serialize_transaction(store, tx), source="store")

    except (ValidationError, ValueError) as e:
        logger.warning("recurring_update_rejected", transaction_id=transaction_id, error=str(e))
        return build_error_response(
            message=f"Invalid update: {e}",
            error_type="VALIDATION_ERROR",
        )
    except Exception as e:
        logger.error(
            "update_recurring_transaction_failed",
            transaction_id=transaction_id,
            error=str(e),
            exc_info=True,
        )
        return build_error_response(
            message=f"Failed to update recurring transaction: {e}",
            error_type="STORAGE_ERROR",
        )


async def delete_recurring_transaction(
    store: Any,
    storage: Any,
    cache: Any,
    transaction_id: str,
) -> dict[str, Any]:
    logger.info("delete_recurring_transaction_called", transaction_id=transaction_id)

    try:
        if not store.delete_recurring_transaction(transaction_id):
            return _not_found(transaction_id)

        await _persist(store, storage, cache)
        return build_success_response({"id": transaction_id, "deleted": True}, source="store")

    except Exception as e:
        logger.error(
            "delete_recurring_transaction_failed",
            transaction_id=transaction_id,
            error=str(e),
            exc_info=True,
        )
        return build_error_response(
            message=f"Failed to delete recurring transaction: {e}",
            error_type="STORAGE_ERROR",
        )


async def get_upcoming_transactions(
    store: Any,
    cache: Any,
    days: int | None = None,
) -> dict[str, Any]:
    """Get active recurring transactions due within ``days``, soonest first.

    Args:
        store: RecurringTransactionStore instance.
        cache: CacheStore instance.
        days: Lookahead window in days (0-366, default from settings).

    Returns:
        Standardized response containing:
            - days: Window used
            - transactions: Serialized records
    """
    window = _clamp_days(days, settings.upcoming_days)
    logger.info("get_upcoming_transactions_called", days=window)

    async def load() -> dict[str, Any]:
        upcoming = store.get_upcoming_transactions(window)
        return {
            "days": window,
            "transactions": [serialize_transaction(store, tx, window) for tx in upcoming],
        }

    try:
        return await cached_tool_call(
            cache, keys.recurring_upcoming(window), load, ttl=settings.cache_schedule_ttl_ms
        )
    except Exception as e:
        logger.error("get_upcoming_transactions_failed", error=str(e), exc_info=True)
        return build_error_response(
            message=f"Failed to get upcoming transactions: {e}",
            error_type="SCHEDULER_ERROR",
        )


async def get_overdue_transactions(store: Any, cache: Any) -> dict[str, Any]:
    """Get active recurring transactions past their due date, oldest first."""
    logger.info("get_overdue_transactions_called")

    async def load() -> dict[str, Any]:
        overdue = store.get_overdue_transactions()
        return {"transactions": [serialize_transaction(store, tx) for tx in overdue]}

    try:
        return await cached_tool_call(
            cache, keys.recurring_overdue(), load, ttl=settings.cache_schedule_ttl_ms
        )
    except Exception as e:
        logger.error("get_overdue_transactions_failed", error=str(e), exc_info=True)
        return build_error_response(
            message=f"Failed to get overdue transactions: {e}",
            error_type="SCHEDULER_ERROR",
        )


async def get_recurring_reminders(
    store: Any,
    cache: Any,
    days: int | None = None,
) -> dict[str, Any]:
    """Get dashboard reminders: overdue transactions, then those due soon."""
    window = _clamp_days(days, settings.reminder_days)
    logger.info("get_recurring_reminders_called", days=window)

    async def load() -> dict[str, Any]:
        reminders = store.get_reminders(window)
        return {
            "days": window,
            "reminders": [serialize_transaction(store, tx, window) for tx in reminders],
        }

    try:
        return await cached_tool_call(
            cache, keys.recurring_reminders(window), load, ttl=settings.cache_schedule_ttl_ms
        )
    except Exception as e:
        logger.error("get_recurring_reminders_failed", error=str(e), exc_info=True)
        return build_error_response(
            message=f"Failed to get reminders: {e}",
            error_type="SCHEDULER_ERROR",
        )


async def mark_recurring_executed(
    store: Any,
    storage: Any,
    cache: Any,
    transaction_id: str,
) -> dict[str, Any]:
    """Advance a recurring transaction to its next due date.

    Applying the balance change and recording the ledger transaction is the
    caller's job; this only moves the schedule forward.
    """
    logger.info("mark_recurring_executed_called", transaction_id=transaction_id)

    try:
        tx = store.mark_as_executed(transaction_id)
        if tx is None:
            return _not_found(transaction_id)

        await _persist(store, storage, cache)
        return build_success_response(serialize_transaction(store, tx), source="store")

    except Exception as e:
        logger.error(
            "mark_recurring_executed_failed",
            transaction_id=transaction_id,
            error=str(e),
            exc_info=True,
        )
        return build_error_response(
            message=f"Failed to mark transaction as executed: {e}",
            error_type="STORAGE_ERROR",
        )


async def toggle_recurring_active(
    store: Any,
    storage: Any,
    cache: Any,
    transaction_id: str,
) -> dict[str, Any]:
    logger.info("toggle_recurring_active_called", transaction_id=transaction_id)

    try:
        tx = store.toggle_active(transaction_id)
        if tx is None:
            return _not_found(transaction_id)

        await _persist(store, storage, cache)
        return build_success_response(serialize_transaction(store, tx), source="store")

    except Exception as e:
        logger.error(
            "toggle_recurring_active_failed",
            transaction_id=transaction_id,
            error=str(e),
            exc_info=True,
        )
        return build_error_response(
            message=f"Failed to toggle transaction: {e}",
            error_type="STORAGE_ERROR",
        )
