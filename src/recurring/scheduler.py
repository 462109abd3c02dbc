"""Recurring transaction store and due-date scheduling.

This module provides a RecurringTransactionStore class that handles:
- Creating, updating and deleting recurring transaction templates
- Classifying templates as overdue, due today, upcoming or future
- Advancing a template's next due date after it has been executed
- Exporting and loading its state for persistence

Month and year steps clamp to the last valid day of the target month, so
a template due on Jan 31 moves to Feb 29 (or 28), and one due on Feb 29
moves to Feb 28 of the next year.
"""

import threading
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

import structlog
from dateutil.relativedelta import relativedelta

from src.clock import Clock, SystemClock
from src.recurring.models import (
    DueState,
    Frequency,
    RecurringTransaction,
    RecurringTransactionBase,
)

logger = structlog.get_logger(__name__)

STATE_VERSION = 0

_STEPS: dict[Frequency, relativedelta] = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(days=7),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.YEARLY: relativedelta(years=1),
}

_IMMUTABLE_FIELDS = {"id", "created_at", "createdAt"}


def next_occurrence(due: datetime, frequency: Frequency) -> datetime:
    """Return the due date one frequency step after ``due``."""
    return due + _STEPS[Frequency(frequency)]


def _field_aliases() -> dict[str, str]:
    aliases: dict[str, str] = {}
    for name, info in RecurringTransaction.model_fields.items():
        alias = info.alias or name
        aliases[name] = alias
        aliases[alias] = alias
    return aliases


class RecurringTransactionStore:
    """In-memory collection of recurring transactions.

    Every operation holds a re-entrant lock for its whole duration, so
    concurrent executions or toggles of the same record never interleave.
    Lookups of unknown ids are no-ops that return None.

    Usage:
        store = RecurringTransactionStore()
        tx = store.add_recurring_transaction({...})
        store.get_upcoming_transactions(days=7)
        store.mark_as_executed(tx.id)

    Attributes:
        default_days: Lookahead window used when no ``days`` is given.
        tz: Timezone used to decide which calendar day is "today".
    """

    def __init__(
        self,
        clock: Clock | None = None,
        default_days: int = 7,
        tz: tzinfo = timezone.utc,
        transactions: Iterable[RecurringTransaction] | None = None,
    ) -> None:
        self.default_days = default_days
        self.tz = tz
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._transactions: list[RecurringTransaction] = list(transactions or [])

    def _now(self) -> datetime:
        return self._clock.now()

    def _index(self, transaction_id: str) -> int | None:
        for i, tx in enumerate(self._transactions):
            if tx.id == transaction_id:
                return i
        return None

    def list_transactions(self) -> list[RecurringTransaction]:
        """Return every record in insertion order."""
        with self._lock:
            return list(self._transactions)

    def get(self, transaction_id: str) -> RecurringTransaction | None:
        with self._lock:
            i = self._index(transaction_id)
            return self._transactions[i] if i is not None else None

    def add_recurring_transaction(
        self, data: RecurringTransactionBase | Mapping[str, Any]
    ) -> RecurringTransaction:
        """Create a record with a generated id and creation time.

        Raises:
            pydantic.ValidationError: If the data is not a valid template.
        """
        if not isinstance(data, RecurringTransactionBase):
            data = RecurringTransactionBase.model_validate(data)

        with self._lock:
            tx = RecurringTransaction(
                **data.model_dump(),
                id=uuid.uuid4().hex,
                created_at=self._now(),
            )
            self._transactions.append(tx)

        logger.info("recurring_added", id=tx.id, name=tx.name, frequency=tx.frequency.value)
        return tx

    def update_recurring_transaction(
        self, transaction_id: str, **changes: Any
    ) -> RecurringTransaction | None:
        """Apply field changes to a record (snake_case or camelCase keys).

        Raises:
            ValueError: If a change targets an unknown or immutable field.
            pydantic.ValidationError: If the result is not a valid record.
        """
        aliases = _field_aliases()
        for key in changes:
            if key in _IMMUTABLE_FIELDS:
                raise ValueError(f"Field '{key}' cannot be changed")
            if key not in aliases:
                raise ValueError(f"Unknown field '{key}'")

        with self._lock:
            i = self._index(transaction_id)
            if i is None:
                logger.debug("recurring_not_found", id=transaction_id, action="update")
                return None

            merged = self._transactions[i].model_dump(by_alias=True)
            merged.update({aliases[key]: value for key, value in changes.items()})
            updated = RecurringTransaction.model_validate(merged)
            self._transactions[i] = updated

        logger.info("recurring_updated", id=transaction_id, fields=sorted(changes))
        return updated

    def delete_recurring_transaction(self, transaction_id: str) -> bool:
        with self._lock:
            i = self._index(transaction_id)
            if i is None:
                return False
            del self._transactions[i]

        logger.info("recurring_deleted", id=transaction_id)
        return True

    def get_upcoming_transactions(self, days: int | None = None) -> list[RecurringTransaction]:
        """Active records due between now and ``days`` from now, soonest first."""
        window = self.default_days if days is None else days
        with self._lock:
            now = self._now()
            horizon = now + timedelta(days=window)
            upcoming = [
                tx
                for tx in self._transactions
                if tx.is_active and now <= tx.next_due_date <= horizon
            ]
        return sorted(upcoming, key=lambda tx: tx.next_due_date)

    def get_overdue_transactions(self) -> list[RecurringTransaction]:
        """Active records whose due date has passed, oldest first."""
        with self._lock:
            now = self._now()
            overdue = [
                tx for tx in self._transactions if tx.is_active and tx.next_due_date < now
            ]
        return sorted(overdue, key=lambda tx: tx.next_due_date)

    def get_reminders(self, days: int = 3) -> list[RecurringTransaction]:
        """Overdue records followed by those due within ``days``."""
        with self._lock:
            return self.get_overdue_transactions() + self.get_upcoming_transactions(days)

    def mark_as_executed(self, transaction_id: str) -> RecurringTransaction | None:
        """Advance a record's due date by one step of its frequency.

        The step is taken from the current due date, not from now, so a
        late execution keeps the original schedule.
        """
        with self._lock:
            i = self._index(transaction_id)
            if i is None:
                logger.debug("recurring_not_found", id=transaction_id, action="execute")
                return None

            tx = self._transactions[i]
            next_due = next_occurrence(tx.next_due_date, tx.frequency)
            updated = tx.model_copy(
                update={"next_due_date": next_due, "last_executed": self._now()}
            )
            self._transactions[i] = updated

        logger.info(
            "recurring_executed",
            id=transaction_id,
            previous_due=tx.next_due_date.isoformat(),
            next_due=next_due.isoformat(),
        )
        return updated

    def toggle_active(self, transaction_id: str) -> RecurringTransaction | None:
        with self._lock:
            i = self._index(transaction_id)
            if i is None:
                logger.debug("recurring_not_found", id=transaction_id, action="toggle")
                return None

            tx = self._transactions[i]
            updated = tx.model_copy(update={"is_active": not tx.is_active})
            self._transactions[i] = updated

        logger.info("recurring_toggled", id=transaction_id, is_active=updated.is_active)
        return updated

    def days_until_due(self, tx: RecurringTransaction) -> int:
        """Whole days until the due date, truncated toward zero; negative when overdue."""
        return int((tx.next_due_date - self._now()) / timedelta(days=1))

    def due_state(self, tx: RecurringTransaction, days: int | None = None) -> DueState:
        """Classify a record's due date relative to now.

        A due date earlier today is overdue, one later today is due today.
        """
        window = self.default_days if days is None else days
        now = self._now()
        due = tx.next_due_date

        if due < now:
            return DueState.OVERDUE
        if due.astimezone(self.tz).date() == now.astimezone(self.tz).date():
            return DueState.DUE_TODAY
        if due <= now + timedelta(days=window):
            return DueState.UPCOMING
        return DueState.FUTURE

    def to_state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "recurringTransactions": [tx.to_storage() for tx in self._transactions],
                "version": STATE_VERSION,
            }

    def load_state(self, state: Mapping[str, Any] | None) -> int:
        """Replace the collection with a previously exported state.

        Returns:
            Number of records loaded.

        Raises:
            pydantic.ValidationError: If a stored record is malformed.
        """
        records = (state or {}).get("recurringTransactions", [])
        loaded = [RecurringTransaction.model_validate(record) for record in records]
        with self._lock:
            self._transactions = loaded

        logger.info("recurring_state_loaded", count=len(loaded))
        return len(loaded)
