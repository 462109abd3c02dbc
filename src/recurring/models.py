"""Data models for recurring transactions.

Records are stored with camelCase keys (``nextDueDate``, ``walletId``) and
accept either camelCase or snake_case on input.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class DueState(str, Enum):
    """Classification of a record's due date relative to now. Never stored."""

    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    UPCOMING = "upcoming"
    FUTURE = "future"


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RecurringTransactionBase(BaseModel):
    """Fields supplied by the user when creating a recurring transaction."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    category: str
    type: TransactionType
    frequency: Frequency
    next_due_date: datetime
    wallet_id: str
    description: str | None = None
    is_active: bool = True

    @field_validator("next_due_date")
    @classmethod
    def _due_date_aware(cls, value: datetime) -> datetime:
        return _as_utc(value)


class RecurringTransaction(RecurringTransactionBase):
    """A stored recurring transaction."""

    id: str
    created_at: datetime
    last_executed: datetime | None = None

    @field_validator("created_at", "last_executed")
    @classmethod
    def _timestamps_aware(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def to_storage(self) -> dict:
        """Serialize with camelCase keys and ISO-8601 timestamps."""
        return self.model_dump(by_alias=True, mode="json")
