"""Recurring transaction templates and their due-date scheduling."""

from src.recurring.models import (
    DueState,
    Frequency,
    RecurringTransaction,
    RecurringTransactionBase,
    TransactionType,
)
from src.recurring.scheduler import RecurringTransactionStore, next_occurrence

__all__ = [
    "DueState",
    "Frequency",
    "RecurringTransaction",
    "RecurringTransactionBase",
    "RecurringTransactionStore",
    "TransactionType",
    "next_occurrence",
]
