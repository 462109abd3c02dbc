"""Tests for recurring transaction scheduling.

This module tests the RecurringTransactionStore including due-date windows,
schedule advancement, due-state classification and state export.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.clock import FrozenClock
from src.recurring import (
    DueState,
    Frequency,
    RecurringTransactionStore,
    TransactionType,
    next_occurrence,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def store(clock):
    return RecurringTransactionStore(clock=clock)


def make(store, due, **overrides):
    data = {
        "name": "Rent",
        "amount": 1500000,
        "category": "Housing",
        "type": "expense",
        "frequency": "monthly",
        "nextDueDate": due.isoformat(),
        "walletId": "wallet-1",
    }
    data.update(overrides)
    return store.add_recurring_transaction(data)


def test_add_generates_id_and_created_at(store):
    tx = make(store, NOW + timedelta(days=1), description="Apartment")

    assert tx.id
    assert tx.created_at == NOW
    assert tx.type is TransactionType.EXPENSE
    assert tx.frequency is Frequency.MONTHLY
    assert tx.is_active is True
    assert tx.last_executed is None
    assert store.get(tx.id) == tx


def test_add_accepts_snake_case(store):
    tx = store.add_recurring_transaction(
        {
            "name": "Salary",
            "amount": 8000000,
            "category": "Salary",
            "type": "income",
            "frequency": "monthly",
            "next_due_date": "2024-06-25T00:00:00Z",
            "wallet_id": "wallet-1",
        }
    )

    assert tx.wallet_id == "wallet-1"
    assert tx.next_due_date == datetime(2024, 6, 25, tzinfo=timezone.utc)


def test_add_rejects_non_positive_amount(store):
    with pytest.raises(ValidationError):
        make(store, NOW, amount=0)


def test_add_rejects_unknown_frequency(store):
    with pytest.raises(ValidationError):
        make(store, NOW, frequency="hourly")


def test_naive_due_date_is_utc(store):
    tx = make(store, NOW.replace(tzinfo=None))
    assert tx.next_due_date.tzinfo is not None
    assert tx.next_due_date == NOW


def test_ids_are_unique(store):
    ids = {make(store, NOW).id for _ in range(20)}
    assert len(ids) == 20


def test_upcoming_window(store):
    soon = make(store, NOW + timedelta(days=3), name="Soon")
    make(store, NOW + timedelta(days=10), name="Later")
    make(store, NOW + timedelta(days=3), name="Paused", isActive=False)

    upcoming = store.get_upcoming_transactions(7)

    assert [tx.id for tx in upcoming] == [soon.id]


def test_upcoming_sorted_and_inclusive_of_now(store):
    b = make(store, NOW + timedelta(days=5), name="B")
    a = make(store, NOW, name="A")
    c = make(store, NOW + timedelta(days=7), name="C")

    upcoming = store.get_upcoming_transactions()

    assert [tx.id for tx in upcoming] == [a.id, b.id, c.id]


def test_upcoming_excludes_overdue(store):
    make(store, NOW - timedelta(minutes=1))
    assert store.get_upcoming_transactions(7) == []


def test_upcoming_default_days(clock):
    store = RecurringTransactionStore(clock=clock, default_days=3)
    make(store, NOW + timedelta(days=5))

    assert store.get_upcoming_transactions() == []
    assert len(store.get_upcoming_transactions(7)) == 1


def test_overdue(store):
    late = make(store, NOW - timedelta(days=1))
    make(store, NOW - timedelta(days=1), isActive=False)
    make(store, NOW + timedelta(days=1))

    overdue = store.get_overdue_transactions()

    assert [tx.id for tx in overdue] == [late.id]


def test_overdue_sorted_oldest_first(store):
    recent = make(store, NOW - timedelta(days=1))
    oldest = make(store, NOW - timedelta(days=10))

    assert [tx.id for tx in store.get_overdue_transactions()] == [oldest.id, recent.id]


def test_reminders_overdue_first(store):
    upcoming = make(store, NOW + timedelta(days=2))
    overdue = make(store, NOW - timedelta(days=2))
    make(store, NOW + timedelta(days=5))

    reminders = store.get_reminders(3)

    assert [tx.id for tx in reminders] == [overdue.id, upcoming.id]


def test_mark_as_executed_monthly_clamps_to_month_end(store, clock):
    """Test Jan 31 + 1 month lands on Feb 29 in a leap year."""
    tx = make(store, datetime(2024, 1, 31, 9, 0, tzinfo=timezone.utc))

    updated = store.mark_as_executed(tx.id)

    assert updated.next_due_date == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)
    assert updated.last_executed == NOW
    assert store.get(tx.id).next_due_date == updated.next_due_date


@pytest.mark.parametrize(
    "frequency,due,expected",
    [
        ("daily", datetime(2024, 2, 28, 9, 0), datetime(2024, 2, 29, 9, 0)),
        ("weekly", datetime(2024, 12, 28, 9, 0), datetime(2025, 1, 4, 9, 0)),
        ("monthly", datetime(2024, 3, 15, 9, 0), datetime(2024, 4, 15, 9, 0)),
        ("monthly", datetime(2023, 1, 31, 9, 0), datetime(2023, 2, 28, 9, 0)),
        ("yearly", datetime(2024, 2, 29, 9, 0), datetime(2025, 2, 28, 9, 0)),
    ],
)
def test_mark_as_executed_frequencies(store, frequency, due, expected):
    tx = make(store, due.replace(tzinfo=timezone.utc), frequency=frequency)

    updated = store.mark_as_executed(tx.id)

    assert updated.next_due_date == expected.replace(tzinfo=timezone.utc)


def test_mark_as_executed_steps_from_due_date_not_now(store):
    tx = make(store, NOW - timedelta(days=20), frequency="weekly")

    updated = store.mark_as_executed(tx.id)

    assert updated.next_due_date == NOW - timedelta(days=13)
    assert store.get_overdue_transactions() == [updated]


def test_mark_as_executed_unknown_id(store):
    tx = make(store, NOW)

    assert store.mark_as_executed("missing") is None
    assert store.get(tx.id) == tx


def test_toggle_active(store):
    tx = make(store, NOW - timedelta(days=1))

    paused = store.toggle_active(tx.id)
    assert paused.is_active is False
    assert store.get_overdue_transactions() == []

    resumed = store.toggle_active(tx.id)
    assert resumed.is_active is True
    assert store.toggle_active("missing") is None


def test_next_occurrence_accepts_string_frequency():
    due = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert next_occurrence(due, "weekly") == datetime(2024, 1, 8, tzinfo=timezone.utc)


def test_due_state(store):
    overdue = make(store, NOW - timedelta(hours=6))
    today = make(store, NOW + timedelta(hours=6))
    upcoming = make(store, NOW + timedelta(days=3))
    future = make(store, NOW + timedelta(days=10))

    assert store.due_state(overdue) is DueState.OVERDUE
    assert store.due_state(today) is DueState.DUE_TODAY
    assert store.due_state(upcoming) is DueState.UPCOMING
    assert store.due_state(future) is DueState.FUTURE
    assert store.due_state(future, days=14) is DueState.UPCOMING


def test_due_today_uses_store_timezone(clock):
    # 12:00 UTC is 19:00 in UTC+7; 18:00 UTC is already tomorrow there
    store = RecurringTransactionStore(clock=clock, tz=timezone(timedelta(hours=7)))
    tx = make(store, NOW + timedelta(hours=6))

    assert store.due_state(tx) is DueState.UPCOMING


def test_days_until_due(store):
    assert store.days_until_due(make(store, NOW + timedelta(days=3))) == 3
    assert store.days_until_due(make(store, NOW + timedelta(hours=30))) == 1
    assert store.days_until_due(make(store, NOW - timedelta(hours=12))) == 0
    assert store.days_until_due(make(store, NOW - timedelta(days=2))) == -2


def test_update_recurring_transaction(store):
    tx = make(store, NOW)

    updated = store.update_recurring_transaction(
        tx.id, amount=1750000, walletId="wallet-2", description="New lease"
    )

    assert updated.amount == 1750000
    assert updated.wallet_id == "wallet-2"
    assert updated.description == "New lease"
    assert updated.id == tx.id
    assert updated.created_at == tx.created_at


def test_update_rejects_immutable_and_unknown_fields(store):
    tx = make(store, NOW)

    with pytest.raises(ValueError):
        store.update_recurring_transaction(tx.id, id="other")
    with pytest.raises(ValueError):
        store.update_recurring_transaction(tx.id, colour="red")
    with pytest.raises(ValidationError):
        store.update_recurring_transaction(tx.id, amount=-5)

    assert store.get(tx.id) == tx


def test_update_unknown_id(store):
    assert store.update_recurring_transaction("missing", amount=10) is None


def test_delete_recurring_transaction(store):
    tx = make(store, NOW)

    assert store.delete_recurring_transaction(tx.id) is True
    assert store.delete_recurring_transaction(tx.id) is False
    assert store.list_transactions() == []


def test_state_export_uses_camel_case(store):
    make(store, NOW, description="Apartment")

    state = store.to_state()
    record = state["recurringTransactions"][0]

    assert state["version"] == 0
    assert record["nextDueDate"].startswith("2024-06-15T12:00:00")
    assert record["walletId"] == "wallet-1"
    assert record["isActive"] is True
    assert record["type"] == "expense"


def test_load_state_replaces_collection(store, clock):
    original = make(store, NOW)
    store.mark_as_executed(original.id)
    state = store.to_state()

    restored = RecurringTransactionStore(clock=clock)
    make(restored, NOW, name="Discarded")

    assert restored.load_state(state) == 1
    assert restored.list_transactions() == store.list_transactions()


def test_load_state_empty(store):
    make(store, NOW)
    assert store.load_state(None) == 0
    assert store.list_transactions() == []
