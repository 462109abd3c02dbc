"""Cache key builders.

Keys are colon-separated so related entries can be dropped together with
``CacheStore.invalidate_pattern`` (for example ``^recurring:``).
"""


def transactions_by_date(start_date: str, end_date: str) -> str:
    return f"transactions:date:{start_date}:{end_date}"


def transactions_by_category(wallet_id: str | None = None) -> str:
    return f"transactions:category:{wallet_id or 'all'}"


def transaction_stats(period: str) -> str:
    return f"transactions:stats:{period}"


def wallet_balance(wallet_id: str) -> str:
    return f"wallet:balance:{wallet_id}"


def total_balance() -> str:
    return "wallet:total:balance"


def expense_patterns() -> str:
    return "analytics:expense:patterns"


def category_insights(category: str) -> str:
    return f"analytics:category:{category}"


def spending_trends(timeframe: str) -> str:
    return f"analytics:trends:{timeframe}"


def ai_analysis(time_range: str, data_hash: str) -> str:
    return f"ai:analysis:{time_range}:{data_hash}"


def recurring_upcoming(days: int) -> str:
    return f"recurring:upcoming:{days}"


def recurring_overdue() -> str:
    return "recurring:overdue"


def recurring_reminders(days: int) -> str:
    return f"recurring:reminders:{days}"


def database_stats() -> str:
    return "database:stats"


# Patterns for invalidate_pattern
RECURRING_PATTERN = r"^recurring:"
DATABASE_PATTERN = r"^database:"
