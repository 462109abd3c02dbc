"""Application configuration management using Pydantic Settings.

This module provides a centralized configuration class that loads settings
from environment variables (.env file). All sensitive values are handled
securely using Pydantic's SecretStr type.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings are loaded from the .env file or environment variables.
    Sensitive values (tokens) are wrapped in SecretStr to prevent
    accidental logging or exposure.
    """

    # MCP Server Configuration
    mcp_host: str = Field(default="0.0.0.0", description="MCP server host to bind to")
    mcp_port: int = Field(default=8000, description="MCP server port")
    mcp_auth_token: SecretStr | None = Field(
        default=None, description="Optional Bearer token for MCP client authentication"
    )

    # Cache Configuration
    cache_default_ttl_ms: int = Field(
        default=5 * 60 * 1000, description="Default cache entry TTL in milliseconds (5 minutes)"
    )
    cache_cleanup_interval_ms: int = Field(
        default=10 * 60 * 1000,
        description="Interval between background cache sweeps in milliseconds (10 minutes)",
    )
    cache_max_entries: int = Field(
        default=100, description="Entries kept by a cache sweep, most recently accessed first"
    )
    cache_schedule_ttl_ms: int = Field(
        default=60 * 1000,
        description="TTL in milliseconds for cached due-date views (upcoming, overdue, reminders)",
    )

    # Storage Configuration
    storage_db_path: str = Field(
        default="data/finance.db", description="SQLite state storage database path"
    )
    recurring_storage_key: str = Field(
        default="recurring-transaction-storage",
        description="Storage namespace holding recurring transactions",
    )
    recurring_seed_path: str = Field(
        default="recurring.yaml",
        description="Optional YAML file used to seed recurring transactions on first start",
    )

    # Scheduling Configuration
    upcoming_days: int = Field(
        default=7, description="Default lookahead window in days for upcoming transactions"
    )
    reminder_days: int = Field(
        default=3, description="Lookahead window in days for dashboard reminders"
    )
    timezone: str = Field(
        default="UTC", description="IANA timezone used to decide which due dates fall on today"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="json", description="Log output format (json or console)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def load_recurring_seed(config_path: str | None = None) -> list[dict[str, Any]]:
    """Load seed recurring transactions from a YAML file.

    Args:
        config_path: Path to seed YAML file. If None, uses settings default.

    Returns:
        List of recurring transaction dictionaries (camelCase or snake_case keys).

    Raises:
        FileNotFoundError: If the seed file does not exist.
    """
    path = Path(config_path) if config_path else Path(settings.recurring_seed_path)
    if not path.exists():
        raise FileNotFoundError(f"Recurring seed file not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return data.get("recurring_transactions", [])


# Singleton instance - import this to access settings throughout the application
settings = Settings()
