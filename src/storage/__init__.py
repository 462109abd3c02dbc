"""Persistent state storage for the finance tracker MCP server.

This module provides SQLite-based namespaced state storage with backup support.
"""

from src.storage.sqlite_storage import StateStorage

__all__ = ["StateStorage"]
