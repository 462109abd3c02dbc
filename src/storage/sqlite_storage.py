"""SQLite-based state storage with namespaces and backups.

This module provides a StateStorage class that handles:
- Namespaced JSON documents that services reload at startup and rewrite on change
- Point-in-time backups of every namespace
- Database maintenance (ANALYZE/VACUUM, REINDEX, index listing)
"""

import asyncio
import json
import sqlite3
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.clock import Clock, SystemClock, epoch_ms

logger = structlog.get_logger(__name__)


class StateStorage:
    """SQLite-backed store for service state and backups.

    Each namespace holds one JSON document, the way a browser's local storage
    holds one value per key.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str, clock: Clock | None = None) -> None:
        """Initialize StateStorage.

        Args:
            db_path: Path to SQLite database file.
            clock: Time source for timestamps and backup ids.
        """
        self.db_path = db_path
        self._clock = clock or SystemClock()
        self._lock = asyncio.Lock()
        self._db: aiosqlite.Connection | None = None

        logger.info("state_storage_initialized", db_path=db_path)

    async def initialize(self) -> None:
        """Initialize database connection and create tables.

        Creates the following tables if they don't exist:
        - storage: namespaced JSON documents
        - backups: point-in-time snapshots of every namespace
        """
        async with self._lock:
            if self._db is not None:
                return

            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self._db = await aiosqlite.connect(self.db_path)
            self._db.row_factory = aiosqlite.Row

            await self._db.execute(
                """
                CREATE TABLE IF NOT EXISTS storage (
                    name TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

            await self._db.execute(
                """
                CREATE TABLE IF NOT EXISTS backups (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )

            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_storage_updated_at ON storage(updated_at)"
            )
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_backups_created_at ON backups(created_at)"
            )

            await self._db.commit()

            logger.info("state_database_initialized", db_path=self.db_path)

    async def _connection(self) -> aiosqlite.Connection:
        if not self._db:
            await self.initialize()
        return self._db  # type: ignore[return-value]

    def _timestamp(self) -> str:
        return self._clock.now().astimezone(timezone.utc).isoformat()

    async def load(self, name: str) -> dict[str, Any] | None:
        """Load a namespace document.

        Args:
            name: Namespace key.

        Returns:
            Stored document (deserialized from JSON) or None.
        """
        db = await self._connection()

        async with self._lock:
            cursor = await db.execute("SELECT data FROM storage WHERE name = ?", (name,))
            row = await cursor.fetchone()

        if not row:
            logger.debug("storage_miss", name=name)
            return None

        logger.debug("storage_loaded", name=name)
        return json.loads(row["data"])

    async def save(self, name: str, data: dict[str, Any]) -> None:
        """Write a namespace document, replacing the previous one.

        Args:
            name: Namespace key.
            data: Document to store (will be JSON serialized).
        """
        db = await self._connection()

        async with self._lock:
            await db.execute(
                """
                INSERT OR REPLACE INTO storage (name, data, updated_at)
                VALUES (?, ?, ?)
                """,
                (name, json.dumps(data), self._timestamp()),
            )
            await db.commit()

        logger.debug("storage_saved", name=name)

    async def delete(self, name: str) -> None:
        db = await self._connection()

        async with self._lock:
            await db.execute("DELETE FROM storage WHERE name = ?", (name,))
            await db.commit()

        logger.debug("storage_deleted", name=name)

    async def namespaces(self) -> list[str]:
        db = await self._connection()

        async with self._lock:
            cursor = await db.execute("SELECT name FROM storage ORDER BY name")
            rows = await cursor.fetchall()

        return [row["name"] for row in rows]

    async def data_size(self) -> int:
        """Total size in bytes of every stored namespace document."""
        db = await self._connection()

        async with self._lock:
            cursor = await db.execute("SELECT COALESCE(SUM(LENGTH(data)), 0) AS size FROM storage")
            row = await cursor.fetchone()

        return int(row["size"])

    async def save_backup(self, data: dict[str, Any]) -> str:
        """Save a backup document.

        Args:
            data: Backup contents (will be JSON serialized).

        Returns:
            The backup id, ``backup_<epoch ms>``, suffixed with ``_<n>`` when
            another backup was saved in the same millisecond.
        """
        db = await self._connection()
        now = self._clock.now()
        base_id = f"backup_{epoch_ms(now)}"
        backup_id = base_id
        payload = json.dumps(data)
        created_at = now.astimezone(timezone.utc).isoformat()

        async with self._lock:
            suffix = 0
            while True:
                try:
                    await db.execute(
                        "INSERT INTO backups (id, data, created_at) VALUES (?, ?, ?)",
                        (backup_id, payload, created_at),
                    )
                    break
                except sqlite3.IntegrityError:
                    suffix += 1
                    backup_id = f"{base_id}_{suffix}"
            await db.commit()

        logger.info("backup_saved", backup_id=backup_id, namespaces=list(data.get("namespaces", {})))
        return backup_id

    async def get_backup(self, backup_id: str) -> dict[str, Any] | None:
        db = await self._connection()

        async with self._lock:
            cursor = await db.execute("SELECT data FROM backups WHERE id = ?", (backup_id,))
            row = await cursor.fetchone()

        if not row:
            logger.debug("backup_not_found", backup_id=backup_id)
            return None

        return json.loads(row["data"])

    async def list_backups(self) -> list[dict[str, Any]]:
        """List backups, newest first.

        Returns:
            List of dictionaries with id, created_at and size.
        """
        db = await self._connection()

        async with self._lock:
            cursor = await db.execute(
                """
                SELECT id, created_at, LENGTH(data) AS size
                FROM backups
                ORDER BY created_at DESC
                """
            )
            rows = await cursor.fetchall()

        backups = [
            {"id": row["id"], "created_at": row["created_at"], "size": row["size"]}
            for row in rows
        ]
        logger.debug("backups_listed", count=len(backups))
        return backups

    async def delete_backups_older_than(self, days: int) -> int:
        """Remove backups created more than ``days`` ago.

        Returns:
            Number of backups deleted.
        """
        db = await self._connection()
        cutoff = (self._clock.now() - timedelta(days=days)).astimezone(timezone.utc)

        async with self._lock:
            cursor = await db.execute(
                "DELETE FROM backups WHERE created_at < ? RETURNING id",
                (cutoff.isoformat(),),
            )
            deleted_rows = await cursor.fetchall()
            count = len(deleted_rows)
            await db.commit()

        logger.info("backup_cleanup_completed", deleted_count=count, days=days)
        return count

    async def optimize(self) -> None:
        """Refresh query planner statistics and compact the database file."""
        db = await self._connection()

        async with self._lock:
            await db.execute("ANALYZE")
            await db.commit()
            await db.execute("VACUUM")

        logger.info("storage_optimized")

    async def rebuild_indexes(self) -> None:
        db = await self._connection()

        async with self._lock:
            await db.execute("REINDEX")
            await db.commit()

        logger.info("storage_indexes_rebuilt")

    async def indexed_fields(self) -> list[str]:
        """Return ``table.column`` for every indexed column."""
        db = await self._connection()
        fields: list[str] = []

        async with self._lock:
            cursor = await db.execute(
                "SELECT name, tbl_name FROM sqlite_master WHERE type = 'index' ORDER BY name"
            )
            indexes = await cursor.fetchall()
            for index in indexes:
                info = await db.execute(f"PRAGMA index_info('{index['name']}')")
                for column in await info.fetchall():
                    fields.append(f"{index['tbl_name']}.{column['name']}")

        return sorted(set(fields))

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("state_database_closed")
