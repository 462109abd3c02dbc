"""Database statistics, optimization and backup management.

This module provides a DatabaseMaintenance class that backs the database
settings panel: it reports storage statistics, compacts and reindexes the
state database, prunes old backups and creates or restores backups of every
stored namespace.
"""

from dataclasses import dataclass, field, replace
from datetime import timezone
from typing import Any

import structlog

from src.cache.memory_cache import CacheStore
from src.clock import Clock, SystemClock
from src.recurring.scheduler import RecurringTransactionStore
from src.storage.sqlite_storage import StateStorage

logger = structlog.get_logger(__name__)

BACKUP_VERSION = "1.0"


@dataclass
class DatabaseStats:
    total_recurring_transactions: int = 0
    total_namespaces: int = 0
    total_backups: int = 0
    data_size: int = 0
    last_optimized: str = ""
    indexed_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_recurring_transactions": self.total_recurring_transactions,
            "total_namespaces": self.total_namespaces,
            "total_backups": self.total_backups,
            "data_size": self.data_size,
            "last_optimized": self.last_optimized,
            "indexed_fields": list(self.indexed_fields),
        }


@dataclass
class OptimizationResult:
    success: bool
    message: str
    stats: DatabaseStats
    optimizations_applied: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "stats": self.stats.to_dict(),
            "optimizations_applied": list(self.optimizations_applied),
        }


class DatabaseMaintenance:
    """Maintenance operations over the state storage, cache and scheduler.

    Attributes:
        recurring_key: Namespace holding the recurring transaction state.
    """

    def __init__(
        self,
        storage: StateStorage,
        cache: CacheStore,
        recurring: RecurringTransactionStore,
        recurring_key: str = "recurring-transaction-storage",
        clock: Clock | None = None,
    ) -> None:
        self.recurring_key = recurring_key
        self._storage = storage
        self._cache = cache
        self._recurring = recurring
        self._clock = clock or SystemClock()
        self._stats = DatabaseStats()

    def _timestamp(self) -> str:
        return self._clock.now().astimezone(timezone.utc).isoformat()

    def get_stats(self) -> DatabaseStats:
        """Return the statistics from the last collection."""
        return replace(self._stats, indexed_fields=list(self._stats.indexed_fields))

    async def collect_stats(self) -> DatabaseStats:
        """Recompute statistics from storage, keeping ``last_optimized``."""
        stats = DatabaseStats(
            total_recurring_transactions=len(self._recurring.list_transactions()),
            total_namespaces=len(await self._storage.namespaces()),
            total_backups=len(await self._storage.list_backups()),
            data_size=await self._storage.data_size(),
            last_optimized=self._stats.last_optimized,
            indexed_fields=await self._storage.indexed_fields(),
        )
        self._stats = stats
        logger.debug("database_stats_collected", **stats.to_dict())
        return self.get_stats()

    async def optimize(self) -> OptimizationResult:
        """Persist current state, compact storage and sweep the cache."""
        try:
            await self._storage.save(self.recurring_key, self._recurring.to_state())
            await self._storage.optimize()
            removed = self._cache.cleanup()
            self._stats.last_optimized = self._timestamp()
            stats = await self.collect_stats()
        except Exception as e:
            logger.error("database_optimize_failed", error=str(e), exc_info=True)
            return OptimizationResult(
                success=False,
                message=f"Database optimization failed: {e}",
                stats=self.get_stats(),
            )

        applied = [
            "Persisted recurring transaction state",
            "Refreshed query planner statistics",
            "Compacted database file",
            f"Removed {removed} stale cache entries",
        ]
        logger.info("database_optimized", steps=len(applied))
        return OptimizationResult(
            success=True,
            message=f"Database optimized: {len(applied)} optimizations applied.",
            stats=stats,
            optimizations_applied=applied,
        )

    async def rebuild_indexes(self) -> dict[str, Any]:
        try:
            await self._storage.rebuild_indexes()
            self._stats.indexed_fields = await self._storage.indexed_fields()
            self._stats.last_optimized = self._timestamp()
        except Exception as e:
            logger.error("database_reindex_failed", error=str(e), exc_info=True)
            return {"success": False, "message": f"Index rebuild failed: {e}"}

        return {
            "success": True,
            "message": "Database indexes rebuilt",
            "indexed_fields": list(self._stats.indexed_fields),
        }

    async def cleanup_old_data(self, days_old: int) -> dict[str, Any]:
        """Delete backups older than ``days_old`` days.

        Financial records are never removed here, only backups.
        """
        try:
            deleted = await self._storage.delete_backups_older_than(days_old)
        except Exception as e:
            logger.error("database_cleanup_failed", error=str(e), exc_info=True)
            return {"success": False, "message": f"Cleanup failed: {e}", "deleted_count": 0}

        return {
            "success": True,
            "message": f"Removed data older than {days_old} days",
            "deleted_count": deleted,
        }

    async def create_backup(self) -> dict[str, Any]:
        try:
            await self._storage.save(self.recurring_key, self._recurring.to_state())
            namespaces = {}
            for name in await self._storage.namespaces():
                namespaces[name] = await self._storage.load(name)

            backup_id = await self._storage.save_backup(
                {
                    "namespaces": namespaces,
                    "timestamp": self._timestamp(),
                    "version": BACKUP_VERSION,
                }
            )
        except Exception as e:
            logger.error("database_backup_failed", error=str(e), exc_info=True)
            return {"success": False, "message": f"Backup failed: {e}", "backup_id": ""}

        return {
            "success": True,
            "message": f"Backup created with id {backup_id}",
            "backup_id": backup_id,
        }

    async def restore_backup(self, backup_id: str) -> dict[str, Any]:
        """Write a backup's namespaces back and reload the scheduler from it."""
        try:
            backup = await self._storage.get_backup(backup_id)
            if backup is None:
                return {
                    "success": False,
                    "message": f"Backup {backup_id} not found",
                    "not_found": True,
                }

            namespaces = backup.get("namespaces", {})
            # Validate into a scratch store so a bad backup leaves storage and memory untouched
            RecurringTransactionStore(clock=self._clock).load_state(
                namespaces.get(self.recurring_key)
            )
            for name, data in namespaces.items():
                await self._storage.save(name, data)
            self._recurring.load_state(namespaces.get(self.recurring_key))
        except Exception as e:
            logger.error("database_restore_failed", backup_id=backup_id, error=str(e), exc_info=True)
            return {"success": False, "message": f"Restore failed: {e}"}

        logger.info("database_restored", backup_id=backup_id, namespaces=list(namespaces))
        return {"success": True, "message": f"Data restored from backup {backup_id}"}
