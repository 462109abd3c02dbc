"""Database maintenance: statistics, optimization and backups."""

from src.database.maintenance import DatabaseMaintenance, DatabaseStats, OptimizationResult

__all__ = ["DatabaseMaintenance", "DatabaseStats", "OptimizationResult"]
