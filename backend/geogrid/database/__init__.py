"""
Database package for the geo-grid rank scheduler.

Usage:
    from geogrid.database import async_db
    from geogrid.database.schedule_operations import ScheduleOperations

    await async_db.initialize()
    schedule_ops = ScheduleOperations(async_db)
"""

from .core import AsyncDatabase

# Shared database instance
async_db = AsyncDatabase()

__all__ = ["AsyncDatabase", "async_db"]
