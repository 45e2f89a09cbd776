# backend/geogrid/database/exceptions.py
"""
Database Operation Exceptions - Clean Error Handling Pattern

Database operations raise these exceptions without logging. The service
layer catches them and decides whether to log, retry or isolate the failure.

Usage:
    try:
        await cur.execute(query, params)
        return results
    except (psycopg.Error, KeyError, ValueError) as e:
        raise ScheduleOperationError(
            "Failed to load schedule context",
            operation="get_schedule_context"
        ) from e
"""

from typing import Any, Dict, Optional


class DatabaseOperationError(Exception):
    """
    Base exception for all database operation failures.

    Provides a clean interface for database errors without requiring
    logging dependencies in the database layer.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}

    def __str__(self):
        if self.operation:
            return f"{self.operation}: {super().__str__()}"
        return super().__str__()


class BusinessOperationError(DatabaseOperationError):
    """Business configuration read failures."""

    pass


class ScheduleOperationError(DatabaseOperationError):
    """Schedule-specific database operation errors."""

    pass


class RunOperationError(DatabaseOperationError):
    """Run-specific database operation errors."""

    pass


class PointOperationError(DatabaseOperationError):
    """Point-specific database operation errors."""

    pass



class DatabaseConnectionError(DatabaseOperationError):
    """The pool could not hand out a connection after retries."""

    pass
