# backend/geogrid/database/core.py

"""
Async database core for composition-based architecture.

Operations classes receive an AsyncDatabase instance and borrow connections
from it; they never own a pool themselves.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from ..config import settings
from ..enums import LoggerName, LogSource
from ..services.logger import get_service_logger
from .exceptions import DatabaseConnectionError

db_logger = get_service_logger(LoggerName.DATABASE, LogSource.DATABASE)


class AsyncDatabaseCore:
    """
    Core async database functionality.

    Provides pool lifecycle, health checks and a retrying connection context
    manager. Each borrowed connection is wrapped in a transaction that commits
    when the block exits cleanly and rolls back otherwise.
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        """Initialize the AsyncDatabaseCore instance with empty connection pool."""
        self._database_url = database_url or settings.database_url
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        """
        Initialize the async connection pool.

        Creates and opens an AsyncConnectionPool with configuration from settings.
        This method must be called before using any database operations.

        Raises:
            psycopg.Error: If connection pool initialization fails
        """
        try:
            self._pool = AsyncConnectionPool(
                self._database_url,
                min_size=2,
                max_size=settings.db_pool_size,
                max_waiting=settings.db_max_overflow,
                timeout=settings.db_pool_timeout,
                kwargs={
                    "row_factory": dict_row,
                    "connect_timeout": 15,
                    "keepalives_idle": 300,
                    "keepalives_interval": 60,
                    "keepalives_count": 5,
                },
                open=False,
            )
            await self._pool.open()
        except (psycopg.Error, ConnectionError, OSError) as e:
            db_logger.error("Failed to initialize async database pool", exception=e)
            raise

    async def close(self) -> None:
        """
        Close the connection pool and cleanup resources.

        This should be called during shutdown to ensure all database
        connections are properly closed.
        """
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def check_pool_health(self) -> bool:
        """
        Check if the async database connection pool is healthy.

        Returns:
            True if pool is healthy, False otherwise
        """
        if not self._pool:
            return False

        try:
            async with self._pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT 1")
                    await cur.fetchone()

            return True
        except (psycopg.Error, PoolTimeout, OSError) as e:
            db_logger.warning(f"Async database health check failed: {e}")
            return False

    async def recover_connection_pool(self) -> bool:
        """
        Attempt to recover the async connection pool after failures.

        Returns:
            True if recovery successful, False otherwise
        """
        db_logger.warning("Attempting async database connection pool recovery...")

        if self._pool:
            try:
                await self._pool.close()
            except (psycopg.Error, OSError) as e:
                db_logger.warning(f"Error closing old async pool: {e}")
            self._pool = None

        # Wait briefly before re-initializing to avoid rapid reconnection attempts
        await asyncio.sleep(1)

        try:
            await self.initialize()
        except (psycopg.Error, OSError):
            return False

        if await self.check_pool_health():
            db_logger.info("Async database connection pool recovery successful")
            return True

        db_logger.error(
            "Async database connection pool recovery failed - health check failed"
        )
        return False

    async def _acquire(self, auto_recover: bool, max_retries: int):
        """Borrow a connection, retrying and recovering the pool on failure."""
        retries = 0
        while True:
            if not self._pool:
                raise DatabaseConnectionError(
                    "Database pool not initialized", operation="get_connection"
                )
            try:
                return await self._pool.getconn()
            except (psycopg.OperationalError, PoolTimeout) as e:
                db_logger.warning(
                    f"Async database connection failed "
                    f"(attempt {retries + 1}/{max_retries + 1}): {e}"
                )
                if retries >= max_retries:
                    raise DatabaseConnectionError(
                        "Database connection failed",
                        operation="get_connection",
                        details={"attempts": retries + 1},
                    ) from e

                if auto_recover and isinstance(e, psycopg.OperationalError):
                    if not await self.recover_connection_pool():
                        db_logger.warning(
                            f"Async database recovery attempt {retries + 1} failed"
                        )
                else:
                    await asyncio.sleep(0.5 * (retries + 1))
                retries += 1

    @asynccontextmanager
    async def get_connection(
        self, auto_recover: bool = True, max_retries: int = 2
    ) -> AsyncGenerator[Any, None]:
        """
        Get an async database connection inside a transaction.

        Connection acquisition is retried with pool recovery. Errors raised
        inside the block roll the transaction back and propagate unchanged.

        Usage:
            async with db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT * FROM geo_grid_runs")
                    rows = await cur.fetchall()
        """
        conn = await self._acquire(auto_recover, max_retries)
        pool = self._pool
        try:
            async with conn.transaction():
                yield conn
        finally:
            if pool is not None:
                await pool.putconn(conn)


class AsyncDatabase(AsyncDatabaseCore):
    """Async database handle shared by all operations classes."""

    pass
