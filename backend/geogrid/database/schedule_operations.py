# backend/geogrid/database/schedule_operations.py
"""
Schedule Operations - Database layer for per-business weekly schedules.

The claim query and the lock staleness timeout live together in
ScheduleQueryBuilder so that every claimer uses the same consensus rule.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import psycopg

from ..constants import DEFAULT_CLAIM_BATCH_LIMIT, SCHEDULE_LOCK_TIMEOUT_MINUTES
from ..models.schedule_model import (
    ClaimedSchedule,
    GeoGridSchedule,
    ScheduleContext,
    ScheduleCreate,
)
from ..utils.time_utils import utc_now
from .core import AsyncDatabase
from .exceptions import ScheduleOperationError


class ScheduleQueryBuilder:
    """Centralized query builder for schedule operations.

    IMPORTANT: For optimal performance, ensure these indexes exist:
    - CREATE UNIQUE INDEX uq_geo_grid_schedules_business ON geo_grid_schedules(business_id);
    - CREATE INDEX idx_geo_grid_schedules_due ON geo_grid_schedules(next_run_at) WHERE is_active;
    """

    LOCK_TIMEOUT_MINUTES = SCHEDULE_LOCK_TIMEOUT_MINUTES

    @staticmethod
    def build_schedule_context_query() -> str:
        """Business, hours and schedule for one business in a single round trip."""
        return """
            SELECT
                b.id AS business_id,
                b.business_name,
                b.timezone,
                b.is_active AS business_active,
                bh.windows_json,
                s.id AS schedule_id,
                s.run_day_of_week,
                s.run_time_local::text AS run_time_local,
                s.lead_minutes,
                s.next_run_at,
                s.last_run_at,
                s.locked_at,
                s.is_active AS schedule_active,
                s.created_at AS schedule_created_at,
                s.updated_at AS schedule_updated_at
            FROM businesses b
            LEFT JOIN business_hours bh ON bh.business_id = b.id
            LEFT JOIN geo_grid_schedules s ON s.business_id = b.id
            WHERE b.id = %(business_id)s
        """

    @staticmethod
    def build_schedule_keywords_query() -> str:
        return """
            SELECT keyword
            FROM geo_grid_schedule_keywords
            WHERE schedule_id = %(schedule_id)s
            ORDER BY weight DESC, id ASC
        """

    @staticmethod
    def build_insert_query() -> str:
        """Insert a schedule unless one already exists for the business."""
        return """
            INSERT INTO geo_grid_schedules (
                business_id, run_day_of_week, run_time_local, lead_minutes,
                next_run_at, is_active, created_at, updated_at
            ) VALUES (
                %(business_id)s, %(run_day_of_week)s, %(run_time_local)s::time,
                %(lead_minutes)s, %(next_run_at)s, %(is_active)s, %(now)s, %(now)s
            )
            ON CONFLICT (business_id) DO NOTHING
            RETURNING id
        """

    @staticmethod
    def build_update_slot_query() -> str:
        return """
            UPDATE geo_grid_schedules
            SET run_day_of_week = %(run_day_of_week)s,
                run_time_local = %(run_time_local)s::time,
                next_run_at = %(next_run_at)s,
                is_active = %(is_active)s,
                locked_at = CASE WHEN %(clear_lock)s THEN NULL ELSE locked_at END,
                updated_at = %(now)s
            WHERE business_id = %(business_id)s
        """

    @staticmethod
    def build_deactivate_query() -> str:
        return """
            UPDATE geo_grid_schedules
            SET is_active = FALSE,
                next_run_at = NULL,
                locked_at = NULL,
                updated_at = %(now)s
            WHERE business_id = %(business_id)s
        """

    @staticmethod
    def build_run_complete_query() -> str:
        """Record a completed run, advance the schedule and always clear the lock."""
        return """
            UPDATE geo_grid_schedules
            SET last_run_at = %(last_run_at)s,
                next_run_at = %(next_run_at)s,
                run_day_of_week = COALESCE(%(run_day_of_week)s, run_day_of_week),
                run_time_local = COALESCE(%(run_time_local)s::time, run_time_local),
                locked_at = NULL,
                updated_at = %(now)s
            WHERE business_id = %(business_id)s
        """

    @staticmethod
    def build_release_lock_query() -> str:
        return """
            UPDATE geo_grid_schedules
            SET locked_at = NULL,
                updated_at = %(now)s
            WHERE business_id = %(business_id)s
        """

    @staticmethod
    def build_claim_due_query() -> str:
        """
        Claim due schedules in one statement.

        Rows are selected with FOR UPDATE SKIP LOCKED, so a concurrent claimer
        skips them; once this transaction commits the fresh ``locked_at``
        keeps them out of the staleness predicate for LOCK_TIMEOUT_MINUTES.
        """
        return """
            WITH due AS (
                SELECT s.id
                FROM geo_grid_schedules s
                JOIN businesses b ON b.id = s.business_id
                WHERE s.is_active = TRUE
                  AND b.is_active = TRUE
                  AND s.next_run_at IS NOT NULL
                  AND s.next_run_at <= %(now)s
                  AND (
                      s.locked_at IS NULL
                      OR s.locked_at < %(now)s - make_interval(mins => %(lock_timeout_minutes)s)
                  )
                ORDER BY s.next_run_at ASC
                LIMIT %(limit)s
                FOR UPDATE OF s SKIP LOCKED
            )
            UPDATE geo_grid_schedules s
            SET locked_at = %(now)s,
                updated_at = %(now)s
            FROM due, businesses b
            WHERE s.id = due.id
              AND b.id = s.business_id
            RETURNING
                s.id AS schedule_id,
                s.business_id,
                b.business_name,
                b.timezone,
                s.next_run_at,
                s.lead_minutes,
                s.run_day_of_week,
                s.run_time_local::text AS run_time_local,
                s.locked_at
        """

    @staticmethod
    def build_delete_keywords_query() -> str:
        return "DELETE FROM geo_grid_schedule_keywords WHERE schedule_id = %(schedule_id)s"

    @staticmethod
    def build_insert_keyword_query() -> str:
        return """
            INSERT INTO geo_grid_schedule_keywords (schedule_id, keyword, weight, created_at)
            VALUES (%(schedule_id)s, %(keyword)s, %(weight)s, %(now)s)
        """

    @staticmethod
    def build_stuck_schedules_query() -> str:
        """Active schedules of active businesses that lost their next run instant."""
        return """
            SELECT s.business_id
            FROM geo_grid_schedules s
            JOIN businesses b ON b.id = s.business_id
            WHERE s.is_active = TRUE
              AND b.is_active = TRUE
              AND s.next_run_at IS NULL
            ORDER BY s.business_id
        """


class ScheduleOperations:
    """Async schedule database operations."""

    def __init__(self, db: AsyncDatabase) -> None:
        """Initialize with async database instance."""
        self.db = db

    def _row_to_context(self, row: Dict[str, Any], keywords: List[str]) -> ScheduleContext:
        schedule = None
        if row.get("schedule_id") is not None:
            schedule = GeoGridSchedule(
                id=row["schedule_id"],
                business_id=row["business_id"],
                run_day_of_week=row["run_day_of_week"],
                run_time_local=row["run_time_local"],
                lead_minutes=row["lead_minutes"],
                next_run_at=row["next_run_at"],
                last_run_at=row["last_run_at"],
                locked_at=row["locked_at"],
                is_active=row["schedule_active"],
                created_at=row.get("schedule_created_at"),
                updated_at=row.get("schedule_updated_at"),
            )
        return ScheduleContext(
            business_id=row["business_id"],
            business_name=row["business_name"],
            timezone=row.get("timezone"),
            business_active=bool(row["business_active"]),
            windows_json=row.get("windows_json"),
            schedule=schedule,
            keywords=keywords,
        )

    async def get_schedule_context(self, business_id: int) -> Optional[ScheduleContext]:
        """
        Load a business together with its hours, schedule and schedule keywords.

        Returns:
            ScheduleContext, or None when the business does not exist
        """
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ScheduleQueryBuilder.build_schedule_context_query(),
                        {"business_id": business_id},
                    )
                    row = await cur.fetchone()
                    if not row:
                        return None

                    keywords: List[str] = []
                    if row.get("schedule_id") is not None:
                        await cur.execute(
                            ScheduleQueryBuilder.build_schedule_keywords_query(),
                            {"schedule_id": row["schedule_id"]},
                        )
                        keywords = [r["keyword"] for r in await cur.fetchall()]

                    return self._row_to_context(dict(row), keywords)

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to load schedule context",
                operation="get_schedule_context",
                details={"business_id": business_id},
            ) from e

    async def create_schedule(self, schedule_data: ScheduleCreate) -> bool:
        """
        Insert a schedule row if the business has none.

        Returns:
            True if a row was inserted, False if one already existed
        """
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ScheduleQueryBuilder.build_insert_query(),
                        {
                            "business_id": schedule_data.business_id,
                            "run_day_of_week": schedule_data.run_day_of_week,
                            "run_time_local": schedule_data.run_time_local,
                            "lead_minutes": schedule_data.lead_minutes,
                            "next_run_at": schedule_data.next_run_at,
                            "is_active": schedule_data.is_active,
                            "now": utc_now(),
                        },
                    )
                    return await cur.fetchone() is not None

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to create schedule",
                operation="create_schedule",
                details={"business_id": schedule_data.business_id},
            ) from e

    async def update_schedule_slot(
        self,
        business_id: int,
        run_day_of_week: int,
        run_time_local: str,
        next_run_at: Optional[datetime],
        is_active: bool,
        clear_lock: bool = False,
    ) -> bool:
        """Store a new weekday/time, next run instant and active flag."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ScheduleQueryBuilder.build_update_slot_query(),
                        {
                            "business_id": business_id,
                            "run_day_of_week": run_day_of_week,
                            "run_time_local": run_time_local,
                            "next_run_at": next_run_at,
                            "is_active": is_active,
                            "clear_lock": clear_lock,
                            "now": utc_now(),
                        },
                    )
                    return cur.rowcount > 0

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to update schedule slot",
                operation="update_schedule_slot",
                details={"business_id": business_id},
            ) from e

    async def deactivate_schedule(self, business_id: int) -> bool:
        """Mark inactive, clearing ``next_run_at`` and ``locked_at``."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ScheduleQueryBuilder.build_deactivate_query(),
                        {"business_id": business_id, "now": utc_now()},
                    )
                    return cur.rowcount > 0

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to deactivate schedule",
                operation="deactivate_schedule",
                details={"business_id": business_id},
            ) from e

    async def record_run_complete(
        self,
        business_id: int,
        last_run_at: datetime,
        next_run_at: Optional[datetime],
        run_day_of_week: Optional[int] = None,
        run_time_local: Optional[str] = None,
    ) -> bool:
        """
        Record ``last_run_at``, store the advanced ``next_run_at`` and clear the lock.

        ``run_day_of_week`` and ``run_time_local`` are only changed when given.
        """
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ScheduleQueryBuilder.build_run_complete_query(),
                        {
                            "business_id": business_id,
                            "last_run_at": last_run_at,
                            "next_run_at": next_run_at,
                            "run_day_of_week": run_day_of_week,
                            "run_time_local": run_time_local,
                            "now": utc_now(),
                        },
                    )
                    return cur.rowcount > 0

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to record run completion",
                operation="record_run_complete",
                details={"business_id": business_id},
            ) from e

    async def release_lock(self, business_id: int) -> bool:
        """Unconditionally clear ``locked_at``."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ScheduleQueryBuilder.build_release_lock_query(),
                        {"business_id": business_id, "now": utc_now()},
                    )
                    return cur.rowcount > 0

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to release schedule lock",
                operation="release_lock",
                details={"business_id": business_id},
            ) from e

    async def claim_due_schedules(
        self,
        limit: int = DEFAULT_CLAIM_BATCH_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[ClaimedSchedule]:
        """
        Atomically claim up to ``limit`` due schedules.

        Args:
            limit: Maximum number of schedules to claim
            now: Claim instant, defaults to the current UTC time

        Returns:
            The claimed schedules, oldest ``next_run_at`` first
        """
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ScheduleQueryBuilder.build_claim_due_query(),
                        {
                            "now": now or utc_now(),
                            "limit": limit,
                            "lock_timeout_minutes": ScheduleQueryBuilder.LOCK_TIMEOUT_MINUTES,
                        },
                    )
                    rows = await cur.fetchall()
                    claimed = [ClaimedSchedule.model_validate(dict(row)) for row in rows]
                    return sorted(claimed, key=lambda c: c.next_run_at)

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to claim due schedules",
                operation="claim_due_schedules",
            ) from e

    async def get_stuck_schedule_business_ids(self) -> List[int]:
        """Business ids of active schedules with no ``next_run_at``."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(ScheduleQueryBuilder.build_stuck_schedules_query())
                    rows = await cur.fetchall()
                    return [row["business_id"] for row in rows]

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to list stuck schedules",
                operation="get_stuck_schedule_business_ids",
            ) from e

    async def replace_schedule_keywords(
        self, schedule_id: int, keywords: List[str]
    ) -> List[str]:
        """
        Replace a schedule's keyword overrides in one transaction.

        Earlier keywords get higher weights so the stored order is preserved.
        """
        now = utc_now()
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ScheduleQueryBuilder.build_delete_keywords_query(),
                        {"schedule_id": schedule_id},
                    )
                    if keywords:
                        await cur.executemany(
                            ScheduleQueryBuilder.build_insert_keyword_query(),
                            [
                                {
                                    "schedule_id": schedule_id,
                                    "keyword": keyword,
                                    "weight": float(len(keywords) - index),
                                    "now": now,
                                }
                                for index, keyword in enumerate(keywords)
                            ],
                        )
                    return list(keywords)

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ScheduleOperationError(
                "Failed to replace schedule keywords",
                operation="replace_schedule_keywords",
                details={"schedule_id": schedule_id},
            ) from e
