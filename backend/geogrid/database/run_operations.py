# backend/geogrid/database/run_operations.py
"""
Run Operations - Database layer for geo-grid runs.

A run and all of its points are inserted in one transaction. Status updates
are guarded by the allowed predecessor states so a status can never regress.
"""

from typing import Any, Dict, List, Optional

import psycopg

from ..enums import RUN_STATUS_PREDECESSORS, RunStatus
from ..models.run_model import ActiveRun, GeoGridPoint, GeoGridRunCreate, RunProgress
from ..utils.time_utils import utc_now
from .core import AsyncDatabase
from .exceptions import RunOperationError


class RunQueryBuilder:
    """Centralized query builder for run operations.

    IMPORTANT: For optimal performance, ensure these indexes exist:
    - CREATE INDEX idx_geo_grid_runs_status_created ON geo_grid_runs(status, created_at);
    - CREATE INDEX idx_geo_grid_runs_business_status ON geo_grid_runs(business_id, status);
    - CREATE INDEX idx_geo_grid_points_unmeasured ON geo_grid_points(run_id) WHERE rank_pos IS NULL;
    """

    UNFINISHED_STATUSES = (RunStatus.QUEUED.value, RunStatus.RUNNING.value)

    @staticmethod
    def build_insert_run_query() -> str:
        return """
            INSERT INTO geo_grid_runs (
                business_id, keyword, origin_lat, origin_lng, radius_miles,
                grid_rows, grid_cols, spacing_miles, status, notes, created_at
            ) VALUES (
                %(business_id)s, %(keyword)s, %(origin_lat)s, %(origin_lng)s,
                %(radius_miles)s, %(grid_rows)s, %(grid_cols)s, %(spacing_miles)s,
                %(status)s, %(notes)s, %(now)s
            )
            RETURNING id
        """

    @staticmethod
    def build_insert_point_query() -> str:
        return """
            INSERT INTO geo_grid_points (run_id, row_idx, col_idx, lat, lng)
            VALUES (%(run_id)s, %(row_idx)s, %(col_idx)s, %(lat)s, %(lng)s)
        """

    @staticmethod
    def build_unfinished_run_query() -> str:
        return """
            SELECT id
            FROM geo_grid_runs
            WHERE business_id = %(business_id)s
              AND status = ANY(%(statuses)s)
            LIMIT 1
        """

    @staticmethod
    def build_active_runs_query() -> str:
        """Queued and running runs, oldest first, with proxy settings joined in."""
        return """
            SELECT
                r.id AS run_id,
                r.business_id,
                b.business_name,
                r.keyword,
                r.status,
                r.origin_lat,
                r.origin_lng,
                p.username AS proxy_username,
                p.endpoint AS proxy_endpoint
            FROM geo_grid_runs r
            JOIN businesses b ON b.id = r.business_id
            LEFT JOIN proxy_configs p ON p.business_id = r.business_id
            WHERE r.status = ANY(%(statuses)s)
            ORDER BY r.created_at ASC, r.id ASC
            LIMIT %(limit)s
        """

    @staticmethod
    def build_update_status_query() -> str:
        """Advance a run's status only from an allowed predecessor state."""
        return """
            UPDATE geo_grid_runs
            SET status = %(status)s,
                finished_at = CASE
                    WHEN %(is_terminal)s THEN %(now)s
                    ELSE finished_at
                END
            WHERE id = %(run_id)s
              AND status = ANY(%(predecessors)s)
        """

    @staticmethod
    def build_get_status_query() -> str:
        return "SELECT status FROM geo_grid_runs WHERE id = %(run_id)s"

    @staticmethod
    def build_unmeasured_points_query() -> str:
        return """
            SELECT id, run_id, row_idx, col_idx, lat, lng, rank_pos, measured_at
            FROM geo_grid_points
            WHERE run_id = %(run_id)s
              AND rank_pos IS NULL
            ORDER BY row_idx ASC, col_idx ASC
        """

    @staticmethod
    def build_progress_query() -> str:
        return """
            SELECT
                COUNT(*) AS total_points,
                COUNT(*) FILTER (WHERE rank_pos IS NULL) AS unmeasured_points
            FROM geo_grid_points
            WHERE run_id = %(run_id)s
        """


class RunOperations:
    """Async run database operations."""

    def __init__(self, db: AsyncDatabase) -> None:
        """Initialize with async database instance."""
        self.db = db

    async def create_run_with_points(self, run_data: GeoGridRunCreate) -> int:
        """
        Insert a queued run and all of its points, all or nothing.

        Returns:
            The new run id
        """
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        RunQueryBuilder.build_insert_run_query(),
                        {
                            "business_id": run_data.business_id,
                            "keyword": run_data.keyword,
                            "origin_lat": run_data.origin_lat,
                            "origin_lng": run_data.origin_lng,
                            "radius_miles": run_data.radius_miles,
                            "grid_rows": run_data.grid_rows,
                            "grid_cols": run_data.grid_cols,
                            "spacing_miles": run_data.spacing_miles,
                            "status": RunStatus.QUEUED.value,
                            "notes": run_data.notes,
                            "now": utc_now(),
                        },
                    )
                    row = await cur.fetchone()
                    if not row:
                        raise ValueError("Run insert returned no id")
                    run_id = row["id"]

                    await cur.executemany(
                        RunQueryBuilder.build_insert_point_query(),
                        [
                            {"run_id": run_id, **point.model_dump()}
                            for point in run_data.points
                        ],
                    )
                    return run_id

        except (psycopg.Error, KeyError, ValueError) as e:
            raise RunOperationError(
                "Failed to create run with points",
                operation="create_run_with_points",
                details={"business_id": run_data.business_id},
            ) from e

    async def has_unfinished_run(self, business_id: int) -> bool:
        """Whether the business already has a queued or running run."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        RunQueryBuilder.build_unfinished_run_query(),
                        {
                            "business_id": business_id,
                            "statuses": list(RunQueryBuilder.UNFINISHED_STATUSES),
                        },
                    )
                    return await cur.fetchone() is not None

        except (psycopg.Error, KeyError, ValueError) as e:
            raise RunOperationError(
                "Failed to check for unfinished runs",
                operation="has_unfinished_run",
                details={"business_id": business_id},
            ) from e

    async def get_active_runs(self, limit: int = 50) -> List[ActiveRun]:
        """Queued and running runs, oldest first."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        RunQueryBuilder.build_active_runs_query(),
                        {
                            "statuses": list(RunQueryBuilder.UNFINISHED_STATUSES),
                            "limit": limit,
                        },
                    )
                    rows = await cur.fetchall()
                    return [ActiveRun.model_validate(dict(row)) for row in rows]

        except (psycopg.Error, KeyError, ValueError) as e:
            raise RunOperationError(
                "Failed to list active runs", operation="get_active_runs"
            ) from e

    async def update_run_status(self, run_id: int, status: RunStatus) -> bool:
        """
        Move a run to ``status`` if its current status allows it.

        Terminal statuses stamp ``finished_at``.

        Returns:
            True if the row changed, False if the transition was not allowed
        """
        predecessors = RUN_STATUS_PREDECESSORS.get(status, ())
        if not predecessors:
            return False

        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        RunQueryBuilder.build_update_status_query(),
                        {
                            "run_id": run_id,
                            "status": status.value,
                            "is_terminal": status.is_terminal,
                            "predecessors": [s.value for s in predecessors],
                            "now": utc_now(),
                        },
                    )
                    return cur.rowcount > 0

        except (psycopg.Error, KeyError, ValueError) as e:
            raise RunOperationError(
                f"Failed to set run status to {status.value}",
                operation="update_run_status",
                details={"run_id": run_id},
            ) from e

    async def get_run_status(self, run_id: int) -> Optional[RunStatus]:
        """Current status of a run, or None if the run no longer exists."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        RunQueryBuilder.build_get_status_query(), {"run_id": run_id}
                    )
                    row = await cur.fetchone()
                    return RunStatus(row["status"]) if row else None

        except (psycopg.Error, KeyError, ValueError) as e:
            raise RunOperationError(
                "Failed to read run status",
                operation="get_run_status",
                details={"run_id": run_id},
            ) from e

    async def get_unmeasured_points(self, run_id: int) -> List[GeoGridPoint]:
        """Points whose ``rank_pos`` is still NULL, in row-major order."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        RunQueryBuilder.build_unmeasured_points_query(),
                        {"run_id": run_id},
                    )
                    rows = await cur.fetchall()
                    return [GeoGridPoint.model_validate(dict(row)) for row in rows]

        except (psycopg.Error, KeyError, ValueError) as e:
            raise RunOperationError(
                "Failed to load unmeasured points",
                operation="get_unmeasured_points",
                details={"run_id": run_id},
            ) from e

    async def get_run_progress(self, run_id: int) -> RunProgress:
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        RunQueryBuilder.build_progress_query(), {"run_id": run_id}
                    )
                    row: Dict[str, Any] = await cur.fetchone() or {}
                    return RunProgress(
                        run_id=run_id,
                        total_points=int(row.get("total_points") or 0),
                        unmeasured_points=int(row.get("unmeasured_points") or 0),
                    )

        except (psycopg.Error, KeyError, ValueError) as e:
            raise RunOperationError(
                "Failed to count run points",
                operation="get_run_progress",
                details={"run_id": run_id},
            ) from e
