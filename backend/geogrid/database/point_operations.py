# backend/geogrid/database/point_operations.py
"""
Point Operations - Database layer for grid point results and ranking snapshots.

A point is written exactly once: the update only matches while ``rank_pos``
is still NULL. The ranking snapshot for a measurement is appended in the same
transaction, and only when the point update took effect.
"""

import json
from typing import Optional

import psycopg

from ..models.ranking_model import RankingSnapshotCreate
from ..models.run_model import PointResultUpdate
from ..utils.time_utils import utc_now
from .core import AsyncDatabase
from .exceptions import PointOperationError


class PointQueryBuilder:
    """Centralized query builder for point and snapshot writes."""

    @staticmethod
    def build_record_result_query() -> str:
        return """
            UPDATE geo_grid_points
            SET rank_pos = %(rank_pos)s,
                place_id = %(place_id)s,
                results_json = %(results_json)s::jsonb,
                screenshot_path = %(screenshot_path)s,
                search_url = %(search_url)s,
                landing_url = %(landing_url)s,
                measured_at = %(now)s
            WHERE id = %(point_id)s
              AND rank_pos IS NULL
        """

    @staticmethod
    def build_insert_snapshot_query() -> str:
        return """
            INSERT INTO ranking_snapshots (
                run_id, business_id, keyword, origin_lat, origin_lng,
                total_results, matched_place_id, matched_position,
                results_json, created_at
            ) VALUES (
                %(run_id)s, %(business_id)s, %(keyword)s, %(origin_lat)s,
                %(origin_lng)s, %(total_results)s, %(matched_place_id)s,
                %(matched_position)s, %(results_json)s::jsonb, %(now)s
            )
        """


class PointOperations:
    """Async point result database operations."""

    def __init__(self, db: AsyncDatabase) -> None:
        """Initialize with async database instance."""
        self.db = db

    async def record_point_result(
        self,
        point_id: int,
        result: PointResultUpdate,
        snapshot: Optional[RankingSnapshotCreate] = None,
    ) -> bool:
        """
        Store a measured point and, optionally, its ranking snapshot.

        Args:
            point_id: Point to update
            result: Final rank and artifact references
            snapshot: Ranked competitor list to append alongside the result

        Returns:
            True if the point was updated, False if it had already been measured
        """
        now = utc_now()
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        PointQueryBuilder.build_record_result_query(),
                        {
                            "point_id": point_id,
                            "rank_pos": result.rank_pos,
                            "place_id": result.place_id,
                            "results_json": (
                                json.dumps(result.results_json)
                                if result.results_json is not None
                                else None
                            ),
                            "screenshot_path": result.screenshot_path,
                            "search_url": result.search_url,
                            "landing_url": result.landing_url,
                            "now": now,
                        },
                    )
                    if cur.rowcount == 0:
                        return False

                    if snapshot is not None:
                        await cur.execute(
                            PointQueryBuilder.build_insert_snapshot_query(),
                            {
                                "run_id": snapshot.run_id,
                                "business_id": snapshot.business_id,
                                "keyword": snapshot.keyword,
                                "origin_lat": snapshot.origin_lat,
                                "origin_lng": snapshot.origin_lng,
                                "total_results": snapshot.total_results,
                                "matched_place_id": snapshot.matched_place_id,
                                "matched_position": snapshot.matched_position,
                                "results_json": json.dumps(snapshot.results),
                                "now": now,
                            },
                        )
                    return True

        except (psycopg.Error, KeyError, ValueError, TypeError) as e:
            raise PointOperationError(
                "Failed to record point result",
                operation="record_point_result",
                details={"point_id": point_id},
            ) from e
