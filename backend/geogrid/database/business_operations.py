# backend/geogrid/database/business_operations.py
"""
Business Operations - read-only access to business measurement configuration.

Businesses, origin zones and per-schedule keyword overrides are maintained
elsewhere; this module only reads them.
"""

from typing import Any, Dict, List, Optional

import psycopg

from .core import AsyncDatabase
from .exceptions import BusinessOperationError


class BusinessQueryBuilder:
    """Centralized query builder for business configuration reads."""

    @staticmethod
    def build_business_query() -> str:
        return """
            SELECT
                id AS business_id,
                business_name,
                timezone,
                is_active,
                brand_search,
                destination_lat,
                destination_lng
            FROM businesses
            WHERE id = %(business_id)s
        """

    @staticmethod
    def build_origin_zones_query() -> str:
        return """
            SELECT id, name, lat, lng, radius_miles, weight, keywords
            FROM origin_zones
            WHERE business_id = %(business_id)s
            ORDER BY weight DESC, id ASC
        """

    @staticmethod
    def build_schedule_keywords_query() -> str:
        return """
            SELECT k.keyword, k.weight
            FROM geo_grid_schedule_keywords k
            JOIN geo_grid_schedules s ON s.id = k.schedule_id
            WHERE s.business_id = %(business_id)s
            ORDER BY k.weight DESC, k.id ASC
        """


class BusinessOperations:
    """Async business configuration reads."""

    def __init__(self, db: AsyncDatabase) -> None:
        """Initialize with async database instance."""
        self.db = db

    async def get_measurement_rows(self, business_id: int) -> Optional[Dict[str, Any]]:
        """
        Load the raw rows behind a business's measurement configuration.

        Returns:
            Dict with ``business``, ``zones`` and ``schedule_keywords`` keys,
            or None when the business does not exist
        """
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    params = {"business_id": business_id}
                    await cur.execute(BusinessQueryBuilder.build_business_query(), params)
                    business = await cur.fetchone()
                    if not business:
                        return None

                    await cur.execute(
                        BusinessQueryBuilder.build_origin_zones_query(), params
                    )
                    zones: List[Dict[str, Any]] = [dict(r) for r in await cur.fetchall()]

                    await cur.execute(
                        BusinessQueryBuilder.build_schedule_keywords_query(), params
                    )
                    keywords = [dict(r) for r in await cur.fetchall()]

                    return {
                        "business": dict(business),
                        "zones": zones,
                        "schedule_keywords": keywords,
                    }

        except (psycopg.Error, KeyError, ValueError) as e:
            raise BusinessOperationError(
                "Failed to load measurement configuration",
                operation="get_measurement_rows",
                details={"business_id": business_id},
            ) from e
