# backend/geogrid/services/measurement_config_service.py
"""
Database-backed measurement configuration provider.
"""

from typing import Optional

from ..database.business_operations import BusinessOperations
from ..enums import LoggerName
from ..models.measurement_model import KeywordEntry, MeasurementConfig, OriginZone
from .keyword_selection_service import parse_keyword_entries
from .logger import get_service_logger

logger = get_service_logger(LoggerName.KEYWORD_SERVICE)


class DatabaseMeasurementConfigProvider:
    """Builds MeasurementConfig values from the business configuration tables."""

    def __init__(self, business_ops: BusinessOperations) -> None:
        self.business_ops = business_ops

    async def get_active_config(self, business_id: int) -> Optional[MeasurementConfig]:
        """
        Active measurement configuration for a business.

        Returns:
            MeasurementConfig, or None when the business is missing or inactive
        """
        rows = await self.business_ops.get_measurement_rows(business_id)
        if rows is None:
            return None

        business = rows["business"]
        if not business.get("is_active"):
            logger.debug(f"Business {business_id} is inactive; no measurement config")
            return None

        zones = [
            OriginZone(
                id=zone.get("id"),
                name=zone.get("name"),
                lat=zone.get("lat"),
                lng=zone.get("lng"),
                radius_miles=zone.get("radius_miles"),
                weight=float(zone.get("weight") or 0),
                keywords=parse_keyword_entries(zone.get("keywords")),
            )
            for zone in rows["zones"]
        ]
        schedule_keywords = [
            KeywordEntry(term=row["keyword"], weight=float(row.get("weight") or 1))
            for row in rows["schedule_keywords"]
            if row.get("keyword") and str(row["keyword"]).strip()
        ]

        return MeasurementConfig(
            business_id=business["business_id"],
            business_name=business["business_name"],
            brand_search=business.get("brand_search"),
            destination_lat=business.get("destination_lat"),
            destination_lng=business.get("destination_lng"),
            origin_zones=zones,
            schedule_keywords=schedule_keywords,
        )
