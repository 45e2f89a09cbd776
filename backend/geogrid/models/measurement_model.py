# backend/geogrid/models/measurement_model.py
"""
Measurement Configuration Models.

Read-only inputs the claimer uses to decide which keyword to measure and
where the grid is centred.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..constants import DEFAULT_KEYWORD_WEIGHT


class KeywordEntry(BaseModel):
    """A search term with its selection weight."""

    term: str = Field(..., min_length=1)
    weight: float = DEFAULT_KEYWORD_WEIGHT


class OriginZone(BaseModel):
    """A weighted area around which a grid may be centred."""

    id: Optional[int] = None
    name: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius_miles: Optional[float] = None
    weight: float = 0.0
    keywords: List[KeywordEntry] = Field(default_factory=list)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class MeasurementConfig(BaseModel):
    """Active measurement configuration for one business."""

    business_id: int
    business_name: str
    brand_search: Optional[str] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    origin_zones: List[OriginZone] = Field(default_factory=list)
    schedule_keywords: List[KeywordEntry] = Field(default_factory=list)


class MeasurementPlan(BaseModel):
    """Keyword, origin and radius chosen for one scheduled run."""

    keyword: str
    origin_lat: float
    origin_lng: float
    radius_miles: float
    zone_name: Optional[str] = None
