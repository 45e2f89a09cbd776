# backend/geogrid/models/schedule_model.py
"""
Schedule Models - Pydantic models for per-business weekly run schedules.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import MIN_LEAD_MINUTES
from ..utils.time_utils import parse_time_of_day


class ScheduleBase(BaseModel):
    """Base model for schedule data."""

    business_id: int = Field(..., description="Owning business")
    run_day_of_week: int = Field(
        ..., ge=0, le=6, description="Weekday of the run, 0=Sunday .. 6=Saturday"
    )
    run_time_local: str = Field(
        ..., description="Local run time in the business timezone, 'HH:MM:SS'"
    )
    lead_minutes: int = Field(
        default=MIN_LEAD_MINUTES,
        ge=0,
        description="Minimum minutes between run start and the window's close",
    )
    is_active: bool = True


class ScheduleCreate(ScheduleBase):
    """Model for creating a schedule row."""

    next_run_at: Optional[datetime] = None


class GeoGridSchedule(ScheduleBase):
    """Complete schedule model with all database fields."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def run_hour(self) -> int:
        parsed = parse_time_of_day(self.run_time_local)
        return parsed[0] if parsed else 0

    @property
    def run_minute(self) -> int:
        parsed = parse_time_of_day(self.run_time_local)
        return parsed[1] if parsed else 0

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None


class ScheduleContext(BaseModel):
    """A business joined with its hours and (optional) schedule."""

    business_id: int
    business_name: str
    timezone: Optional[str] = None
    business_active: bool = True
    windows_json: Any = None
    schedule: Optional[GeoGridSchedule] = None
    keywords: List[str] = Field(default_factory=list)

    @property
    def is_fully_active(self) -> bool:
        return bool(self.business_active and self.schedule and self.schedule.is_active)


class ClaimedSchedule(BaseModel):
    """A schedule row stamped with ``locked_at`` by the claim transaction."""

    model_config = ConfigDict(from_attributes=True)

    schedule_id: int
    business_id: int
    business_name: str
    timezone: Optional[str] = None
    next_run_at: datetime
    lead_minutes: int = MIN_LEAD_MINUTES
    run_day_of_week: int
    run_time_local: str
    locked_at: datetime
