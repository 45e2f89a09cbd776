# backend/geogrid/models/run_model.py
"""
Run and Point Models - Pydantic models for geo-grid runs and their grid points.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..constants import DEFAULT_RUN_NOTES
from ..enums import RunStatus


class GridPointCreate(BaseModel):
    """A grid coordinate produced by the geometry builder."""

    row_idx: int = Field(..., ge=0)
    col_idx: int = Field(..., ge=0)
    lat: float
    lng: float


class GeoGridRunCreate(BaseModel):
    """Model for creating a run together with all of its points."""

    business_id: int
    keyword: str = Field(..., min_length=1, max_length=255)
    origin_lat: float
    origin_lng: float
    radius_miles: float = Field(..., gt=0)
    grid_rows: int = Field(..., ge=1)
    grid_cols: int = Field(..., ge=1)
    spacing_miles: float = Field(..., gt=0)
    notes: Optional[str] = DEFAULT_RUN_NOTES
    points: List[GridPointCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_point_count(self) -> "GeoGridRunCreate":
        expected = self.grid_rows * self.grid_cols
        if len(self.points) != expected:
            raise ValueError(
                f"Run requires {expected} points for a "
                f"{self.grid_rows}x{self.grid_cols} grid, got {len(self.points)}"
            )
        seen = {(p.row_idx, p.col_idx) for p in self.points}
        if len(seen) != expected:
            raise ValueError("Grid point indices must be unique per run")
        if any(
            p.row_idx >= self.grid_rows or p.col_idx >= self.grid_cols
            for p in self.points
        ):
            raise ValueError("Grid point indices exceed the grid dimensions")
        return self


class GeoGridRun(BaseModel):
    """Complete run model with all database fields."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    business_id: int
    keyword: str
    origin_lat: float
    origin_lng: float
    radius_miles: float
    grid_rows: int
    grid_cols: int
    spacing_miles: float
    status: RunStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class ActiveRun(BaseModel):
    """A queued or running run joined with the data the engine needs."""

    model_config = ConfigDict(from_attributes=True)

    run_id: int
    business_id: int
    business_name: str
    keyword: str
    status: RunStatus
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    proxy_username: Optional[str] = None
    proxy_endpoint: Optional[str] = None


class GeoGridPoint(BaseModel):
    """A stored grid point. ``rank_pos`` is None until measured."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    run_id: int
    row_idx: int
    col_idx: int
    lat: float
    lng: float
    rank_pos: Optional[int] = None
    measured_at: Optional[datetime] = None

    @property
    def is_measured(self) -> bool:
        return self.rank_pos is not None


class PointResultUpdate(BaseModel):
    """Final values written to a point on successful measurement."""

    rank_pos: int = Field(..., ge=1)
    place_id: Optional[str] = None
    results_json: Optional[Dict[str, Any]] = None
    screenshot_path: Optional[str] = None
    search_url: Optional[str] = None
    landing_url: Optional[str] = None


class RunProgress(BaseModel):
    """Point counts for one run."""

    run_id: int
    total_points: int
    unmeasured_points: int

    @property
    def measured_points(self) -> int:
        return self.total_points - self.unmeasured_points

    @property
    def is_complete(self) -> bool:
        return self.total_points > 0 and self.unmeasured_points == 0
