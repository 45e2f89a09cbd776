"""
Geo-Grid Pydantic Models Package

Model Organization:
    - schedule_model: weekly schedule rows, claim results and schedule context
    - run_model: runs, grid points, point results and run progress
    - measurement_model: origin zones, keyword entries and measurement plans
    - ranking_model: search collaborator inputs/outputs and ranking snapshots

Example:
    ```python
    from geogrid.models import GeoGridRunCreate, GridPointCreate
    ```
"""

from .measurement_model import KeywordEntry, MeasurementConfig, MeasurementPlan, OriginZone
from .ranking_model import (
    Coordinate,
    PlaceResult,
    ProxyConfig,
    RankedResults,
    RankingSnapshotCreate,
    SearchContentResult,
)
from .run_model import (
    ActiveRun,
    GeoGridPoint,
    GeoGridRun,
    GeoGridRunCreate,
    GridPointCreate,
    PointResultUpdate,
    RunProgress,
)
from .schedule_model import (
    ClaimedSchedule,
    GeoGridSchedule,
    ScheduleContext,
    ScheduleCreate,
)

__all__ = [
    # Schedules
    "ClaimedSchedule",
    "GeoGridSchedule",
    "ScheduleContext",
    "ScheduleCreate",
    # Runs and points
    "ActiveRun",
    "GeoGridPoint",
    "GeoGridRun",
    "GeoGridRunCreate",
    "GridPointCreate",
    "PointResultUpdate",
    "RunProgress",
    # Measurement configuration
    "KeywordEntry",
    "MeasurementConfig",
    "MeasurementPlan",
    "OriginZone",
    # Search collaborators
    "Coordinate",
    "PlaceResult",
    "ProxyConfig",
    "RankedResults",
    "RankingSnapshotCreate",
    "SearchContentResult",
]
