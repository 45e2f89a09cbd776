# backend/geogrid/utils/grid_geometry.py
"""
Grid geometry for geo-grid runs.

Pure functions: no database access and no logging. A grid is centred on the
origin, rows run south to north and columns run west to east.
"""

import math
from typing import List, Optional, Tuple

from ..constants import (
    DEFAULT_SPACING_MILES,
    EARTH_RADIUS_MILES,
    GRID_COORDINATE_PRECISION,
    MILES_PER_DEGREE_LATITUDE,
)
from ..models.run_model import GridPointCreate


def _is_finite(value) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def miles_to_degrees(miles: float) -> float:
    """Degrees of latitude spanned by ``miles``."""
    if not _is_finite(miles):
        return 0.0
    return float(miles) / MILES_PER_DEGREE_LATITUDE


def calculate_spacing_miles(
    radius_miles: Optional[float],
    rows: int,
    cols: int,
    default_spacing: float = DEFAULT_SPACING_MILES,
) -> float:
    """
    Distance between neighbouring points so the grid spans the radius on each side.

    Each axis spacing is ``2 * radius / (cells - 1)``; the larger of the two
    wins. A single-cell axis uses the full diameter.

    Returns:
        Spacing in miles, or ``default_spacing`` for a missing or non-positive radius
    """
    if not _is_finite(radius_miles) or float(radius_miles) <= 0:
        return default_spacing

    safe_rows = max(1, int(rows or 1))
    safe_cols = max(1, int(cols or 1))
    diameter = float(radius_miles) * 2
    row_spacing = diameter / (safe_rows - 1) if safe_rows > 1 else diameter
    col_spacing = diameter / (safe_cols - 1) if safe_cols > 1 else diameter
    spacing = max(row_spacing, col_spacing)

    if not math.isfinite(spacing) or spacing <= 0:
        return default_spacing
    return spacing


def build_grid_points(
    origin_lat: float,
    origin_lng: float,
    rows: int,
    cols: int,
    spacing_miles: float,
) -> List[GridPointCreate]:
    """
    Build a rows x cols grid of coordinates centred on the origin.

    Latitude steps are ``spacing / 69`` degrees; longitude steps are widened
    by ``1 / cos(lat)`` so east-west spacing stays constant in miles.
    Coordinates are rounded to 6 decimal places.

    Returns:
        Points in row-major order, or an empty list for degenerate input
        (fewer than one row or column, or a non-finite origin or spacing)
    """
    if not all(_is_finite(v) for v in (origin_lat, origin_lng, spacing_miles)):
        return []
    try:
        rows, cols = int(rows), int(cols)
    except (TypeError, ValueError):
        return []
    if rows < 1 or cols < 1:
        return []

    lat = float(origin_lat)
    lng = float(origin_lng)
    lat_step = miles_to_degrees(spacing_miles)
    cos_lat = math.cos(math.radians(lat))
    lng_step = lat_step / cos_lat if abs(cos_lat) > 1e-12 else 0.0
    row_offset = (rows - 1) / 2
    col_offset = (cols - 1) / 2

    points = []
    for r in range(rows):
        for c in range(cols):
            points.append(
                GridPointCreate(
                    row_idx=r,
                    col_idx=c,
                    lat=round(lat + (r - row_offset) * lat_step, GRID_COORDINATE_PRECISION),
                    lng=round(lng + (c - col_offset) * lng_step, GRID_COORDINATE_PRECISION),
                )
            )
    return points


def haversine_miles(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Great-circle distance in miles between two (lat, lng) pairs."""
    lat1, lng1 = map(math.radians, a)
    lat2, lng2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_MILES * math.asin(min(1.0, math.sqrt(h)))
