# backend/geogrid/exceptions.py
"""
Custom exceptions for the geo-grid rank scheduler.

Centralized location for application-level exception classes. Database layer
failures have their own hierarchy in database/exceptions.py.
"""

from typing import Any, Dict, Optional


class GeoGridError(Exception):
    """Base exception for all geo-grid specific errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(GeoGridError):
    """No usable measurement configuration (origin, keyword or grid) for a business."""

    pass


class ScheduleError(GeoGridError):
    """Base exception for schedule state machine errors."""

    code: str = "SCHEDULE_ERROR"


class BusinessNotFoundError(ScheduleError):
    """The referenced business does not exist."""

    code = "BUSINESS_NOT_FOUND"


class ScheduleNotFoundError(ScheduleError):
    """The business has no schedule row."""

    code = "SCHEDULE_NOT_FOUND"


class InvalidScheduleTimeError(ScheduleError):
    """Requested run time does not fit inside the business hours with the lead time."""

    code = "INVALID_TIME"


class NoAvailableSlotError(ScheduleError):
    """No legal slot exists inside the search horizon."""

    code = "NO_SLOT"


class PointMeasurementError(GeoGridError):
    """A point could not be measured after exhausting its attempts."""

    pass


class ProcessLockError(GeoGridError):
    """Another engine instance holds the process lock file."""

    pass


class CollaboratorLoadError(ConfigurationError):
    """A configured collaborator import path could not be resolved."""

    pass
