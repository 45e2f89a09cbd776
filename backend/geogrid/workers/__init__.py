"""
Worker module for the geo-grid scheduler.

- SchedulerWorker: owns APScheduler and every timing decision
- ClaimerWorker: turns due schedules into queued runs
- GeoGridWorker: bounded worker pool that measures grid points
- MeasurementUnit: one execution slot of the worker pool
"""

from .base_worker import BaseWorker
from .claimer_worker import ClaimerWorker
from .geogrid_worker import GeoGridWorker
from .measurement_unit import MeasurementUnit
from .scheduler_worker import SchedulerWorker

__all__ = [
    "BaseWorker",
    "ClaimerWorker",
    "GeoGridWorker",
    "MeasurementUnit",
    "SchedulerWorker",
]
