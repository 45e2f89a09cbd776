"""
Message types passed between the worker pool coordinator and its units.
"""

from .unit_messages import PointOutcome, PointTask, UnitExit

__all__ = ["PointOutcome", "PointTask", "UnitExit"]
