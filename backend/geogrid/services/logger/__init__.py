"""
Centralized Logger Service Module.

Usage:
    from geogrid.services.logger import get_service_logger
    from geogrid.enums import LoggerName, LogSource

    logger = get_service_logger(LoggerName.CLAIMER_SERVICE, LogSource.SCHEDULER)
    logger.info("Claimed schedule", extra_context={"business_id": 7})
"""

# Re-export commonly used enums for convenience
from ...enums import LogEmoji, LoggerName, LogLevel, LogSource
from .logger_service import configure_logging, get_service_logger

__all__ = [
    "configure_logging",
    "get_service_logger",
    # Enums
    "LogLevel",
    "LogSource",
    "LoggerName",
    "LogEmoji",
]
