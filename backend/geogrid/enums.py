# backend/geogrid/enums.py
"""
Application Enums - Centralized enum definitions.

Keeping every enum in one module lets constants, models and services import
them without circular dependencies.
"""

from enum import Enum


# =============================================================================
# RUN SYSTEM
# =============================================================================


class RunStatus(str, Enum):
    """Geo-grid run statuses. Transitions only move forward."""

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.DONE, RunStatus.ERROR)


# Allowed predecessor statuses for each target status
RUN_STATUS_PREDECESSORS = {
    RunStatus.RUNNING: (RunStatus.QUEUED,),
    RunStatus.DONE: (RunStatus.QUEUED, RunStatus.RUNNING),
    RunStatus.ERROR: (RunStatus.QUEUED, RunStatus.RUNNING),
}


class PointOutcomeStatus(str, Enum):
    """Terminal outcome of measuring a single grid point."""

    SUCCESS = "success"
    FAILED = "failed"
    PERSIST_FAILED = "persist_failed"


class UnitMessageType(str, Enum):
    """Messages exchanged between the engine and its execution units."""

    TASK = "task"
    RESULT = "result"
    EXIT = "exit"


# =============================================================================
# WORKERS
# =============================================================================


class WorkerType(str, Enum):
    """Worker identifiers used for logging and status reporting."""

    CLAIMER_WORKER = "ClaimerWorker"
    GEOGRID_WORKER = "GeoGridWorker"
    SCHEDULER_WORKER = "SchedulerWorker"


# =============================================================================
# LOGGING SYSTEM
# =============================================================================


class LogLevel(str, Enum):
    """Log levels accepted by the logging configuration."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogSource(str, Enum):
    """Log source constants for identifying log origins."""

    WORKER = "worker"
    SYSTEM = "system"
    DATABASE = "database"
    SCHEDULER = "scheduler"
    CLI = "cli"


class LogEmoji(str, Enum):
    """Type-safe emoji constants for log messages."""

    # Status emojis
    COMPLETED = "✅"
    FAILED = "❌"
    ERROR = "❌"
    WARNING = "⚠️"
    INFO = "ℹ️"
    DEBUG = "🐞"
    SKIPPED = "⏭️"

    # Work emojis
    RETRY = "🔄"
    RUNNING = "▶️"
    STOPPED = "⏹️"
    PAUSED = "⏸️"
    RESUMED = "▶️"

    # System emojis
    STARTUP = "🚀"
    SHUTDOWN = "🛑"
    DATABASE = "🗄️"
    LOCK = "🔒"
    UNLOCK = "🔓"
    SCHEDULE = "📅"
    GRID = "🗺️"
    CHART = "📊"
    CLEANUP = "🧹"


class LoggerName(str, Enum):
    """Logger name constants for categorizing log entries."""

    # Worker loggers
    GEOGRID_WORKER = "geogrid_worker"
    MEASUREMENT_UNIT = "measurement_unit"
    SCHEDULER_WORKER = "scheduler_worker"

    # Service loggers
    BUSINESS_HOURS = "business_hours"
    SCHEDULE_SERVICE = "schedule_service"
    CLAIMER_SERVICE = "claimer_service"
    KEYWORD_SERVICE = "keyword_service"
    COMPLETION_SERVICE = "completion_service"

    # System loggers
    SYSTEM = "system"
    DATABASE = "database"
    CLI = "cli"
