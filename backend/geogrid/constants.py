# backend/geogrid/constants.py
"""
Application constants for the geo-grid scheduling and execution pipeline.

Only values that are shared across modules live here. Tunables that an
operator may want to change at deploy time are exposed through config.py
and default to the values below.
"""

# =============================================================================
# TIME
# =============================================================================

DEFAULT_TIMEZONE = "UTC"
MINUTES_PER_DAY = 1440
DAYS_PER_WEEK = 7

# =============================================================================
# SLOT CALCULATION
# =============================================================================

DEFAULT_TARGET_HOUR = 15
DEFAULT_TARGET_MINUTE = 0
MIN_LEAD_MINUTES = 120
DEFAULT_BUFFER_MINUTES = 5
DEFAULT_SEARCH_DAYS = 14

# =============================================================================
# SCHEDULE CLAIMING
# =============================================================================

# Schedules locked longer than this are considered abandoned and re-claimable
SCHEDULE_LOCK_TIMEOUT_MINUTES = 30
DEFAULT_CLAIM_BATCH_LIMIT = 5
DEFAULT_RUN_NOTES = "auto_weekly"

# =============================================================================
# GRID
# =============================================================================

MILES_PER_DEGREE_LATITUDE = 69.0
EARTH_RADIUS_MILES = 3958.8
GRID_COORDINATE_PRECISION = 6
DEFAULT_GRID_ROWS = 7
DEFAULT_GRID_COLS = 7
FALLBACK_RADIUS_MILES = 3.0
DEFAULT_SPACING_MILES = 3.0

# =============================================================================
# KEYWORDS
# =============================================================================

MAX_KEYWORD_LENGTH = 255
MAX_KEYWORD_SELECTIONS = 20
DEFAULT_KEYWORD_WEIGHT = 1.0

# =============================================================================
# WORKER POOL ENGINE
# =============================================================================

NOT_FOUND_RANK = 999
DEFAULT_WORKER_CONCURRENCY = 5
DEFAULT_POINT_MAX_ATTEMPTS = 3
DEFAULT_POINT_RETRY_DELAYS_SECONDS = [2, 4, 8]
DEFAULT_FAILURE_WINDOW_SIZE = 10
DEFAULT_FAILURE_THRESHOLD = 0.5
DEFAULT_FAILURE_PAUSE_SECONDS = 300
DEFAULT_DISPATCH_DELAY_SECONDS = 2.0
DEFAULT_RUN_STATUS_POLL_SECONDS = 5.0
DEFAULT_UNIT_EXIT_TIMEOUT_SECONDS = 10.0
DEFAULT_PROCESS_LOCK_FILENAME = "geogrid_worker_pool.lock"

# Reasons reported by the search content collaborator that count as failures
FAILURE_REASON_EXCEPTION = "exception"
FAILURE_REASON_NO_CONTENT = "no_content"
FAILURE_REASON_UNKNOWN = "unknown"

# =============================================================================
# ORCHESTRATOR
# =============================================================================

DEFAULT_CLAIM_INTERVAL_SECONDS = 60
DEFAULT_MEASURE_INTERVAL_SECONDS = 300
DEFAULT_STUCK_SWEEP_INTERVAL_SECONDS = 3600
SCHEDULER_MAX_INSTANCES = 1
SCHEDULER_MISFIRE_GRACE_SECONDS = 30

# =============================================================================
# LOGGING
# =============================================================================

LOG_FILE_ROTATION = "10 MB"
LOG_FILE_RETENTION = "14 days"
