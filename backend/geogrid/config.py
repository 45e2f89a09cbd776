# backend/geogrid/config.py
from pathlib import Path
from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_CLAIM_BATCH_LIMIT,
    DEFAULT_CLAIM_INTERVAL_SECONDS,
    DEFAULT_DISPATCH_DELAY_SECONDS,
    DEFAULT_FAILURE_PAUSE_SECONDS,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_FAILURE_WINDOW_SIZE,
    DEFAULT_GRID_COLS,
    DEFAULT_GRID_ROWS,
    DEFAULT_MEASURE_INTERVAL_SECONDS,
    DEFAULT_POINT_MAX_ATTEMPTS,
    DEFAULT_POINT_RETRY_DELAYS_SECONDS,
    DEFAULT_PROCESS_LOCK_FILENAME,
    DEFAULT_RUN_STATUS_POLL_SECONDS,
    DEFAULT_SPACING_MILES,
    DEFAULT_STUCK_SWEEP_INTERVAL_SECONDS,
    DEFAULT_UNIT_EXIT_TIMEOUT_SECONDS,
    DEFAULT_WORKER_CONCURRENCY,
    FALLBACK_RADIUS_MILES,
    LOG_FILE_RETENTION,
    LOG_FILE_ROTATION,
)
from .enums import LogLevel


def get_project_root() -> Path:
    """Get project root directory - ONLY use for initial config setup"""
    return Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    environment: str = "development"

    # Database
    database_url: str = Field(
        default="postgresql://localhost:5432/geogrid",
        description="PostgreSQL connection string",
    )
    db_pool_size: int = Field(
        default=10,
        ge=2,
        le=100,
        description="Database connection pool size",
    )
    db_max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum clients waiting for a pooled connection",
    )
    db_pool_timeout: int = Field(
        default=30,
        ge=5,
        le=300,
        description="Database connection timeout in seconds",
    )

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Minimum log level")
    log_file_path: Optional[str] = Field(
        default=None, description="Optional rotating log file path"
    )
    log_rotation: str = Field(default=LOG_FILE_ROTATION)
    log_retention: str = Field(default=LOG_FILE_RETENTION)

    # Worker pool engine
    worker_concurrency: int = Field(
        default=DEFAULT_WORKER_CONCURRENCY,
        ge=1,
        le=50,
        description="Number of parallel measurement units per run",
    )
    point_max_attempts: int = Field(
        default=DEFAULT_POINT_MAX_ATTEMPTS,
        ge=1,
        le=10,
        description="Attempts per point before it is reported as failed",
    )
    # Can be set via POINT_RETRY_DELAYS env var as comma-separated string
    point_retry_delays: Union[str, List[float]] = Field(
        default=DEFAULT_POINT_RETRY_DELAYS_SECONDS,
        description="Backoff delays in seconds indexed by attempt",
    )
    failure_window_size: int = Field(
        default=DEFAULT_FAILURE_WINDOW_SIZE,
        ge=1,
        le=1000,
        description="Number of recent point outcomes considered by the circuit breaker",
    )
    failure_threshold: float = Field(
        default=DEFAULT_FAILURE_THRESHOLD,
        gt=0.0,
        le=1.0,
        description="Failure ratio that pauses dispatch",
    )
    failure_pause_seconds: float = Field(
        default=DEFAULT_FAILURE_PAUSE_SECONDS,
        ge=0,
        le=86400,
        description="Cooldown before dispatch resumes after a pause",
    )
    dispatch_delay_seconds: float = Field(
        default=DEFAULT_DISPATCH_DELAY_SECONDS,
        ge=0,
        le=600,
        description="Delay before a freed unit receives its next point",
    )
    run_status_poll_seconds: float = Field(
        default=DEFAULT_RUN_STATUS_POLL_SECONDS,
        ge=0,
        le=600,
    )
    unit_exit_timeout_seconds: float = Field(
        default=DEFAULT_UNIT_EXIT_TIMEOUT_SECONDS,
        gt=0,
        le=600,
    )
    process_lock_path: str = Field(
        default=str(get_project_root() / DEFAULT_PROCESS_LOCK_FILENAME),
        description="Lock file preventing two engine instances on one host",
    )

    # Claimer / orchestrator
    claim_batch_limit: int = Field(default=DEFAULT_CLAIM_BATCH_LIMIT, ge=1, le=500)
    claim_interval_seconds: int = Field(
        default=DEFAULT_CLAIM_INTERVAL_SECONDS, ge=5, le=86400
    )
    measure_interval_seconds: int = Field(
        default=DEFAULT_MEASURE_INTERVAL_SECONDS, ge=5, le=86400
    )
    stuck_sweep_interval_seconds: int = Field(
        default=DEFAULT_STUCK_SWEEP_INTERVAL_SECONDS,
        ge=0,
        le=604800,
        description="Interval of the stuck schedule sweep, 0 disables it",
    )
    default_grid_rows: int = Field(default=DEFAULT_GRID_ROWS, ge=1, le=25)
    default_grid_cols: int = Field(default=DEFAULT_GRID_COLS, ge=1, le=25)
    fallback_radius_miles: float = Field(default=FALLBACK_RADIUS_MILES, gt=0, le=100)
    default_spacing_miles: float = Field(default=DEFAULT_SPACING_MILES, gt=0, le=100)

    # External collaborators
    proxy_password: str = Field(
        default="", description="Residential proxy password shared by all businesses"
    )
    search_provider: Optional[str] = Field(
        default=None,
        description="Import path 'package.module:factory' of the search content provider",
    )
    results_extractor: Optional[str] = Field(
        default=None,
        description="Import path 'package.module:factory' of the ranked results extractor",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v) -> LogLevel:
        """Validate log level is one of the allowed values"""
        if isinstance(v, LogLevel):
            return v
        allowed_levels = LogLevel.__members__.keys()
        v_upper = str(v).upper()
        if v_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(allowed_levels)}"
            )
        return LogLevel[v_upper]

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values"""
        allowed_envs = ["development", "staging", "production", "test"]
        v_lower = v.lower()
        if v_lower not in allowed_envs:
            raise ValueError(
                f"Invalid environment '{v}'. Must be one of: {', '.join(allowed_envs)}"
            )
        return v_lower

    @property
    def point_retry_delays_list(self) -> List[float]:
        """Convert point_retry_delays to a list of floats"""
        if isinstance(self.point_retry_delays, str):
            return [
                float(delay.strip())
                for delay in self.point_retry_delays.split(",")
                if delay.strip()
            ]
        return [float(delay) for delay in self.point_retry_delays]

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )


# Global settings instance
settings = Settings()
