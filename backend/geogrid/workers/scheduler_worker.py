# backend/geogrid/workers/scheduler_worker.py
"""
Scheduler Worker - owns the APScheduler instance and every timing decision.

The claimer and the engine are plain pass methods; this worker wires them to
independent interval jobs. Jobs never overlap with themselves
(max_instances=1) and missed ticks collapse into one (coalesce=True).
"""

from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..constants import SCHEDULER_MAX_INSTANCES, SCHEDULER_MISFIRE_GRACE_SECONDS
from ..enums import LogEmoji, LoggerName, LogSource, WorkerType
from ..services.logger import get_service_logger
from ..utils.time_utils import utc_now
from .base_worker import BaseWorker

scheduler_logger = get_service_logger(LoggerName.SCHEDULER_WORKER, LogSource.SCHEDULER)

CLAIM_JOB_ID = "geogrid_claim"
MEASURE_JOB_ID = "geogrid_measure"
STUCK_SWEEP_JOB_ID = "geogrid_stuck_sweep"


class SchedulerWorker(BaseWorker):
    """
    Interval job registry on top of AsyncIOScheduler.

    Responsibilities:
    - Standard job configuration (max_instances, coalesce, misfire grace)
    - Registering the claim, measure and stuck-sweep jobs
    - Triggering a job immediately, e.g. a measure pass right after a claim
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        super().__init__(WorkerType.SCHEDULER_WORKER.value)
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.job_registry: Dict[str, Job] = {}

    async def initialize(self) -> None:
        self.log_info("Initialized scheduler worker")

    async def cleanup(self) -> None:
        self.stop_scheduler()

    def start_scheduler(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            scheduler_logger.info("APScheduler started", emoji=LogEmoji.SCHEDULE)

    def stop_scheduler(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            scheduler_logger.info("APScheduler stopped", emoji=LogEmoji.STOPPED)
        self.job_registry.clear()

    def add_job(self, job_id: str, func: Callable, trigger: str, **kwargs: Any) -> bool:
        """
        Add a job with the standard configuration, replacing any job with the same id.

        Returns:
            True if the job was added
        """
        if job_id in self.job_registry:
            self.remove_job(job_id)

        kwargs.setdefault("max_instances", SCHEDULER_MAX_INSTANCES)
        kwargs.setdefault("coalesce", True)
        kwargs.setdefault("misfire_grace_time", SCHEDULER_MISFIRE_GRACE_SECONDS)

        try:
            job = self.scheduler.add_job(func=func, trigger=trigger, id=job_id, **kwargs)
        except (ValueError, TypeError, LookupError) as e:
            scheduler_logger.error(f"Failed to add job {job_id}", exception=e)
            return False

        self.job_registry[job_id] = job
        scheduler_logger.debug(f"Added job {job_id}")
        return True

    def remove_job(self, job_id: str) -> None:
        job = self.job_registry.pop(job_id, None)
        if job is not None:
            job.remove()
            scheduler_logger.debug(f"Removed job {job_id}")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], Awaitable[Any]],
        seconds: int,
        run_immediately: bool = True,
    ) -> bool:
        """Add an interval job, optionally firing the first run right away."""
        kwargs: Dict[str, Any] = {"seconds": seconds}
        if run_immediately:
            kwargs["next_run_time"] = utc_now()
        return self.add_job(job_id, func, "interval", **kwargs)

    def trigger_now(self, job_id: str) -> bool:
        """
        Move a registered job's next fire time to now.

        A job that is already executing is not started twice; the nudge makes
        its next tick happen as soon as the current one finishes.
        """
        job = self.job_registry.get(job_id)
        if job is None:
            return False
        job.modify(next_run_time=utc_now() + timedelta(milliseconds=10))
        self.log_debug(f"Triggered {job_id} immediately")
        return True

    def add_standard_jobs(
        self,
        claim_func: Callable[[], Awaitable[Any]],
        claim_interval_seconds: int,
        measure_func: Optional[Callable[[], Awaitable[Any]]] = None,
        measure_interval_seconds: Optional[int] = None,
        stuck_sweep_func: Optional[Callable[[], Awaitable[Any]]] = None,
        stuck_sweep_interval_seconds: Optional[int] = None,
    ) -> int:
        """
        Register the claim job and, when provided, the measure and sweep jobs.

        Returns:
            Number of jobs added
        """
        added = 0
        if self.add_interval_job(CLAIM_JOB_ID, claim_func, claim_interval_seconds):
            added += 1
        if measure_func is not None and measure_interval_seconds:
            if self.add_interval_job(MEASURE_JOB_ID, measure_func, measure_interval_seconds):
                added += 1
        if stuck_sweep_func is not None and stuck_sweep_interval_seconds:
            if self.add_interval_job(
                STUCK_SWEEP_JOB_ID, stuck_sweep_func, stuck_sweep_interval_seconds
            ):
                added += 1
        return added

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "scheduler_running": self.scheduler.running,
                "jobs": sorted(self.job_registry),
            }
        )
        return status
