#!/usr/bin/env python3
#
"""
Geo-Grid Worker Process

Long-running asyncio process that keeps the weekly geo-grid pipeline moving.

Worker Architecture:
- SchedulerWorker: makes ALL timing decisions through APScheduler interval jobs
- ClaimerWorker: claims due schedules and queues runs when the scheduler says so
- GeoGridWorker: measures queued/running runs with a bounded pool of units

A claim pass that queues at least one run nudges the measure job so new runs
do not wait a full measure interval. Both jobs are max_instances=1, so a pass
never overlaps with itself.
"""

import asyncio
import signal
from typing import Any, Dict, Optional

from .config import settings
from .database import async_db
from .enums import LogEmoji, LoggerName, LogSource
from .exceptions import ConfigurationError
from .services.collaborators import RankedResultsExtractor, SearchContentProvider
from .services.logger import configure_logging, get_service_logger
from .services.run_claimer_service import ClaimCycleSummary
from .workers.claimer_worker import ClaimerWorker
from .workers.geogrid_worker import GeoGridWorker
from .workers.scheduler_worker import MEASURE_JOB_ID, SchedulerWorker
from .workers.service_locator import ServiceLocator, create_worker_ecosystem

logger = get_service_logger(LoggerName.SYSTEM, LogSource.SYSTEM)


class GeoGridWorkerProcess:
    """
    Orchestrates the scheduler, claimer and engine workers in one process.

    The engine is optional: without configured search collaborators the
    process still claims schedules and queues runs, which another host
    can measure.
    """

    def __init__(
        self,
        locator: ServiceLocator,
        scheduler_worker: Optional[SchedulerWorker] = None,
        install_signal_handlers: bool = True,
    ):
        if install_signal_handlers:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

        self.locator = locator
        self.scheduler_worker = scheduler_worker or SchedulerWorker()
        self.claimer_worker: ClaimerWorker = locator.create_claimer_worker(
            on_runs_queued=self._on_runs_queued
        )
        self.geogrid_worker: Optional[GeoGridWorker] = self._create_engine()
        self.running = False

    def _create_engine(self) -> Optional[GeoGridWorker]:
        try:
            return self.locator.create_geogrid_worker()
        except ConfigurationError as e:
            logger.warning(
                f"Measurement disabled, search collaborators unavailable: {e}",
                emoji=LogEmoji.SKIPPED,
            )
            return None

    def _signal_handler(self, signum, frame) -> None:
        logger.info(f"Received signal {signum}, shutting down", emoji=LogEmoji.SHUTDOWN)
        self.running = False

    def _workers(self):
        workers = [self.scheduler_worker, self.claimer_worker]
        if self.geogrid_worker is not None:
            workers.append(self.geogrid_worker)
        return workers

    async def _on_runs_queued(self, summary: ClaimCycleSummary) -> None:
        if self.geogrid_worker is not None:
            self.scheduler_worker.trigger_now(MEASURE_JOB_ID)

    async def claim(self) -> None:
        await self.claimer_worker.run_claim_pass()

    async def measure(self) -> None:
        if self.geogrid_worker is not None:
            await self.geogrid_worker.run_measure_pass()

    async def sweep_stuck(self) -> None:
        await self.claimer_worker.run_stuck_sweep()

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "measurement_enabled": self.geogrid_worker is not None,
            "workers": [worker.get_status() for worker in self._workers()],
        }

    async def start(self) -> None:
        """Start workers and jobs, then idle until a shutdown signal arrives."""
        logger.info("Starting geo-grid worker process", emoji=LogEmoji.STARTUP)

        for worker in self._workers():
            await worker.start()

        try:
            self.scheduler_worker.start_scheduler()
            jobs_added = self.scheduler_worker.add_standard_jobs(
                claim_func=self.claim,
                claim_interval_seconds=settings.claim_interval_seconds,
                measure_func=self.measure if self.geogrid_worker is not None else None,
                measure_interval_seconds=settings.measure_interval_seconds,
                stuck_sweep_func=self.sweep_stuck,
                stuck_sweep_interval_seconds=settings.stuck_sweep_interval_seconds,
            )
            logger.info(f"{jobs_added} job(s) scheduled", emoji=LogEmoji.SCHEDULE)

            self.running = True
            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.stop()

    async def stop(self) -> None:
        self.running = False
        for worker in reversed(self._workers()):
            await worker.stop()
        logger.info("Geo-grid worker process stopped", emoji=LogEmoji.SHUTDOWN)


async def main(
    search_provider: Optional[SearchContentProvider] = None,
    results_extractor: Optional[RankedResultsExtractor] = None,
) -> None:
    """Entry point: configure logging, open the pool, run until stopped."""
    configure_logging(
        level=settings.log_level,
        log_file_path=settings.log_file_path,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    await async_db.initialize()
    logger.info(
        "Database pool initialized",
        extra_context={"environment": settings.environment},
        emoji=LogEmoji.DATABASE,
    )

    try:
        locator = create_worker_ecosystem(async_db, search_provider, results_extractor)
        process = GeoGridWorkerProcess(locator)
        await process.start()
    finally:
        await async_db.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
