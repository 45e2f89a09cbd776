# backend/geogrid/workers/claimer_worker.py
"""
Claimer Worker - turns due schedules into queued runs on each scheduler tick.

Also sweeps stuck schedules (active but with no next run instant) so a
business never silently drops out of the weekly rotation.
"""

from typing import Awaitable, Callable, Optional

from ..config import settings
from ..enums import WorkerType
from ..services.run_claimer_service import ClaimCycleSummary, DueRunClaimer
from ..services.scheduling.schedule_service import ScheduleService
from .base_worker import BaseWorker


class ClaimerWorker(BaseWorker):
    """
    Worker that runs claim cycles when the scheduler tells it to.

    ``on_runs_queued`` is awaited after a cycle that queued at least one run,
    typically to trigger an immediate measure pass.
    """

    def __init__(
        self,
        claimer: DueRunClaimer,
        schedule_service: ScheduleService,
        batch_limit: Optional[int] = None,
        on_runs_queued: Optional[Callable[[ClaimCycleSummary], Awaitable[None]]] = None,
    ):
        super().__init__(WorkerType.CLAIMER_WORKER.value)
        self.claimer = claimer
        self.schedule_service = schedule_service
        self.batch_limit = batch_limit or settings.claim_batch_limit
        self.on_runs_queued = on_runs_queued

    async def initialize(self) -> None:
        self.log_info(f"Initialized with claim batch limit {self.batch_limit}")

    async def cleanup(self) -> None:
        self.log_info("Cleaned up")

    async def run_claim_pass(self) -> Optional[ClaimCycleSummary]:
        """
        Run one claim cycle.

        Returns:
            ClaimCycleSummary, or None if the claim query itself failed
        """
        try:
            summary = await self.claimer.run_claim_cycle(limit=self.batch_limit)
        except Exception as e:
            self.log_error("Claim cycle failed", e)
            return None

        if summary.claimed:
            self.log_info(
                f"Claim cycle: {summary.created} queued, {summary.skipped} skipped, "
                f"{summary.failed} failed"
            )

        if summary.created and self.on_runs_queued is not None:
            await self.on_runs_queued(summary)
        return summary

    async def run_stuck_sweep(self) -> int:
        """Recompute and unlock stuck schedules. Returns how many were reset."""
        try:
            reset = await self.schedule_service.reset_stuck_schedules()
        except Exception as e:
            self.log_error("Stuck schedule sweep failed", e)
            return 0

        return reset
