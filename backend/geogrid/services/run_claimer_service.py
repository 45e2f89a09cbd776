# backend/geogrid/services/run_claimer_service.py
"""
Due-Run Claimer - turns due schedules into queued runs.

The claim itself is one transaction in ScheduleOperations. Everything after
it is done per business in isolation: a failure for one business releases
that business's lock and the cycle moves on.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..config import settings
from ..constants import DEFAULT_CLAIM_BATCH_LIMIT, DEFAULT_RUN_NOTES
from ..database.run_operations import RunOperations
from ..database.schedule_operations import ScheduleOperations
from ..enums import LogEmoji, LoggerName, LogSource
from ..exceptions import ConfigurationError
from ..models.run_model import GeoGridRunCreate
from ..models.schedule_model import ClaimedSchedule
from ..utils.grid_geometry import build_grid_points, calculate_spacing_miles
from ..utils.time_utils import utc_now
from .collaborators import MeasurementConfigProvider
from .keyword_selection_service import build_measurement_plan
from .logger import get_service_logger
from .scheduling.schedule_service import ScheduleService

logger = get_service_logger(LoggerName.CLAIMER_SERVICE, LogSource.SCHEDULER)


@dataclass
class ClaimCycleSummary:
    """Outcome counts for one claim cycle."""

    claimed: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    run_ids: List[int] = field(default_factory=list)


class DueRunClaimer:
    """
    Claims due schedules and queues a grid run for each.

    Responsibilities:
    - Atomic claim of due schedules (FOR UPDATE SKIP LOCKED + stale lock timeout)
    - Keyword, origin and grid selection per business
    - All-or-nothing insert of the run and its points
    - Schedule advancement from the scheduled instant
    """

    def __init__(
        self,
        schedule_ops: ScheduleOperations,
        run_ops: RunOperations,
        schedule_service: ScheduleService,
        config_provider: MeasurementConfigProvider,
        grid_rows: Optional[int] = None,
        grid_cols: Optional[int] = None,
    ) -> None:
        self.schedule_ops = schedule_ops
        self.run_ops = run_ops
        self.schedule_service = schedule_service
        self.config_provider = config_provider
        self.grid_rows = grid_rows or settings.default_grid_rows
        self.grid_cols = grid_cols or settings.default_grid_cols

    async def run_claim_cycle(
        self, limit: int = DEFAULT_CLAIM_BATCH_LIMIT, now: Optional[datetime] = None
    ) -> ClaimCycleSummary:
        """
        Claim up to ``limit`` due schedules and queue a run for each.

        Returns:
            ClaimCycleSummary with claimed/created/skipped/failed counts
        """
        summary = ClaimCycleSummary()
        claimed = await self.schedule_ops.claim_due_schedules(limit=limit, now=now or utc_now())
        summary.claimed = len(claimed)

        if claimed:
            logger.info(
                f"Claimed {len(claimed)} due schedule(s)",
                extra_context={"business_ids": [c.business_id for c in claimed]},
                emoji=LogEmoji.LOCK,
            )

        for schedule in claimed:
            try:
                run_id = await self.process_claimed_schedule(schedule)
            except Exception as e:
                summary.failed += 1
                if isinstance(e, ConfigurationError):
                    logger.warning(
                        f"Skipping business {schedule.business_id}: {e}",
                        extra_context={"schedule_id": schedule.schedule_id},
                    )
                else:
                    logger.error(
                        f"Failed to queue scheduled run for business {schedule.business_id}",
                        exception=e,
                        error_context={"schedule_id": schedule.schedule_id},
                    )
                await self._release_quietly(schedule.business_id)
                continue

            if run_id is None:
                summary.skipped += 1
            else:
                summary.created += 1
                summary.run_ids.append(run_id)

        return summary

    async def process_claimed_schedule(self, schedule: ClaimedSchedule) -> Optional[int]:
        """
        Queue a run for one claimed schedule.

        Returns:
            The new run id, or None when the business already has an
            unfinished run

        Raises:
            ConfigurationError: If no usable keyword, origin or grid exists
        """
        business_id = schedule.business_id

        if await self.run_ops.has_unfinished_run(business_id):
            logger.info(
                f"Business {business_id} already has a queued or running run, skipping",
                emoji=LogEmoji.SKIPPED,
            )
            await self.schedule_service.release_lock(business_id)
            return None

        config = await self.config_provider.get_active_config(business_id)
        if config is None:
            raise ConfigurationError(
                "No active measurement configuration",
                details={"business_id": business_id},
            )

        plan = build_measurement_plan(config, settings.fallback_radius_miles)
        spacing = calculate_spacing_miles(
            plan.radius_miles,
            self.grid_rows,
            self.grid_cols,
            default_spacing=settings.default_spacing_miles,
        )
        points = build_grid_points(
            plan.origin_lat, plan.origin_lng, self.grid_rows, self.grid_cols, spacing
        )
        if not points:
            raise ConfigurationError(
                "Grid geometry produced no points",
                details={"business_id": business_id},
            )

        run_id = await self.run_ops.create_run_with_points(
            GeoGridRunCreate(
                business_id=business_id,
                keyword=plan.keyword,
                origin_lat=plan.origin_lat,
                origin_lng=plan.origin_lng,
                radius_miles=plan.radius_miles,
                grid_rows=self.grid_rows,
                grid_cols=self.grid_cols,
                spacing_miles=spacing,
                notes=DEFAULT_RUN_NOTES,
                points=points,
            )
        )

        await self.schedule_service.mark_run_complete(
            business_id, executed_at=schedule.next_run_at
        )
        logger.info(
            f"Queued weekly run {run_id} for business {business_id}",
            extra_context={
                "keyword": plan.keyword,
                "zone": plan.zone_name,
                "points": len(points),
            },
            emoji=LogEmoji.GRID,
        )
        return run_id

    async def _release_quietly(self, business_id: int) -> None:
        try:
            await self.schedule_service.release_lock(business_id)
        except Exception as e:
            logger.error(
                f"Failed to release schedule lock for business {business_id}",
                exception=e,
            )
