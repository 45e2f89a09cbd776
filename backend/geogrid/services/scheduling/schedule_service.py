# backend/geogrid/services/scheduling/schedule_service.py
"""
Schedule Service - the per-business weekly schedule state machine.

States: uninitialized -> active <-> inactive, with an orthogonal
locked/unlocked flag owned by the due-run claimer.

Business Rules:
- A schedule is created lazily from the business hours at 15:00 local
- Inactive schedules (or inactive businesses) never carry a next_run_at
- Every next_run_at comes from the slot calculator's clamp, so a time that
  passes validation is exactly the time that gets scheduled
- Activation and post-run advancement never leave an active schedule
  without a next_run_at; they fall back to "same time tomorrow"
- Completing a run always clears the claim lock
"""

from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from ...constants import MIN_LEAD_MINUTES
from ...database.schedule_operations import ScheduleOperations
from ...enums import LogEmoji, LoggerName, LogSource
from ...exceptions import (
    BusinessNotFoundError,
    InvalidScheduleTimeError,
    NoAvailableSlotError,
    ScheduleNotFoundError,
)
from ...models.schedule_model import GeoGridSchedule, ScheduleContext, ScheduleCreate
from ...utils.time_utils import (
    ensure_utc,
    format_time_of_day,
    resolve_timezone,
    utc_now,
    validate_timezone,
)
from ..collaborators import MeasurementConfigProvider
from ..keyword_selection_service import (
    collect_available_keywords_from_zones,
    normalize_keyword_selections,
)
from ..logger import get_service_logger
from .slot_calculator import (
    fallback_slot,
    find_next_slot,
    next_occurrence_for_schedule,
    same_time_tomorrow,
    schedule_from_datetime,
    validate_slot_for_day,
)

logger = get_service_logger(LoggerName.SCHEDULE_SERVICE, LogSource.SCHEDULER)


class ScheduleService:
    """
    Weekly schedule lifecycle using composition pattern.

    Responsibilities:
    - Lazy initialization from business hours
    - Activation, deactivation and manual reschedule with validation
    - Post-run advancement and lock release
    - Recovery of active schedules that lost their next_run_at
    """

    def __init__(
        self,
        schedule_ops: ScheduleOperations,
        config_provider: Optional[MeasurementConfigProvider] = None,
    ) -> None:
        """
        Initialize ScheduleService.

        Args:
            schedule_ops: Schedule database operations
            config_provider: Measurement configuration source, only needed
                for keyword selection
        """
        self.schedule_ops = schedule_ops
        self.config_provider = config_provider

    async def _load_context(self, business_id: int) -> ScheduleContext:
        context = await self.schedule_ops.get_schedule_context(business_id)
        if context is None:
            raise BusinessNotFoundError(
                f"Business {business_id} not found", details={"business_id": business_id}
            )
        return context

    async def _load_initialized_context(
        self, business_id: int, reference: Optional[datetime] = None
    ) -> ScheduleContext:
        context = await self._load_context(business_id)
        if context.schedule is None:
            await self.initialize(business_id, reference=reference)
            context = await self._load_context(business_id)
        if context.schedule is None:
            raise ScheduleNotFoundError(
                f"Schedule for business {business_id} could not be created",
                details={"business_id": business_id},
            )
        return context

    def _timezone(self, context: ScheduleContext) -> ZoneInfo:
        if context.timezone and not validate_timezone(context.timezone):
            logger.warning(
                f"Unknown timezone '{context.timezone}', falling back to UTC",
                extra_context={"business_id": context.business_id},
            )
        return resolve_timezone(context.timezone)

    async def initialize(
        self, business_id: int, reference: Optional[datetime] = None
    ) -> GeoGridSchedule:
        """
        Create the schedule for a business if it has none.

        Idempotent: an existing schedule is returned unchanged.

        Raises:
            BusinessNotFoundError: If the business does not exist
        """
        context = await self._load_context(business_id)
        if context.schedule is not None:
            return context.schedule

        tz = self._timezone(context)
        reference = ensure_utc(reference or utc_now())
        slot = find_next_slot(
            context.windows_json, tz, reference, min_lead_minutes=MIN_LEAD_MINUTES
        )
        if slot is None:
            logger.warning(
                f"No slot within business hours for business {business_id}, "
                "using fallback time",
                extra_context={"business_id": business_id},
            )
            slot = fallback_slot(reference, tz)

        day_of_week, hour, minute = schedule_from_datetime(slot, tz)
        created = await self.schedule_ops.create_schedule(
            ScheduleCreate(
                business_id=business_id,
                run_day_of_week=day_of_week,
                run_time_local=format_time_of_day(hour, minute),
                lead_minutes=MIN_LEAD_MINUTES,
                next_run_at=ensure_utc(slot) if context.business_active else None,
                is_active=context.business_active,
            )
        )

        context = await self._load_context(business_id)
        if context.schedule is None:
            raise ScheduleNotFoundError(
                f"Schedule for business {business_id} missing after insert",
                details={"business_id": business_id},
            )

        if created:
            logger.info(
                f"Initialized schedule for business {business_id}",
                extra_context={
                    "next_run_at": context.schedule.next_run_at,
                    "run_time_local": context.schedule.run_time_local,
                },
                emoji=LogEmoji.SCHEDULE,
            )
        return context.schedule

    async def set_active(
        self, business_id: int, active: bool, reference: Optional[datetime] = None
    ) -> GeoGridSchedule:
        """
        Activate or deactivate a schedule.

        Deactivation clears next_run_at and the lock. Activation recomputes the
        next occurrence of the stored weekday/time, adopting a fresh slot's
        weekday/time when that day no longer fits, and finally falling back
        to the same time tomorrow.
        """
        context = await self._load_initialized_context(business_id, reference)
        schedule = context.schedule

        if not active:
            await self.schedule_ops.deactivate_schedule(business_id)
            logger.info(
                f"Deactivated schedule for business {business_id}",
                emoji=LogEmoji.STOPPED,
            )
            return schedule.model_copy(
                update={"is_active": False, "next_run_at": None, "locked_at": None}
            )

        tz = self._timezone(context)
        reference = ensure_utc(reference or utc_now())
        day_of_week = schedule.run_day_of_week
        hour, minute = schedule.run_hour, schedule.run_minute

        next_run = next_occurrence_for_schedule(
            context.windows_json,
            tz,
            day_of_week,
            hour,
            minute,
            reference,
            min_lead_minutes=schedule.lead_minutes,
        )
        if next_run is None:
            next_run = find_next_slot(
                context.windows_json, tz, reference, min_lead_minutes=schedule.lead_minutes
            )
            if next_run is not None:
                day_of_week, hour, minute = schedule_from_datetime(next_run, tz)
            else:
                next_run = same_time_tomorrow(reference, tz, hour, minute)
                day_of_week, hour, minute = schedule_from_datetime(next_run, tz)

        run_time_local = format_time_of_day(hour, minute)
        await self.schedule_ops.update_schedule_slot(
            business_id,
            run_day_of_week=day_of_week,
            run_time_local=run_time_local,
            next_run_at=ensure_utc(next_run),
            is_active=True,
            clear_lock=True,
        )
        logger.info(
            f"Activated schedule for business {business_id}",
            extra_context={"next_run_at": ensure_utc(next_run).isoformat()},
            emoji=LogEmoji.RESUMED,
        )
        return schedule.model_copy(
            update={
                "is_active": True,
                "run_day_of_week": day_of_week,
                "run_time_local": run_time_local,
                "next_run_at": ensure_utc(next_run),
                "locked_at": None,
            }
        )

    async def update_time(
        self,
        business_id: int,
        hour: int,
        minute: int,
        reference: Optional[datetime] = None,
    ) -> GeoGridSchedule:
        """
        Move the run to a new local time on the schedule's weekday.

        Raises:
            InvalidScheduleTimeError: If the time is out of range or does not
                fit the weekday's business hours with the lead time
            NoAvailableSlotError: If no next occurrence can be computed
        """
        context = await self._load_initialized_context(business_id, reference)
        return await self._reschedule(
            context, context.schedule.run_day_of_week, hour, minute, reference
        )

    async def update_day_and_time(
        self,
        business_id: int,
        day_of_week: int,
        hour: int,
        minute: int,
        reference: Optional[datetime] = None,
    ) -> GeoGridSchedule:
        """Move the run to a new weekday and local time, with the same validation."""
        if not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
            raise InvalidScheduleTimeError(
                "Day of week must be between 0 (Sunday) and 6 (Saturday)",
                details={"day_of_week": day_of_week},
            )
        context = await self._load_initialized_context(business_id, reference)
        return await self._reschedule(context, day_of_week, hour, minute, reference)

    async def _reschedule(
        self,
        context: ScheduleContext,
        day_of_week: int,
        hour: int,
        minute: int,
        reference: Optional[datetime],
    ) -> GeoGridSchedule:
        business_id = context.business_id
        schedule = context.schedule

        if not (isinstance(hour, int) and isinstance(minute, int)) or not (
            0 <= hour <= 23 and 0 <= minute <= 59
        ):
            raise InvalidScheduleTimeError(
                "Hour must be 0-23 and minute 0-59",
                details={"hour": hour, "minute": minute},
            )

        tz = self._timezone(context)
        reference = ensure_utc(reference or utc_now())

        if not validate_slot_for_day(
            context.windows_json,
            tz,
            day_of_week,
            hour,
            minute,
            min_lead_minutes=schedule.lead_minutes,
            reference=reference,
        ):
            raise InvalidScheduleTimeError(
                "Requested time does not fall within business hours with sufficient lead time",
                details={"day_of_week": day_of_week, "hour": hour, "minute": minute},
            )

        next_run = next_occurrence_for_schedule(
            context.windows_json,
            tz,
            day_of_week,
            hour,
            minute,
            reference,
            min_lead_minutes=schedule.lead_minutes,
        )
        is_active = context.is_fully_active
        # Inactive schedules only store the time; activation computes the next run.
        if next_run is None and is_active:
            raise NoAvailableSlotError(
                "Unable to compute the next weekly run for the requested time",
                details={"business_id": business_id},
            )

        next_run_at = ensure_utc(next_run) if is_active and next_run else None
        run_time_local = format_time_of_day(hour, minute)
        await self.schedule_ops.update_schedule_slot(
            business_id,
            run_day_of_week=day_of_week,
            run_time_local=run_time_local,
            next_run_at=next_run_at,
            is_active=schedule.is_active,
        )
        logger.info(
            f"Rescheduled business {business_id} to {run_time_local} on day {day_of_week}",
            extra_context={"next_run_at": next_run_at},
            emoji=LogEmoji.SCHEDULE,
        )
        return schedule.model_copy(
            update={
                "run_day_of_week": day_of_week,
                "run_time_local": run_time_local,
                "next_run_at": next_run_at,
            }
        )

    async def mark_run_complete(
        self, business_id: int, executed_at: Optional[datetime] = None
    ) -> Optional[GeoGridSchedule]:
        """
        Record a run and advance the schedule to its following occurrence.

        The next occurrence is computed strictly after ``executed_at``, which
        the claimer passes as the scheduled instant so the weekly cadence does
        not drift. The claim lock is always cleared.

        Returns:
            The updated schedule, or None when the business has no schedule
        """
        context = await self._load_context(business_id)
        schedule = context.schedule
        if schedule is None:
            return None

        executed = ensure_utc(executed_at or utc_now())

        if not context.is_fully_active:
            await self.schedule_ops.record_run_complete(
                business_id, last_run_at=executed, next_run_at=None
            )
            return schedule.model_copy(
                update={"last_run_at": executed, "next_run_at": None, "locked_at": None}
            )

        tz = self._timezone(context)
        day_of_week = schedule.run_day_of_week
        hour, minute = schedule.run_hour, schedule.run_minute

        next_run = next_occurrence_for_schedule(
            context.windows_json,
            tz,
            day_of_week,
            hour,
            minute,
            executed,
            min_lead_minutes=schedule.lead_minutes,
        )
        if next_run is None:
            next_run = find_next_slot(
                context.windows_json, tz, executed, min_lead_minutes=schedule.lead_minutes
            )
            if next_run is None:
                logger.warning(
                    f"No slot within business hours for business {business_id}, "
                    "keeping same time tomorrow",
                    extra_context={"business_id": business_id},
                )
                next_run = same_time_tomorrow(executed, tz, hour, minute)
            day_of_week, hour, minute = schedule_from_datetime(next_run, tz)

        run_time_local = format_time_of_day(hour, minute)
        await self.schedule_ops.record_run_complete(
            business_id,
            last_run_at=executed,
            next_run_at=ensure_utc(next_run),
            run_day_of_week=day_of_week,
            run_time_local=run_time_local,
        )
        logger.debug(
            f"Advanced schedule for business {business_id}",
            extra_context={"next_run_at": ensure_utc(next_run).isoformat()},
        )
        return schedule.model_copy(
            update={
                "last_run_at": executed,
                "next_run_at": ensure_utc(next_run),
                "run_day_of_week": day_of_week,
                "run_time_local": run_time_local,
                "locked_at": None,
            }
        )

    async def release_lock(self, business_id: int) -> None:
        """Unconditionally clear the claim lock."""
        await self.schedule_ops.release_lock(business_id)
        logger.debug(f"Released schedule lock for business {business_id}", emoji=LogEmoji.UNLOCK)

    async def reset_stuck_schedules(self, reference: Optional[datetime] = None) -> int:
        """
        Recompute next_run_at for active schedules that have none.

        Returns:
            Number of schedules re-activated
        """
        reference = ensure_utc(reference or utc_now())
        business_ids = await self.schedule_ops.get_stuck_schedule_business_ids()

        reset = 0
        failed = 0
        for business_id in business_ids:
            try:
                schedule = await self.set_active(business_id, True, reference=reference)
            except Exception as e:
                failed += 1
                logger.error(
                    f"Failed to reset stuck schedule for business {business_id}",
                    exception=e,
                )
                continue
            if schedule.next_run_at is not None:
                reset += 1

        if business_ids:
            logger.info(
                f"Reset {reset} stuck schedule(s)",
                extra_context={"candidates": len(business_ids), "failed": failed},
                emoji=LogEmoji.CLEANUP,
            )
        return reset

    async def available_keywords(self, business_id: int) -> List[str]:
        """Keywords offered by the business's origin zones, best first."""
        if self.config_provider is None:
            return []
        config = await self.config_provider.get_active_config(business_id)
        if config is None:
            return []
        return collect_available_keywords_from_zones(config.origin_zones)

    async def set_keywords(self, business_id: int, keywords: List[str]) -> List[str]:
        """
        Replace the schedule's keyword overrides.

        Requested keywords are normalized and filtered to those the origin
        zones offer. With no usable request and exactly one available
        keyword, that keyword is selected.

        Returns:
            The stored keyword selection
        """
        context = await self._load_initialized_context(business_id)
        available = await self.available_keywords(business_id)
        available_keys = {keyword.lower() for keyword in available}

        selection = [
            keyword
            for keyword in normalize_keyword_selections(keywords)
            if keyword.lower() in available_keys
        ]
        if not selection and len(available) == 1:
            selection = [available[0]]

        stored = await self.schedule_ops.replace_schedule_keywords(
            context.schedule.id, selection
        )
        logger.info(
            f"Stored {len(stored)} keyword(s) for business {business_id}",
            emoji=LogEmoji.SCHEDULE,
        )
        return stored
