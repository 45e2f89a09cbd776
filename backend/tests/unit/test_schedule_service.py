#!/usr/bin/env python3
"""
Unit tests for the schedule state machine.

Uses an in-memory stand-in for ScheduleOperations. The business is in
America/Phoenix (UTC-7, no DST) with weekday hours 09:00-17:00.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from geogrid.exceptions import (
    BusinessNotFoundError,
    InvalidScheduleTimeError,
    NoAvailableSlotError,
)
from geogrid.models.measurement_model import KeywordEntry, MeasurementConfig, OriginZone
from geogrid.models.schedule_model import GeoGridSchedule, ScheduleContext
from geogrid.services.scheduling import schedule_service as schedule_service_module
from geogrid.services.scheduling.schedule_service import ScheduleService

PHOENIX = ZoneInfo("America/Phoenix")


def _utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def _phoenix(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=PHOENIX)


# Monday 2024-01-15 12:00 in Phoenix
MONDAY_NOON = _phoenix(2024, 1, 15, 12)


class FakeScheduleOps:
    """In-memory schedule table for a single business."""

    def __init__(self, hours, business_active=True, timezone_name="America/Phoenix"):
        self.business_id = 7
        self.hours = hours
        self.business_active = business_active
        self.timezone_name = timezone_name
        self.schedule = None
        self.keywords = []
        self.create_calls = 0

    async def get_schedule_context(self, business_id):
        if business_id != self.business_id:
            return None
        return ScheduleContext(
            business_id=business_id,
            business_name="Sonoran Pizza Co",
            timezone=self.timezone_name,
            business_active=self.business_active,
            windows_json=self.hours,
            schedule=self.schedule.model_copy() if self.schedule else None,
            keywords=list(self.keywords),
        )

    async def create_schedule(self, data):
        self.create_calls += 1
        if self.schedule is not None:
            return False
        self.schedule = GeoGridSchedule(id=1, **data.model_dump())
        return True

    async def update_schedule_slot(
        self, business_id, run_day_of_week, run_time_local, next_run_at, is_active, clear_lock=False
    ):
        update = {
            "run_day_of_week": run_day_of_week,
            "run_time_local": run_time_local,
            "next_run_at": next_run_at,
            "is_active": is_active,
        }
        if clear_lock:
            update["locked_at"] = None
        self.schedule = self.schedule.model_copy(update=update)
        return True

    async def deactivate_schedule(self, business_id):
        self.schedule = self.schedule.model_copy(
            update={"is_active": False, "next_run_at": None, "locked_at": None}
        )
        return True

    async def record_run_complete(
        self, business_id, last_run_at, next_run_at, run_day_of_week=None, run_time_local=None
    ):
        update = {"last_run_at": last_run_at, "next_run_at": next_run_at, "locked_at": None}
        if run_day_of_week is not None:
            update["run_day_of_week"] = run_day_of_week
        if run_time_local is not None:
            update["run_time_local"] = run_time_local
        self.schedule = self.schedule.model_copy(update=update)
        return True

    async def release_lock(self, business_id):
        self.schedule = self.schedule.model_copy(update={"locked_at": None})
        return True

    async def get_stuck_schedule_business_ids(self):
        if self.schedule and self.schedule.is_active and self.schedule.next_run_at is None:
            return [self.business_id]
        return []

    async def replace_schedule_keywords(self, schedule_id, keywords):
        self.keywords = list(keywords)
        return list(keywords)


class FakeConfigProvider:
    def __init__(self, zone_keywords):
        self.zone_keywords = zone_keywords

    async def get_active_config(self, business_id):
        return MeasurementConfig(
            business_id=business_id,
            business_name="Sonoran Pizza Co",
            origin_zones=[
                OriginZone(
                    name="central",
                    lat=33.45,
                    lng=-112.07,
                    weight=1.0,
                    keywords=[KeywordEntry(term=t) for t in self.zone_keywords],
                )
            ],
        )


@pytest.fixture
def ops(weekday_hours):
    return FakeScheduleOps(weekday_hours)


@pytest.fixture
def service(ops):
    return ScheduleService(ops)


@pytest.mark.unit
class TestInitialize:
    """Lazy creation from business hours."""

    @pytest.mark.asyncio
    async def test_creates_schedule_at_afternoon_target(self, service):
        schedule = await service.initialize(7, reference=MONDAY_NOON)

        assert schedule.run_day_of_week == 1
        assert schedule.run_time_local == "15:00:00"
        assert schedule.next_run_at == _utc(2024, 1, 15, 22)
        assert schedule.is_active

    @pytest.mark.asyncio
    async def test_is_idempotent(self, service, ops):
        first = await service.initialize(7, reference=MONDAY_NOON)
        second = await service.initialize(7, reference=_phoenix(2024, 1, 16, 8))

        assert second.next_run_at == first.next_run_at
        assert ops.create_calls == 1

    @pytest.mark.asyncio
    async def test_inactive_business_gets_no_next_run(self, weekday_hours):
        ops = FakeScheduleOps(weekday_hours, business_active=False)
        schedule = await ScheduleService(ops).initialize(7, reference=MONDAY_NOON)

        assert not schedule.is_active
        assert schedule.next_run_at is None

    @pytest.mark.asyncio
    async def test_no_hours_falls_back_to_tomorrow(self):
        ops = FakeScheduleOps({})
        schedule = await ScheduleService(ops).initialize(7, reference=MONDAY_NOON)

        assert schedule.next_run_at == _utc(2024, 1, 16, 22)
        assert schedule.run_day_of_week == 2

    @pytest.mark.asyncio
    async def test_unknown_timezone_uses_utc(self, weekday_hours):
        ops = FakeScheduleOps(weekday_hours, timezone_name="Mars/Olympus_Mons")
        reference = _utc(2024, 1, 15, 12)

        schedule = await ScheduleService(ops).initialize(7, reference=reference)

        assert schedule.next_run_at == _utc(2024, 1, 15, 15)

    @pytest.mark.asyncio
    async def test_unknown_business(self, service):
        with pytest.raises(BusinessNotFoundError):
            await service.initialize(99)


@pytest.mark.unit
class TestActivation:
    """Activate and deactivate."""

    @pytest.mark.asyncio
    async def test_deactivate_clears_next_run_and_lock(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        ops.schedule = ops.schedule.model_copy(update={"locked_at": _utc(2024, 1, 15, 19)})

        result = await service.set_active(7, False)

        assert not result.is_active
        assert result.next_run_at is None
        assert ops.schedule.next_run_at is None
        assert ops.schedule.locked_at is None

    @pytest.mark.asyncio
    async def test_reactivate_after_slot_passed_rolls_a_week(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        await service.set_active(7, False)

        result = await service.set_active(7, True, reference=_phoenix(2024, 1, 15, 16))

        assert result.is_active
        assert result.next_run_at == _utc(2024, 1, 22, 22)
        assert ops.schedule.next_run_at == _utc(2024, 1, 22, 22)

    @pytest.mark.asyncio
    async def test_activation_initializes_missing_schedule(self, service, ops):
        result = await service.set_active(7, True, reference=MONDAY_NOON)

        assert ops.schedule is not None
        assert result.next_run_at == _utc(2024, 1, 15, 22)

    @pytest.mark.asyncio
    async def test_closed_stored_day_adopts_fresh_slot(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        ops.schedule = ops.schedule.model_copy(
            update={"run_day_of_week": 6, "is_active": False, "next_run_at": None}
        )

        result = await service.set_active(7, True, reference=MONDAY_NOON)

        assert result.run_day_of_week == 1
        assert result.next_run_at == _utc(2024, 1, 15, 22)


@pytest.mark.unit
class TestReschedule:
    """Manual time changes."""

    @pytest.mark.asyncio
    async def test_update_time_rolls_to_next_week_when_passed(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)

        result = await service.update_time(7, 10, 0, reference=MONDAY_NOON)

        assert result.run_time_local == "10:00:00"
        assert result.next_run_at == _utc(2024, 1, 22, 17)
        assert ops.schedule.next_run_at == _utc(2024, 1, 22, 17)

    @pytest.mark.asyncio
    async def test_time_too_close_to_close_is_rejected(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)

        with pytest.raises(InvalidScheduleTimeError):
            await service.update_time(7, 16, 30, reference=MONDAY_NOON)

        assert ops.schedule.run_time_local == "15:00:00"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hour,minute", [(24, 0), (-1, 0), (10, 60)])
    async def test_out_of_range_time_is_rejected(self, service, hour, minute):
        await service.initialize(7, reference=MONDAY_NOON)

        with pytest.raises(InvalidScheduleTimeError):
            await service.update_time(7, hour, minute, reference=MONDAY_NOON)

    @pytest.mark.asyncio
    async def test_update_day_and_time(self, service):
        await service.initialize(7, reference=MONDAY_NOON)

        result = await service.update_day_and_time(7, 3, 11, 0, reference=MONDAY_NOON)

        assert result.run_day_of_week == 3
        assert result.next_run_at == _utc(2024, 1, 17, 18)

    @pytest.mark.asyncio
    async def test_closed_day_is_rejected(self, service):
        await service.initialize(7, reference=MONDAY_NOON)

        with pytest.raises(InvalidScheduleTimeError):
            await service.update_day_and_time(7, 0, 11, 0, reference=MONDAY_NOON)

    @pytest.mark.asyncio
    async def test_invalid_day_is_rejected(self, service):
        with pytest.raises(InvalidScheduleTimeError):
            await service.update_day_and_time(7, 7, 11, 0, reference=MONDAY_NOON)

    @pytest.mark.asyncio
    async def test_inactive_schedule_keeps_no_next_run(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        await service.set_active(7, False)

        result = await service.update_time(7, 11, 0, reference=MONDAY_NOON)

        assert result.next_run_at is None
        assert not ops.schedule.is_active
        assert ops.schedule.run_time_local == "11:00:00"

    @pytest.mark.asyncio
    async def test_no_next_occurrence_rejects_active_schedule(self, service, ops, monkeypatch):
        await service.initialize(7, reference=MONDAY_NOON)
        monkeypatch.setattr(
            schedule_service_module, "next_occurrence_for_schedule", lambda *a, **k: None
        )

        with pytest.raises(NoAvailableSlotError) as exc_info:
            await service.update_time(7, 11, 0, reference=MONDAY_NOON)

        assert exc_info.value.code == "NO_SLOT"
        assert ops.schedule.run_time_local == "15:00:00"

    @pytest.mark.asyncio
    async def test_no_next_occurrence_still_stores_inactive_schedule(
        self, service, ops, monkeypatch
    ):
        await service.initialize(7, reference=MONDAY_NOON)
        await service.set_active(7, False)
        monkeypatch.setattr(
            schedule_service_module, "next_occurrence_for_schedule", lambda *a, **k: None
        )

        result = await service.update_time(7, 11, 0, reference=MONDAY_NOON)

        assert result.next_run_at is None
        assert ops.schedule.run_time_local == "11:00:00"


@pytest.mark.unit
class TestRunCompletion:
    """Post-run advancement and lock release."""

    @pytest.mark.asyncio
    async def test_advances_one_week_and_clears_lock(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        ops.schedule = ops.schedule.model_copy(update={"locked_at": _utc(2024, 1, 15, 22)})

        result = await service.mark_run_complete(7, executed_at=_utc(2024, 1, 15, 22))

        assert result.last_run_at == _utc(2024, 1, 15, 22)
        assert result.next_run_at == _utc(2024, 1, 22, 22)
        assert ops.schedule.locked_at is None
        assert ops.schedule.next_run_at == _utc(2024, 1, 22, 22)

    @pytest.mark.asyncio
    async def test_inactive_schedule_records_run_without_next(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        await service.set_active(7, False)

        result = await service.mark_run_complete(7, executed_at=_utc(2024, 1, 15, 22))

        assert result.next_run_at is None
        assert ops.schedule.last_run_at == _utc(2024, 1, 15, 22)

    @pytest.mark.asyncio
    async def test_missing_schedule_returns_none(self, service):
        assert await service.mark_run_complete(7) is None

    @pytest.mark.asyncio
    async def test_hours_gone_falls_back_to_same_time_tomorrow(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        ops.hours = {}

        result = await service.mark_run_complete(7, executed_at=_utc(2024, 1, 15, 22))

        assert result.next_run_at == _utc(2024, 1, 16, 22)
        assert result.run_day_of_week == 2

    @pytest.mark.asyncio
    async def test_release_lock(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        ops.schedule = ops.schedule.model_copy(update={"locked_at": _utc(2024, 1, 15, 22)})

        await service.release_lock(7)

        assert ops.schedule.locked_at is None


@pytest.mark.unit
class TestRecovery:
    """Stuck schedule sweep."""

    @pytest.mark.asyncio
    async def test_active_schedule_without_next_run_is_reset(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        ops.schedule = ops.schedule.model_copy(update={"next_run_at": None})

        count = await service.reset_stuck_schedules(reference=MONDAY_NOON)

        assert count == 1
        assert ops.schedule.next_run_at == _utc(2024, 1, 15, 22)

    @pytest.mark.asyncio
    async def test_nothing_to_reset(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        assert await service.reset_stuck_schedules(reference=MONDAY_NOON) == 0

    @pytest.mark.asyncio
    async def test_failing_business_does_not_stop_the_sweep(self, service, ops):
        await service.initialize(7, reference=MONDAY_NOON)
        ops.schedule = ops.schedule.model_copy(update={"next_run_at": None})

        async def stuck_ids():
            return [99, 7]

        ops.get_stuck_schedule_business_ids = stuck_ids

        count = await service.reset_stuck_schedules(reference=MONDAY_NOON)

        assert count == 1
        assert ops.schedule.next_run_at == _utc(2024, 1, 15, 22)


@pytest.mark.unit
class TestKeywords:
    """Keyword overrides."""

    @pytest.mark.asyncio
    async def test_selection_filtered_to_available(self, ops):
        service = ScheduleService(ops, FakeConfigProvider(["pizza", "pizza delivery"]))

        stored = await service.set_keywords(7, ["Pizza Delivery", "tacos", "pizza"])

        assert stored == ["Pizza Delivery", "pizza"]
        assert ops.keywords == ["Pizza Delivery", "pizza"]

    @pytest.mark.asyncio
    async def test_single_available_keyword_is_selected(self, ops):
        service = ScheduleService(ops, FakeConfigProvider(["pizza"]))

        assert await service.set_keywords(7, ["tacos"]) == ["pizza"]

    @pytest.mark.asyncio
    async def test_no_provider_means_no_keywords(self, service):
        assert await service.available_keywords(7) == []
        assert await service.set_keywords(7, ["pizza"]) == []
