#!/usr/bin/env python3
"""
Tests for ScheduleOperations and ScheduleQueryBuilder.
"""

from datetime import datetime, timezone

import psycopg
import pytest

from geogrid.database.exceptions import ScheduleOperationError
from geogrid.database.schedule_operations import ScheduleOperations, ScheduleQueryBuilder
from geogrid.models.schedule_model import ScheduleCreate

NOW = datetime(2024, 1, 15, 22, 0, tzinfo=timezone.utc)


def _context_row(**overrides):
    row = {
        "business_id": 7,
        "business_name": "Sonoran Pizza Co",
        "timezone": "America/Phoenix",
        "business_active": True,
        "windows_json": {"mon": "09:00-17:00"},
        "schedule_id": 3,
        "run_day_of_week": 1,
        "run_time_local": "15:00:00",
        "lead_minutes": 120,
        "next_run_at": NOW,
        "last_run_at": None,
        "locked_at": None,
        "schedule_active": True,
    }
    row.update(overrides)
    return row


@pytest.mark.database
class TestScheduleQueryBuilder:
    """SQL shape of the schedule queries."""

    def test_claim_query_skips_locked_rows(self):
        query = ScheduleQueryBuilder.build_claim_due_query()

        assert "FOR UPDATE OF s SKIP LOCKED" in query
        assert "ORDER BY s.next_run_at ASC" in query
        assert "LIMIT %(limit)s" in query
        assert "SET locked_at = %(now)s" in query

    def test_claim_query_honours_stale_lock_timeout(self):
        query = ScheduleQueryBuilder.build_claim_due_query()

        assert "s.locked_at IS NULL" in query
        assert "make_interval(mins => %(lock_timeout_minutes)s)" in query
        assert ScheduleQueryBuilder.LOCK_TIMEOUT_MINUTES == 30

    def test_claim_query_requires_active_schedule_and_business(self):
        query = ScheduleQueryBuilder.build_claim_due_query()

        assert "s.is_active = TRUE" in query
        assert "b.is_active = TRUE" in query
        assert "s.next_run_at <= %(now)s" in query

    def test_run_complete_always_clears_lock(self):
        assert "locked_at = NULL" in ScheduleQueryBuilder.build_run_complete_query()
        assert "locked_at = NULL" in ScheduleQueryBuilder.build_deactivate_query()

    def test_insert_is_idempotent(self):
        assert "ON CONFLICT (business_id) DO NOTHING" in ScheduleQueryBuilder.build_insert_query()


@pytest.mark.database
class TestScheduleOperations:
    """Operations against a mocked connection."""

    @pytest.mark.asyncio
    async def test_get_schedule_context(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.fetchone.return_value = _context_row()
        cursor.fetchall.return_value = [{"keyword": "pizza"}, {"keyword": "subs"}]

        context = await ScheduleOperations(db).get_schedule_context(7)

        assert context.business_id == 7
        assert context.schedule.id == 3
        assert context.schedule.run_hour == 15
        assert context.keywords == ["pizza", "subs"]
        assert cursor.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_context_without_schedule(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.fetchone.return_value = _context_row(schedule_id=None)

        context = await ScheduleOperations(db).get_schedule_context(7)

        assert context.schedule is None
        assert context.keywords == []
        assert cursor.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_business(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.fetchone.return_value = None

        assert await ScheduleOperations(db).get_schedule_context(99) is None

    @pytest.mark.asyncio
    async def test_create_schedule_reports_conflict(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.fetchone.return_value = None
        data = ScheduleCreate(
            business_id=7, run_day_of_week=1, run_time_local="15:00:00", next_run_at=NOW
        )

        assert await ScheduleOperations(db).create_schedule(data) is False
        params = cursor.execute.await_args.args[1]
        assert params["run_time_local"] == "15:00:00"
        assert params["next_run_at"] == NOW

    @pytest.mark.asyncio
    async def test_claim_due_schedules(self, mock_async_db):
        db, _, cursor = mock_async_db
        later = datetime(2024, 1, 15, 23, 0, tzinfo=timezone.utc)
        cursor.fetchall.return_value = [
            {
                "schedule_id": 2,
                "business_id": 8,
                "business_name": "Later",
                "timezone": None,
                "next_run_at": later,
                "lead_minutes": 120,
                "run_day_of_week": 1,
                "run_time_local": "16:00:00",
                "locked_at": NOW,
            },
            {
                "schedule_id": 1,
                "business_id": 7,
                "business_name": "Earlier",
                "timezone": "America/Phoenix",
                "next_run_at": NOW,
                "lead_minutes": 120,
                "run_day_of_week": 1,
                "run_time_local": "15:00:00",
                "locked_at": NOW,
            },
        ]

        claimed = await ScheduleOperations(db).claim_due_schedules(limit=10, now=NOW)

        assert [c.business_id for c in claimed] == [7, 8]
        params = cursor.execute.await_args.args[1]
        assert params == {"now": NOW, "limit": 10, "lock_timeout_minutes": 30}

    @pytest.mark.asyncio
    async def test_update_slot_passes_clear_lock(self, mock_async_db):
        db, _, cursor = mock_async_db

        updated = await ScheduleOperations(db).update_schedule_slot(
            7, 2, "10:00:00", NOW, True, clear_lock=True
        )

        assert updated
        params = cursor.execute.await_args.args[1]
        assert params["clear_lock"] is True
        assert params["run_day_of_week"] == 2

    @pytest.mark.asyncio
    async def test_replace_keywords_preserves_order_by_weight(self, mock_async_db):
        db, _, cursor = mock_async_db

        stored = await ScheduleOperations(db).replace_schedule_keywords(3, ["pizza", "subs"])

        assert stored == ["pizza", "subs"]
        rows = cursor.executemany.await_args.args[1]
        assert [(r["keyword"], r["weight"]) for r in rows] == [("pizza", 2.0), ("subs", 1.0)]

    @pytest.mark.asyncio
    async def test_replace_with_no_keywords_only_deletes(self, mock_async_db):
        db, _, cursor = mock_async_db

        assert await ScheduleOperations(db).replace_schedule_keywords(3, []) == []
        cursor.executemany.assert_not_awaited()
        cursor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stuck_schedule_ids(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.fetchall.return_value = [{"business_id": 4}, {"business_id": 9}]

        assert await ScheduleOperations(db).get_stuck_schedule_business_ids() == [4, 9]

    @pytest.mark.asyncio
    async def test_database_errors_are_wrapped(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.execute.side_effect = psycopg.OperationalError("connection lost")

        with pytest.raises(ScheduleOperationError) as exc_info:
            await ScheduleOperations(db).release_lock(7)

        assert exc_info.value.operation == "release_lock"
        assert isinstance(exc_info.value.__cause__, psycopg.OperationalError)
