#!/usr/bin/env python3
"""
Tests for BusinessOperations.
"""

import psycopg
import pytest

from geogrid.database.business_operations import BusinessOperations
from geogrid.database.exceptions import BusinessOperationError


@pytest.mark.database
class TestBusinessOperations:
    @pytest.mark.asyncio
    async def test_loads_business_zones_and_keywords(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.fetchone.return_value = {"business_id": 7, "business_name": "Sonoran Pizza Co"}
        cursor.fetchall.side_effect = [
            [{"id": 1, "name": "central", "keywords": "pizza"}],
            [{"keyword": "pizza", "weight": 1.0}],
        ]

        rows = await BusinessOperations(db).get_measurement_rows(7)

        assert rows["business"]["business_name"] == "Sonoran Pizza Co"
        assert rows["zones"][0]["name"] == "central"
        assert rows["schedule_keywords"] == [{"keyword": "pizza", "weight": 1.0}]
        assert cursor.execute.await_count == 3

    @pytest.mark.asyncio
    async def test_missing_business(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.fetchone.return_value = None

        assert await BusinessOperations(db).get_measurement_rows(99) is None
        cursor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_errors_are_wrapped(self, mock_async_db):
        db, _, cursor = mock_async_db
        cursor.execute.side_effect = psycopg.OperationalError("timeout")

        with pytest.raises(BusinessOperationError):
            await BusinessOperations(db).get_measurement_rows(7)
