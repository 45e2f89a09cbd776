#!/usr/bin/env python3
"""
Unit tests for the database-backed measurement configuration provider.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from geogrid.services.measurement_config_service import DatabaseMeasurementConfigProvider


def _rows(is_active=True):
    return {
        "business": {
            "business_id": 7,
            "business_name": "Sonoran Pizza Co",
            "brand_search": "sonoran pizza",
            "destination_lat": 33.5,
            "destination_lng": -112.0,
            "is_active": is_active,
        },
        "zones": [
            {
                "id": 1,
                "name": "central",
                "lat": 33.45,
                "lng": -112.07,
                "radius_miles": 3.0,
                "weight": "2.5",
                "keywords": '["pizza", {"term": "pizza delivery", "weight": 2}]',
            },
            {"id": 2, "name": "north", "lat": None, "lng": None, "weight": None, "keywords": None},
        ],
        "schedule_keywords": [
            {"keyword": "late night pizza", "weight": 3},
            {"keyword": "   ", "weight": 1},
        ],
    }


@pytest.mark.unit
class TestDatabaseMeasurementConfigProvider:
    """Row to MeasurementConfig mapping."""

    @pytest.mark.asyncio
    async def test_builds_config(self):
        business_ops = Mock()
        business_ops.get_measurement_rows = AsyncMock(return_value=_rows())

        config = await DatabaseMeasurementConfigProvider(business_ops).get_active_config(7)

        assert config.business_name == "Sonoran Pizza Co"
        assert config.brand_search == "sonoran pizza"
        assert [z.name for z in config.origin_zones] == ["central", "north"]
        central = config.origin_zones[0]
        assert central.weight == 2.5
        assert [(k.term, k.weight) for k in central.keywords] == [
            ("pizza", 1.0),
            ("pizza delivery", 2.0),
        ]
        assert config.origin_zones[1].weight == 0.0
        assert config.origin_zones[1].keywords == []
        assert [(k.term, k.weight) for k in config.schedule_keywords] == [
            ("late night pizza", 3.0)
        ]

    @pytest.mark.asyncio
    async def test_inactive_business_has_no_config(self):
        business_ops = Mock()
        business_ops.get_measurement_rows = AsyncMock(return_value=_rows(is_active=False))

        assert await DatabaseMeasurementConfigProvider(business_ops).get_active_config(7) is None

    @pytest.mark.asyncio
    async def test_missing_business(self):
        business_ops = Mock()
        business_ops.get_measurement_rows = AsyncMock(return_value=None)

        assert await DatabaseMeasurementConfigProvider(business_ops).get_active_config(7) is None
