#!/usr/bin/env python3
"""
Unit tests for keyword parsing and origin/keyword selection.
"""

import pytest

from geogrid.exceptions import ConfigurationError
from geogrid.models.measurement_model import KeywordEntry, MeasurementConfig, OriginZone
from geogrid.services.keyword_selection_service import (
    build_measurement_plan,
    collect_available_keywords_from_zones,
    normalize_keyword_selections,
    parse_keyword_entries,
    select_keyword,
    select_primary_zone,
)


def _zone(name, weight, keywords=(), lat=33.45, lng=-112.07, radius=2.0):
    return OriginZone(
        name=name,
        lat=lat,
        lng=lng,
        radius_miles=radius,
        weight=weight,
        keywords=[KeywordEntry(term=t, weight=w) for t, w in keywords],
    )


def _config(**overrides):
    defaults = {"business_id": 7, "business_name": "Sonoran Pizza Co"}
    defaults.update(overrides)
    return MeasurementConfig(**defaults)


@pytest.mark.unit
class TestParseKeywordEntries:
    """Stored keyword lists in their various shapes."""

    def test_json_array_of_strings_and_objects(self):
        entries = parse_keyword_entries('["pizza", {"term": "pizza delivery", "weight": 2}]')
        assert [(e.term, e.weight) for e in entries] == [
            ("pizza", 1.0),
            ("pizza delivery", 2.0),
        ]

    def test_delimited_string(self):
        entries = parse_keyword_entries("pizza; pizza delivery,\nlate night pizza")
        assert [e.term for e in entries] == ["pizza", "pizza delivery", "late night pizza"]

    def test_alternative_term_and_weight_keys(self):
        entries = parse_keyword_entries([{"keyword": "tacos", "score": 3}, {"label": "burritos"}])
        assert [(e.term, e.weight) for e in entries] == [("tacos", 3.0), ("burritos", 1.0)]

    def test_duplicates_keep_first_spelling(self):
        entries = parse_keyword_entries(["Pizza", "pizza", " PIZZA "])
        assert [e.term for e in entries] == ["Pizza"]

    def test_single_object(self):
        entries = parse_keyword_entries({"value": "wings", "boost": "1.5"})
        assert [(e.term, e.weight) for e in entries] == [("wings", 1.5)]

    def test_non_finite_weight_falls_back(self):
        entries = parse_keyword_entries([{"term": "subs", "weight": "nan"}])
        assert entries[0].weight == 1.0

    @pytest.mark.parametrize("raw", [None, "", "   ", [], [None, True, {}]])
    def test_empty_inputs(self, raw):
        assert parse_keyword_entries(raw) == []

    def test_invalid_json_array_falls_back_to_delimiters(self):
        entries = parse_keyword_entries("[pizza, subs")
        assert [e.term for e in entries] == ["[pizza", "subs"]


@pytest.mark.unit
class TestNormalizeKeywordSelections:
    """Requested keyword selection cleanup."""

    def test_trims_dedupes_and_caps(self):
        result = normalize_keyword_selections([" pizza ", "Pizza", "", None, "subs", "wings"], limit=2)
        assert result == ["pizza", "subs"]

    def test_non_list_input(self):
        assert normalize_keyword_selections("pizza") == []

    def test_long_keywords_are_truncated(self):
        result = normalize_keyword_selections(["x" * 300])
        assert len(result[0]) == 255


@pytest.mark.unit
class TestZoneSelection:
    """Primary zone and keyword precedence."""

    def test_primary_zone_is_highest_weight(self):
        zones = [_zone("north", 1.0), _zone("central", 3.0), _zone("south", 3.0)]
        assert select_primary_zone(zones).name == "central"

    def test_no_zones(self):
        assert select_primary_zone([]) is None

    def test_available_keywords_ranked_by_product_of_weights(self):
        zones = [
            _zone("north", 1.0, [("pizza", 2.0), ("subs", 1.0)]),
            _zone("central", 3.0, [("pizza", 1.0), ("wings", 0.5)]),
        ]
        # pizza: max(2.0, 3.0) = 3.0, wings: 1.5, subs: 1.0
        assert collect_available_keywords_from_zones(zones) == ["pizza", "wings", "subs"]

    def test_schedule_keywords_take_precedence(self):
        zone = _zone("central", 1.0, [("pizza", 5.0)])
        config = _config(schedule_keywords=[KeywordEntry(term="late night pizza")])
        assert select_keyword(zone, config) == "late night pizza"

    def test_zone_top_keyword(self):
        zone = _zone("central", 1.0, [("pizza", 1.0), ("pizza delivery", 4.0)])
        assert select_keyword(zone, _config()) == "pizza delivery"

    def test_brand_search_then_business_name(self):
        assert select_keyword(None, _config(brand_search="  sonoran pizza ")) == "sonoran pizza"
        assert select_keyword(None, _config()) == "Sonoran Pizza Co"


@pytest.mark.unit
class TestBuildMeasurementPlan:
    """Full plan for a scheduled run."""

    def test_plan_from_primary_zone(self):
        config = _config(
            origin_zones=[
                _zone("north", 1.0, [("subs", 1.0)], lat=33.6, lng=-112.1),
                _zone("central", 2.0, [("pizza", 1.0)], lat=33.45, lng=-112.07, radius=4.0),
            ]
        )
        plan = build_measurement_plan(config, fallback_radius_miles=3.0)

        assert plan.keyword == "pizza"
        assert (plan.origin_lat, plan.origin_lng) == (33.45, -112.07)
        assert plan.radius_miles == 4.0
        assert plan.zone_name == "central"

    def test_destination_used_without_zones(self):
        config = _config(destination_lat=33.5, destination_lng=-112.0)
        plan = build_measurement_plan(config, fallback_radius_miles=3.0)

        assert (plan.origin_lat, plan.origin_lng) == (33.5, -112.0)
        assert plan.radius_miles == 3.0
        assert plan.keyword == "Sonoran Pizza Co"

    def test_non_positive_zone_radius_uses_fallback(self):
        config = _config(origin_zones=[_zone("central", 1.0, radius=0)])
        assert build_measurement_plan(config, fallback_radius_miles=2.5).radius_miles == 2.5

    def test_missing_origin_raises(self):
        with pytest.raises(ConfigurationError):
            build_measurement_plan(_config())

    def test_missing_keyword_raises(self):
        config = _config(business_name="   ", destination_lat=33.5, destination_lng=-112.0)
        with pytest.raises(ConfigurationError):
            build_measurement_plan(config)
