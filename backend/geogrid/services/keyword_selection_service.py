# backend/geogrid/services/keyword_selection_service.py
"""
Keyword and origin selection for scheduled runs.

Keyword lists arrive in several shapes: JSON arrays stored as text,
delimiter-separated strings, lists of strings or objects, or a single
object. Everything is reduced to de-duplicated KeywordEntry values before a
selection is made. Term comparison is case-insensitive and keeps the first
spelling seen.
"""

import json
import math
import re
from typing import Any, Iterable, List, Optional, Set

from ..constants import (
    DEFAULT_KEYWORD_WEIGHT,
    FALLBACK_RADIUS_MILES,
    MAX_KEYWORD_LENGTH,
    MAX_KEYWORD_SELECTIONS,
)
from ..exceptions import ConfigurationError
from ..models.measurement_model import (
    KeywordEntry,
    MeasurementConfig,
    MeasurementPlan,
    OriginZone,
)

TERM_KEYS = ("term", "keyword", "value", "name", "label")
WEIGHT_KEYS = ("weight", "score", "boost")

_DELIMITER_PATTERN = re.compile(r"[;,\n]+")


def _coerce_weight(value: Any) -> float:
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return DEFAULT_KEYWORD_WEIGHT
    return weight if math.isfinite(weight) else DEFAULT_KEYWORD_WEIGHT


def _first_present(entry: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        if entry.get(key) is not None:
            return entry[key]
    return None


def _add_term(entries: List[KeywordEntry], seen: Set[str], term: Any, weight: Any) -> None:
    if term is None or isinstance(term, bool):
        return
    text = str(term).strip()
    if not text:
        return
    key = text.lower()
    if key in seen:
        return
    seen.add(key)
    entries.append(KeywordEntry(term=text, weight=_coerce_weight(weight)))


def _consume(entries: List[KeywordEntry], seen: Set[str], items: Iterable[Any]) -> None:
    for item in items:
        if isinstance(item, dict):
            _add_term(entries, seen, _first_present(item, TERM_KEYS), _first_present(item, WEIGHT_KEYS))
        elif isinstance(item, (str, int, float)):
            _add_term(entries, seen, item, None)


def parse_keyword_entries(raw: Any) -> List[KeywordEntry]:
    """
    Parse a stored keyword list into weighted entries.

    Examples:
        '["pizza", {"term": "pizza delivery", "weight": 2}]'
        'pizza; pizza delivery, late night pizza'
        [{"keyword": "pizza", "score": 3}]
    """
    entries: List[KeywordEntry] = []
    seen: Set[str] = set()

    if raw is None:
        return entries

    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="ignore")

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return entries
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                _consume(entries, seen, parsed)
                return entries
        for part in _DELIMITER_PATTERN.split(text):
            _add_term(entries, seen, part, None)
        return entries

    if isinstance(raw, (list, tuple)):
        _consume(entries, seen, raw)
    elif isinstance(raw, dict):
        _consume(entries, seen, [raw])

    return entries


def normalize_keyword_selections(
    keywords: Any, limit: int = MAX_KEYWORD_SELECTIONS
) -> List[str]:
    """Trim, de-duplicate and cap a list of selected keywords."""
    if not isinstance(keywords, (list, tuple)):
        return []

    normalized: List[str] = []
    seen: Set[str] = set()
    for keyword in keywords:
        if keyword is None:
            continue
        text = str(keyword).strip()
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        normalized.append(text[:MAX_KEYWORD_LENGTH])
        if len(normalized) >= limit:
            break
    return normalized


def collect_available_keywords_from_zones(zones: Iterable[OriginZone]) -> List[str]:
    """
    All keywords offered by a business's origin zones.

    A keyword's weight is its zone weight times its own weight; when several
    zones offer the same term the highest product wins. Sorted by weight
    descending, then alphabetically.
    """
    best = {}
    for zone in zones or []:
        zone_weight = zone.weight if math.isfinite(zone.weight) else DEFAULT_KEYWORD_WEIGHT
        for entry in zone.keywords:
            weight = zone_weight * entry.weight
            key = entry.term.lower()
            if key not in best or weight > best[key].weight:
                best[key] = KeywordEntry(term=entry.term, weight=weight)

    ranked = sorted(best.values(), key=lambda e: (-e.weight, e.term))
    return [entry.term for entry in ranked]


def select_primary_zone(zones: Iterable[OriginZone]) -> Optional[OriginZone]:
    """The zone with the highest weight; ties keep the first zone."""
    primary = None
    for zone in zones or []:
        if primary is None or zone.weight > primary.weight:
            primary = zone
    return primary


def select_keyword(zone: Optional[OriginZone], config: MeasurementConfig) -> Optional[str]:
    """
    Keyword for a scheduled run.

    Precedence: schedule keyword overrides, the zone's highest-weight keyword,
    the brand search term, then the business name.
    """
    if config.schedule_keywords:
        return config.schedule_keywords[0].term

    if zone is not None and zone.keywords:
        top = None
        for entry in zone.keywords:
            if top is None or entry.weight > top.weight:
                top = entry
        if top is not None:
            return top.term

    if config.brand_search and config.brand_search.strip():
        return config.brand_search.strip()
    if config.business_name and config.business_name.strip():
        return config.business_name.strip()
    return None


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def build_measurement_plan(
    config: MeasurementConfig, fallback_radius_miles: float = FALLBACK_RADIUS_MILES
) -> MeasurementPlan:
    """
    Choose the keyword, origin and radius for a business's next run.

    Raises:
        ConfigurationError: If no keyword or no origin coordinates are available
    """
    zone = select_primary_zone(config.origin_zones)
    keyword = select_keyword(zone, config)
    if not keyword:
        raise ConfigurationError(
            "Unable to select keyword for scheduled run",
            details={"business_id": config.business_id},
        )

    origin_lat = zone.lat if zone is not None and zone.lat is not None else config.destination_lat
    origin_lng = zone.lng if zone is not None and zone.lng is not None else config.destination_lng
    if not (_finite(origin_lat) and _finite(origin_lng)):
        raise ConfigurationError(
            "No origin coordinates available for scheduled run",
            details={"business_id": config.business_id},
        )

    radius = zone.radius_miles if zone is not None else None
    if not (_finite(radius) and radius > 0):
        radius = fallback_radius_miles

    return MeasurementPlan(
        keyword=keyword[:MAX_KEYWORD_LENGTH],
        origin_lat=origin_lat,
        origin_lng=origin_lng,
        radius_miles=radius,
        zone_name=zone.name if zone is not None else None,
    )
