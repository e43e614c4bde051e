"""Deterministic filter/sort engine.

A record passes when it satisfies every non-empty field of the `ParsedFilter` (AND across
categories). Within a category the semantics differ:

    - ANY-of: cities, areas, types, languages, meals (keyword-table matching, the same vocabulary
      the parser uses);
    - ALL-of: curricula, subjects, specialists (exact list membership), services, accreditations;
    - thresholds: rating, minimum clubs, minimum class size, price range (private schools only);
    - nearby: great-circle distance from a caller-supplied location within `radius_km`.

Sorting applies exactly one total order and is stable for equal keys.
"""

from __future__ import annotations

import math
import unicodedata
from collections.abc import Callable, Sequence
from typing import Any

from school_match.directory.records import SchoolRecord
from school_match.query.dictionaries import (
    CITY_KEYWORDS,
    LANGUAGE_KEYWORDS,
    MEAL_KEYWORDS,
    TYPE_KEYWORDS,
    area_keywords,
    contains_any,
)
from school_match.query.normalize import normalize_query
from school_match.query.schema import Accreditation, ParsedFilter, SchoolType, SortOption
from school_match.search.geo import GeoPoint, haversine_km

DEFAULT_RADIUS_KM = 5.0
MAX_RADIUS_KM = 50.0

SortKey = Callable[[SchoolRecord], Any]


def _text(*values: str) -> str:
    return normalize_query(" ".join(v for v in values if v))


def _matches_query(record: SchoolRecord, filters: ParsedFilter) -> bool:
    needle = normalize_query(filters.query)
    return not needle or needle in normalize_query(record.search_text())


def _matches_cities(record: SchoolRecord, filters: ParsedFilter) -> bool:
    if not filters.cities:
        return True
    haystack = _text(record.city, record.address)
    return any(contains_any(haystack, CITY_KEYWORDS[city]) for city in filters.cities)


def _matches_areas(record: SchoolRecord, filters: ParsedFilter) -> bool:
    active = [(city, area) for city in filters.cities for area in filters.city_areas.get(city, [])]
    if not active:
        return True
    district = record.district.casefold()
    haystack = _text(record.address, record.region, record.district)
    return any(
        district == area.casefold() or contains_any(haystack, area_keywords(city, area))
        for city, area in active
    )


def _matches_keyword_any(value: str, selected: Sequence[Any], table: dict[Any, tuple[str, ...]]) -> bool:
    if not selected:
        return True
    haystack = _text(value)
    return any(contains_any(haystack, table[item]) for item in selected)


def _matches_all_items(items: tuple[str, ...], selected: Sequence[str]) -> bool:
    if not selected:
        return True
    available = {item.casefold() for item in items}
    return all(str(item).casefold() in available for item in selected)


def _matches_accreditations(record: SchoolRecord, filters: ParsedFilter) -> bool:
    flags = {
        Accreditation.license: record.has_license,
        Accreditation.certificates: record.has_certificates,
    }
    return all(flags[item] for item in filters.accreditations)


def _matches_price(record: SchoolRecord, filters: ParsedFilter) -> bool:
    if SchoolType.private not in filters.types or record.monthly_fee is None:
        return True
    low, high = filters.price_range
    return low <= record.monthly_fee <= high


def _matches_nearby(
        record: SchoolRecord,
        filters: ParsedFilter,
        user_location: GeoPoint | None,
        radius_km: float,
) -> bool:
    if not filters.use_nearby:
        return True
    if user_location is None or record.coordinates is None:
        return False
    return haversine_km(user_location, record.coordinates) <= radius_km


def matches_filters(
        record: SchoolRecord,
        filters: ParsedFilter,
        *,
        user_location: GeoPoint | None = None,
        radius_km: float = DEFAULT_RADIUS_KM,
) -> bool:
    """Whether a single record satisfies every active filter field."""

    if not _matches_query(record, filters):
        return False
    if not _matches_cities(record, filters) or not _matches_areas(record, filters):
        return False
    if not _matches_keyword_any(record.type, filters.types, TYPE_KEYWORDS):
        return False
    if not _matches_keyword_any(record.languages, filters.languages, LANGUAGE_KEYWORDS):
        return False
    if not _matches_keyword_any(record.meals, filters.meals, MEAL_KEYWORDS):
        return False
    if not _matches_all_items(record.curricula, filters.curricula):
        return False
    if not _matches_all_items(record.subjects, filters.subjects):
        return False
    if not _matches_all_items(record.specialists, filters.specialists):
        return False
    if not {service.value for service in filters.services} <= record.services:
        return False
    if not _matches_accreditations(record, filters):
        return False
    if filters.exam is not None and record.entrance_exam_required != (filters.exam == "Yes"):
        return False
    if filters.min_class_size > 0 and (
        record.average_class_size is None or record.average_class_size < filters.min_class_size
    ):
        return False
    if filters.min_clubs > 0 and len(record.clubs) < filters.min_clubs:
        return False
    if not _matches_price(record, filters):
        return False
    if filters.rating is not None and (record.rating or 0.0) < filters.rating:
        return False
    return _matches_nearby(record, filters, user_location, radius_km)


def filter_records(
        records: Sequence[SchoolRecord],
        filters: ParsedFilter,
        *,
        user_location: GeoPoint | None = None,
        radius_km: float = DEFAULT_RADIUS_KM,
) -> list[SchoolRecord]:
    """Keep the records that satisfy `filters`, preserving input order.

    Raises:
        TypeError: If `records` is not a list or tuple.
    """

    if not isinstance(records, (list, tuple)):
        raise TypeError(f"records must be a list or tuple, got {type(records).__name__}")

    return [
        record
        for record in records
        if matches_filters(record, filters, user_location=user_location, radius_km=radius_km)
    ]


def _name_key(record: SchoolRecord) -> str:
    # Approximates locale-aware collation: case- and accent-insensitive, then code point order.
    decomposed = unicodedata.normalize("NFKD", record.name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def _sort_order(sort_option: SortOption, user_location: GeoPoint | None) -> tuple[SortKey, bool] | None:
    """Return `(key, reverse)` for a sort option, or `None` when no reordering applies."""

    if sort_option == SortOption.rating_desc:
        return (lambda r: r.rating or 0.0), True
    if sort_option == SortOption.price_asc:
        # Missing fees sort last in both directions.
        return (lambda r: r.monthly_fee if r.monthly_fee is not None else math.inf), False
    if sort_option == SortOption.price_desc:
        return (lambda r: r.monthly_fee if r.monthly_fee is not None else -math.inf), True
    if sort_option == SortOption.reviews_desc:
        return (lambda r: r.reviews_count), True
    if sort_option == SortOption.distance_asc:
        return (lambda r: haversine_km(user_location, r.coordinates)), False
    if sort_option == SortOption.name_asc:
        return _name_key, False
    if sort_option == SortOption.updated_desc:
        return (lambda r: r.updated_at.timestamp() if r.updated_at is not None else 0.0), True
    return None


def sort_records(
        records: Sequence[SchoolRecord],
        sort_option: SortOption | None,
        *,
        user_location: GeoPoint | None = None,
) -> list[SchoolRecord]:
    """Sort records by one total order; ties keep their prior relative order.

    `relevance` and `None` keep the input order.
    """

    order = _sort_order(sort_option, user_location) if sort_option is not None else None
    if order is None:
        return list(records)
    key, reverse = order
    # `sorted` stays stable with `reverse=True`: equal keys keep their input order.
    return sorted(records, key=key, reverse=reverse)


def apply_filters(
        records: Sequence[SchoolRecord],
        filters: ParsedFilter,
        *,
        user_location: GeoPoint | None = None,
        radius_km: float = DEFAULT_RADIUS_KM,
) -> list[SchoolRecord]:
    """Filter then sort records; an all-default filter returns every record in input order."""

    filtered = filter_records(records, filters, user_location=user_location, radius_km=radius_km)
    return sort_records(filtered, filters.sort_option, user_location=user_location)
