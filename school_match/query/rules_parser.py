"""Rules-based school query parser (local heuristic).

The parser is a pure, deterministic function of its input:
    - it matches keyword tables and numeric patterns over the normalized query,
    - it records every substring it consumed,
    - whatever is left becomes the free-text remainder (`ParsedFilter.query`).

It never raises for any input; unparseable text simply yields a default filter.
"""

from __future__ import annotations

import re

from school_match.query.dictionaries import (
    ACCREDITATION_KEYWORDS,
    AREA_KEYWORDS,
    CAMBRIDGE_CURRICULA,
    CAMBRIDGE_DEFAULT,
    CAMBRIDGE_KEYWORD,
    CITY_KEYWORDS,
    CURRICULA_KEYWORDS,
    EXAM_NO_KEYWORDS,
    EXAM_STEMS,
    EXAM_YES_KEYWORDS,
    LANGUAGE_KEYWORDS,
    MEAL_KEYWORDS,
    NEARBY_SORT,
    SERVICE_KEYWORDS,
    SORT_KEYWORDS,
    SPECIALIST_KEYWORDS,
    STOP_WORDS,
    SUBJECT_KEYWORDS,
    TYPE_KEYWORDS,
    contains_keyword,
    keyword_spans,
    match_table,
)
from school_match.query.normalize import clean_remainder, normalize_query
from school_match.query.numbers import Span, extract_numeric_filters, mask_spans
from school_match.query.schema import (
    PRICE_MAX,
    PRICE_MIN,
    City,
    Curriculum,
    ExamRequirement,
    ParsedFilter,
    SchoolType,
    SortOption,
)

_WHITESPACE_RE = re.compile(r"\s")


class _Consumed:
    """Ordered, de-duplicated collection of consumed substrings."""

    def __init__(self) -> None:
        self._items: list[str] = []

    def add(self, *phrases: str) -> None:
        for phrase in phrases:
            phrase = phrase.strip()
            if phrase and phrase not in self._items:
                self._items.append(phrase)

    def __iter__(self):
        return iter(self._items)


def _match_areas(text: str) -> tuple[dict[City, list[str]], list[str], list[Span]]:
    """Detect district mentions; returns areas per city, matched keywords and their spans."""

    city_areas: dict[City, list[str]] = {}
    keywords: list[str] = []
    spans: list[Span] = []
    for city, areas in AREA_KEYWORDS.items():
        for area, area_keywords in areas.items():
            hits = [kw for kw in area_keywords if contains_keyword(text, kw)]
            if not hits:
                continue
            city_areas.setdefault(city, [])
            if area not in city_areas[city]:
                city_areas[city].append(area)
            keywords.extend(kw for kw in hits if kw not in keywords)
            spans.extend(keyword_spans(text, hits))
    return city_areas, keywords, spans


def _detect_exam(text: str) -> tuple[ExamRequirement | None, list[str]]:
    """Detect an entrance-exam requirement; "no exam" phrases win over "exam required" ones."""

    no_hits = [kw for kw in EXAM_NO_KEYWORDS if contains_keyword(text, kw)]
    yes_hits = [kw for kw in EXAM_YES_KEYWORDS if contains_keyword(text, kw)]
    if no_hits:
        return "No", [*no_hits, *yes_hits, *EXAM_STEMS]
    if yes_hits:
        return "Yes", [*yes_hits, *EXAM_STEMS]
    return None, []


def _detect_sort(text: str) -> tuple[SortOption | None, bool, list[str]]:
    """Return the requested sort (first in table order), the nearby flag and matched keywords."""

    match = match_table(text, SORT_KEYWORDS)
    sort_option = match.values[0] if match.values else None
    use_nearby = NEARBY_SORT in match.values
    return sort_option, use_nearby, list(match.keywords)


def build_search_remainder(text: str, consumed: list[str] | _Consumed) -> str:
    """Remove consumed phrases from `text` and clean what is left into search terms.

    Multi-word phrases are removed literally; single words are removed together with any letters
    or digits attached to them, which catches simple inflections ("кружков" after "круж").
    Longer phrases are removed first so the result does not depend on consumption order.
    """

    cleaned = text
    phrases = sorted(set(consumed), key=lambda p: (-len(p), p))
    for phrase in phrases:
        if _WHITESPACE_RE.search(phrase):
            pattern = re.escape(phrase)
        else:
            pattern = rf"\w*{re.escape(phrase)}\w*"
        cleaned = re.sub(pattern, " ", cleaned)
    return clean_remainder(cleaned, STOP_WORDS)


def parse_school_query(raw_query: str) -> ParsedFilter:
    """Parse a free-text school search phrase into a `ParsedFilter`.

    Args:
        raw_query: User text in English, Russian or Kazakh (mixed scripts are fine).

    Returns:
        A sanitized `ParsedFilter`. Empty or garbage input yields the default filter.
    """

    text = normalize_query(raw_query)
    if not text:
        return ParsedFilter()

    consumed = _Consumed()

    # Districts first: "almaty district" (Astana) must not select the city Almaty.
    city_areas, area_keywords, area_spans = _match_areas(text)
    consumed.add(*area_keywords)

    city_match = match_table(mask_spans(text, area_spans), CITY_KEYWORDS)
    consumed.add(*city_match.keywords)
    cities: list[City] = list(city_match.values)
    cities.extend(city for city in city_areas if city not in cities)

    tables = {
        "types": TYPE_KEYWORDS,
        "languages": LANGUAGE_KEYWORDS,
        "curricula": CURRICULA_KEYWORDS,
        "subjects": SUBJECT_KEYWORDS,
        "specialists": SPECIALIST_KEYWORDS,
        "services": SERVICE_KEYWORDS,
        "meals": MEAL_KEYWORDS,
        "accreditations": ACCREDITATION_KEYWORDS,
    }
    selected: dict[str, list] = {}
    for name, table in tables.items():
        match = match_table(text, table)
        selected[name] = list(match.values)
        consumed.add(*match.keywords)

    curricula: list[Curriculum] = selected["curricula"]
    if contains_keyword(text, CAMBRIDGE_KEYWORD):
        consumed.add(CAMBRIDGE_KEYWORD)
        if not any(item in CAMBRIDGE_CURRICULA for item in curricula):
            curricula.append(CAMBRIDGE_DEFAULT)

    numeric = extract_numeric_filters(text)
    consumed.add(*(text[start:end] for start, end in numeric.spans))

    types: list[SchoolType] = selected["types"]
    # Fee filters only make sense for fee-charging schools.
    if numeric.has_price and SchoolType.private not in types:
        types.append(SchoolType.private)

    exam, exam_keywords = _detect_exam(text)
    consumed.add(*exam_keywords)

    sort_option, use_nearby, sort_keywords = _detect_sort(text)
    consumed.add(*sort_keywords)

    return ParsedFilter(
        query=build_search_remainder(text, consumed),
        cities=cities,
        city_areas=city_areas,
        types=types,
        languages=selected["languages"],
        curricula=curricula,
        subjects=selected["subjects"],
        specialists=selected["specialists"],
        services=selected["services"],
        meals=selected["meals"],
        accreditations=selected["accreditations"],
        exam=exam,
        rating=numeric.rating,
        min_clubs=numeric.min_clubs,
        min_class_size=numeric.min_class_size,
        price_range=numeric.price_range or (PRICE_MIN, PRICE_MAX),
        use_nearby=use_nearby,
        sort_option=sort_option,
    )
