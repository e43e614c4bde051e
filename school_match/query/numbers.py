"""Numeric extractors: price ranges, rating thresholds and minimum counts.

All extractors work on normalized query text and report the character spans they consumed, so the
parser can mask them for later extractors and drop them from the free-text remainder.

Extraction order is fixed: minimum counts, then rating, then price. A number claimed by an earlier
extractor is masked out before the next one runs, so "rating 4+" never becomes a price of 4 and
"от 5 кружков" never becomes a price floor.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from school_match.query.schema import PRICE_MAX, PRICE_MIN, clamp_price

T = TypeVar("T")

Span = tuple[int, int]


@dataclass(frozen=True)
class Extraction(Generic[T]):
    """A value pulled out of the query plus the spans of text it consumed."""

    value: T
    spans: tuple[Span, ...]


@dataclass(frozen=True)
class NumericFilters:
    """Combined result of every numeric extractor."""

    min_clubs: int = 0
    min_class_size: int = 0
    rating: float | None = None
    price_range: tuple[int, int] | None = None
    spans: tuple[Span, ...] = field(default_factory=tuple)

    @property
    def has_price(self) -> bool:
        return self.price_range is not None


def _build_regex_alternation(phrases: tuple[str, ...]) -> str:
    """Build a safe alternation regex for phrases (longest first, spaces as `\\s+`)."""

    ordered = sorted(set(phrases), key=lambda p: (-len(p), p))
    return "|".join(re.escape(p).replace(r"\ ", r"\s+") for p in ordered)


_COUNT_PREFIXES = ("не меньше", "не менее", "минимум", "at least", "min", "от", ">=")
_COUNT_PREFIX = rf"(?:(?:{_build_regex_alternation(_COUNT_PREFIXES)})\s*)"

_MIN_CLUBS_RE = re.compile(
    rf"(?<![\w.,]){_COUNT_PREFIX}?(\d{{1,2}})(?!\d)\s*(?:круж|секц|club)\w*"
)
# A prefix is required: "5 класс" names a grade, "от 20 учеников" is a class size.
_MIN_CLASS_SIZE_RE = re.compile(
    rf"(?<![\w.,]){_COUNT_PREFIX}(\d{{1,2}})(?!\d)\s*(?:класс|ученик|дет|student|pupil|kid|child)\w*"
)

_RATING_KEYWORDS = ("rating", "рейтинг", "не ниже", "минимум")
_RATING_CONNECTORS = ("above", "over", "at least", "from", "от", "выше", "не ниже", "не менее", ">=", ">")
_RATING_VALUE = r"([3-5](?:[.,]\d)?)(?![.,]?\d)"
_RATING_RE = re.compile(
    rf"(?<!\w)(?:{_build_regex_alternation(_RATING_KEYWORDS)})[а-яa-z]*\s*[:=]?\s*"
    rf"(?:(?:{_build_regex_alternation(_RATING_CONNECTORS)})\s*)?{_RATING_VALUE}(?:\s*\+)?"
)
_RATING_PLUS_RE = re.compile(r"(?<![\w.,])([3-5](?:[.,]\d)?)\s*\+")

_CURRENCY_RE = re.compile(r"₸|(?<!\w)(?:тенге|tenge|kzt|тг)(?!\w)\.?")
_THOUSANDS_RE = re.compile(r"тыс|k")
_AMOUNT = r"(?:\d{1,3}(?:[\s.,]\d{3})+|\d+)(?:\s*(?:тыс\w*\.?|k(?!\w)))?"
# Numbers followed by these units are ages, distances, grades or counts, never prices.
_NOT_PRICE_GUARD = (
    r"(?!\d|[.,]\d)"
    r"(?!\s*(?:лет|год|years?|yrs?|км|km|клас|class|grade|ученик|дет|круж|секц|club|student|pupil"
    r"|минут|minutes?|mins?(?!\w)|час|hours?|%|\+))"
)

_CEILING_WORDS = (
    "не дороже",
    "не выше",
    "не более",
    "less than",
    "up to",
    "under",
    "below",
    "maximum",
    "max",
    "максимум",
    "до",
)
_FLOOR_WORDS = (
    "не меньше",
    "не менее",
    "не ниже",
    "at least",
    "minimum",
    "минимум",
    "above",
    "over",
    "from",
    "min",
    "от",
)

_PRICE_RANGE_RE = re.compile(rf"(?<![\d.,])({_AMOUNT})\s*-\s*({_AMOUNT}){_NOT_PRICE_GUARD}")
_PRICE_CEILING_RE = re.compile(
    rf"(?:(?<!\w)(?:{_build_regex_alternation(_CEILING_WORDS)})|<=|<)\s*({_AMOUNT}){_NOT_PRICE_GUARD}"
)
_PRICE_FLOOR_RE = re.compile(
    rf"(?:(?<!\w)(?:{_build_regex_alternation(_FLOOR_WORDS)})|>=|>)\s*({_AMOUNT}){_NOT_PRICE_GUARD}"
)
_PRICE_BARE_RE = re.compile(rf"(?<![\w.,])({_AMOUNT}){_NOT_PRICE_GUARD}")


def mask_spans(text: str, spans: tuple[Span, ...] | list[Span]) -> str:
    """Blank out spans with spaces, keeping every other character at its index."""

    if not spans:
        return text
    chars = list(text)
    for start, end in spans:
        chars[start:end] = " " * (end - start)
    return "".join(chars)


def parse_amount(fragment: str) -> int:
    """Parse "200 000", "150,000", "200k" or "150 тыс" into an integer amount."""

    digits = "".join(ch for ch in fragment if ch.isdigit())
    value = int(digits) if digits else 0
    if _THOUSANDS_RE.search(fragment):
        value *= 1000
    return value


def _is_price_like(fragment: str) -> bool:
    digits = sum(ch.isdigit() for ch in fragment)
    return digits >= 3 or _THOUSANDS_RE.search(fragment) is not None


def _first_price_match(
    pattern: re.Pattern[str], text: str, *, has_currency: bool
) -> re.Match[str] | None:
    """First match whose amount looks like a price (3+ digits, a thousands suffix or a currency)."""

    for match in pattern.finditer(text):
        if has_currency or all(_is_price_like(group) for group in match.groups()):
            return match
    return None


def _extract_count(pattern: re.Pattern[str], text: str) -> Extraction[int] | None:
    match = pattern.search(text)
    if match is None:
        return None
    return Extraction(value=int(match.group(1)), spans=(match.span(),))


def extract_min_clubs(text: str) -> Extraction[int] | None:
    """Find "минимум 3 кружка" / "5 clubs" (first match only)."""

    return _extract_count(_MIN_CLUBS_RE, text)


def extract_min_class_size(text: str) -> Extraction[int] | None:
    """Find "не меньше 20 учеников" / "at least 15 students" (first match only)."""

    return _extract_count(_MIN_CLASS_SIZE_RE, text)


def extract_rating(text: str) -> Extraction[float] | None:
    """Find a rating threshold: keyword + number in [3, 5], else a bare "4+" / "4.5+".

    The first match wins; several rating mentions are never combined.
    """

    match = _RATING_RE.search(text) or _RATING_PLUS_RE.search(text)
    if match is None:
        return None
    return Extraction(value=float(match.group(1).replace(",", ".")), spans=(match.span(),))


def _range_bounds(low_fragment: str, high_fragment: str) -> tuple[int, int]:
    low = parse_amount(low_fragment)
    high = parse_amount(high_fragment)
    # "100-200 тыс": the multiplier written once applies to both ends.
    if _THOUSANDS_RE.search(high_fragment) and not _THOUSANDS_RE.search(low_fragment) and low * 1000 <= high:
        low *= 1000
    return low, high


def extract_price_range(text: str) -> Extraction[tuple[int, int]] | None:
    """Find a monthly fee constraint.

    Patterns, in priority order:
        1. an explicit range "NUM - NUM";
        2. a ceiling ("до", "under", "<=", ...) and/or a floor ("от", "above", ">=", ...),
           which combine into `[floor, ceiling]`;
        3. a bare price-like number when the query mentions a currency (₸, тг, тенге, kzt),
           treated as a ceiling.

    Bounds are clamped into `[PRICE_MIN, PRICE_MAX]` and swapped when reversed. Currency tokens
    are consumed together with the price.
    """

    currency_spans = tuple(m.span() for m in _CURRENCY_RE.finditer(text))
    scan = mask_spans(text, currency_spans)

    low: int | None = None
    high: int | None = None
    spans: list[Span] = []

    has_currency = bool(currency_spans)
    range_match = _first_price_match(_PRICE_RANGE_RE, scan, has_currency=has_currency)
    if range_match is not None:
        low, high = _range_bounds(range_match.group(1), range_match.group(2))
        spans.append(range_match.span())
    else:
        ceiling_match = _first_price_match(_PRICE_CEILING_RE, scan, has_currency=has_currency)
        if ceiling_match is not None:
            high = parse_amount(ceiling_match.group(1))
            spans.append(ceiling_match.span())
        floor_match = _first_price_match(_PRICE_FLOOR_RE, scan, has_currency=has_currency)
        if floor_match is not None:
            low = parse_amount(floor_match.group(1))
            spans.append(floor_match.span())
        if not spans and has_currency:
            for bare in _PRICE_BARE_RE.finditer(scan):
                if _is_price_like(bare.group(1)):
                    high = parse_amount(bare.group(1))
                    spans.append(bare.span())
                    break

    if not spans:
        return None

    low_price = clamp_price(PRICE_MIN if low is None else low)
    high_price = clamp_price(PRICE_MAX if high is None else high)
    if low_price > high_price:
        low_price, high_price = high_price, low_price
    return Extraction(value=(low_price, high_price), spans=tuple(sorted([*spans, *currency_spans])))


def extract_numeric_filters(text: str) -> NumericFilters:
    """Run every numeric extractor in order, masking consumed spans between them."""

    spans: list[Span] = []
    scan = text

    clubs = extract_min_clubs(scan)
    if clubs is not None:
        spans.extend(clubs.spans)
        scan = mask_spans(scan, clubs.spans)

    class_size = extract_min_class_size(scan)
    if class_size is not None:
        spans.extend(class_size.spans)
        scan = mask_spans(scan, class_size.spans)

    rating = extract_rating(scan)
    if rating is not None:
        spans.extend(rating.spans)
        scan = mask_spans(scan, rating.spans)

    price = extract_price_range(scan)
    if price is not None:
        spans.extend(price.spans)

    return NumericFilters(
        min_clubs=clubs.value if clubs is not None else 0,
        min_class_size=class_size.value if class_size is not None else 0,
        rating=rating.value if rating is not None else None,
        price_range=price.value if price is not None else None,
        spans=tuple(sorted(spans)),
    )
