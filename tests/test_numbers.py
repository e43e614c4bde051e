"""Tests for numeric extractors: price ranges, rating thresholds and minimum counts."""

from __future__ import annotations

import pytest

from school_match.query.numbers import (
    extract_min_class_size,
    extract_min_clubs,
    extract_numeric_filters,
    extract_price_range,
    extract_rating,
    mask_spans,
    parse_amount,
)


@pytest.mark.parametrize(
    ("fragment", "expected"),
    [
        ("200000", 200_000),
        ("200 000", 200_000),
        ("150,000", 150_000),
        ("200k", 200_000),
        ("150 тыс", 150_000),
    ],
)
def test_parse_amount(fragment: str, expected: int) -> None:
    assert parse_amount(fragment) == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("до 200000 ₸", (0, 200_000)),
        ("under 200k", (0, 200_000)),
        ("от 100 000 до 250 000 тенге", (100_000, 250_000)),
        ("150000-250000", (150_000, 250_000)),
        ("100-200 тыс", (100_000, 200_000)),
        ("above 300000", (300_000, 400_000)),
        ("250000 тг", (0, 250_000)),
    ],
)
def test_extract_price_range(text: str, expected: tuple[int, int]) -> None:
    extraction = extract_price_range(text)
    assert extraction is not None
    assert extraction.value == expected


def test_price_range_is_clamped() -> None:
    extraction = extract_price_range("до 900000 тенге")
    assert extraction is not None
    assert extraction.value == (0, 400_000)


def test_reversed_price_bounds_are_swapped() -> None:
    extraction = extract_price_range("от 300000 до 100000")
    assert extraction is not None
    assert extraction.value == (100_000, 300_000)


def test_price_consumes_currency_tokens() -> None:
    text = "до 200000 ₸"
    extraction = extract_price_range(text)
    assert extraction is not None
    consumed = "".join(text[start:end] for start, end in extraction.spans)
    assert "₸" in consumed
    assert "200000" in consumed


@pytest.mark.parametrize(
    "text",
    [
        "от 10 до 15 лет",
        "school for kids from 10 to 15 years",
        "до 5 км от дома",
        "5 класс",
        "",
    ],
)
def test_non_price_numbers_are_ignored(text: str) -> None:
    assert extract_price_range(text) is None


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("rating 4+", 4.0),
        ("рейтинг не ниже 4,5", 4.5),
        ("4.5+", 4.5),
        ("rating above 3", 3.0),
    ],
)
def test_extract_rating(text: str, expected: float) -> None:
    extraction = extract_rating(text)
    assert extraction is not None
    assert extraction.value == expected


@pytest.mark.parametrize("text", ["rating 6", "rating 45", "4 кружка"])
def test_rating_out_of_range_is_ignored(text: str) -> None:
    assert extract_rating(text) is None


def test_extract_min_clubs() -> None:
    assert extract_min_clubs("минимум 3 кружка").value == 3  # type: ignore[union-attr]
    assert extract_min_clubs("5 clubs").value == 5  # type: ignore[union-attr]
    assert extract_min_clubs("много кружков") is None


def test_extract_min_class_size_requires_prefix() -> None:
    assert extract_min_class_size("не меньше 20 учеников").value == 20  # type: ignore[union-attr]
    assert extract_min_class_size("at least 15 students").value == 15  # type: ignore[union-attr]
    assert extract_min_class_size("5 класс") is None


def test_numeric_filters_mask_consumed_numbers() -> None:
    numeric = extract_numeric_filters("от 5 кружков и до 200000 ₸")
    assert numeric.min_clubs == 5
    assert numeric.price_range == (0, 200_000)
    assert numeric.rating is None


def test_rating_is_not_read_as_price() -> None:
    numeric = extract_numeric_filters("rating 4+ under 300000")
    assert numeric.rating == 4.0
    assert numeric.price_range == (0, 300_000)
    assert numeric.has_price


def test_numeric_filters_defaults() -> None:
    numeric = extract_numeric_filters("school with a pool")
    assert numeric.min_clubs == 0
    assert numeric.min_class_size == 0
    assert numeric.rating is None
    assert numeric.price_range is None
    assert numeric.spans == ()


def test_mask_spans_keeps_indices() -> None:
    assert mask_spans("abcdef", [(1, 3)]) == "a  def"
