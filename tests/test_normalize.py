"""Tests for query normalization and remainder cleanup."""

from __future__ import annotations

from school_match.query.normalize import clean_remainder, normalize_query


def test_normalize_lowercases_and_collapses_whitespace() -> None:
    assert normalize_query("  Школа   в  АЛМАТЫ  ") == "школа в алматы"


def test_normalize_maps_yo_dashes_and_nbsp() -> None:
    assert normalize_query("Ёлка 100–200 000") == "елка 100-200 000"


def test_normalize_keeps_meaningful_punctuation() -> None:
    assert normalize_query("Rating 4+, <= 200000 ₸") == "rating 4+, <= 200000 ₸"


def test_normalize_non_string_is_empty() -> None:
    assert normalize_query(None) == ""  # type: ignore[arg-type]
    assert normalize_query(42) == ""  # type: ignore[arg-type]


def test_clean_remainder_drops_stop_words_short_tokens_and_punctuation() -> None:
    assert clean_remainder("школа с бассейном, и -гимнастика- у", {"школа", "с", "и"}) == "бассейном гимнастика"


def test_clean_remainder_keeps_short_numbers() -> None:
    assert clean_remainder("лицей 5 ab", set()) == "лицей 5"
