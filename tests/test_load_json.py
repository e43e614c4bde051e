"""Tests for preparing school profile rows for the Postgres loader."""

from __future__ import annotations

import pytest

from school_match.directory.load_json import _load_json_bytes, iter_school_rows


def test_rows_are_keyed_by_school_id() -> None:
    rows = list(iter_school_rows([{"school_id": " alm-001 ", "basic_info": {}}]))
    assert len(rows) == 1
    school_id, profile = rows[0]
    assert school_id == "alm-001"
    assert profile.obj == {"school_id": " alm-001 ", "basic_info": {}}


@pytest.mark.parametrize("profiles", [["broken"], [{"basic_info": {}}], [{"school_id": "  "}]])
def test_invalid_profiles_are_rejected(profiles: list[object]) -> None:
    with pytest.raises(ValueError):
        list(iter_school_rows(profiles))


def test_exactly_one_source_is_required() -> None:
    with pytest.raises(ValueError):
        _load_json_bytes(path=None, url=None)
    with pytest.raises(ValueError):
        _load_json_bytes(path="schools.json", url="https://example.com/schools.json")
