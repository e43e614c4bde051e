"""Tests for reading school profiles from the file and Postgres stores."""

from __future__ import annotations

import json
import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from school_match.directory.store import (
    SELECT_PROFILES_SQL,
    fetch_school_profiles,
    load_school_records,
    read_file_store,
)

_FIXTURE_PATH = Path(__file__).resolve().parent / "fixtures" / "schools_fixture.json"


class _FakeCursor:
    def __init__(self, rows: list[tuple[Any, ...]]) -> None:
        self.rows = rows
        self.executed: list[str] = []

    async def __aenter__(self) -> _FakeCursor:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        return None

    async def execute(self, query: str, prepare: bool | None = None) -> None:
        self.executed.append(query)

    async def fetchall(self) -> list[tuple[Any, ...]]:
        return self.rows


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor
        self.commits = 0

    def cursor(self) -> _FakeCursor:
        return self._cursor

    async def commit(self) -> None:
        self.commits += 1


class _FakePool:
    def __init__(self, conn: _FakeConnection) -> None:
        self._conn = conn

    @asynccontextmanager
    async def connection(self):
        yield self._conn


def _make_app(*, pool: Any = None, schools_file: str = str(_FIXTURE_PATH), locale: str = "ru") -> Any:
    return SimpleNamespace(
        settings=SimpleNamespace(schools_file=schools_file, locale=locale),
        pool=pool,
    )


def test_missing_file_is_an_empty_directory(tmp_path: Path) -> None:
    assert read_file_store(tmp_path / "missing.json") == []


def test_non_array_file_is_ignored(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "schools.json"
    path.write_text(json.dumps({"school_id": "x"}), encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="school_match.directory.store"):
        assert read_file_store(path) == []
    assert "not a JSON array" in caplog.text


def test_invalid_json_propagates(tmp_path: Path) -> None:
    path = tmp_path / "schools.json"
    path.write_text("[{", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        read_file_store(path)


@pytest.mark.asyncio
async def test_load_records_from_file() -> None:
    records = await load_school_records(_make_app())  # type: ignore[arg-type]
    assert [r.school_id for r in records] == ["alm-001", "ast-002", "krg-003"]
    assert records[0].name == "Школа Сезим"


@pytest.mark.asyncio
async def test_file_store_is_read_in_a_worker_thread(monkeypatch: pytest.MonkeyPatch) -> None:
    reader_threads: list[int] = []

    def _read(path: Any) -> list[Any]:
        reader_threads.append(threading.get_ident())
        return []

    monkeypatch.setattr("school_match.directory.store.read_file_store", _read)

    assert await load_school_records(_make_app()) == []  # type: ignore[arg-type]
    assert len(reader_threads) == 1
    assert reader_threads[0] != threading.get_ident()


@pytest.mark.asyncio
async def test_load_records_uses_directory_locale() -> None:
    records = await load_school_records(_make_app(locale="en"))  # type: ignore[arg-type]
    assert records[0].name == "Sezim School"


@pytest.mark.asyncio
async def test_fetch_profiles_from_postgres() -> None:
    profile = {"school_id": "db-1", "basic_info": {"display_name": {"ru": "Школа из БД"}}}
    cursor = _FakeCursor(rows=[(profile,)])
    conn = _FakeConnection(cursor)

    profiles = await fetch_school_profiles(_FakePool(conn))  # type: ignore[arg-type]

    assert profiles == [profile]
    assert cursor.executed == [SELECT_PROFILES_SQL]
    assert conn.commits == 1


@pytest.mark.asyncio
async def test_load_records_prefers_postgres_pool() -> None:
    profile = {"school_id": "db-1", "basic_info": {"display_name": {"ru": "Школа из БД"}}}
    pool = _FakePool(_FakeConnection(_FakeCursor(rows=[(profile,)])))

    records = await load_school_records(_make_app(pool=pool))  # type: ignore[arg-type]

    assert [r.name for r in records] == ["Школа из БД"]
