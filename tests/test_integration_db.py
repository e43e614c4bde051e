"""Integration tests against a real Postgres database.

These tests exercise the directory pipeline end to end:
JSON profiles -> `schools` table -> psycopg async pool -> school records -> filter/sort engine.

They are skipped if `DATABASE_URL` is not configured or the DB is unreachable.
"""

from __future__ import annotations

import json
import os
import uuid
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any, NoReturn

import psycopg
import pytest
import pytest_asyncio
from dotenv import load_dotenv
from psycopg import sql
from psycopg.conninfo import make_conninfo
from psycopg_pool import AsyncConnectionPool

from school_match.directory.connection import SCHOOLS_TABLE_DDL, connect_utc
from school_match.directory.load_json import iter_school_rows
from school_match.directory.pool import create_pool, get_conn
from school_match.directory.records import school_records_from_profiles
from school_match.directory.store import fetch_school_profiles
from school_match.query.rules_parser import parse_school_query
from school_match.search.engine import apply_filters

_FIXTURE_PATH = Path(__file__).resolve().parent / "fixtures" / "schools_fixture.json"


def _skip(reason: str) -> NoReturn:
    pytest.skip(reason)


def _require_database_url() -> str:
    load_dotenv(".env")
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        _skip("DATABASE_URL is not set; skipping integration tests")
    return database_url


@pytest.fixture(scope="session")
def prepared_schema() -> Iterator[str]:
    """Create an isolated schema with the `schools` table and load the fixture profiles."""

    database_url = _require_database_url()
    schema = f"it_{uuid.uuid4().hex}"

    payload: list[Any] = json.loads(_FIXTURE_PATH.read_text(encoding="utf-8"))
    profiles = [profile for profile in payload if isinstance(profile, dict)]

    try:
        conn_ctx = connect_utc(database_url)
    except psycopg.OperationalError as exc:
        _skip(f"Postgres is unreachable ({exc}); skipping integration tests")

    with conn_ctx as conn:
        with conn.transaction():
            conn.execute(
                sql.SQL("CREATE SCHEMA {}").format(sql.Identifier(schema)),
                prepare=False,
            )
            conn.execute(
                sql.SQL("SET search_path TO {}").format(sql.Identifier(schema)),
                prepare=False,
            )
            conn.execute(SCHOOLS_TABLE_DDL, prepare=False)

            with conn.cursor() as cur:
                cur.executemany(
                    "INSERT INTO schools (school_id, profile) VALUES (%s, %s)",
                    list(iter_school_rows(profiles)),
                )

    yield schema

    # noinspection PyBroadException
    try:
        with psycopg.connect(database_url) as conn:
            with conn.transaction():
                conn.execute(
                    sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(sql.Identifier(schema)),
                    prepare=False,
                )
    except Exception:
        # Cleanup best-effort: do not fail test run on teardown.
        pass


@pytest_asyncio.fixture
async def pool(prepared_schema: str) -> AsyncIterator[AsyncConnectionPool]:
    """Create an async connection pool whose sessions resolve tables in the test schema."""

    database_url = make_conninfo(_require_database_url(), options=f"-csearch_path={prepared_schema}")
    db_pool = create_pool(database_url, max_size=2)
    try:
        await db_pool.open(wait=True)
    except Exception as exc:
        _skip(f"Postgres is unreachable ({exc}); skipping integration tests")
    yield db_pool
    await db_pool.close()


@pytest.mark.asyncio
async def test_pool_enforces_utc_timezone(pool: Any) -> None:
    async with get_conn(pool) as conn:
        async with conn.cursor() as cur:
            await cur.execute("SHOW TimeZone", prepare=False)
            row = await cur.fetchone()
        assert row is not None
        assert row[0] == "UTC"


@pytest.mark.asyncio
async def test_example_queries_end_to_end(pool: Any) -> None:
    profiles = await fetch_school_profiles(pool)
    records = school_records_from_profiles(profiles)
    assert sorted(r.school_id for r in records) == ["alm-001", "ast-002", "krg-003"]

    cases = [
        ("Private school in Almaty under 200000 ₸", ["alm-001"]),
        ("State school in Astana, no exams", ["ast-002"]),
        ("school with rating 4+", ["alm-001", "ast-002"]),
        ("International school Karaganda IB PYP", ["krg-003"]),
    ]

    for text, expected in cases:
        filters = parse_school_query(text)
        got = [r.school_id for r in apply_filters(records, filters)]
        assert sorted(got) == sorted(expected)
