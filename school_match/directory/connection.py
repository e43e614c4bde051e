"""Synchronous Postgres helpers shared by the profile loader and the directory store."""

from __future__ import annotations

import os

import psycopg

SCHOOLS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS schools (
    school_id  TEXT PRIMARY KEY,
    profile    JSONB       NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


def require_database_url() -> str:
    """Return `DATABASE_URL`, failing loudly when the directory database is not configured."""

    database_url = (os.getenv("DATABASE_URL") or "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set; configure it in .env to use the Postgres directory")
    return database_url


def connect_utc(database_url: str) -> psycopg.Connection:
    """Open a connection whose session timezone is UTC from the first statement on."""

    return psycopg.connect(database_url, options="-c TimeZone=UTC", application_name="school-match-load")
