"""Read raw school profiles from the directory store.

Two backends, chosen by configuration:
    - Postgres table `schools` (when `DATABASE_URL` is set), newest profiles first;
    - a local JSON file holding an array of profiles (missing file = empty directory).
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from psycopg_pool import AsyncConnectionPool

from school_match.directory.pool import get_conn
from school_match.directory.records import SchoolRecord, school_records_from_profiles

if TYPE_CHECKING:
    from school_match.app import App

logger = logging.getLogger(__name__)

SELECT_PROFILES_SQL = "SELECT profile FROM schools ORDER BY updated_at DESC"


def read_file_store(path: str | Path) -> list[Any]:
    """Read profiles from a JSON file.

    A missing file is an empty directory; a file whose top level is not an array is ignored with a
    warning. Invalid JSON propagates as `json.JSONDecodeError`.
    """

    file_path = Path(path)
    try:
        raw = file_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []

    payload = json.loads(raw)
    if not isinstance(payload, list):
        logger.warning("school store is not a JSON array path=%s", file_path)
        return []
    return payload


async def fetch_school_profiles(pool: AsyncConnectionPool) -> list[Any]:
    """Fetch every stored profile from Postgres, most recently updated first.

    The `schools` table is created by the `school-match-load` importer; a missing table raises
    `psycopg.errors.UndefinedTable`.
    """

    async with get_conn(pool) as conn:
        async with conn.cursor() as cur:
            await cur.execute(SELECT_PROFILES_SQL, prepare=False)
            rows = await cur.fetchall()
        await conn.commit()
    return [row[0] for row in rows]


async def load_school_records(app: App) -> list[SchoolRecord]:
    """Load and normalize the whole directory for one search."""

    if app.pool is None:
        # File I/O and timestamp parsing block; keep them off the event loop.
        return await asyncio.to_thread(_read_file_records, app.settings.schools_file, app.settings.locale)

    profiles = await fetch_school_profiles(app.pool)
    return school_records_from_profiles(profiles, locale=app.settings.locale)


def _read_file_records(path: str | Path, locale: str) -> list[SchoolRecord]:
    return school_records_from_profiles(read_file_store(path), locale=locale)
