"""Load raw school profiles from a JSON file (or URL) into Postgres.

The payload is a JSON array of profile objects, each with a non-empty `"school_id"`. Profiles are
upserted into the `schools` table, which is created when absent.
"""

from __future__ import annotations

import argparse
import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any
from urllib.request import urlopen

from dotenv import load_dotenv
from psycopg.types.json import Jsonb

from school_match.directory.connection import SCHOOLS_TABLE_DDL, connect_utc, require_database_url


def _load_json_bytes(*, path: str | None, url: str | None) -> bytes:
    if bool(path) == bool(url):
        raise ValueError("Exactly one of --path or --url must be provided")

    if path:
        return Path(path).read_bytes()

    assert url is not None
    with urlopen(url) as resp:  # noqa: S310 (controlled URL from CLI)
        return resp.read()


def iter_school_rows(profiles: Sequence[Any]) -> Iterable[tuple[str, Jsonb]]:
    """Yield `(school_id, profile)` rows for the `schools` table.

    Raises:
        ValueError: If a profile is not an object or has no `school_id`.
    """

    for index, profile in enumerate(profiles):
        if not isinstance(profile, dict):
            raise ValueError(f"Profile #{index} is not a JSON object")
        school_id = str(profile.get("school_id") or "").strip()
        if not school_id:
            raise ValueError(f"Profile #{index} has no school_id")
        yield school_id, Jsonb(profile)


def load_profiles(*, path: str | None, url: str | None, truncate: bool) -> int:
    """Upsert profiles into `schools`; returns the number of rows written."""

    load_dotenv(".env")
    database_url = require_database_url()

    payload = json.loads(_load_json_bytes(path=path, url=url))
    if not isinstance(payload, list):
        raise ValueError("Unexpected dataset format: expected a JSON array of school profiles")

    rows = list(iter_school_rows(payload))

    with connect_utc(database_url) as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(SCHOOLS_TABLE_DDL, prepare=False)
                if truncate:
                    cur.execute("TRUNCATE schools", prepare=False)

                cur.executemany(
                    """
                    INSERT INTO schools (school_id, profile, updated_at)
                    VALUES (%s, %s, NOW()) ON CONFLICT (school_id) DO
                    UPDATE SET
                        profile = EXCLUDED.profile,
                        updated_at = NOW()
                    """,
                    rows,
                )
    return len(rows)


def main() -> None:
    """CLI entry point for loading school profiles into Postgres."""

    parser = argparse.ArgumentParser(description="Load school directory profiles into Postgres.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--path", help="Path to a JSON array of school profiles (e.g. schools.json).")
    src.add_argument("--url", help="URL to download the profiles JSON.")
    parser.add_argument(
        "--truncate",
        action="store_true",
        help="TRUNCATE the schools table before loading (destructive).",
    )
    args = parser.parse_args()

    count = load_profiles(path=args.path, url=args.url, truncate=args.truncate)
    print(f"Loaded {count} school profiles")


if __name__ == "__main__":
    main()
