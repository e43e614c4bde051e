"""Async Postgres pool for the directory store.

Only created when `DATABASE_URL` is configured; the bot then reads school profiles through it on
every search. Sessions are tagged with an application name and pinned to UTC so `updated_at`
ordering does not depend on the server's default timezone.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool

from school_match.directory.connection import require_database_url

APPLICATION_NAME = "school-match"
DEFAULT_POOL_SIZE = 4


async def configure_session(conn: AsyncConnection) -> None:
    """Per-connection setup run by the pool before a connection is first handed out."""

    async with conn.cursor() as cur:
        await cur.execute("SET TIME ZONE 'UTC'", prepare=False)
    # Leave the connection idle: with autocommit off `SET` opened a transaction.
    await conn.commit()


def create_pool(
        database_url: str | None = None,
        *,
        max_size: int = DEFAULT_POOL_SIZE,
        timeout: float = 30.0,
) -> AsyncConnectionPool:
    """Build a closed directory pool; `await pool.open()` happens at bot startup.

    Without an explicit `database_url` the `.env` file is loaded and `DATABASE_URL` is required.
    """

    conninfo = database_url or _database_url_from_env()
    return AsyncConnectionPool(
        conninfo=conninfo,
        min_size=1,
        max_size=max(1, max_size),
        timeout=timeout,
        open=False,
        kwargs={"application_name": APPLICATION_NAME},
        configure=configure_session,
    )


def _database_url_from_env() -> str:
    load_dotenv(".env")
    return require_database_url()


@asynccontextmanager
async def get_conn(pool: AsyncConnectionPool) -> AsyncIterator[AsyncConnection]:
    """Borrow a connection for the duration of the block."""

    async with pool.connection() as conn:
        yield conn
