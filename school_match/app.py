"""Application composition root.

This module wires together configuration, the directory store, and parser settings for the bot
runtime.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from psycopg_pool import AsyncConnectionPool

from school_match.bot.rate_limit import SlidingWindowLimiter
from school_match.config.settings import Settings
from school_match.directory.pool import create_pool
from school_match.query.llm_parser import LLMConfig
from school_match.search.geo import GeoPoint


@dataclass(frozen=True)
class App:
    """Shared application dependencies for handlers.

    `locations` keeps the last location each Telegram user shared and `llm_limiter` counts remote
    parses per chat; both live in process memory only.
    """

    settings: Settings
    pool: AsyncConnectionPool | None = None
    llm_config: LLMConfig | None = None
    locations: dict[int, GeoPoint] = field(default_factory=dict)
    llm_limiter: SlidingWindowLimiter = field(default_factory=SlidingWindowLimiter)


def llm_config_from_settings(settings: Settings) -> LLMConfig | None:
    """Build the LLM parser config, or `None` when LLM parsing is disabled."""

    if not settings.llm_enabled or not settings.llm_api_key:
        return None
    return LLMConfig(
        api_key=settings.llm_api_key,
        provider=settings.llm_provider,
        model=settings.llm_model,
        api_base=settings.llm_api_base,
        timeout_s=settings.llm_timeout_s,
        max_retries=settings.llm_max_retries,
    )


def create_app(settings: Settings) -> App:
    """Create the application container.

    Note:
        When `DATABASE_URL` is set, the returned DB pool is not opened. Call `await app.pool.open()`
        at startup.
    """

    pool = create_pool(settings.database_url, max_size=10) if settings.database_url else None
    return App(
        settings=settings,
        pool=pool,
        llm_config=llm_config_from_settings(settings),
        llm_limiter=SlidingWindowLimiter(max_calls=settings.llm_rate_limit, window_s=settings.llm_rate_window_s),
    )
