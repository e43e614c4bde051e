"""Bot process entrypoint: settings, logging, directory pool and Telegram long polling."""

from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties

from school_match.app import App, create_app
from school_match.bot.router import router
from school_match.config.logging import configure_logging
from school_match.config.settings import load_settings

logger = logging.getLogger(__name__)


async def on_startup(app: App) -> None:
    if app.pool is not None:
        await app.pool.open(wait=True)
    logger.info(
        "bot started store=%s llm_enabled=%s radius_km=%.1f",
        "postgres" if app.pool is not None else app.settings.schools_file,
        app.settings.llm_enabled,
        app.settings.nearby_radius_km,
    )


async def on_shutdown(app: App) -> None:
    logger.info("bot stopping")
    if app.pool is not None:
        await app.pool.close()


def build_dispatcher(app: App) -> Dispatcher:
    """Dispatcher with the search router; `app` is injected into every handler and hook."""

    dp = Dispatcher(app=app)
    dp.include_router(router)
    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)
    return dp


async def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    app = create_app(settings)
    bot = Bot(token=settings.telegram_bot_token, default=DefaultBotProperties(parse_mode=None))
    await build_dispatcher(app).start_polling(bot)


def run() -> None:
    """Console-script entry point (`school-match-bot`)."""

    asyncio.run(main())


if __name__ == "__main__":
    run()
