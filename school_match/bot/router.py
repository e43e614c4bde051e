"""Bot router composition."""

from __future__ import annotations

from aiogram import F, Router

from school_match.bot.handlers import handle_location, handle_message

router = Router(name="root")
# Location messages first: the catch-all search handler would otherwise answer them.
router.message.register(handle_location, F.location)
router.message.register(handle_message)
