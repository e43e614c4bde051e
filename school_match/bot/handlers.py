"""aiogram message handlers.

Contract: every incoming message produces exactly one reply. A search phrase is parsed, resolved
against the user's shared location, applied to the directory and answered with the top matches. On
an internal error the user gets a short generic reply; details only go to the logs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from time import monotonic

import psycopg
from aiogram.types import Message

from school_match.app import App
from school_match.directory.records import SchoolRecord
from school_match.directory.store import load_school_records
from school_match.query.parser import ParseResult, parse_school_query_with_source
from school_match.query.schema import PRICE_MAX, PRICE_MIN, ParsedFilter
from school_match.search.engine import apply_filters
from school_match.search.geo import GeoPoint
from school_match.search.nearby import resolve_nearby

logger = logging.getLogger(__name__)

USAGE_HINT = (
    "Опишите школу, которую ищете, например: "
    "«частная школа в Алматы с английским и робототехникой до 200 000 ₸» "
    "или «State school in Astana near home, no exams». "
    "Чтобы искать рядом, отправьте свою геолокацию."
)
LOCATION_SAVED_REPLY = "Геолокация сохранена. Теперь можно искать школы рядом."
NO_RESULTS_REPLY = "Ничего не найдено. Попробуйте смягчить условия поиска."
LOCAL_MATCHING_NOTE = "ИИ-подбор сейчас недоступен, использован локальный подбор."
DIRECTORY_UNAVAILABLE_REPLY = "Каталог школ временно недоступен. Попробуйте позже."
FAILURE_REPLY = "Не удалось выполнить поиск. Попробуйте ещё раз."


def _is_command_text(text: str) -> bool:
    return text.lstrip().startswith("/")


def _format_price(value: float) -> str:
    return f"{int(value):,}".replace(",", " ") + " ₸"


def format_school_line(index: int, record: SchoolRecord) -> str:
    """One result line: name, city, monthly fee and rating when known."""

    parts = [f"{index}. {record.name}"]
    if record.city:
        parts.append(record.city)
    if record.monthly_fee is not None:
        parts.append(f"{_format_price(record.monthly_fee)}/мес")
    if record.rating is not None:
        parts.append(f"★ {record.rating:.1f}")
    return ", ".join(parts)


def summarize_filters(filters: ParsedFilter) -> str:
    """Human-readable one-line summary of the active filters."""

    parts: list[str] = [
        *filters.cities,
        *filters.active_areas,
        *filters.types,
        *filters.languages,
        *filters.curricula,
        *filters.subjects,
        *filters.specialists,
        *filters.services,
        *filters.meals,
        *filters.accreditations,
    ]
    if filters.exam == "No":
        parts.append("без экзаменов")
    elif filters.exam == "Yes":
        parts.append("с экзаменами")
    if filters.rating is not None:
        parts.append(f"рейтинг от {filters.rating:g}")
    if filters.has_price_filter:
        low, high = filters.price_range
        if low > PRICE_MIN and high < PRICE_MAX:
            parts.append(f"{_format_price(low)} - {_format_price(high)}")
        elif high < PRICE_MAX:
            parts.append(f"до {_format_price(high)}")
        else:
            parts.append(f"от {_format_price(low)}")
    if filters.min_clubs:
        parts.append(f"кружков от {filters.min_clubs}")
    if filters.min_class_size:
        parts.append(f"класс от {filters.min_class_size}")
    if filters.use_nearby:
        parts.append("рядом")
    if filters.sort_option is not None:
        parts.append(f"сортировка: {filters.sort_option}")
    if filters.query:
        parts.append(f"«{filters.query}»")
    return ", ".join(str(p) for p in parts)


def format_search_reply(
        results: Sequence[SchoolRecord],
        *,
        filters: ParsedFilter,
        limit: int,
        llm_failed: bool = False,
        location_error: str | None = None,
) -> str:
    """Build the reply text for a search: summary, top results and notes."""

    lines: list[str] = []
    summary = summarize_filters(filters)
    if summary:
        lines.append(f"Фильтры: {summary}")

    if results:
        shown = results[:limit]
        lines.append(f"Найдено школ: {len(results)} (показано {len(shown)})")
        lines.extend(format_school_line(i, record) for i, record in enumerate(shown, start=1))
    else:
        lines.append(NO_RESULTS_REPLY)

    if location_error:
        lines.append(location_error)
    if llm_failed:
        lines.append(LOCAL_MATCHING_NOTE)
    return "\n".join(lines)


async def handle_location(message: Message, app: App) -> None:
    """Remember the location a user shared for later "nearby" searches."""

    location = message.location
    app.locations[message.chat.id] = GeoPoint(latitude=location.latitude, longitude=location.longitude)
    logger.info("location stored chat_id=%s", message.chat.id)
    await message.answer(LOCATION_SAVED_REPLY)


async def handle_message(message: Message, app: App) -> None:
    """Handle any incoming Telegram text message and reply exactly once."""

    started = monotonic()
    reply = FAILURE_REPLY

    # noinspection PyBroadException
    try:
        raw_text = (message.text or message.caption or "")
        if not raw_text.strip() or _is_command_text(raw_text):
            await message.answer(USAGE_HINT)
            return

        chat_id = message.chat.id
        # Over the per-chat limit the paid endpoint is skipped and local matching answers instead.
        rate_limited = app.settings.llm_enabled and not app.llm_limiter.try_acquire(chat_id)
        if rate_limited:
            logger.info(
                "llm rate limited chat_id=%s retry_after_s=%d",
                chat_id,
                app.llm_limiter.retry_after_s(chat_id),
            )

        # The LLM call blocks on network I/O; keep it off the event loop.
        parse_result: ParseResult = await asyncio.to_thread(
            parse_school_query_with_source,
            raw_text,
            llm_enabled=app.settings.llm_enabled and not rate_limited,
            llm_config=app.llm_config,
        )
        resolution = resolve_nearby(parse_result.filters, app.locations.get(chat_id))

        records = await load_school_records(app)
        results = apply_filters(
            records,
            resolution.filters,
            user_location=resolution.user_location,
            radius_km=app.settings.nearby_radius_km,
        )
        llm_failed = parse_result.llm_failed or rate_limited
        reply = format_search_reply(
            results,
            filters=resolution.filters,
            limit=app.settings.results_limit,
            llm_failed=llm_failed,
            location_error=resolution.error,
        )

        latency_ms = int((monotonic() - started) * 1000)
        logger.info(
            "handled source=%s llm_failed=%s results=%d latency_ms=%d",
            parse_result.source,
            llm_failed,
            len(results),
            latency_ms,
        )
    except (OSError, ValueError, psycopg.Error) as exc:
        # Directory store unreadable (missing DB, broken JSON file).
        reply = DIRECTORY_UNAVAILABLE_REPLY
        latency_ms = int((monotonic() - started) * 1000)
        logger.warning("directory unavailable reason=%s latency_ms=%d", exc, latency_ms)
    except Exception:
        # Handler boundary: never leak internal details to the user.
        logger.exception("handler failed")

    await message.answer(reply)
