"""Tests for the aiogram message handlers.

Every incoming message must produce exactly one reply. Search phrases are answered with a filter
summary and the top matches; internal failures produce a short generic reply.
"""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from school_match.bot.handlers import (
    DIRECTORY_UNAVAILABLE_REPLY,
    FAILURE_REPLY,
    LOCAL_MATCHING_NOTE,
    LOCATION_SAVED_REPLY,
    NO_RESULTS_REPLY,
    USAGE_HINT,
    format_search_reply,
    handle_location,
    handle_message,
)
from school_match.bot.rate_limit import SlidingWindowLimiter
from school_match.query.parser import ParseResult
from school_match.query.schema import ParsedFilter
from school_match.search.geo import GeoPoint
from school_match.search.nearby import LOCATION_UNAVAILABLE_MESSAGE

_FIXTURE_PATH = Path(__file__).resolve().parent / "fixtures" / "schools_fixture.json"
_CHAT_ID = 42


class _FakeMessage:
    def __init__(self, text: str | None = None, location: Any = None, chat_id: int = _CHAT_ID) -> None:
        self.text = text
        self.caption = None
        self.location = location
        self.chat = SimpleNamespace(id=chat_id)
        self.answers: list[str] = []

    async def answer(self, text: str) -> None:
        """Record the outgoing bot reply (aiogram's `Message.answer` substitute)."""
        self.answers.append(text)


def _make_app(*, llm_enabled: bool = False, limiter: SlidingWindowLimiter | None = None) -> Any:
    return SimpleNamespace(
        settings=SimpleNamespace(
            llm_enabled=llm_enabled,
            nearby_radius_km=5.0,
            results_limit=10,
            schools_file=str(_FIXTURE_PATH),
            locale="ru",
        ),
        pool=None,
        llm_config=None,
        locations={},
        llm_limiter=limiter or SlidingWindowLimiter(),
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [None, "   ", "/start"])
async def test_handler_replies_usage_hint(text: str | None) -> None:
    message = _FakeMessage(text=text)

    await handle_message(message, _make_app())  # type: ignore[arg-type]

    assert message.answers == [USAGE_HINT]


@pytest.mark.asyncio
async def test_handler_replies_with_matching_schools() -> None:
    message = _FakeMessage(text="Private school in Almaty under 200000 ₸")

    await handle_message(message, _make_app())  # type: ignore[arg-type]

    assert len(message.answers) == 1
    reply = message.answers[0]
    assert "Найдено школ: 1" in reply
    assert "1. Школа Сезим, Almaty, 180 000 ₸/мес, ★ 4.7" in reply
    assert "Karaganda" not in reply


@pytest.mark.asyncio
async def test_handler_reports_no_results() -> None:
    message = _FakeMessage(text="International school in Astana")

    await handle_message(message, _make_app())  # type: ignore[arg-type]

    assert len(message.answers) == 1
    assert NO_RESULTS_REPLY in message.answers[0]


@pytest.mark.asyncio
async def test_nearby_without_location_still_searches() -> None:
    message = _FakeMessage(text="school near me in Almaty")

    await handle_message(message, _make_app())  # type: ignore[arg-type]

    assert len(message.answers) == 1
    assert LOCATION_UNAVAILABLE_MESSAGE in message.answers[0]
    assert "Школа Сезим" in message.answers[0]


@pytest.mark.asyncio
async def test_shared_location_enables_nearby_search() -> None:
    app = _make_app()
    location_message = _FakeMessage(location=SimpleNamespace(latitude=43.2230, longitude=76.8520))

    await handle_location(location_message, app)  # type: ignore[arg-type]

    assert location_message.answers == [LOCATION_SAVED_REPLY]
    assert app.locations[_CHAT_ID] == GeoPoint(43.2230, 76.8520)

    message = _FakeMessage(text="школа рядом")
    await handle_message(message, app)  # type: ignore[arg-type]

    reply = message.answers[0]
    assert LOCATION_UNAVAILABLE_MESSAGE not in reply
    assert "Найдено школ: 1" in reply
    assert "Школа Сезим" in reply


@pytest.mark.asyncio
async def test_llm_failure_note(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "school_match.bot.handlers.parse_school_query_with_source",
        lambda *_args, **_kwargs: ParseResult(filters=ParsedFilter(), source="local", llm_failed=True),
    )
    message = _FakeMessage(text="school")

    await handle_message(message, _make_app())  # type: ignore[arg-type]

    assert len(message.answers) == 1
    assert LOCAL_MATCHING_NOTE in message.answers[0]


@pytest.mark.asyncio
async def test_llm_rate_limit_falls_back_to_local_matching(monkeypatch: pytest.MonkeyPatch) -> None:
    llm_flags: list[bool] = []

    def _parse(_text: str, *, llm_enabled: bool, llm_config: Any = None) -> ParseResult:
        llm_flags.append(llm_enabled)
        return ParseResult(filters=ParsedFilter(), source="llm" if llm_enabled else "local")

    monkeypatch.setattr("school_match.bot.handlers.parse_school_query_with_source", _parse)
    app = _make_app(llm_enabled=True, limiter=SlidingWindowLimiter(max_calls=1, window_s=60.0))

    first = _FakeMessage(text="school")
    second = _FakeMessage(text="school")
    other_chat = _FakeMessage(text="school", chat_id=_CHAT_ID + 1)
    for message in (first, second, other_chat):
        await handle_message(message, app)  # type: ignore[arg-type]

    assert llm_flags == [True, False, True]
    assert LOCAL_MATCHING_NOTE not in first.answers[0]
    assert LOCAL_MATCHING_NOTE in second.answers[0]
    assert LOCAL_MATCHING_NOTE not in other_chat.answers[0]


@pytest.mark.asyncio
async def test_directory_failure_reply(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _broken_store(_app: Any) -> list[Any]:
        raise OSError("disk gone")

    monkeypatch.setattr("school_match.bot.handlers.load_school_records", _broken_store)
    message = _FakeMessage(text="school in Almaty")

    await handle_message(message, _make_app())  # type: ignore[arg-type]

    assert message.answers == [DIRECTORY_UNAVAILABLE_REPLY]


@pytest.mark.asyncio
async def test_unexpected_failure_reply(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(*_args: Any, **_kwargs: Any) -> list[Any]:
        raise RuntimeError("bug")

    monkeypatch.setattr("school_match.bot.handlers.apply_filters", _boom)
    message = _FakeMessage(text="school in Almaty")

    await handle_message(message, _make_app())  # type: ignore[arg-type]

    assert message.answers == [FAILURE_REPLY]


def test_reply_is_limited_and_summarized() -> None:
    filters = ParsedFilter(cities=["Almaty"], price_range=(0, 200_000), types=["Private"])
    records = [SimpleNamespace(name=f"School {i}", city="", monthly_fee=None, rating=None) for i in range(5)]

    reply = format_search_reply(records, filters=filters, limit=2)  # type: ignore[arg-type]

    lines = reply.splitlines()
    assert lines[0] == "Фильтры: Almaty, Private, до 200 000 ₸"
    assert lines[1] == "Найдено школ: 5 (показано 2)"
    assert lines[2:] == ["1. School 0", "2. School 1"]
