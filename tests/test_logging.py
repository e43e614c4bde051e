"""Tests for process logging setup."""

from __future__ import annotations

import logging

from school_match.config.logging import configure_logging


def test_third_party_loggers_stay_quiet() -> None:
    configure_logging("debug")
    assert logging.getLogger("aiogram.event").level == logging.WARNING
    assert logging.getLogger("psycopg.pool").level == logging.WARNING


def test_unknown_level_falls_back_to_info() -> None:
    configure_logging("chatty")
    assert logging.getLogger("psycopg.pool").level == logging.WARNING
