"""Process-wide logging setup."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Chatty third-party loggers never log below WARNING.
_QUIET_LOGGERS = ("aiogram.event", "psycopg.pool")


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at startup.

    Log records stay on the server: user replies never include exception text or tracebacks.
    """

    log_level = logging.getLevelName((level or os.getenv("LOG_LEVEL") or "INFO").upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO
    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
