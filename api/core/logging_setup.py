"""
Logging configuration.

Call `configure_logging` once at startup. Components get their logger
passed in; they do not reach for a shared global one.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_HANDLER_NAME = "quotemanager"
APP_LOGGER_NAME = "quotemanager"


def resolve_level(level: str) -> int:
    value = logging.getLevelName((level or "").strip().upper())
    if isinstance(value, int):
        return value
    return logging.INFO


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Install a single stream handler on the root logger and return the
    application logger. Safe to call more than once.
    """
    root = logging.getLogger()
    root.setLevel(resolve_level(level))

    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    return logging.getLogger(APP_LOGGER_NAME)
