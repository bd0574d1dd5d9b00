from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Any, Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "subscription_id",
    "collection",
    "query",
    "range",
    "limit",
    "reading_count",
    "listener_count",
    "doc_id",
    "field",
    "reason",
)

# Chatty third-party loggers that only matter when something goes wrong.
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_configured = False


def _render_value(value: Any) -> str:
    text = str(value)
    if not text or any(char.isspace() for char in text):
        return repr(text)
    return text


class ContextualFormatter(logging.Formatter):
    """Append whitelisted ``extra`` attributes to each record as ``key=value``.

    Values containing whitespace, such as query descriptions, are quoted so
    each pair stays unambiguous.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{key}={_render_value(getattr(record, key))}"
            for key in self._extra_keys
            if getattr(record, key, None) is not None
        ]
        if context:
            return f"{message} | {' '.join(context)}"
        return message


def configure_logging(level: str | int | None = None) -> None:
    """Configure application-wide logging with contextual formatting.

    Uvicorn's server logger is routed through the same handler so that server
    and dashboard output share one format.
    """
    global _configured
    if _configured:
        return

    log_level = level if level is not None else get_settings().log_level
    loggers = {
        name: {"handlers": ["default"], "level": "WARNING", "propagate": False}
        for name in _QUIET_LOGGERS
    }
    loggers["uvicorn"] = {"handlers": ["default"], "level": log_level, "propagate": False}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ %(levelname)-7s %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": loggers,
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
