"""Logging bootstrap: one stderr handler, dotted event names with ``key=value`` context."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Optional, Union

from .config import LogLevel, get_settings

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Chatty third-party loggers and the floor they are held to.
_LIBRARY_LEVELS = {
    "uvicorn": None,
    "uvicorn.error": None,
    "uvicorn.access": None,
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "sqlalchemy.engine": "WARNING",
}


class ContextFormatter(logging.Formatter):
    """Appends the record's ``extra`` fields, sorted, after the message."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {key: value for key, value in vars(record).items() if key not in _RESERVED}
        if not context:
            return line
        rendered = " ".join(f"{key}={_render(value)}" for key, value in sorted(context.items()))
        head, sep, tail = line.partition("\n")
        return f"{head} {rendered}{sep}{tail}"


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(char.isspace() for char in text):
        return repr(text)
    return text


def configure_logging(level: Optional[Union[LogLevel, str]] = None) -> None:
    if level is None:
        level = get_settings().log_level
    resolved = (level.value if isinstance(level, LogLevel) else str(level)).upper()

    loggers: dict[str, dict[str, Any]] = {
        "": {"handlers": ["stderr"], "level": resolved},
    }
    for name, floor in _LIBRARY_LEVELS.items():
        loggers[name] = {"handlers": ["stderr"], "level": floor or resolved, "propagate": False}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "context": {
                    "()": ContextFormatter,
                    "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                }
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "context",
                    "level": resolved,
                }
            },
            "loggers": loggers,
        }
    )
    logging.getLogger(__name__).debug("logging.configured", extra={"level": resolved})
