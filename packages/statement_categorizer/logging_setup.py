"""Process-wide logging for ``statement_categorizer``.

Modules log through ``get_logger("statement_categorizer.<module>")`` and never
attach handlers. The CLI calls :func:`configure_logging` once; before that the
package logger only carries a ``NullHandler``.

Environment:

- ``STATEMENT_CATEGORIZER_LOG_LEVEL``: level name or number (default INFO).
- ``STATEMENT_CATEGORIZER_LOG_FORMAT``: ``text`` (default) or ``json``, one
  object per line.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import IO, Literal

type LogFormat = Literal["text", "json"]

PACKAGE_LOGGER = "statement_categorizer"
LEVEL_ENV = "STATEMENT_CATEGORIZER_LOG_LEVEL"
FORMAT_ENV = "STATEMENT_CATEGORIZER_LOG_FORMAT"

_TEXT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


class JsonLineFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _resolve_level(level: int | str | None) -> tuple[int, str | None]:
    """Return ``(level, rejected)``; ``rejected`` is the unparsable input, if any."""

    if isinstance(level, int):
        return level, None
    raw = level if level is not None else os.getenv(LEVEL_ENV, "")
    text = raw.strip().upper()
    if not text:
        return logging.INFO, None
    if text.isdigit():
        return int(text), None
    numeric = logging.getLevelNamesMapping().get(text)
    if numeric is None:
        return logging.INFO, raw
    return numeric, None


def _resolve_format(fmt: LogFormat | None) -> LogFormat:
    value = (fmt or os.getenv(FORMAT_ENV, "")).strip().lower()
    return "json" if value == "json" else "text"


def configure_logging(
    level: int | str | None = None,
    *,
    log_format: LogFormat | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Attach the single ``StreamHandler`` to the package logger (first call only).

    ``level`` and ``log_format`` fall back to their environment variables. An
    unknown level name logs a warning and uses INFO.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved, rejected = _resolve_level(level)
    logger = logging.getLogger(PACKAGE_LOGGER)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    if _resolve_format(log_format) == "json":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Root handlers would print everything twice.
    logger.propagate = False
    _CONFIGURED = True

    if rejected is not None:
        logger.warning("logging:invalid_level value=%r using=INFO", rejected)


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["JsonLineFormatter", "LogFormat", "configure_logging", "get_logger"]
