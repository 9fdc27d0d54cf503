"""Logging setup for permwarden.

Environment variables:
    PW_LOG_FORMAT  -- ``json`` for one JSON object per line, ``text`` for human-readable (default).
    PW_LOG_LEVEL   -- Python log level name (default: ``INFO``).

Module loggers are named ``permwarden.<area>``.  Session and request code
passes its context through ``extra=`` using the names in
:data:`CONTEXT_FIELDS`; both formatters know how to show them.
"""

from __future__ import annotations

import logging
import os
import traceback
from typing import Any

from pythonjsonlogger.json import JsonFormatter

#: ``extra=`` keys used across the package, in display order.
CONTEXT_FIELDS: tuple[str, ...] = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "subject_id",
    "viewer_id",
    "request_seq",
)

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class StructuredJsonFormatter(JsonFormatter):
    """JSON lines with context extras at the top level.

    Exception info is emitted as a ``traceback`` list of lines rather
    than one preformatted string.
    """

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        if record.exc_info and record.exc_info[1] is not None:
            record.traceback = traceback.format_exception(*record.exc_info)
            record.exc_info = None
            record.exc_text = None
        return super().format(record)


class ContextTextFormatter(logging.Formatter):
    """Plain text, with session context appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        line = super().format(record)
        context = _context_of(record)
        # Request lines already spell these out in the message.
        context.pop("method", None)
        context.pop("path", None)
        if not context:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} ({pairs}){sep}{tail}"


def _context_of(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


def _resolve_level(name: str | None) -> int:
    name = (name or os.environ.get("PW_LOG_LEVEL") or "INFO").upper()
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else logging.INFO


def _resolve_format(fmt: str | None) -> str:
    return (fmt or os.environ.get("PW_LOG_FORMAT") or "text").lower()


def setup_logging(fmt: str | None = None, level: str | None = None) -> None:
    """Configure the root logger with a single stream handler.

    *fmt* and *level* override ``PW_LOG_FORMAT`` and ``PW_LOG_LEVEL``.
    Calling this again replaces the previous handler.
    """
    numeric_level = _resolve_level(level)
    handler = logging.StreamHandler()
    handler.setLevel(numeric_level)
    if _resolve_format(fmt) == "json":
        handler.setFormatter(StructuredJsonFormatter())
    else:
        handler.setFormatter(ContextTextFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)


def log_startup_info() -> None:
    """Log the version and the settings that shape the permission list."""
    import permwarden
    from permwarden.config import settings

    logging.getLogger("permwarden").info(
        "permwarden started",
        extra={
            "version": permwarden.__version__,
            "page_size": settings.page_size,
            "log_format": _resolve_format(None),
        },
    )
