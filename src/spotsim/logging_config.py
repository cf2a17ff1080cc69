"""
Structured logging for spotsim.

Log lines carry the fields passed through `extra=` at the call site. Fields
are cleaned before rendering: names containing a credential word are dropped,
Decimal amounts become strings so they round-trip exactly, long sequences
collapse to a count and nested mappings stop at MAX_DEPTH. Free text (the
message and any traceback) has credential-looking fragments masked.

Usage:
    setup_logging()                   # JSON lines on stderr
    setup_logging(json_format=False)  # `LEVEL    logger: msg | k=v` for terminals
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, TextIO

import orjson

CREDENTIAL_WORDS: frozenset[str] = frozenset(
    {"api_key", "api_secret", "secret", "private_key", "token", "password", "authorization", "otp"}
)
MAX_SEQUENCE_ITEMS = 10
MAX_DEPTH = 3

_MASKS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(?:api[_-]?key|apikey)[=:]\s*['\"]?[\w\-]+['\"]?", re.I), "[API_KEY]"),
    (re.compile(r"\b(?:api[_-]?secret|private[_-]?key)[=:]\s*['\"]?[\w\-+/=]+['\"]?", re.I), "[SECRET]"),
    (re.compile(r"\b(?:bearer|token)[=:\s]+['\"]?[\w\-.]+['\"]?", re.I), "[TOKEN]"),
)

# Attributes every LogRecord has; anything else arrived through `extra=`
_STANDARD_ATTRS: frozenset[str] = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_QUIET_LOGGERS = ("aiohttp", "asyncio")


def mask_text(text: str) -> str:
    """Mask credential-looking fragments in free text."""
    for pattern, mask in _MASKS:
        text = pattern.sub(mask, text)
    return text


def _is_credential(name: str) -> bool:
    lowered = name.lower()
    return any(word in lowered for word in CREDENTIAL_WORDS)


def clean_value(value: Any, depth: int = 0) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return mask_text(value)
    if isinstance(value, Mapping):
        if depth >= MAX_DEPTH:
            return {"_truncated": "max depth exceeded"}
        return clean_fields(value, depth + 1)
    if isinstance(value, (list, tuple)):
        if len(value) > MAX_SEQUENCE_ITEMS:
            return f"[list:{len(value)} items]"
        return [clean_value(v, depth) for v in value]
    return mask_text(str(value))


def clean_fields(fields: Mapping[str, Any], depth: int = 0) -> dict[str, Any]:
    """Drop credential fields and normalize the rest for rendering."""
    return {str(k): clean_value(v, depth) for k, v in fields.items() if not _is_credential(str(k))}


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Cleaned `extra=` fields of a record."""
    return clean_fields({k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS})


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, then the extra fields.

    Warnings and above also carry the source file and line.
    """

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": mask_text(record.getMessage()),
        }
        if record.levelno >= logging.WARNING:
            line["file"] = record.filename
            line["line"] = record.lineno
        if record.exc_info:
            line["exc"] = mask_text(self.formatException(record.exc_info))
        line.update(record_fields(record))
        return orjson.dumps(line, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """`LEVEL    logger: msg | k=v ...`, traceback on the following lines."""

    def format(self, record: logging.LogRecord) -> str:
        text = f"{record.levelname:<8} {record.name}: {mask_text(record.getMessage())}"
        fields = record_fields(record)
        if fields:
            text += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            text += "\n" + mask_text(self.formatException(record.exc_info))
        return text


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Install a single root handler. Safe to call more than once.

    Args:
        level: Root log level.
        json_format: JSON lines (default) or the console format.
        stream: Output stream (default stderr).
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
