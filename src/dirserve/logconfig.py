"""
=============================================================================
LOGGING SETUP
=============================================================================

All modules log through the standard library `logging` package using
namespaced loggers:

    dirserve               application events (startup, errors, warnings)
    dirserve.access        one record per handled request
    dirserve.core.*        socket and connection debugging

Records carry structured key/value data in a `fields` attribute, attached
with the `with_fields()` helper:

    logger.info("Starting server", extra=with_fields(listen=":8080"))

Two output formats are provided:

    text   2024-06-10 10:55:36.123 [INFO] dirserve: Starting server listen=:8080
    json   {"time": 1718016936123, "level": "info", "logger": "dirserve",
            "message": "Starting server", "listen": ":8080"}

With format "auto", text is used when stdout is a terminal and JSON
otherwise (log collectors prefer one object per line).

=============================================================================
"""

import json
import logging
import sys
from typing import Any, Dict, Optional, TextIO


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS = ("auto", "text", "json")

TEXT_FORMAT = "%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def with_fields(**fields: Any) -> Dict[str, Dict[str, Any]]:
    """
    Build the `extra` mapping for a structured log call.

    Fields whose value is None are dropped so callers can pass optional
    values without branching.
    """
    return {"fields": {k: v for k, v in fields.items() if v is not None}}


def _format_value(value: Any) -> str:
    text = str(value)
    if not text or any(c in text for c in ' "='):
        return json.dumps(text)
    return text


class TextFormatter(logging.Formatter):
    """Human readable lines with `key=value` pairs after the message."""

    def __init__(self):
        super().__init__(fmt=TEXT_FORMAT, datefmt=TEXT_DATEFMT)

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        fields = getattr(record, "fields", None)
        if fields:
            pairs = " ".join(f"{k}={_format_value(v)}" for k, v in fields.items())
            line = f"{line} {pairs}"
        return line


class JSONFormatter(logging.Formatter):
    """One JSON object per record, structured fields merged at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": int(record.created * 1000),  # unix milliseconds
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(
    level: str = "INFO",
    fmt: str = "auto",
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        fmt: "text", "json" or "auto" (text on a terminal, JSON otherwise).
        stream: Output stream, stdout by default.

    Returns:
        The installed handler.
    """
    stream = stream or sys.stdout
    if fmt == "auto":
        isatty = getattr(stream, "isatty", None)
        fmt = "text" if isatty is not None and isatty() else "json"

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)
    logging.getLogger("dirserve").setLevel(numeric_level)
    return handler
