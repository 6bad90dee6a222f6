"""Logging setup for the gateway process.

Two output formats on stderr:

- ``text``: ``12:34:56 INFO    [repository     ] message`` for operators
- ``json``: one object per line with the ``extra`` context fields attached

Environment variables ``MIRRORHOOK_LOG_LEVEL`` and ``MIRRORHOOK_LOG_FORMAT``
provide defaults for the CLI options.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context keys passed through ``extra={...}`` across the package.
CONTEXT_FIELDS = (
    "repository",
    "change",
    "job",
    "worker",
    "attempt",
    "attempts",
    "kind",
    "event",
    "status",
    "domain",
    "owner",
)


class JSONFormatter(logging.Formatter):
    """Structured formatter: ``{"ts": ..., "level": ..., "logger": ..., "message": ...}``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Compact single-line formatter for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        module = record.name.split(".")[-1][:15]
        line = f"{time_str} {record.levelname:7} [{module:15}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: Optional[str] = None, format_type: Optional[str] = None) -> None:
    """Configure the root logger once at startup.

    Args:
        level: DEBUG, INFO, WARNING or ERROR (default ``MIRRORHOOK_LOG_LEVEL`` or INFO)
        format_type: ``text`` or ``json`` (default ``MIRRORHOOK_LOG_FORMAT`` or text)
    """
    log_level = (level or os.environ.get("MIRRORHOOK_LOG_LEVEL", "INFO")).upper()
    log_format = (format_type or os.environ.get("MIRRORHOOK_LOG_FORMAT", "text")).lower()
    numeric_level = getattr(logging, log_level, logging.INFO)

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    logging.getLogger("aiohttp.access").setLevel(max(numeric_level, logging.WARNING))
    logging.getLogger("filelock").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )


__all__ = ["HumanFormatter", "JSONFormatter", "setup_logging"]
