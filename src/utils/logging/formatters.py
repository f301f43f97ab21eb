"""
Log formatters for structured and console logging.

Sync runs attach context to their log records (table, phase, record id,
batch number...). The JSON formatter lifts those fields to the top level
so log aggregation can filter on them; the console formatter appends them
after the message.
"""

import json
import logging
import socket
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

# Attributes every LogRecord carries; anything else came in through ``extra``
RESERVED_ATTRIBUTES = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "asctime",
})

# Context fields promoted to the top level of JSON logs, in display order
SYNC_FIELDS = (
    "command",
    "environment",
    "table",
    "relationship",
    "phase",
    "record_id",
    "batch_number",
)


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Extra fields attached to a log record, sync fields first."""
    extras = {
        key: value
        for key, value in record.__dict__.items()
        if key not in RESERVED_ATTRIBUTES and not key.startswith("_")
    }
    ordered = {key: extras.pop(key) for key in SYNC_FIELDS if key in extras}
    ordered.update(sorted(extras.items()))
    return ordered


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging

    Emits one JSON object per record. Sync fields are top-level keys, other
    extra context goes under ``context``. Source location is only included
    for warnings and above.
    """

    def __init__(self, app_name: str = "refdata-sync", include_hostname: bool = True):
        """
        Initialize JSON formatter

        Args:
            app_name: Application name to include in logs
            include_hostname: Include hostname in log records
        """
        super().__init__()
        self.app_name = app_name
        self.hostname = socket.gethostname() if include_hostname else None

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
        }
        if self.hostname:
            log_data["hostname"] = self.hostname

        context = record_context(record)
        for key in SYNC_FIELDS:
            if key in context:
                log_data[key] = context.pop(key)
        if context:
            log_data["context"] = context

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter

    Colors the level name when writing to a terminal and appends extra
    context as ``[key=value, ...]``.
    """

    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        context = record_context(record)

        if self.use_colors and record.levelname in self.COLORS:
            # Colorized on a copy; the original record is shared by all handlers
            levelname = record.levelname
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        formatted = super().format(record)
        if context:
            formatted += " [" + ", ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return formatted
