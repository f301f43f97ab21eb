"""
Logger wrapper that carries run context.
"""

import logging
from typing import Any


class ContextLogger:
    """
    Logger wrapper that adds contextual information to all log messages

    Keyword arguments passed to the log methods are added to the record as
    extra fields, on top of the bound context.

    Usage:
        logger = ContextLogger("refsync.cli", command="migrate", dry_run=True)
        table_logger = logger.bind(table="account")
        table_logger.info("Table prepared", flat_writes=12)
    """

    def __init__(self, name: str, **context):
        self.logger = logging.getLogger(name)
        self.context = context

    def bind(self, **context) -> "ContextLogger":
        """Return a logger with additional bound context."""
        bound = ContextLogger(self.logger.name, **self.context)
        bound.context.update(context)
        return bound

    def log(self, level: int, msg: str, *args, exc_info=None, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(
            level,
            msg,
            *args,
            exc_info=exc_info,
            extra={**self.context, **kwargs},
            stacklevel=3,
        )

    def debug(self, msg: str, *args, **kwargs) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info=None, **kwargs) -> None:
        self.log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def get_context(self) -> dict[str, Any]:
        return self.context.copy()
