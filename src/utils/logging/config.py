"""
Logging configuration for refdata-sync.

Configures the root logger once per CLI invocation: console output on
stderr (stdout is reserved for reports), an optional rotating log file,
plain or JSON formatting, and secret masking on every handler.
"""

import logging
import logging.handlers
import os
import sys

from .filters import SecretMaskingFilter
from .formatters import ConsoleFormatter, JSONFormatter

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Third-party loggers that log every HTTP call at INFO/DEBUG
NOISY_LOGGERS = ("urllib3", "requests", "opentelemetry")


def _add_handler(
    root: logging.Logger,
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(SecretMaskingFilter())
    root.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_format: bool = False,
    console_output: bool = True,
    app_name: str = "refdata-sync",
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
) -> None:
    """
    Configure logging for the application

    Replaces any handlers already on the root logger, so calling it again
    (e.g. from tests) reconfigures instead of duplicating output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (if None, file logging is disabled)
        json_format: Use JSON format for both console and file logs
        console_output: Whether to log to stderr
        app_name: Application name for JSON logs
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if console_output:
        _add_handler(
            root_logger,
            logging.StreamHandler(sys.stderr),
            numeric_level,
            JSONFormatter(app_name=app_name) if json_format else ConsoleFormatter(),
        )

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        _add_handler(
            root_logger,
            logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            ),
            numeric_level,
            (
                JSONFormatter(app_name=app_name)
                if json_format
                else logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
            ),
        )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={level}, file={log_file or 'none'}, json={json_format}"
    )
