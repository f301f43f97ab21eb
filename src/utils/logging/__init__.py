"""
Structured logging for refdata-sync

Provides console and JSON log output, run context on log records, and
masking of credentials in log output.

Usage:
    from utils.logging import setup_logging, ContextLogger

    # Setup logging (call once at application startup)
    setup_logging(level="INFO", log_file="/var/log/refsync/migrate.log")

    # Log with run context
    logger = ContextLogger(__name__, command="migrate")
    logger.info("Batch submitted", table="account", phase="Upsert (flat)")
"""

from .config import setup_logging
from .filters import SecretMaskingFilter, mask_secrets
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
    "SecretMaskingFilter",
    "mask_secrets",
]
