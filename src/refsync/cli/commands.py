"""
CLI command implementations.

This module contains the implementation of the three CLI commands:
- compare: Audit differences between source and target
- migrate: Multi-phase sync of source data into the target
- report: Re-render a previously saved JSON report
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

from refsync import __version__
from refsync.compare import TableComparer
from refsync.config import load_compare_config, load_migrate_config
from refsync.errors import ConfigurationError, PreparationError
from refsync.migrate import Migrator
from refsync.report import (
    ReportStatus,
    export_report_csv,
    export_report_json,
    format_report_console,
    generate_comparison_report,
    generate_migration_report,
)
from utils.logging import ContextLogger
from utils.metrics import MetricsPublisher, SyncMetrics, initialize_metrics
from utils.tracing import shutdown_tracing

from .credentials import create_services, get_credentials_from_vault_or_env

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION_ERROR = 2


def _run_metrics(args: argparse.Namespace) -> tuple[SyncMetrics, MetricsPublisher]:
    """Run-level metrics, served with --metrics-port and pushed with --metrics-pushgateway."""
    metrics = initialize_metrics(
        port=getattr(args, "metrics_port", None),
        pushgateway=getattr(args, "metrics_pushgateway", None),
        version=__version__,
    )
    return metrics["sync"], metrics["publisher"]


def _output_report(report: dict[str, Any], args: argparse.Namespace) -> None:
    if not args.output or args.format == "console":
        print(format_report_console(report))
        return

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if args.format == "json":
        export_report_json(report, str(output_path))
    else:
        export_report_csv(report, str(output_path))
    logger.info(f"Report saved to {output_path}")


def cmd_compare(args: argparse.Namespace) -> None:
    """
    Compare reference data between source and target

    Exits 0 when everything is in sync, 1 when differences were found or the
    comparison failed, 2 on configuration errors.

    Args:
        args: Parsed command-line arguments
    """
    run_logger = ContextLogger(__name__, command="compare")
    run_logger.info("Starting reference data comparison")
    metrics, publisher = _run_metrics(args)

    try:
        config = load_compare_config(args.config)
        source_config, target_config = get_credentials_from_vault_or_env(args)
        source, target = create_services(source_config, target_config)
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(EXIT_CONFIGURATION_ERROR)

    run_logger.info(
        "Configuration loaded",
        tables=len(config.tables),
        relationships=len(config.relationships),
    )

    try:
        result = TableComparer(source, target).compare(config)
    except Exception as e:
        logger.error(f"Comparison failed: {e}")
        sys.exit(EXIT_FAILURE)
    finally:
        shutdown_tracing()

    report = generate_comparison_report(result)
    _output_report(report, args)
    metrics.record_comparison_run(result.has_any_differences)
    publisher.push(grouping_key={"command": "compare"})

    if report["status"] == ReportStatus.FAIL:
        logger.warning("Comparison found differences")
        sys.exit(EXIT_FAILURE)

    logger.info("Comparison completed: source and target are in sync")
    sys.exit(EXIT_OK)


def cmd_migrate(args: argparse.Namespace) -> None:
    """
    Migrate reference data from source to target

    Exits 0 when the run completes without errors, 1 when it completes with
    record errors or fails unexpectedly, 2 on configuration or preparation
    errors.

    Args:
        args: Parsed command-line arguments
    """
    run_logger = ContextLogger(
        __name__, command="migrate", dry_run=args.dry_run, force=args.force
    )
    run_logger.info("Starting reference data migration")
    metrics, publisher = _run_metrics(args)
    started = time.monotonic()

    try:
        config = load_migrate_config(args.config)
        source_config, target_config = get_credentials_from_vault_or_env(args)
        source, target = create_services(source_config, target_config)
        batch_size = args.batch_size or config.batch_size
        migrator = Migrator(source, target, batch_size=batch_size)
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(EXIT_CONFIGURATION_ERROR)

    run_logger = run_logger.bind(batch_size=batch_size)
    run_logger.info(
        "Configuration loaded",
        tables=len(config.tables),
        relationships=len(config.relationships),
    )

    try:
        summary = migrator.migrate(
            list(config.tables),
            list(config.relationships),
            dry_run=args.dry_run,
            force=args.force,
        )
    except (ConfigurationError, PreparationError) as e:
        logger.error(f"Migration aborted before any write: {e}")
        metrics.record_migration_run("failed", time.monotonic() - started, 0)
        publisher.push(grouping_key={"command": "migrate"})
        sys.exit(EXIT_CONFIGURATION_ERROR)
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        metrics.record_migration_run("failed", time.monotonic() - started, 0)
        publisher.push(grouping_key={"command": "migrate"})
        sys.exit(EXIT_FAILURE)
    finally:
        shutdown_tracing()

    report = generate_migration_report(summary)
    _output_report(report, args)
    metrics.record_migration_run(
        report["status"].lower(), summary.duration_seconds, summary.total_errors
    )
    publisher.push(grouping_key={"command": "migrate"})

    if summary.has_errors:
        run_logger.warning(
            f"Migration completed with {summary.total_errors} error(s)",
            status=report["status"],
        )
        sys.exit(EXIT_FAILURE)

    run_logger.info("Migration completed successfully", status=report["status"])
    sys.exit(EXIT_OK)


def cmd_report(args: argparse.Namespace) -> None:
    """
    Generate a report from a previously saved JSON report file

    Args:
        args: Parsed command-line arguments
    """
    logger.info(f"Loading report from {args.input}")

    try:
        with open(args.input, encoding='utf-8') as f:
            report = json.load(f)

        if args.format == "console":
            print(format_report_console(report))
        elif args.format == "csv":
            if not args.output:
                logger.error("Output file required for CSV format")
                sys.exit(EXIT_FAILURE)
            export_report_csv(report, args.output)
            logger.info(f"Report exported to {args.output}")
        elif args.format == "json":
            if not args.output:
                logger.error("Output file required for JSON format")
                sys.exit(EXIT_FAILURE)
            export_report_json(report, args.output)
            logger.info(f"Report exported to {args.output}")

    except (OSError, ValueError, KeyError) as e:
        logger.error(f"Failed to process report: {e}")
        sys.exit(EXIT_FAILURE)
