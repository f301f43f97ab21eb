"""
Command-line argument parser configuration.

This module sets up the argument parser for the refsync CLI tool,
defining all commands and their options.
"""

import argparse

from refsync.models import DEFAULT_BATCH_SIZE


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    """Connection options shared by commands that talk to both environments."""
    parser.add_argument(
        '--config',
        required=True,
        help='Path to JSON configuration file'
    )
    parser.add_argument(
        '--use-vault',
        action='store_true',
        help='Fetch environment credentials from HashiCorp Vault'
    )
    parser.add_argument('--source-url', help='Source environment URL')
    parser.add_argument('--target-url', help='Target environment URL')
    parser.add_argument('--tenant-id', help='Directory (tenant) id used for both environments')
    parser.add_argument('--client-id', help='Application (client) id used for both environments')
    parser.add_argument('--client-secret', help='Client secret used for both environments')


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--output',
        help='Output file path for report'
    )
    parser.add_argument(
        '--format',
        choices=['console', 'json', 'csv'],
        default='console',
        help='Output format (default: console)'
    )


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog='refsync',
        description="Reference data comparison and migration between two environments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Compare configured tables and relationships, print to console
  refsync compare --config compare.json --source-url https://dev.crm.dynamics.com \\
      --target-url https://test.crm.dynamics.com

  # Save the comparison as CSV
  refsync compare --config compare.json --output diff.csv --format csv

  # Preview a migration without writing anything
  refsync migrate --config migrate.json --dry-run

  # Push every source record regardless of differences, 500 per batch
  refsync migrate --config migrate.json --force --batch-size 500

  # Use Vault for credentials and emit JSON logs
  refsync --log-json migrate --config migrate.json --use-vault

  # Re-render a saved JSON report on the console
  refsync report --input report.json --format console
        """
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )
    parser.add_argument(
        '--log-json',
        action='store_true',
        help='Emit structured JSON logs'
    )
    parser.add_argument(
        '--log-file',
        help='Also write logs to this file (rotated)'
    )
    parser.add_argument(
        '--metrics-port',
        type=int,
        help='Expose Prometheus metrics on this port while running'
    )
    parser.add_argument(
        '--metrics-pushgateway',
        help='Push run metrics to this Prometheus Pushgateway (host:port) when the run ends'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========== Compare command ==========
    compare_parser = subparsers.add_parser(
        'compare', help='Compare reference data between source and target'
    )
    _add_connection_arguments(compare_parser)
    _add_output_arguments(compare_parser)

    # ========== Migrate command ==========
    migrate_parser = subparsers.add_parser(
        'migrate', help='Migrate reference data from source to target'
    )
    _add_connection_arguments(migrate_parser)
    migrate_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Compute the write plan and counters without writing'
    )
    migrate_parser.add_argument(
        '--force',
        action='store_true',
        help='Skip the target diff and write every source record'
    )
    migrate_parser.add_argument(
        '--batch-size',
        type=_positive_int,
        help=f'Requests per batch (default: from config, else {DEFAULT_BATCH_SIZE})'
    )
    _add_output_arguments(migrate_parser)

    # ========== Report command ==========
    report_parser = subparsers.add_parser('report', help='Render a previously saved JSON report')
    report_parser.add_argument(
        '--input',
        required=True,
        help='Input JSON report file'
    )
    report_parser.add_argument(
        '--format',
        choices=['console', 'json', 'csv'],
        default='console',
        help='Output format (default: console)'
    )
    report_parser.add_argument(
        '--output',
        help='Output file path (required for json and csv formats)'
    )

    return parser
