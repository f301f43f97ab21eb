"""
Command-line interface for reference data sync.

This module provides a CLI for comparing and migrating reference data
between a source and a target environment.

Available commands:
- compare: Report differences between source and target
- migrate: Sync source data into the target in four passes
- report: Render a previously saved JSON report
"""

import sys

from utils.logging import setup_logging
from utils.tracing import initialize_tracing, instrument_requests

from .commands import cmd_compare, cmd_migrate, cmd_report
from .credentials import create_services, get_credentials_from_vault_or_env
from .parser import create_parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the refsync CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Setup logging
    setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        json_format=args.log_json,
    )

    # Execute command
    if args.command in ('compare', 'migrate'):
        initialize_tracing()
        instrument_requests()

    if args.command == 'compare':
        cmd_compare(args)
    elif args.command == 'migrate':
        cmd_migrate(args)
    elif args.command == 'report':
        cmd_report(args)
    else:
        parser.print_help()
        sys.exit(1)


__all__ = [
    'main',
    'get_credentials_from_vault_or_env',
    'create_services',
    'cmd_compare',
    'cmd_migrate',
    'cmd_report',
    'create_parser',
]


if __name__ == '__main__':
    main()
