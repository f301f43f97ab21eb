"""
Comparison and migration report generation and formatting.

This submodule turns run results into report dictionaries, with support
for multiple output formats.
"""

from .formatters import export_report_csv, export_report_json, format_report_console
from .generator import (
    ReportStatus,
    ReportType,
    format_timestamp,
    generate_comparison_report,
    generate_migration_report,
    generate_report,
)

__all__ = [
    'generate_report',
    'generate_comparison_report',
    'generate_migration_report',
    'format_timestamp',
    'ReportStatus',
    'ReportType',
    'export_report_json',
    'export_report_csv',
    'format_report_console',
]
