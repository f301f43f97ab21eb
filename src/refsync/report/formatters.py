"""
Report formatting and export utilities.

This module provides functions to export comparison and migration reports
in various formats: JSON, CSV, and console/terminal output.
"""

import csv
import json
from typing import Any

from .generator import ReportType

COMPARISON_CSV_COLUMNS = [
    "Table",
    "Record ID",
    "Record Name",
    "Difference Type",
    "Field",
    "Source Value",
    "Target Value",
]

MIGRATION_CSV_COLUMNS = ["Table", "Record ID", "Phase", "Error Message"]


def export_report_json(report: dict[str, Any], output_path: str) -> None:
    """
    Export report to JSON file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2, default=str)


def export_report_csv(report: dict[str, Any], output_path: str) -> None:
    """
    Export report to CSV file

    Comparison reports get one row per discrepancy; migration reports get
    one row per record error.

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)

        if report.get("report_type") == ReportType.MIGRATION:
            writer.writerow(MIGRATION_CSV_COLUMNS)
            for error in report.get("errors", []):
                writer.writerow([
                    error.get("table_name", ""),
                    error.get("record_id", ""),
                    error.get("phase", ""),
                    error.get("message", ""),
                ])
            return

        writer.writerow(COMPARISON_CSV_COLUMNS)
        for discrepancy in report.get("discrepancies", []):
            writer.writerow([
                discrepancy.get("table", ""),
                discrepancy.get("record_id", ""),
                discrepancy.get("record_name", ""),
                discrepancy.get("difference_type", ""),
                discrepancy.get("field_name") or "",
                _csv_value(discrepancy.get("source_value")),
                _csv_value(discrepancy.get("target_value")),
            ])


def _csv_value(value: Any) -> str:
    return "(null)" if value is None else str(value)


def _header(lines: list[str], title: str, report: dict[str, Any]) -> None:
    lines.append("=" * 80)
    lines.append(title)
    lines.append("=" * 80)
    lines.append(f"Status: {report['status']}")
    lines.append(f"Timestamp: {report['timestamp']}")
    lines.append(f"Source: {report['source_environment']}")
    lines.append(f"Target: {report['target_environment']}")


def _footer(lines: list[str], report: dict[str, Any]) -> None:
    lines.append("SUMMARY")
    lines.append("-" * 80)
    lines.append(report['summary'])
    lines.append("")

    if report['recommendations']:
        lines.append("RECOMMENDATIONS")
        lines.append("-" * 80)
        for i, rec in enumerate(report['recommendations'], 1):
            lines.append(f"{i}. {rec}")
        lines.append("")

    lines.append("=" * 80)


def _format_comparison(report: dict[str, Any]) -> list[str]:
    lines: list[str] = []
    _header(lines, "REFERENCE DATA COMPARISON REPORT", report)
    lines.append(f"Tables In Sync: {report['tables_in_sync']}/{report['total_tables']}")
    lines.append(
        f"Relationships With Differences: "
        f"{report['relationships_with_differences']}/{report['total_relationships']}"
    )
    lines.append("")

    if report['tables']:
        lines.append("TABLES")
        lines.append("-" * 80)
        lines.append(
            f"{'Table':<30} {'Source':>8} {'Target':>8} {'New':>6} {'Mod':>6} {'Del':>6}"
        )
        for row in report['tables']:
            if row['error']:
                lines.append(f"{row['table']:<30} ERROR: {row['error']}")
                continue
            lines.append(
                f"{row['table']:<30} {row['source_count']:>8,} {row['target_count']:>8,} "
                f"{row['new']:>6} {row['modified']:>6} {row['deleted']:>6}"
            )
        lines.append("")

    if report['relationships']:
        lines.append("RELATIONSHIPS")
        lines.append("-" * 80)
        for row in report['relationships']:
            if row['error']:
                lines.append(f"{row['relationship']}: ERROR: {row['error']}")
                continue
            lines.append(
                f"{row['relationship']}: source {row['source_count']}, "
                f"target {row['target_count']}, new {row['new']}, deleted {row['deleted']}"
            )
        lines.append("")

    if report['discrepancies']:
        lines.append("DISCREPANCIES")
        lines.append("-" * 80)
        for disc in report['discrepancies']:
            line = f"[{disc['difference_type']}] {disc['table']}: {disc['record_name']}"
            if disc.get('field_name'):
                line += (
                    f" / {disc['field_name']}: "
                    f"{_csv_value(disc['source_value'])} -> {_csv_value(disc['target_value'])}"
                )
            lines.append(line)
        lines.append("")

    _footer(lines, report)
    return lines


def _format_migration(report: dict[str, Any]) -> list[str]:
    lines: list[str] = []
    _header(lines, "REFERENCE DATA MIGRATION REPORT", report)
    lines.append(f"Mode: {report['mode']}{' (force)' if report.get('is_force') else ''}")
    lines.append(f"Duration: {report['duration_seconds']:.2f}s")
    lines.append("")

    totals = report['totals']
    lines.append("TOTALS")
    lines.append("-" * 80)
    lines.append(f"Total Records: {totals['records']:,}")
    lines.append(f"Upserted: {totals['upserted']:,}")
    lines.append(f"Lookups Patched: {totals['lookups_patched']:,}")
    lines.append(f"State Changes: {totals['state_changes']:,}")
    lines.append(f"Skipped (unchanged): {totals['skipped']:,}")
    lines.append(f"N:N Associated: {totals['associated']:,}")
    lines.append(f"N:N Disassociated: {totals['disassociated']:,}")
    lines.append(f"Errors: {totals['errors']:,}")
    lines.append("")

    if report['tables']:
        lines.append("TABLES")
        lines.append("-" * 80)
        lines.append(
            f"{'Table':<30} {'Records':>8} {'Upsert':>7} {'Lookups':>8} "
            f"{'State':>6} {'Skip':>6} {'Errors':>7}"
        )
        for row in report['tables']:
            lines.append(
                f"{row['table']:<30} {row['source_count']:>8,} {row['upserted']:>7} "
                f"{row['lookups_patched']:>8} {row['state_changes']:>6} "
                f"{row['skipped']:>6} {row['errors']:>7}"
            )
        lines.append("")

    if report['relationships']:
        lines.append("N:N RELATIONSHIPS")
        lines.append("-" * 80)
        for row in report['relationships']:
            lines.append(
                f"{row['relationship']} ({row['entity1']} <-> {row['entity2']}): "
                f"source {row['source_count']}, associated {row['associated']}, "
                f"disassociated {row['disassociated']}, errors {row['errors']}"
            )
        lines.append("")

    if report['errors']:
        lines.append("ERRORS")
        lines.append("-" * 80)
        for error in report['errors']:
            lines.append(
                f"{error['table_name']} [{error['phase']}] {error['record_id'] or '-'}: "
                f"{error['message']}"
            )
        lines.append("")

    _footer(lines, report)
    return lines


def format_report_console(report: dict[str, Any]) -> str:
    """
    Format report for console output

    Args:
        report: Report dictionary

    Returns:
        Formatted string for console display
    """
    if report.get("report_type") == ReportType.MIGRATION:
        return "\n".join(_format_migration(report))
    return "\n".join(_format_comparison(report))
