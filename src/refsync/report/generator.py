"""
Report generation for comparison and migration runs.

Turns a ComparisonResult or a MigrationSummary into a plain report
dictionary with a status, per-table rows, the list of discrepancies or
errors, a human-readable summary and actionable recommendations. Reports
are JSON-serializable so they can be saved and re-rendered later.
"""

from datetime import datetime
from typing import Any

from refsync.compare.models import ComparisonResult
from refsync.migrate.batch import Phase
from refsync.models import MigrationSummary


class ReportType:
    """Constants for report types."""

    COMPARISON = "comparison"
    MIGRATION = "migration"


class ReportStatus:
    """Constants for report statuses."""

    PASS = "PASS"
    FAIL = "FAIL"
    NO_DATA = "NO_DATA"
    COMPLETED = "COMPLETED"
    COMPLETED_WITH_ERRORS = "COMPLETED_WITH_ERRORS"
    DRY_RUN = "DRY_RUN"


def format_timestamp(timestamp: datetime) -> str:
    """
    Format timestamp for reports

    Args:
        timestamp: DateTime object

    Returns:
        ISO 8601 formatted timestamp string
    """
    return timestamp.isoformat()


def _record_discrepancies(table_name: str, difference) -> list[dict[str, Any]]:
    """One row per differing field, or a single row for new/deleted records."""
    base = {
        "table": table_name,
        "record_id": difference.record_id,
        "record_name": difference.record_name,
        "difference_type": difference.difference_type,
    }
    if not difference.field_differences:
        return [{**base, "field_name": None, "source_value": None, "target_value": None}]
    return [
        {
            **base,
            "field_name": field.field_name,
            "source_value": field.source_value,
            "target_value": field.target_value,
        }
        for field in difference.field_differences
    ]


def _association_discrepancy(relationship_name: str, difference) -> dict[str, Any]:
    return {
        "table": relationship_name,
        "record_id": f"{difference.entity1_id}:{difference.entity2_id}",
        "record_name": f"{difference.entity1_name} <-> {difference.entity2_name}",
        "difference_type": difference.difference_type,
        "field_name": None,
        "source_value": None,
        "target_value": None,
    }


def generate_comparison_report(result: ComparisonResult) -> dict[str, Any]:
    """
    Generate a report from a comparison run

    Args:
        result: ComparisonResult of all configured tables and relationships

    Returns:
        Dictionary containing:
        - status: PASS, FAIL, or NO_DATA
        - tables / relationships: per-item counters
        - discrepancies: one row per differing field, record or pair
        - errors: tables or relationships that could not be compared
        - summary and recommendations
    """
    tables = [
        {
            "table": r.table_name,
            "source_count": r.source_count,
            "target_count": r.target_count,
            "new": r.new_count,
            "modified": r.modified_count,
            "deleted": r.deleted_count,
            "in_sync": not r.has_differences and not r.error,
            "error": r.error,
        }
        for r in result.table_results
    ]
    relationships = [
        {
            "relationship": r.relationship_name,
            "intersect_entity": r.intersect_entity,
            "source_count": r.source_count,
            "target_count": r.target_count,
            "new": r.new_count,
            "deleted": r.deleted_count,
            "in_sync": not r.has_differences and not r.error,
            "error": r.error,
        }
        for r in result.relationship_results
    ]

    discrepancies: list[dict[str, Any]] = []
    for table_result in result.table_results:
        for difference in table_result.differences:
            discrepancies.extend(_record_discrepancies(table_result.table_name, difference))
    for relationship_result in result.relationship_results:
        for difference in relationship_result.differences:
            discrepancies.append(
                _association_discrepancy(relationship_result.relationship_name, difference)
            )

    errors = [
        {"table": row["table"], "message": row["error"]} for row in tables if row["error"]
    ] + [
        {"table": row["relationship"], "message": row["error"]}
        for row in relationships if row["error"]
    ]

    tables_with_differences = sum(1 for row in tables if not row["in_sync"])
    relationships_with_differences = sum(1 for row in relationships if not row["in_sync"])

    if not tables and not relationships:
        status = ReportStatus.NO_DATA
    elif tables_with_differences or relationships_with_differences:
        status = ReportStatus.FAIL
    else:
        status = ReportStatus.PASS

    totals = {
        "new": sum(row["new"] for row in tables) + sum(row["new"] for row in relationships),
        "modified": sum(row["modified"] for row in tables),
        "deleted": (
            sum(row["deleted"] for row in tables)
            + sum(row["deleted"] for row in relationships)
        ),
    }

    return {
        "report_type": ReportType.COMPARISON,
        "status": status,
        "source_environment": result.source_environment,
        "target_environment": result.target_environment,
        "timestamp": format_timestamp(result.comparison_date),
        "total_tables": len(tables),
        "tables_in_sync": len(tables) - tables_with_differences,
        "tables_with_differences": tables_with_differences,
        "total_relationships": len(relationships),
        "relationships_with_differences": relationships_with_differences,
        "totals": totals,
        "tables": tables,
        "relationships": relationships,
        "discrepancies": discrepancies,
        "errors": errors,
        "summary": _comparison_summary(
            status, len(tables), tables_with_differences,
            len(relationships), relationships_with_differences,
        ),
        "recommendations": _comparison_recommendations(totals, errors),
    }


def _comparison_summary(
    status: str,
    total_tables: int,
    tables_with_differences: int,
    total_relationships: int,
    relationships_with_differences: int,
) -> str:
    if status == ReportStatus.NO_DATA:
        return "No comparison data available"
    if status == ReportStatus.PASS:
        return (
            f"All {total_tables} table(s) and {total_relationships} relationship(s) "
            "are in sync."
        )

    parts = []
    if tables_with_differences:
        parts.append(f"{tables_with_differences} of {total_tables} table(s)")
    if relationships_with_differences:
        parts.append(f"{relationships_with_differences} of {total_relationships} relationship(s)")
    return f"Differences found in {' and '.join(parts)}."


def _comparison_recommendations(totals: dict[str, int], errors: list[dict[str, Any]]) -> list[str]:
    recommendations = []

    if errors:
        recommendations.append(
            f"{len(errors)} table(s) or relationship(s) could not be compared. "
            "Check connectivity, permissions and configured filters."
        )

    if not (totals["new"] or totals["modified"] or totals["deleted"]):
        if not errors:
            recommendations.append("Reference data is consistent. No migration needed.")
        return recommendations

    if totals["new"] or totals["modified"]:
        recommendations.append(
            f"{totals['new']} new and {totals['modified']} modified record(s) or pair(s) "
            "exist only in the source. Run 'refsync migrate --dry-run' to preview the sync."
        )
    if totals["deleted"]:
        recommendations.append(
            f"{totals['deleted']} record(s) or pair(s) exist only in the target. "
            "Records are never deleted by migration; review them manually."
        )

    return recommendations


def generate_migration_report(summary: MigrationSummary) -> dict[str, Any]:
    """
    Generate a report from a migration run

    Args:
        summary: Finalized MigrationSummary

    Returns:
        Dictionary containing:
        - status: DRY_RUN, COMPLETED, or COMPLETED_WITH_ERRORS
        - totals: aggregated counters
        - tables / relationships: per-item counters
        - errors: every RecordError of the run
        - summary and recommendations
    """
    data = summary.to_dict()

    if summary.is_dry_run:
        status = ReportStatus.DRY_RUN
    elif summary.has_errors:
        status = ReportStatus.COMPLETED_WITH_ERRORS
    else:
        status = ReportStatus.COMPLETED

    tables = [
        {
            "table": r.table_name,
            "source_count": r.source_count,
            "target_count": r.target_count,
            "upserted": r.upserted,
            "lookups_patched": r.lookups_patched,
            "state_changes": r.state_changes,
            "skipped": r.skipped,
            "errors": len(r.errors),
        }
        for r in summary.table_results
    ]
    relationships = [
        {
            "relationship": r.relationship_name,
            "entity1": r.entity1_name,
            "entity2": r.entity2_name,
            "source_count": r.source_count,
            "target_existing_count": r.target_existing_count,
            "associated": r.associated,
            "disassociated": r.disassociated,
            "errors": len(r.errors),
        }
        for r in summary.many_to_many_results
    ]

    return {
        "report_type": ReportType.MIGRATION,
        "status": status,
        "source_environment": summary.source_environment,
        "target_environment": summary.target_environment,
        "timestamp": format_timestamp(summary.execution_date),
        "mode": "Dry Run (Preview)" if summary.is_dry_run else "Executed",
        "is_force": summary.is_force,
        "duration_seconds": data["duration_seconds"],
        "totals": data["totals"],
        "tables": tables,
        "relationships": relationships,
        "errors": [error.to_dict() for error in summary.all_errors()],
        "summary": _migration_summary(status, summary),
        "recommendations": _migration_recommendations(summary),
    }


def _migration_summary(status: str, summary: MigrationSummary) -> str:
    written = (
        f"{summary.total_upserted} upserted, {summary.total_lookups_patched} lookups patched, "
        f"{summary.total_state_changes} state change(s), "
        f"{summary.total_associated} associated, {summary.total_disassociated} disassociated"
    )
    if status == ReportStatus.DRY_RUN:
        return f"Dry run: would write {written}. {summary.total_skipped} record(s) unchanged."
    if status == ReportStatus.COMPLETED_WITH_ERRORS:
        return f"Migration completed with {summary.total_errors} error(s): {written}."
    return f"Migration completed successfully: {written}."


def _migration_recommendations(summary: MigrationSummary) -> list[str]:
    recommendations = []

    if summary.is_dry_run:
        recommendations.append("Review the planned writes, then re-run without --dry-run.")

    errors = summary.all_errors()
    if not errors:
        if not summary.is_dry_run:
            recommendations.append(
                "Run 'refsync compare' to confirm source and target are in sync."
            )
        return recommendations

    phases = sorted({error.phase for error in errors})
    recommendations.append(
        f"{len(errors)} write(s) failed in phase(s): {', '.join(phases)}. "
        "See the error list for record ids and messages."
    )

    if any(error.record_id == "" for error in errors):
        recommendations.append(
            "At least one relationship could not be synchronized at all. "
            "Check its name or configure the intersect entity explicitly."
        )

    if any(error.phase == Phase.PATCH_LOOKUPS for error in errors):
        recommendations.append(
            "Lookup patches failed; referenced records may be missing from the target "
            "or excluded from the configured tables."
        )

    recommendations.append(
        "Failed records are retried automatically on the next run since they "
        "still differ from the source."
    )

    return recommendations


def generate_report(result: ComparisonResult | MigrationSummary) -> dict[str, Any]:
    """Generate the report matching the type of run result."""
    if isinstance(result, MigrationSummary):
        return generate_migration_report(result)
    return generate_comparison_report(result)
