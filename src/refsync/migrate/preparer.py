"""
Per-table preparation of write plans.

Reads the target schema and the source (and, unless forced, target) records
for one table, classifies its columns and decides which records need a flat
write, a reference write or a state transition.
"""

import logging
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace

from refsync.classifier import classify_columns
from refsync.errors import PreparationError
from refsync.models import (
    STATE_FIELD,
    STATUS_FIELD,
    ColumnClassification,
    Record,
    RecordSet,
    TableMigrationResult,
    TableSyncConfig,
    WritePlan,
)
from refsync.service.base import RecordService
from refsync.values import choice_code, values_equal
from utils.tracing import trace_operation

logger = logging.getLogger(__name__)

DEFAULT_STATE = 0


@dataclass
class PreparedTable:
    """Write plan and initialized result for one table."""

    config: TableSyncConfig
    classification: ColumnClassification
    plan: WritePlan
    result: TableMigrationResult

    @property
    def table_name(self) -> str:
        return self.config.logical_name


def split_attributes(
    record: Record, classification: ColumnClassification
) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Split a record's writable attributes into flat and reference subsets.

    Only attributes present on the record are included. The primary key,
    state/status, system and excluded attributes are dropped.
    """
    flat_names = {name.lower() for name in classification.flat}
    reference_names = {name.lower() for name in classification.reference}

    flat: dict[str, Any] = {}
    references: dict[str, Any] = {}
    for name, value in record.attributes.items():
        lowered = name.lower()
        if lowered in flat_names:
            flat[name] = value
        elif lowered in reference_names:
            references[name] = value
    return flat, references


def has_changes(attributes: dict[str, Any], target: Record) -> bool:
    """True if any attribute differs from the target (missing counts as None)."""
    return any(
        not values_equal(value, target.get(name))
        for name, value in attributes.items()
    )


def state_write(record: Record) -> dict[str, Any] | None:
    """State/status payload for a record in a non-default state, else None."""
    state = choice_code(record.get(STATE_FIELD))
    if state is None or state == DEFAULT_STATE:
        return None
    status = choice_code(record.get(STATUS_FIELD), default=-1)
    return {STATE_FIELD: state, STATUS_FIELD: status}


def build_write_plan(
    config: TableSyncConfig,
    classification: ColumnClassification,
    primary_key_field: str,
    source_records: RecordSet,
    target_records: RecordSet | None,
    result: TableMigrationResult,
) -> WritePlan:
    """
    Compute the write plan for one table.

    When ``target_records`` is None (force mode) every source record is
    treated as new. Increments ``result.skipped`` for source records that
    need no write at all.

    Args:
        config: Table sync configuration
        classification: Column classification of the table
        primary_key_field: Primary key attribute of the table
        source_records: Records read from the source
        target_records: Records read from the target, or None when forced
        result: Result accumulator for the table

    Returns:
        WritePlan with flat, reference and state buckets
    """
    plan = WritePlan(
        table=config.logical_name,
        primary_key_field=primary_key_field,
        manage_state=config.manage_state,
    )

    for record in source_records:
        target = target_records.get(record.id) if target_records is not None else None
        is_new = target is None

        flat, references = split_attributes(record, classification)
        if is_new:
            # Nothing to clear on a record that does not exist yet
            references = {name: value for name, value in references.items() if value is not None}

        scheduled = False
        if is_new or has_changes(flat, target):
            plan.flat_writes[record.id] = flat
            scheduled = True

        if references and (is_new or has_changes(references, target)):
            plan.reference_writes[record.id] = references
            scheduled = True

        if config.manage_state:
            payload = state_write(record)
            if payload is not None:
                target_state = (
                    choice_code(target.get(STATE_FIELD), default=DEFAULT_STATE)
                    if target is not None else None
                )
                if is_new or payload[STATE_FIELD] != target_state:
                    plan.state_writes[record.id] = payload
                    scheduled = True

        if not scheduled:
            result.skipped += 1

    return plan


class TablePreparer:
    """Prepares write plans for tables using a source and a target service."""

    def __init__(self, source: RecordService, target: RecordService, force: bool = False):
        self.source = source
        self.target = target
        self.force = force

    def prepare(self, config: TableSyncConfig) -> PreparedTable:
        """
        Prepare one table.

        Raises:
            PreparationError: If schema or record retrieval fails
        """
        table_name = config.logical_name

        with trace_operation(
            "prepare_table",
            kind=trace.SpanKind.INTERNAL,
            table=table_name,
            force=self.force,
        ) as span:
            logger.info(f"Preparing table: {table_name}")
            result = TableMigrationResult(table_name=table_name)
            table_filter = config.filter if config.filter and config.filter.strip() else None

            try:
                schema = self.target.get_schema(table_name)
                classification = classify_columns(
                    schema, config.exclude_fields, config.include_fields
                )

                logger.debug(
                    f"  Primary key: {schema.primary_key_field}, "
                    f"writable columns: {len(classification.writable)}"
                )

                source_records = self.source.retrieve_records(table_name, table_filter)
                result.source_count = len(source_records)

                target_records = None
                if not self.force:
                    target_records = self.target.retrieve_records(table_name, table_filter)
                    result.target_count = len(target_records)
            except PreparationError:
                raise
            except Exception as e:
                raise PreparationError(table_name, str(e)) from e

            if target_records is None:
                logger.info(f"  Found {result.source_count} record(s)")
            else:
                logger.info(
                    f"  Found {result.source_count} source, "
                    f"{result.target_count} target record(s)"
                )

            plan = build_write_plan(
                config,
                classification,
                schema.primary_key_field,
                source_records,
                target_records,
                result,
            )

            if plan.is_empty:
                logger.info(f"  Up to date, {result.skipped} unchanged")
            elif not self.force:
                logger.info(
                    f"  Diff: {len(plan.flat_writes)} to upsert, "
                    f"{len(plan.reference_writes)} lookups to patch, "
                    f"{len(plan.state_writes)} state changes, "
                    f"{result.skipped} unchanged"
                )

            span.set_attribute("flat_writes", len(plan.flat_writes))
            span.set_attribute("reference_writes", len(plan.reference_writes))
            span.set_attribute("state_writes", len(plan.state_writes))

            return PreparedTable(
                config=config,
                classification=classification,
                plan=plan,
                result=result,
            )

