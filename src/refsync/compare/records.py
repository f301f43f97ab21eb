"""
Structural record comparison for audit reports.

Compares two record sets of the same table by formatted attribute values
and reports records that are new in the source, deleted from it, or
modified. Results are informational only; the migrator computes its own
typed, per-bucket diff when deciding what to write.
"""

import logging
from collections.abc import Callable, Iterable

from opentelemetry import trace

from refsync.classifier import SYSTEM_FIELDS
from refsync.metrics import COMPARISON_DIFFERENCES
from refsync.models import Record, RecordSet
from refsync.values import format_value
from utils.tracing import trace_operation

from .models import DifferenceType, FieldDifference, RecordDifference, TableComparisonResult

logger = logging.getLogger(__name__)

# Conventional display-name attributes, tried in order
NAME_ATTRIBUTES = ("name", "{type}name", "fullname", "subject", "title")


def looks_like_primary_key(field_name: str) -> bool:
    """
    Guess whether an attribute is a table's primary key from its name.

    Matches names such as ``accountid``: ending in "id", longer than two
    characters and without an underscore. This also matches ordinary
    attributes that happen to end in "id"; pass an explicit primary id
    field (or a different predicate) to compare_records to avoid that.
    """
    return (
        len(field_name) > 2
        and field_name.lower().endswith("id")
        and "_" not in field_name
    )


def get_record_name(record: Record, primary_name_field: str | None = None) -> str:
    """
    Resolve a display name for a record.

    Args:
        record: Record to name
        primary_name_field: Preferred name attribute, tried first

    Returns:
        First non-null name-like attribute rendered as text, else the id
    """
    candidates = []
    if primary_name_field:
        candidates.append(primary_name_field)
    candidates.extend(name.format(type=record.type) for name in NAME_ATTRIBUTES)

    for attribute in candidates:
        value = record.get(attribute)
        if value is not None:
            return format_value(value) or record.id

    return record.id


def build_name_lookup(records: Iterable[Record], name_field: str = "name") -> dict[str, str]:
    """Map record id to display name using the given attribute (falling back to the id)."""
    lookup = {}
    for record in records:
        value = record.get(name_field)
        lookup[record.id] = format_value(value) if value is not None else record.id
    return lookup


def record_value_text(record: Record, field_name: str) -> str | None:
    """Text used to compare one attribute: server formatting first, else format_value."""
    if field_name in record.formatted_values:
        return record.formatted_values[field_name]
    return format_value(record.get(field_name))


def should_exclude_field(
    field_name: str,
    exclude_fields: set[str],
    include_fields: set[str] | None = None,
    primary_id_field: str | None = None,
    exclude_system_fields: bool = True,
    primary_key_predicate: Callable[[str], bool] | None = looks_like_primary_key,
) -> bool:
    """
    Decide whether an attribute is left out of the field comparison.

    All name sets are expected lower-cased.
    """
    lowered = field_name.lower()

    if lowered in exclude_fields:
        return True
    if exclude_system_fields and lowered in SYSTEM_FIELDS:
        return True

    if primary_id_field:
        if lowered == primary_id_field.lower():
            return True
    elif primary_key_predicate is not None and primary_key_predicate(field_name):
        return True

    if include_fields and lowered not in include_fields:
        return True

    return False


def compare_fields(
    source: Record,
    target: Record,
    exclude: Callable[[str], bool],
) -> list[FieldDifference]:
    """Compare the union of both records' attributes with ordinal string equality."""
    names = list(source.attributes)
    names.extend(name for name in target.attributes if name not in source.attributes)

    differences = []
    for name in names:
        if exclude(name):
            continue

        source_value = record_value_text(source, name)
        target_value = record_value_text(target, name)

        if source_value != target_value:
            differences.append(FieldDifference(name, source_value, target_value))

    return differences


def compare_records(
    table_name: str,
    source_records: RecordSet,
    target_records: RecordSet,
    exclude_fields: Iterable[str] = (),
    include_fields: Iterable[str] | None = None,
    primary_name_field: str | None = None,
    primary_id_field: str | None = None,
    exclude_system_fields: bool = True,
    primary_key_predicate: Callable[[str], bool] | None = looks_like_primary_key,
) -> TableComparisonResult:
    """
    Diff two record sets of one table.

    Records only in the source are New, records only in the target are
    Deleted, and records in both with at least one differing attribute are
    Modified (with one FieldDifference per attribute). Identical records
    are omitted.

    Args:
        table_name: Table name used in the result
        source_records: Records read from the source environment
        target_records: Records read from the target environment
        exclude_fields: Attribute names left out of the comparison
        include_fields: Optional allowlist applied after exclusions
        primary_name_field: Attribute used for record display names
        primary_id_field: Primary key attribute; disables the name heuristic
        exclude_system_fields: Leave out platform audit/ownership attributes
        primary_key_predicate: Heuristic used when primary_id_field is not
            given; None disables it

    Returns:
        TableComparisonResult with New, Deleted, then Modified differences
    """
    with trace_operation(
        "compare_records",
        kind=trace.SpanKind.INTERNAL,
        table=table_name,
        source_count=len(source_records),
        target_count=len(target_records),
    ):
        result = TableComparisonResult(
            table_name=table_name,
            source_count=len(source_records),
            target_count=len(target_records),
        )

        excluded = {name.lower() for name in exclude_fields}
        included = {name.lower() for name in include_fields or ()}

        def exclude(name: str) -> bool:
            return should_exclude_field(
                name,
                excluded,
                included,
                primary_id_field=primary_id_field,
                exclude_system_fields=exclude_system_fields,
                primary_key_predicate=primary_key_predicate,
            )

        for record in source_records:
            if record.id not in target_records:
                result.differences.append(RecordDifference(
                    record_id=record.id,
                    record_name=get_record_name(record, primary_name_field),
                    difference_type=DifferenceType.NEW,
                ))

        for record in target_records:
            if record.id not in source_records:
                result.differences.append(RecordDifference(
                    record_id=record.id,
                    record_name=get_record_name(record, primary_name_field),
                    difference_type=DifferenceType.DELETED,
                ))

        for record in source_records:
            target = target_records.get(record.id)
            if target is None:
                continue

            field_differences = compare_fields(record, target, exclude)
            if field_differences:
                result.differences.append(RecordDifference(
                    record_id=record.id,
                    record_name=get_record_name(record, primary_name_field),
                    difference_type=DifferenceType.MODIFIED,
                    field_differences=field_differences,
                ))

        for difference_type, count in (
            (DifferenceType.NEW, result.new_count),
            (DifferenceType.MODIFIED, result.modified_count),
            (DifferenceType.DELETED, result.deleted_count),
        ):
            if count:
                COMPARISON_DIFFERENCES.labels(
                    table=table_name, difference_type=difference_type
                ).inc(count)

        logger.debug(
            f"Compared {table_name}: {result.new_count} new, "
            f"{result.modified_count} modified, {result.deleted_count} deleted"
        )

        return result
