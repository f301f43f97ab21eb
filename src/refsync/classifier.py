"""
Column classification for table synchronization.

Partitions the attributes of a remote table schema into the buckets the
migrator writes independently: flat values (pass 1), references (pass 2)
and state/status (pass 3). System metadata, configured exclusions and
read-only attributes never reach any write.
"""

import logging
from collections.abc import Iterable

from .models import (
    STATE_FIELD,
    STATUS_FIELD,
    ColumnClassification,
    TableSchema,
    ValueKind,
)

logger = logging.getLogger(__name__)

# Platform-maintained audit and ownership attributes
SYSTEM_FIELDS = frozenset({
    "createdby",
    "createdon",
    "createdonbehalfby",
    "modifiedby",
    "modifiedon",
    "modifiedonbehalfby",
    "ownerid",
    "owninguser",
    "owningteam",
    "owningbusinessunit",
    "versionnumber",
    "importsequencenumber",
    "overriddencreatedon",
    "timezoneruleversionnumber",
    "utcconversiontimezonecode",
})

STATE_FIELDS = frozenset({STATE_FIELD, STATUS_FIELD})


def is_system_field(name: str) -> bool:
    return name.lower() in SYSTEM_FIELDS


def is_state_field(name: str) -> bool:
    return name.lower() in STATE_FIELDS


def _lowered(names: Iterable[str] | None) -> set[str]:
    return {name.lower() for name in names or ()}


def classify_columns(
    schema: TableSchema,
    exclude_fields: Iterable[str] | None = None,
    include_fields: Iterable[str] | None = None,
) -> ColumnClassification:
    """
    Classify every attribute of a table schema into exactly one bucket.

    Checks are applied in order: primary key, system metadata, state/status,
    configured exclusion (exclude list, then include allowlist), remote
    writability, and finally reference versus flat by value kind. Name
    matching is case-insensitive.

    Args:
        schema: Remote schema of the table
        exclude_fields: Attribute names never to synchronize
        include_fields: Optional allowlist; empty means all attributes

    Returns:
        ColumnClassification with mutually exclusive buckets
    """
    excluded_names = _lowered(exclude_fields)
    included_names = _lowered(include_fields)
    primary_key = schema.primary_key_field.lower()

    buckets: dict[str, set[str]] = {
        "system": set(),
        "state": set(),
        "flat": set(),
        "reference": set(),
        "excluded": set(),
        "not_writable": set(),
    }

    for attribute in schema.attributes:
        name = attribute.name
        lowered = name.lower()

        if lowered == primary_key:
            continue
        if lowered in SYSTEM_FIELDS:
            buckets["system"].add(name)
        elif lowered in STATE_FIELDS:
            buckets["state"].add(name)
        elif lowered in excluded_names:
            buckets["excluded"].add(name)
        elif included_names and lowered not in included_names:
            buckets["excluded"].add(name)
        elif not attribute.writable:
            buckets["not_writable"].add(name)
        elif attribute.value_kind == ValueKind.REFERENCE:
            buckets["reference"].add(name)
        else:
            buckets["flat"].add(name)

    classification = ColumnClassification(
        table=schema.type,
        primary_key=schema.primary_key_field,
        **{bucket: frozenset(names) for bucket, names in buckets.items()},
    )

    logger.debug(
        f"Classified {schema.type}: {len(classification.flat)} flat, "
        f"{len(classification.reference)} reference, "
        f"{len(classification.state)} state, "
        f"{len(classification.excluded)} excluded, "
        f"{len(classification.not_writable)} not writable"
    )

    return classification
