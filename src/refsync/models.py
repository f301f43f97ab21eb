"""
Data model for reference data synchronization.

Records and record sets are immutable snapshots read from one environment.
Result objects are plain accumulators owned by the step that fills them and
merged into a MigrationSummary by the migrator.
"""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any


class ValueKind:
    """Constants for attribute value kinds reported by a table schema."""

    SCALAR = "scalar"
    REFERENCE = "reference"
    CHOICE = "choice"
    MONEY = "money"
    MANAGED_BOOLEAN = "managed_boolean"

    ALL = (SCALAR, REFERENCE, CHOICE, MONEY, MANAGED_BOOLEAN)


STATE_FIELD = "statecode"
STATUS_FIELD = "statuscode"

DEFAULT_BATCH_SIZE = 1000


@dataclass(frozen=True)
class Record:
    """One row of a table, as read from one environment."""

    id: str
    type: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    # Server-side display strings (lookup names, option labels), keyed by attribute
    formatted_values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))
        object.__setattr__(
            self, "formatted_values", MappingProxyType(dict(self.formatted_values))
        )

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)


class RecordSet:
    """Unordered collection of records of one type, keyed by id."""

    def __init__(self, type: str, records: Iterable[Record] = ()):
        self.type = type
        self._records: dict[str, Record] = {}
        for record in records:
            if record.id in self._records:
                raise ValueError(f"Duplicate record id {record.id} in {type}")
            self._records[record.id] = record

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records.values())

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def get(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    def ids(self) -> set[str]:
        return set(self._records)

    def __repr__(self) -> str:
        return f"RecordSet(type={self.type!r}, count={len(self)})"


@dataclass(frozen=True)
class AttributeMetadata:
    """Schema entry for one attribute of a remote table."""

    name: str
    creatable: bool = True
    updatable: bool = True
    value_kind: str = ValueKind.SCALAR

    @property
    def writable(self) -> bool:
        return self.creatable or self.updatable


@dataclass(frozen=True)
class TableSchema:
    """Remote schema of one table."""

    type: str
    primary_key_field: str
    attributes: tuple[AttributeMetadata, ...] = ()
    primary_name_field: str | None = None

    def attribute(self, name: str) -> AttributeMetadata | None:
        lowered = name.lower()
        for attribute in self.attributes:
            if attribute.name.lower() == lowered:
                return attribute
        return None


@dataclass(frozen=True)
class ColumnClassification:
    """Partition of a table's attribute names into sync buckets."""

    table: str
    primary_key: str | None = None
    system: frozenset[str] = frozenset()
    state: frozenset[str] = frozenset()
    flat: frozenset[str] = frozenset()
    reference: frozenset[str] = frozenset()
    excluded: frozenset[str] = frozenset()
    not_writable: frozenset[str] = frozenset()

    @property
    def writable(self) -> frozenset[str]:
        """Attributes eligible for pass 1 or pass 2 writes."""
        return self.flat | self.reference

    def bucket_of(self, name: str) -> str | None:
        if self.primary_key is not None and name.lower() == self.primary_key.lower():
            return "primary_key"
        for bucket in ("system", "state", "flat", "reference", "excluded", "not_writable"):
            if name in getattr(self, bucket):
                return bucket
        return None


@dataclass(frozen=True)
class TableSyncConfig:
    """Sync settings for one table."""

    logical_name: str
    filter: str | None = None
    manage_state: bool = False
    include_fields: tuple[str, ...] = ()
    exclude_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class ManyToManyMetadata:
    """Resolved identifiers of a many-to-many relationship."""

    intersect_entity: str
    entity1_name: str
    entity1_id_field: str
    entity2_name: str
    entity2_id_field: str


@dataclass(frozen=True)
class ManyToManyConfig:
    """
    Sync settings for one many-to-many relationship.

    When intersect entity and both endpoints are given the configuration is
    used as is; otherwise the relationship is resolved from remote metadata.
    """

    relationship_name: str
    intersect_entity: str | None = None
    entity1_name: str | None = None
    entity1_id_field: str | None = None
    entity2_name: str | None = None
    entity2_id_field: str | None = None

    @property
    def is_explicit(self) -> bool:
        return all([
            self.intersect_entity,
            self.entity1_name,
            self.entity1_id_field,
            self.entity2_name,
            self.entity2_id_field,
        ])

    def to_metadata(self) -> ManyToManyMetadata:
        return ManyToManyMetadata(
            intersect_entity=self.intersect_entity,
            entity1_name=self.entity1_name,
            entity1_id_field=self.entity1_id_field,
            entity2_name=self.entity2_name,
            entity2_id_field=self.entity2_id_field,
        )


@dataclass
class WritePlan:
    """
    Planned writes for one table.

    Each bucket maps record id to the attribute subset written for that
    bucket. Insertion order follows source record order.
    """

    table: str
    primary_key_field: str
    manage_state: bool = True
    flat_writes: dict[str, dict[str, Any]] = field(default_factory=dict)
    reference_writes: dict[str, dict[str, Any]] = field(default_factory=dict)
    state_writes: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.flat_writes or self.reference_writes or self.state_writes)


@dataclass(frozen=True)
class RecordError:
    """A single per-item write failure."""

    table_name: str
    record_id: str
    phase: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "record_id": self.record_id,
            "phase": self.phase,
            "message": self.message,
        }


@dataclass
class TableMigrationResult:
    """Counters and errors for one table across all passes."""

    table_name: str
    source_count: int = 0
    target_count: int | None = None
    upserted: int = 0
    lookups_patched: int = 0
    state_changes: int = 0
    skipped: int = 0
    errors: list[RecordError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "source_count": self.source_count,
            "target_count": self.target_count,
            "upserted": self.upserted,
            "lookups_patched": self.lookups_patched,
            "state_changes": self.state_changes,
            "skipped": self.skipped,
            "error_count": len(self.errors),
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass
class ManyToManyMigrationResult:
    """Counters and errors for one many-to-many relationship."""

    relationship_name: str
    entity1_name: str = ""
    entity2_name: str = ""
    source_count: int = 0
    target_existing_count: int = 0
    associated: int = 0
    disassociated: int = 0
    errors: list[RecordError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "relationship_name": self.relationship_name,
            "entity1_name": self.entity1_name,
            "entity2_name": self.entity2_name,
            "source_count": self.source_count,
            "target_existing_count": self.target_existing_count,
            "associated": self.associated,
            "disassociated": self.disassociated,
            "error_count": len(self.errors),
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass
class MigrationSummary:
    """Aggregated outcome of one migration run."""

    source_environment: str
    target_environment: str
    is_dry_run: bool = False
    is_force: bool = False
    execution_date: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_seconds: float = 0.0
    table_results: list[TableMigrationResult] = field(default_factory=list)
    many_to_many_results: list[ManyToManyMigrationResult] = field(default_factory=list)

    @property
    def total_records(self) -> int:
        return sum(r.source_count for r in self.table_results)

    @property
    def total_upserted(self) -> int:
        return sum(r.upserted for r in self.table_results)

    @property
    def total_lookups_patched(self) -> int:
        return sum(r.lookups_patched for r in self.table_results)

    @property
    def total_state_changes(self) -> int:
        return sum(r.state_changes for r in self.table_results)

    @property
    def total_skipped(self) -> int:
        return sum(r.skipped for r in self.table_results)

    @property
    def total_associated(self) -> int:
        return sum(r.associated for r in self.many_to_many_results)

    @property
    def total_disassociated(self) -> int:
        return sum(r.disassociated for r in self.many_to_many_results)

    @property
    def total_errors(self) -> int:
        return sum(len(r.errors) for r in self.table_results) + sum(
            len(r.errors) for r in self.many_to_many_results
        )

    @property
    def has_errors(self) -> bool:
        return self.total_errors > 0

    def all_errors(self) -> list[RecordError]:
        errors: list[RecordError] = []
        for result in self.table_results:
            errors.extend(result.errors)
        for result in self.many_to_many_results:
            errors.extend(result.errors)
        return errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source_environment": self.source_environment,
            "target_environment": self.target_environment,
            "execution_date": self.execution_date.isoformat(),
            "is_dry_run": self.is_dry_run,
            "is_force": self.is_force,
            "duration_seconds": round(self.duration_seconds, 3),
            "totals": {
                "records": self.total_records,
                "upserted": self.total_upserted,
                "lookups_patched": self.total_lookups_patched,
                "state_changes": self.total_state_changes,
                "skipped": self.total_skipped,
                "associated": self.total_associated,
                "disassociated": self.total_disassociated,
                "errors": self.total_errors,
            },
            "has_errors": self.has_errors,
            "table_results": [r.to_dict() for r in self.table_results],
            "many_to_many_results": [r.to_dict() for r in self.many_to_many_results],
        }
