"""
Result types produced by the record and association comparators.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


class DifferenceType:
    """Constants for difference types."""

    NEW = "New"
    MODIFIED = "Modified"
    DELETED = "Deleted"


@dataclass(frozen=True)
class FieldDifference:
    """One attribute whose formatted value differs between environments."""

    field_name: str
    source_value: str | None
    target_value: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "field_name": self.field_name,
            "source_value": self.source_value,
            "target_value": self.target_value,
        }


@dataclass
class RecordDifference:
    """A record that is new, modified or deleted in the target."""

    record_id: str
    record_name: str
    difference_type: str
    field_differences: list[FieldDifference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "record_name": self.record_name,
            "difference_type": self.difference_type,
            "field_differences": [f.to_dict() for f in self.field_differences],
        }


@dataclass
class TableComparisonResult:
    """Differences found for one table."""

    table_name: str
    source_count: int = 0
    target_count: int = 0
    differences: list[RecordDifference] = field(default_factory=list)
    error: str | None = None

    def _count(self, difference_type: str) -> int:
        return sum(1 for d in self.differences if d.difference_type == difference_type)

    @property
    def new_count(self) -> int:
        return self._count(DifferenceType.NEW)

    @property
    def modified_count(self) -> int:
        return self._count(DifferenceType.MODIFIED)

    @property
    def deleted_count(self) -> int:
        return self._count(DifferenceType.DELETED)

    @property
    def has_differences(self) -> bool:
        return bool(self.differences)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "source_count": self.source_count,
            "target_count": self.target_count,
            "new_count": self.new_count,
            "modified_count": self.modified_count,
            "deleted_count": self.deleted_count,
            "has_differences": self.has_differences,
            "error": self.error,
            "differences": [d.to_dict() for d in self.differences],
        }


@dataclass(frozen=True)
class AssociationDifference:
    """An association pair present in only one environment."""

    entity1_id: str
    entity1_name: str
    entity2_id: str
    entity2_name: str
    difference_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity1_id": self.entity1_id,
            "entity1_name": self.entity1_name,
            "entity2_id": self.entity2_id,
            "entity2_name": self.entity2_name,
            "difference_type": self.difference_type,
        }


@dataclass
class RelationshipComparisonResult:
    """Association differences found for one many-to-many relationship."""

    relationship_name: str
    intersect_entity: str = ""
    source_count: int = 0
    target_count: int = 0
    differences: list[AssociationDifference] = field(default_factory=list)
    error: str | None = None

    @property
    def new_count(self) -> int:
        return sum(1 for d in self.differences if d.difference_type == DifferenceType.NEW)

    @property
    def deleted_count(self) -> int:
        return sum(1 for d in self.differences if d.difference_type == DifferenceType.DELETED)

    @property
    def has_differences(self) -> bool:
        return bool(self.differences)

    def to_dict(self) -> dict[str, Any]:
        return {
            "relationship_name": self.relationship_name,
            "intersect_entity": self.intersect_entity,
            "source_count": self.source_count,
            "target_count": self.target_count,
            "new_count": self.new_count,
            "deleted_count": self.deleted_count,
            "has_differences": self.has_differences,
            "error": self.error,
            "differences": [d.to_dict() for d in self.differences],
        }


@dataclass
class ComparisonResult:
    """Full audit of all configured tables and relationships."""

    source_environment: str
    target_environment: str
    comparison_date: datetime = field(default_factory=lambda: datetime.now(UTC))
    table_results: list[TableComparisonResult] = field(default_factory=list)
    relationship_results: list[RelationshipComparisonResult] = field(default_factory=list)

    @property
    def has_any_differences(self) -> bool:
        return any(r.has_differences for r in self.table_results) or any(
            r.has_differences for r in self.relationship_results
        )

    @property
    def has_errors(self) -> bool:
        return any(r.error for r in self.table_results) or any(
            r.error for r in self.relationship_results
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source_environment": self.source_environment,
            "target_environment": self.target_environment,
            "comparison_date": self.comparison_date.isoformat(),
            "has_any_differences": self.has_any_differences,
            "table_results": [r.to_dict() for r in self.table_results],
            "relationship_results": [r.to_dict() for r in self.relationship_results],
        }
