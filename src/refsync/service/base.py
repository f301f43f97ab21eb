"""
Remote record service contract.

Defines the write request types submitted in batches and the abstract
RecordService the comparator and migrator talk to.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from refsync.errors import RelationshipResolutionError
from refsync.models import ManyToManyConfig, ManyToManyMetadata, RecordSet, TableSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpsertRequest:
    """Create the record if missing, otherwise update the given attributes."""

    type: str
    id: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def record_id(self) -> str:
        return self.id


@dataclass(frozen=True)
class UpdateRequest:
    """Update attributes of an existing record."""

    type: str
    id: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def record_id(self) -> str:
        return self.id


@dataclass(frozen=True)
class SetStateRequest:
    """Transition a record to a state/status pair."""

    type: str
    id: str
    state: int
    status: int = -1

    @property
    def record_id(self) -> str:
        return self.id


@dataclass(frozen=True)
class AssociateRequest:
    """Link two records through a many-to-many relationship."""

    relationship: str
    entity1_type: str
    entity1_id: str
    entity2_type: str
    entity2_id: str

    @property
    def record_id(self) -> str:
        return self.entity1_id


@dataclass(frozen=True)
class DisassociateRequest:
    """Remove the link between two records of a many-to-many relationship."""

    relationship: str
    entity1_type: str
    entity1_id: str
    entity2_type: str
    entity2_id: str

    @property
    def record_id(self) -> str:
        return self.entity1_id


WriteRequest = (
    UpsertRequest | UpdateRequest | SetStateRequest | AssociateRequest | DisassociateRequest
)


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of one request within a batch, by position."""

    index: int
    fault_message: str | None = None

    @property
    def faulted(self) -> bool:
        return self.fault_message is not None


@dataclass
class BatchResponse:
    """Outcome of one composite batch request."""

    faulted: bool = False
    results: list[BatchItemResult] = field(default_factory=list)

    @property
    def faults(self) -> list[BatchItemResult]:
        return [result for result in self.results if result.faulted]


class RecordService(ABC):
    """
    Abstract client for one environment of the remote record service.

    Implementations must submit batches synchronously and honor
    continue_on_error: a fault in one item never prevents the remaining
    items of the same batch from being attempted.
    """

    environment: str = ""

    @abstractmethod
    def retrieve_records(self, type: str, filter: str | None = None) -> RecordSet:
        """Retrieve all records of a table, optionally filtered."""

    @abstractmethod
    def retrieve_records_by_raw_query(self, query: str) -> RecordSet:
        """Retrieve records using a raw FetchXML query (intersect tables)."""

    @abstractmethod
    def get_schema(self, type: str) -> TableSchema:
        """Retrieve the schema (primary key and attributes) of a table."""

    @abstractmethod
    def execute_batch(
        self, requests: Sequence[WriteRequest], continue_on_error: bool = True
    ) -> BatchResponse:
        """Submit a composite write request."""

    @abstractmethod
    def resolve_many_to_many_metadata(self, relationship_name: str) -> ManyToManyMetadata:
        """Resolve intersect entity and endpoints of a many-to-many relationship."""


def resolve_relationship(
    config: ManyToManyConfig, metadata_service: RecordService
) -> ManyToManyMetadata:
    """
    Resolve intersect entity and endpoints of a relationship.

    Explicit configuration wins; otherwise the remote metadata is queried.

    Raises:
        RelationshipResolutionError: If the metadata lookup fails
    """
    if config.is_explicit:
        logger.debug(f"  Using explicit relationship fields for {config.relationship_name}")
        return config.to_metadata()

    try:
        return metadata_service.resolve_many_to_many_metadata(config.relationship_name)
    except RelationshipResolutionError:
        raise
    except Exception as e:
        raise RelationshipResolutionError(config.relationship_name, str(e)) from e
