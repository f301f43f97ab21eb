"""
Exception hierarchy for reference data synchronization.

Only ConfigurationError and PreparationError propagate out of a migration
run. Relationship resolution failures and write faults are captured as
RecordError entries on the run summary.
"""


class RefSyncError(Exception):
    """Base class for all refsync errors."""


class ConfigurationError(RefSyncError):
    """Sync configuration is missing, malformed or empty."""


class PreparationError(RefSyncError):
    """Schema or source record retrieval failed for a table."""

    def __init__(self, table_name: str, message: str):
        self.table_name = table_name
        super().__init__(f"Failed to prepare table '{table_name}': {message}")


class RelationshipResolutionError(RefSyncError):
    """Metadata for a many-to-many relationship could not be resolved."""

    def __init__(self, relationship_name: str, message: str):
        self.relationship_name = relationship_name
        super().__init__(
            f"Failed to resolve relationship '{relationship_name}': {message}"
        )


class WriteFault(RefSyncError):
    """The remote service rejected one item of a batch."""

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        self.message = message
        super().__init__(f"Write rejected for record {record_id}: {message}")
