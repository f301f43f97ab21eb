"""
Multi-phase reference data migration.

A run prepares every configured table before writing anything, then
executes four passes in strict order, each over all tables:

1. flat upsert: non-reference attributes, so every row exists
2. reference patch: foreign keys, now that every target row exists
3. state transition: last, since inactive rows may reject writes
4. many-to-many reconciliation of association pairs

Per-item write faults are recorded on the owning table's result and never
abort the run. Only configuration and preparation errors propagate.
"""

import logging
import time
from contextlib import contextmanager

from opentelemetry import trace

from refsync.errors import ConfigurationError
from refsync.metrics import PHASE_DURATION
from refsync.models import (
    STATE_FIELD,
    STATUS_FIELD,
    ManyToManyConfig,
    ManyToManyMigrationResult,
    MigrationSummary,
    TableSyncConfig,
)
from refsync.service.base import RecordService, SetStateRequest, UpdateRequest, UpsertRequest
from utils.tracing import add_span_event, trace_operation

from .batch import DEFAULT_BATCH_SIZE, BatchExecutor, Phase
from .many_to_many import ManyToManyReconciler
from .preparer import PreparedTable, TablePreparer

logger = logging.getLogger(__name__)


@contextmanager
def migration_phase(title: str, phase: str):
    """Log, trace and time one migration pass."""
    logger.info(f"=== {title} ===")
    started = time.monotonic()
    with PHASE_DURATION.labels(phase=phase).time():
        with trace_operation(f"phase {phase}", phase=phase):
            add_span_event("phase_started")
            yield
            add_span_event("phase_completed")
    logger.info(f"    Completed in {time.monotonic() - started:.2f}s")


class Migrator:
    """
    Orchestrates a migration run from a source to a target environment.

    Example:
        >>> migrator = Migrator(source, target, batch_size=500)
        >>> summary = migrator.migrate(tables, relationships, dry_run=True)
        >>> summary.has_errors
        False
    """

    def __init__(
        self,
        source: RecordService,
        target: RecordService,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ConfigurationError(f"Batch size must be a positive integer, got {batch_size}")
        self.source = source
        self.target = target
        self.batch_size = batch_size

    def migrate(
        self,
        tables: list[TableSyncConfig],
        relationships: list[ManyToManyConfig] | None = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> MigrationSummary:
        """
        Run a full migration.

        Args:
            tables: Tables to synchronize, in configuration order
            relationships: Many-to-many relationships to reconcile
            dry_run: Compute the plan and counters without writing
            force: Skip target retrieval and write every source record

        Returns:
            Finalized MigrationSummary

        Raises:
            ConfigurationError: If no tables are configured
            PreparationError: If any table cannot be prepared
        """
        relationships = relationships or []
        if not tables:
            raise ConfigurationError("No tables configured for migration")

        with trace_operation(
            "migrate",
            kind=trace.SpanKind.INTERNAL,
            table_count=len(tables),
            relationship_count=len(relationships),
            dry_run=dry_run,
            force=force,
        ) as span:
            started = time.monotonic()
            summary = MigrationSummary(
                source_environment=self.source.environment,
                target_environment=self.target.environment,
                is_dry_run=dry_run,
                is_force=force,
            )

            if force:
                logger.info("Force mode enabled: all source records will be written")
            else:
                logger.info("Diff mode enabled (use --force to push all records)")

            prepared = self._prepare(tables, force)
            summary.table_results = [table.result for table in prepared]

            executor = BatchExecutor(self.target, self.batch_size)

            self._run_flat_pass(prepared, executor, dry_run)
            self._run_reference_pass(prepared, executor, dry_run)
            self._run_state_pass(prepared, executor, dry_run)
            summary.many_to_many_results = self._run_many_to_many_pass(
                relationships, executor, dry_run
            )

            summary.duration_seconds = time.monotonic() - started
            span.set_attribute("total_errors", summary.total_errors)

            logger.info(
                f"Migration {'dry run ' if dry_run else ''}completed in "
                f"{summary.duration_seconds:.2f}s: {summary.total_upserted} upserted, "
                f"{summary.total_lookups_patched} lookups patched, "
                f"{summary.total_state_changes} state changes, "
                f"{summary.total_skipped} skipped, "
                f"{summary.total_associated} associated, "
                f"{summary.total_disassociated} disassociated, "
                f"{summary.total_errors} error(s)"
            )

            return summary

    def _prepare(self, tables: list[TableSyncConfig], force: bool) -> list[PreparedTable]:
        preparer = TablePreparer(self.source, self.target, force=force)
        with PHASE_DURATION.labels(phase="prepare").time():
            started = time.monotonic()
            prepared = [preparer.prepare(config) for config in tables]
            logger.info(f"Preparation completed in {time.monotonic() - started:.2f}s")
        return prepared

    def _run_flat_pass(
        self, prepared: list[PreparedTable], executor: BatchExecutor, dry_run: bool
    ) -> None:
        with migration_phase("Pass 1: Upserting flat data", Phase.UPSERT_FLAT):
            for table in prepared:
                writes = table.plan.flat_writes
                if not writes:
                    continue

                logger.info(f"  {table.table_name} ({len(writes)} records)...")
                if dry_run:
                    table.result.upserted = len(writes)
                    logger.debug(f"    [DRY RUN] Would upsert {len(writes)} records")
                    continue

                name = table.table_name
                errors = executor.execute(
                    list(writes.items()),
                    lambda item, name=name: UpsertRequest(name, item[0], item[1]),
                    Phase.UPSERT_FLAT,
                    name,
                )
                table.result.upserted = len(writes) - len(errors)
                table.result.errors.extend(errors)

    def _run_reference_pass(
        self, prepared: list[PreparedTable], executor: BatchExecutor, dry_run: bool
    ) -> None:
        pending = [table for table in prepared if table.plan.reference_writes]
        if not pending:
            return

        with migration_phase("Pass 2: Patching lookups", Phase.PATCH_LOOKUPS):
            for table in pending:
                writes = table.plan.reference_writes
                logger.info(f"  {table.table_name} ({len(writes)} records)...")
                if dry_run:
                    table.result.lookups_patched = len(writes)
                    logger.debug(f"    [DRY RUN] Would patch lookups for {len(writes)} records")
                    continue

                name = table.table_name
                errors = executor.execute(
                    list(writes.items()),
                    lambda item, name=name: UpdateRequest(name, item[0], item[1]),
                    Phase.PATCH_LOOKUPS,
                    name,
                )
                table.result.lookups_patched = len(writes) - len(errors)
                table.result.errors.extend(errors)

    def _run_state_pass(
        self, prepared: list[PreparedTable], executor: BatchExecutor, dry_run: bool
    ) -> None:
        pending = [
            table for table in prepared
            if table.config.manage_state and table.plan.state_writes
        ]
        if not pending:
            return

        with migration_phase("Pass 3: Setting state", Phase.SET_STATE):
            for table in pending:
                writes = table.plan.state_writes
                logger.info(f"  {table.table_name} ({len(writes)} records)...")
                if dry_run:
                    table.result.state_changes = len(writes)
                    logger.debug(f"    [DRY RUN] Would set state for {len(writes)} records")
                    continue

                name = table.table_name
                errors = executor.execute(
                    list(writes.items()),
                    lambda item, name=name: SetStateRequest(
                        name, item[0], item[1][STATE_FIELD], item[1][STATUS_FIELD]
                    ),
                    Phase.SET_STATE,
                    name,
                )
                table.result.state_changes = len(writes) - len(errors)
                table.result.errors.extend(errors)

    def _run_many_to_many_pass(
        self,
        relationships: list[ManyToManyConfig],
        executor: BatchExecutor,
        dry_run: bool,
    ) -> list[ManyToManyMigrationResult]:
        if not relationships:
            return []

        reconciler = ManyToManyReconciler(self.source, self.target, executor, dry_run=dry_run)
        with migration_phase("Pass 4: Syncing N:N relationships", Phase.MANY_TO_MANY):
            return [reconciler.reconcile(config) for config in relationships]

