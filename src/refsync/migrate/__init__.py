"""
Multi-phase migration of reference data to a target environment.

This submodule turns source/target differences into batched writes:
- preparer: per-table write plans (flat, reference, state buckets)
- batch: sequential batch submission with continue-on-error
- many_to_many: association pair reconciliation
- migrator: orchestration of the four passes
"""

from .batch import DEFAULT_BATCH_SIZE, BatchExecutor, Phase, chunked, execute_batches
from .many_to_many import ManyToManyReconciler, resolve_relationship
from .migrator import Migrator
from .preparer import (
    PreparedTable,
    TablePreparer,
    build_write_plan,
    has_changes,
    split_attributes,
    state_write,
)

__all__ = [
    'Migrator',
    'TablePreparer',
    'PreparedTable',
    'build_write_plan',
    'split_attributes',
    'has_changes',
    'state_write',
    'BatchExecutor',
    'execute_batches',
    'chunked',
    'Phase',
    'DEFAULT_BATCH_SIZE',
    'ManyToManyReconciler',
    'resolve_relationship',
]
