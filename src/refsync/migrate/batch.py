"""
Batched write execution with continue-on-error semantics.

Items are split into consecutive batches of at most ``batch_size`` and
submitted one at a time. A faulted item is recorded as a RecordError and
never stops the other items of its batch or the batches after it.
"""

import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

from opentelemetry import trace

from refsync.errors import WriteFault
from refsync.metrics import BATCHES_SUBMITTED, RECORD_ERRORS, RECORDS_WRITTEN
from refsync.models import DEFAULT_BATCH_SIZE, RecordError
from refsync.service.base import RecordService, WriteRequest
from utils.tracing import trace_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Phase:
    """Phase labels attached to write errors."""

    UPSERT_FLAT = "Upsert (flat)"
    PATCH_LOOKUPS = "Patch (lookups)"
    SET_STATE = "Set State"
    ASSOCIATE = "Associate"
    DISASSOCIATE = "Disassociate"
    MANY_TO_MANY = "N:N Sync"


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """Split a sequence into consecutive chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchExecutor:
    """
    Submits write requests to one target service in sequential batches.
    """

    def __init__(self, service: RecordService, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.service = service
        self.batch_size = batch_size

    def execute(
        self,
        items: Sequence[T],
        build_request: Callable[[T], WriteRequest],
        phase: str,
        table_name: str,
    ) -> list[RecordError]:
        """
        Write all items, returning one RecordError per faulted item.

        Successes are not reported individually: callers derive them as
        ``len(items) - len(errors)``.

        Args:
            items: Items to write, in submission order
            build_request: Builds the write request for one item
            phase: Phase label recorded on errors
            table_name: Table or relationship name recorded on errors

        Returns:
            List of RecordError, in item order
        """
        errors: list[RecordError] = []
        batches = chunked(items, self.batch_size)

        for number, batch in enumerate(batches, 1):
            requests = [build_request(item) for item in batch]

            logger.debug(
                f"{table_name}: executing {phase} batch {number}/{len(batches)} "
                f"({len(requests)} requests)"
            )

            with trace_operation(
                "execute_batch",
                kind=trace.SpanKind.CLIENT,
                table=table_name,
                phase=phase,
                batch_number=number,
                batch_size=len(requests),
            ) as span:
                batch_errors = self._submit(requests, phase, table_name)
                span.set_attribute("fault_count", len(batch_errors))

            BATCHES_SUBMITTED.labels(phase=phase).inc()
            succeeded = len(requests) - len(batch_errors)
            if succeeded:
                RECORDS_WRITTEN.labels(table=table_name, phase=phase).inc(succeeded)
            if batch_errors:
                RECORD_ERRORS.labels(table=table_name, phase=phase).inc(len(batch_errors))

            errors.extend(batch_errors)

        return errors

    def _submit(
        self, requests: list[WriteRequest], phase: str, table_name: str
    ) -> list[RecordError]:
        try:
            response = self.service.execute_batch(requests, continue_on_error=True)
        except Exception as e:
            # The whole batch failed to submit; every item in it is a fault
            logger.error(
                f"{table_name}: {phase} batch of {len(requests)} failed to submit: {e}"
            )
            return [
                RecordError(table_name, request.record_id, phase, str(e))
                for request in requests
            ]

        if not response.faulted:
            return []

        errors = []
        for item in response.faults:
            if not 0 <= item.index < len(requests):
                logger.warning(f"{table_name}: fault for unknown batch index {item.index}")
                continue
            fault = WriteFault(requests[item.index].record_id, item.fault_message)
            logger.warning(f"{table_name}: {phase} error: {fault}")
            errors.append(RecordError(table_name, fault.record_id, phase, fault.message))

        return errors


def execute_batches(
    service: RecordService,
    items: Sequence[T],
    batch_size: int,
    build_request: Callable[[T], WriteRequest],
    phase: str,
    table_name: str,
) -> list[RecordError]:
    """Convenience wrapper around BatchExecutor.execute."""
    return BatchExecutor(service, batch_size).execute(items, build_request, phase, table_name)
