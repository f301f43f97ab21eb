"""
Many-to-many relationship reconciliation.

Association pairs are read from the intersect table of both environments,
diffed as sets, and the target is brought in line by associating missing
pairs and disassociating pairs the source no longer has.
"""

import logging

from opentelemetry import trace

from refsync.compare.associations import association_pairs, diff_pairs
from refsync.models import ManyToManyConfig, ManyToManyMigrationResult, RecordError
from refsync.service.base import (
    AssociateRequest,
    DisassociateRequest,
    RecordService,
    resolve_relationship,
)
from refsync.service.fetchxml import build_fetch_xml
from utils.tracing import trace_operation

from .batch import BatchExecutor, Phase

logger = logging.getLogger(__name__)


class ManyToManyReconciler:
    """
    Reconciles association pairs of many-to-many relationships.

    Relationship metadata is resolved against the source environment; writes
    go to the target through the batch executor.
    """

    def __init__(
        self,
        source: RecordService,
        target: RecordService,
        executor: BatchExecutor,
        dry_run: bool = False,
    ):
        self.source = source
        self.target = target
        self.executor = executor
        self.dry_run = dry_run

    def reconcile(self, config: ManyToManyConfig) -> ManyToManyMigrationResult:
        """
        Reconcile one relationship.

        Any failure (metadata resolution or retrieval) is captured as a single
        RecordError on the returned result instead of being raised.
        """
        name = config.relationship_name
        with trace_operation(
            "reconcile_many_to_many",
            kind=trace.SpanKind.INTERNAL,
            relationship=name,
            dry_run=self.dry_run,
        ):
            logger.info(f"  Relationship: {name}")
            try:
                return self._reconcile(config)
            except Exception as e:
                logger.error(f"  Error syncing {name}: {e}")
                return ManyToManyMigrationResult(
                    relationship_name=name,
                    entity1_name=config.entity1_name or "",
                    entity2_name=config.entity2_name or "",
                    errors=[RecordError(name, "", Phase.MANY_TO_MANY, str(e))],
                )

    def _reconcile(self, config: ManyToManyConfig) -> ManyToManyMigrationResult:
        name = config.relationship_name
        metadata = resolve_relationship(config, self.source)

        result = ManyToManyMigrationResult(
            relationship_name=name,
            entity1_name=metadata.entity1_name,
            entity2_name=metadata.entity2_name,
        )

        logger.debug(
            f"    {metadata.entity1_name} <-> {metadata.entity2_name} "
            f"via {metadata.intersect_entity}"
        )

        query = build_fetch_xml(
            metadata.intersect_entity,
            attributes=(metadata.entity1_id_field, metadata.entity2_id_field),
        )
        source_pairs = association_pairs(
            self.source.retrieve_records_by_raw_query(query),
            metadata.entity1_id_field,
            metadata.entity2_id_field,
        )
        target_pairs = association_pairs(
            self.target.retrieve_records_by_raw_query(query),
            metadata.entity1_id_field,
            metadata.entity2_id_field,
        )
        result.source_count = len(source_pairs)
        result.target_existing_count = len(target_pairs)

        to_associate, to_disassociate = diff_pairs(source_pairs, target_pairs)
        to_associate = sorted(to_associate)
        to_disassociate = sorted(to_disassociate)

        logger.info(
            f"    Source: {len(source_pairs)}, Target existing: {len(target_pairs)}, "
            f"To associate: {len(to_associate)}, To disassociate: {len(to_disassociate)}"
        )

        if self.dry_run:
            result.associated = len(to_associate)
            result.disassociated = len(to_disassociate)
            logger.debug(
                f"    [DRY RUN] Would associate {len(to_associate)}, "
                f"disassociate {len(to_disassociate)}"
            )
            return result

        if to_associate:
            errors = self.executor.execute(
                to_associate,
                lambda pair: AssociateRequest(
                    name, metadata.entity1_name, pair[0], metadata.entity2_name, pair[1]
                ),
                Phase.ASSOCIATE,
                name,
            )
            result.associated = len(to_associate) - len(errors)
            result.errors.extend(errors)

        if to_disassociate:
            errors = self.executor.execute(
                to_disassociate,
                lambda pair: DisassociateRequest(
                    name, metadata.entity1_name, pair[0], metadata.entity2_name, pair[1]
                ),
                Phase.DISASSOCIATE,
                name,
            )
            result.disassociated = len(to_disassociate) - len(errors)
            result.errors.extend(errors)

        return result
