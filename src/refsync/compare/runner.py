"""
Comparison run over every configured table and relationship.

Reads both environments, diffs each table with compare_records and each
many-to-many relationship with compare_associations, and collects the
results into a ComparisonResult. A failure on one table or relationship is
recorded on its result and the run carries on with the next one.
"""

import logging
import time

from opentelemetry import trace

from refsync.config import CompareConfig, CompareRelationshipConfig, CompareTableConfig
from refsync.service.base import RecordService, resolve_relationship
from refsync.service.fetchxml import build_fetch_xml
from utils.tracing import trace_operation

from .associations import compare_associations
from .models import ComparisonResult, RelationshipComparisonResult, TableComparisonResult
from .records import build_name_lookup, compare_records

logger = logging.getLogger(__name__)


class TableComparer:
    """
    Compares configured tables and relationships between two environments.

    Example:
        >>> comparer = TableComparer(source, target)
        >>> result = comparer.compare(load_compare_config("compare.json"))
        >>> result.has_any_differences
        True
    """

    def __init__(self, source: RecordService, target: RecordService):
        self.source = source
        self.target = target

    def compare(self, config: CompareConfig) -> ComparisonResult:
        """Compare every table, then every relationship, in configuration order."""
        with trace_operation(
            "compare",
            kind=trace.SpanKind.INTERNAL,
            table_count=len(config.tables),
            relationship_count=len(config.relationships),
        ) as span:
            started = time.monotonic()
            result = ComparisonResult(
                source_environment=self.source.environment,
                target_environment=self.target.environment,
            )

            logger.info(
                f"Comparing {len(config.tables)} table(s) and "
                f"{len(config.relationships)} relationship(s)"
            )

            for table in config.tables:
                result.table_results.append(self.compare_table(table, config))

            for relationship in config.relationships:
                result.relationship_results.append(self.compare_relationship(relationship))

            span.set_attribute("has_differences", result.has_any_differences)

            tables_with_differences = sum(1 for r in result.table_results if r.has_differences)
            relationships_with_differences = sum(
                1 for r in result.relationship_results if r.has_differences
            )
            if result.has_any_differences:
                logger.warning(
                    f"Comparison complete in {time.monotonic() - started:.2f}s: differences in "
                    f"{tables_with_differences} table(s) and "
                    f"{relationships_with_differences} relationship(s)"
                )
            else:
                logger.info(
                    f"Comparison complete in {time.monotonic() - started:.2f}s: "
                    f"all tables and relationships are in sync"
                )

            return result

    def compare_table(
        self, table: CompareTableConfig, config: CompareConfig
    ) -> TableComparisonResult:
        """Compare one table. Retrieval failures are stored on the result."""
        logger.info(f"Comparing table: {table.logical_name}")
        table_filter = table.filter if table.filter and table.filter.strip() else None

        try:
            source_records = self.source.retrieve_records(table.logical_name, table_filter)
            target_records = self.target.retrieve_records(table.logical_name, table_filter)
        except Exception as e:
            logger.error(f"  Failed to retrieve {table.logical_name}: {e}")
            return TableComparisonResult(table_name=table.label, error=str(e))

        logger.debug(
            f"  Source: {len(source_records)} record(s), Target: {len(target_records)} record(s)"
        )

        result = compare_records(
            table.logical_name,
            source_records,
            target_records,
            exclude_fields=list(config.global_exclude_fields) + list(table.exclude_fields),
            include_fields=table.include_fields or None,
            primary_name_field=table.primary_name_field,
            primary_id_field=table.primary_id_field,
            exclude_system_fields=config.exclude_system_fields,
        )
        result.table_name = table.label

        if result.has_differences:
            logger.warning(
                f"  Found differences: New={result.new_count}, "
                f"Modified={result.modified_count}, Deleted={result.deleted_count}"
            )
        else:
            logger.info("  No differences, table is in sync")

        return result

    def compare_relationship(
        self, relationship: CompareRelationshipConfig
    ) -> RelationshipComparisonResult:
        """
        Compare the association pairs of one relationship.

        Endpoint display names are looked up in the source environment.
        Failures are stored on the result.
        """
        label = relationship.label
        logger.info(f"Comparing relationship: {label}")

        try:
            metadata = resolve_relationship(relationship.to_many_to_many(), self.source)
            query = build_fetch_xml(
                metadata.intersect_entity,
                attributes=(metadata.entity1_id_field, metadata.entity2_id_field),
            )
            source_associations = self.source.retrieve_records_by_raw_query(query)
            target_associations = self.target.retrieve_records_by_raw_query(query)

            names1 = build_name_lookup(
                self.source.retrieve_records(metadata.entity1_name),
                relationship.entity1_name_field,
            )
            names2 = build_name_lookup(
                self.source.retrieve_records(metadata.entity2_name),
                relationship.entity2_name_field,
            )
        except Exception as e:
            logger.error(f"  Failed to compare relationship {label}: {e}")
            return RelationshipComparisonResult(relationship_name=label, error=str(e))

        result = compare_associations(
            label,
            source_associations,
            target_associations,
            metadata.entity1_id_field,
            metadata.entity2_id_field,
            names1,
            names2,
        )
        result.intersect_entity = metadata.intersect_entity

        if result.has_differences:
            logger.warning(
                f"  Found differences: New={result.new_count}, Deleted={result.deleted_count}"
            )
        else:
            logger.info("  No differences, relationship is in sync")

        return result
