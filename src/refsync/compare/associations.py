"""
Association (many-to-many) comparison.

Intersect records are reduced to (entity1 id, entity2 id) pairs and the two
environments are compared as plain sets. A pair either exists or it does
not, so there is no Modified state.
"""

import logging
from collections.abc import Iterable, Mapping

from refsync.models import Record

from .models import AssociationDifference, DifferenceType, RelationshipComparisonResult

logger = logging.getLogger(__name__)


def association_pairs(
    records: Iterable[Record], id_field1: str, id_field2: str
) -> set[tuple[str, str]]:
    """
    Reduce intersect records to a set of endpoint id pairs.

    Records missing either endpoint id are ignored.
    """
    pairs = set()
    for record in records:
        entity1_id = record.get(id_field1)
        entity2_id = record.get(id_field2)
        if entity1_id is None or entity2_id is None:
            logger.debug(f"Skipping intersect record {record.id} without both endpoint ids")
            continue
        pairs.add((str(entity1_id), str(entity2_id)))
    return pairs


def diff_pairs(
    source_pairs: set[tuple[str, str]], target_pairs: set[tuple[str, str]]
) -> tuple[set[tuple[str, str]], set[tuple[str, str]]]:
    """Return (source - target, target - source)."""
    return source_pairs - target_pairs, target_pairs - source_pairs


def compare_associations(
    relationship_name: str,
    source_associations: Iterable[Record],
    target_associations: Iterable[Record],
    id_field1: str,
    id_field2: str,
    names1: Mapping[str, str] | None = None,
    names2: Mapping[str, str] | None = None,
) -> RelationshipComparisonResult:
    """
    Compare association pairs between two environments.

    Args:
        relationship_name: Name used in the result
        source_associations: Intersect records from the source
        target_associations: Intersect records from the target
        id_field1: Intersect attribute holding the first endpoint id
        id_field2: Intersect attribute holding the second endpoint id
        names1: Display names of first-endpoint records, by id
        names2: Display names of second-endpoint records, by id

    Returns:
        RelationshipComparisonResult with New then Deleted pairs, each sorted
    """
    names1 = names1 or {}
    names2 = names2 or {}

    source_pairs = association_pairs(source_associations, id_field1, id_field2)
    target_pairs = association_pairs(target_associations, id_field1, id_field2)
    new_pairs, deleted_pairs = diff_pairs(source_pairs, target_pairs)

    result = RelationshipComparisonResult(
        relationship_name=relationship_name,
        source_count=len(source_pairs),
        target_count=len(target_pairs),
    )

    for pairs, difference_type in (
        (new_pairs, DifferenceType.NEW),
        (deleted_pairs, DifferenceType.DELETED),
    ):
        for entity1_id, entity2_id in sorted(pairs):
            result.differences.append(AssociationDifference(
                entity1_id=entity1_id,
                entity1_name=names1.get(entity1_id, entity1_id),
                entity2_id=entity2_id,
                entity2_name=names2.get(entity2_id, entity2_id),
                difference_type=difference_type,
            ))

    return result
