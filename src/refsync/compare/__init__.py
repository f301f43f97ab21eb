"""
Record and association comparison between two environments.
"""

from .associations import association_pairs, compare_associations, diff_pairs
from .models import (
    AssociationDifference,
    ComparisonResult,
    DifferenceType,
    FieldDifference,
    RecordDifference,
    RelationshipComparisonResult,
    TableComparisonResult,
)
from .records import (
    NAME_ATTRIBUTES,
    build_name_lookup,
    compare_fields,
    compare_records,
    get_record_name,
    looks_like_primary_key,
    record_value_text,
    should_exclude_field,
)
from .runner import TableComparer

__all__ = [
    'AssociationDifference',
    'ComparisonResult',
    'DifferenceType',
    'FieldDifference',
    'NAME_ATTRIBUTES',
    'RecordDifference',
    'RelationshipComparisonResult',
    'TableComparer',
    'TableComparisonResult',
    'association_pairs',
    'build_name_lookup',
    'compare_associations',
    'compare_fields',
    'compare_records',
    'diff_pairs',
    'get_record_name',
    'looks_like_primary_key',
    'record_value_text',
    'should_exclude_field',
]
