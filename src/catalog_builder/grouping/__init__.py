"""Hierarchical grouping engine.

Partitions records into a group tree by successive key fields, flattens the
tree into presentation items and computes per-group aggregates.
"""

from catalog_builder.grouping.engine import (
    GroupingEngine,
    aggregate_values,
    calculate_aggregations,
    count_groups,
    flatten_groups,
    generate_table_of_contents,
    group_by_key,
    group_records,
)
from catalog_builder.grouping.models import (
    Aggregation,
    AggregationFunction,
    BranchGroup,
    Group,
    GroupFooterItem,
    GroupHeaderItem,
    GroupingConfig,
    GroupingResult,
    GroupLevel,
    GroupOptions,
    HeaderStyle,
    KeyedGroup,
    LeafGroup,
    PresentationItem,
    RecordItem,
    SeparatorType,
    TocEntry,
    iter_leaf_records,
)

__all__ = [
    # Configuration
    "Aggregation",
    "AggregationFunction",
    "GroupingConfig",
    "GroupLevel",
    "GroupOptions",
    "HeaderStyle",
    "SeparatorType",
    # Tree and items
    "BranchGroup",
    "Group",
    "GroupFooterItem",
    "GroupHeaderItem",
    "GroupingResult",
    "KeyedGroup",
    "LeafGroup",
    "PresentationItem",
    "RecordItem",
    "TocEntry",
    # Functions
    "aggregate_values",
    "calculate_aggregations",
    "count_groups",
    "flatten_groups",
    "generate_table_of_contents",
    "group_by_key",
    "group_records",
    "iter_leaf_records",
    # Engine
    "GroupingEngine",
]
