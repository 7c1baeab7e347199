"""Filter and sort engine for record collections.

This module provides:
- Filter, SortRule and preset models (camelCase JSON shapes)
- Operator evaluation (`matches_filter`, `apply_filters`)
- Multi-key sorting (`compare_values`, `apply_sort`)
- FilterEngine holding the current configuration and presets
"""

from catalog_builder.filtering.engine import FilterEngine, validate_filter, validate_sort_rule
from catalog_builder.filtering.models import (
    FILTER_OPERATORS,
    Filter,
    FilterOperator,
    FilterPreset,
    FilterSortConfig,
    FilterStatistics,
    OperatorInfo,
    SortRule,
    SortType,
)
from catalog_builder.filtering.operators import (
    apply_filters,
    loose_equals,
    matches_filter,
    parse_logic,
)
from catalog_builder.filtering.sorting import apply_sort, compare_records, compare_values

__all__ = [
    # Models
    "Filter",
    "FilterOperator",
    "FilterPreset",
    "FilterSortConfig",
    "FilterStatistics",
    "OperatorInfo",
    "SortRule",
    "SortType",
    "FILTER_OPERATORS",
    # Functions
    "apply_filters",
    "apply_sort",
    "compare_records",
    "compare_values",
    "loose_equals",
    "matches_filter",
    "parse_logic",
    "validate_filter",
    "validate_sort_rule",
    # Engine
    "FilterEngine",
]
