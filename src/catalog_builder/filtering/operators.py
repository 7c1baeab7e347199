"""Filter predicate evaluation.

`matches_filter` dispatches on the operator name. Unknown operators match
every record and log a warning.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from catalog_builder.core.coercion import is_numeric, to_number, to_text
from catalog_builder.core.errors import ValidationError
from catalog_builder.core.logging import get_logger
from catalog_builder.core.models import FilterLogic, Record
from catalog_builder.filtering.models import Filter, FilterOperator

logger = get_logger(__name__)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _loose_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str) and is_numeric(value):
        return float(value)
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Equality across loosely typed values.

    Two strings compare case-insensitively. Otherwise numbers, numeric text and
    booleans (as 1/0) compare numerically. Absent only equals absent.
    """
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return left.casefold() == right.casefold()
    if not isinstance(left, str | int | float) or not isinstance(right, str | int | float):
        return bool(left == right)
    left_number = _loose_number(left)
    right_number = _loose_number(right)
    if left_number is None or right_number is None:
        return False
    return left_number == right_number


def _is_true(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return value == 1
    return value == "true"


def _is_false(value: Any) -> bool:
    if isinstance(value, bool):
        return not value
    if isinstance(value, int | float):
        return value == 0
    return value == "false"


def _regex_matches(pattern: Any, value: Any) -> bool:
    try:
        compiled = re.compile(to_text(pattern), re.IGNORECASE)
    except re.error as e:
        logger.error("invalid_filter_regex", pattern=pattern, error=str(e))
        return False
    return compiled.search(to_text(value)) is not None


def matches_filter(record: Record, filter: Filter) -> bool:
    """Check whether one record satisfies one filter."""
    value = record.get(filter.field)
    target = filter.value
    operator = filter.operator

    if operator == FilterOperator.EQUALS:
        return loose_equals(value, target)
    if operator == FilterOperator.NOT_EQUALS:
        return not loose_equals(value, target)

    if operator in (
        FilterOperator.CONTAINS,
        FilterOperator.NOT_CONTAINS,
        FilterOperator.STARTS_WITH,
        FilterOperator.ENDS_WITH,
    ):
        text = to_text(value).casefold()
        needle = to_text(target).casefold()
        if operator == FilterOperator.CONTAINS:
            return needle in text
        if operator == FilterOperator.NOT_CONTAINS:
            return needle not in text
        if operator == FilterOperator.STARTS_WITH:
            return text.startswith(needle)
        return text.endswith(needle)

    if operator == FilterOperator.GREATER_THAN:
        return to_number(value) > to_number(target)
    if operator == FilterOperator.LESS_THAN:
        return to_number(value) < to_number(target)
    if operator == FilterOperator.GREATER_OR_EQUAL:
        return to_number(value) >= to_number(target)
    if operator == FilterOperator.LESS_OR_EQUAL:
        return to_number(value) <= to_number(target)
    if operator == FilterOperator.BETWEEN:
        number = to_number(value)
        return to_number(filter.min) <= number <= to_number(filter.max)

    if operator == FilterOperator.IS_EMPTY:
        return _is_empty(value)
    if operator == FilterOperator.IS_NOT_EMPTY:
        return not _is_empty(value)
    if operator == FilterOperator.IS_TRUE:
        return _is_true(value)
    if operator == FilterOperator.IS_FALSE:
        return _is_false(value)

    if operator == FilterOperator.REGEX:
        return _regex_matches(target, value)

    # Permissive default: unknown operators keep the record
    logger.warning("unknown_filter_operator", operator=operator, field=filter.field)
    return True


def parse_logic(logic: FilterLogic | str) -> FilterLogic:
    """Normalise "and"/"or" (any case) to a FilterLogic."""
    if isinstance(logic, FilterLogic):
        return logic
    try:
        return FilterLogic(logic.upper())
    except ValueError as e:
        raise ValidationError(f"Unknown filter logic: {logic!r} (expected AND or OR)") from e


def apply_filters(
    records: Sequence[Record],
    filters: Sequence[Filter],
    logic: FilterLogic | str = FilterLogic.AND,
) -> list[Record]:
    """Keep records matching every filter (AND) or at least one (OR).

    An empty filter list passes the input through unchanged.
    """
    if not filters:
        return list(records)

    mode = parse_logic(logic)
    combine = any if mode == FilterLogic.OR else all
    filtered = [
        record for record in records if combine(matches_filter(record, f) for f in filters)
    ]

    logger.info(
        "filters_applied",
        filters=len(filters),
        logic=mode.value,
        before=len(records),
        after=len(filtered),
    )
    return filtered
