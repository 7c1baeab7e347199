"""Multi-key record sorting.

Rules apply in list order; the first rule whose comparison is non-zero decides.
Python's sort is stable, so records equal under every rule keep their input
order.
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import cmp_to_key
from typing import Any

from catalog_builder.core.coercion import compare_text, is_numeric, parse_date, to_number
from catalog_builder.core.logging import get_logger
from catalog_builder.core.models import Record, SortDirection
from catalog_builder.filtering.models import SortRule, SortType

logger = get_logger(__name__)


def _sign(number: float) -> int:
    return (number > 0) - (number < 0)


def _compare_dates(a: Any, b: Any) -> int:
    date_a = parse_date(a)
    date_b = parse_date(b)
    if date_a is None or date_b is None:
        # Unparseable dates sort before valid ones
        return (date_a is not None) - (date_b is not None)
    return _sign((date_a - date_b).total_seconds())


def compare_values(
    a: Any,
    b: Any,
    sort_type: SortType | str = SortType.AUTO,
    direction: SortDirection | str = SortDirection.ASC,
) -> int:
    """Three-way comparison of two field values under one sort rule.

    Absent values come first ascending and last descending, whatever the type.
    """
    ascending = direction != SortDirection.DESC

    if a is None or b is None:
        if a is None and b is None:
            return 0
        return (-1 if a is None else 1) if ascending else (1 if a is None else -1)

    if sort_type == SortType.NUMBER:
        result = _sign(to_number(a) - to_number(b))
    elif sort_type == SortType.DATE:
        result = _compare_dates(a, b)
    elif is_numeric(a) and is_numeric(b):
        result = _sign(float(a) - float(b))
    else:
        result = compare_text(a, b)

    return result if ascending else -result


def compare_records(a: Record, b: Record, sort_rules: Sequence[SortRule]) -> int:
    """Compare two records by the first rule that tells them apart."""
    for rule in sort_rules:
        result = compare_values(a.get(rule.field), b.get(rule.field), rule.type, rule.direction)
        if result != 0:
            return result
    return 0


def apply_sort(records: Sequence[Record], sort_rules: Sequence[SortRule]) -> list[Record]:
    """Return a new list ordered by the sort rules (input order kept on ties)."""
    if not sort_rules:
        return list(records)

    logger.info("sort_applied", rules=len(sort_rules), records=len(records))
    return sorted(records, key=cmp_to_key(lambda a, b: compare_records(a, b, sort_rules)))
