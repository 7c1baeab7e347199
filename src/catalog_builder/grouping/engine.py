"""Hierarchical grouping of records.

Records are stably sorted by the group level fields, then split into
contiguous runs of equal key at each level. Grouping keys are compared by
their text form, so the sort and the partition always agree.

Usage:
    engine = GroupingEngine()
    engine.add_group_level("category")
    engine.add_group_level("brand", "desc")
    result = engine.group_records(records)
    for item in result.flat_list:
        ...
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Mapping, Sequence
from functools import cmp_to_key
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from catalog_builder.core.coercion import compare_text, parse_float, to_text
from catalog_builder.core.config import Settings, get_settings
from catalog_builder.core.errors import ValidationError
from catalog_builder.core.logging import get_logger
from catalog_builder.core.models import Record, SortDirection, utc_now
from catalog_builder.grouping.models import (
    AggregateValue,
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
    KeyedGroup,
    LeafGroup,
    PresentationItem,
    RecordItem,
    TocEntry,
    iter_leaf_records,
)

logger = get_logger(__name__)


# =============================================================================
# Tree building
# =============================================================================


def _sort_by_levels(records: Sequence[Record], levels: Sequence[GroupLevel]) -> list[Record]:
    def compare(a: Record, b: Record) -> int:
        for level in levels:
            result = compare_text(to_text(a.get(level.field)), to_text(b.get(level.field)))
            if result != 0:
                return -result if level.sort_direction == SortDirection.DESC else result
        return 0

    return sorted(records, key=cmp_to_key(compare))


def _build_groups(
    records: Sequence[Record],
    levels: Sequence[GroupLevel],
    depth: int,
    parent_path: str = "",
) -> list[Group]:
    level = levels[depth]
    runs: list[tuple[Any, list[Record]]] = []
    current_key: str | None = None

    for record in records:
        value = record.get(level.field)
        key = to_text(value)
        if not runs or key != current_key:
            runs.append((value, []))
            current_key = key
        runs[-1][1].append(record)

    is_deepest = depth == len(levels) - 1
    groups: list[Group] = []
    for index, (value, members) in enumerate(runs):
        path = f"{parent_path}.{index}" if parent_path else str(index)
        if is_deepest:
            groups.append(
                LeafGroup(level=depth, field=level.field, value=value, path=path, records=members)
            )
        else:
            groups.append(
                BranchGroup(
                    level=depth,
                    field=level.field,
                    value=value,
                    path=path,
                    subgroups=_build_groups(members, levels, depth + 1, path),
                )
            )
    return groups


def flatten_groups(groups: Sequence[Group], options: GroupOptions) -> list[PresentationItem]:
    """Render a group tree as a linear header/record/footer sequence."""
    items: list[PresentationItem] = []

    for group in groups:
        if options.show_headers:
            items.append(
                GroupHeaderItem(
                    level=group.level,
                    field=group.field,
                    value=group.value,
                    item_count=group.item_count,
                    path=group.path,
                    page_break=options.page_break_per_group and group.level == 0,
                )
            )

        if isinstance(group, BranchGroup):
            items.extend(flatten_groups(group.subgroups, options))
        else:
            items.extend(
                RecordItem(data=record, group_path=group.path, group_value=group.value)
                for record in group.records
            )

        if options.show_footers:
            items.append(
                GroupFooterItem(
                    level=group.level,
                    field=group.field,
                    value=group.value,
                    item_count=group.item_count,
                    path=group.path,
                )
            )

    return items


def group_records(
    records: Sequence[Record],
    group_levels: Sequence[GroupLevel],
    options: GroupOptions | None = None,
) -> GroupingResult:
    """Group records by the given levels and flatten the result.

    With no levels the tree is empty and every record becomes an ungrouped
    record item.
    """
    options = options or GroupOptions()

    if not group_levels:
        logger.warning("no_group_levels", records=len(records))
        return GroupingResult(
            groups=[],
            flat_list=[RecordItem(data=record, group_path="") for record in records],
        )

    sorted_records = _sort_by_levels(records, group_levels)
    groups = _build_groups(sorted_records, group_levels, 0)
    flat_list = flatten_groups(groups, options)

    logger.info(
        "records_grouped",
        records=len(records),
        levels=len(group_levels),
        groups=count_groups(groups),
    )
    return GroupingResult(groups=groups, flat_list=flat_list)


def count_groups(groups: Sequence[Group]) -> int:
    """Total number of group nodes in the tree."""
    total = len(groups)
    for group in groups:
        if isinstance(group, BranchGroup):
            total += count_groups(group.subgroups)
    return total


# =============================================================================
# Aggregation and table of contents
# =============================================================================


def aggregate_values(values: Sequence[Any], function: AggregationFunction | str) -> AggregateValue:
    """Aggregate one field's values.

    Absent values are skipped; ``count`` counts the rest and the numeric
    functions use the values that parse as numbers.
    """
    try:
        function = AggregationFunction(function)
    except ValueError as e:
        raise ValidationError(f"Unknown aggregation function: {function}") from e

    present = [v for v in values if v is not None]
    if function == AggregationFunction.COUNT:
        return len(present)

    numbers = [n for n in (parse_float(v) for v in present) if n is not None]
    if function == AggregationFunction.SUM:
        return sum(numbers)
    if not numbers:
        return None
    if function == AggregationFunction.AVG:
        return sum(numbers) / len(numbers)
    if function == AggregationFunction.MIN:
        return min(numbers)
    return max(numbers)


def calculate_aggregations(
    groups: Sequence[Group], aggregations: Sequence[Aggregation]
) -> Sequence[Group]:
    """Store aggregates on every node, over all records beneath it.

    Only the group nodes are written to; the records are left untouched.
    """
    for group in groups:
        records = list(iter_leaf_records(group))
        group.aggregations = {
            agg.key: aggregate_values([r.get(agg.field) for r in records], agg.function)
            for agg in aggregations
        }
        if isinstance(group, BranchGroup):
            calculate_aggregations(group.subgroups, aggregations)
    return groups


def generate_table_of_contents(
    groups: Sequence[Group],
    page_numbers: Mapping[str, int | str] | None = None,
) -> list[TocEntry]:
    """Depth-first table of contents for a group tree.

    Page numbers are looked up by group path first, then by the group value's
    text. Groups with neither get ``None``.
    """
    page_numbers = page_numbers or {}
    entries: list[TocEntry] = []

    def walk(nodes: Sequence[Group]) -> None:
        for group in nodes:
            value_text = to_text(group.value)
            entries.append(
                TocEntry(
                    level=group.level,
                    title=f"{group.field}: {value_text}",
                    item_count=group.item_count,
                    page_number=page_numbers.get(group.path, page_numbers.get(value_text)),
                    path=group.path,
                )
            )
            if isinstance(group, BranchGroup):
                walk(group.subgroups)

    walk(groups)
    return entries


def group_by_key(
    records: Sequence[Record], key_fn: Callable[[Record], Hashable]
) -> list[KeyedGroup]:
    """Group records by a computed key, in first-seen key order.

    Unlike ``group_records`` this does not need sorted input.
    """
    buckets: dict[Hashable, KeyedGroup] = {}
    for record in records:
        key = key_fn(record)
        if key not in buckets:
            buckets[key] = KeyedGroup(value=key)
        buckets[key].records.append(record)
    return list(buckets.values())


# =============================================================================
# Service
# =============================================================================


def _merge_options(current: GroupOptions, changes: Mapping[str, Any]) -> GroupOptions:
    aliases = {info.alias: name for name, info in GroupOptions.model_fields.items() if info.alias}
    normalized = {aliases.get(key, key): value for key, value in changes.items()}
    return GroupOptions.model_validate({**current.model_dump(), **normalized})


class GroupingEngine:
    """Group level configuration plus presentation options."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.group_levels: list[GroupLevel] = []
        self.options = GroupOptions()

    def add_group_level(
        self, field: str, sort_direction: SortDirection | str = SortDirection.ASC
    ) -> GroupLevel:
        if not field:
            raise ValidationError("Group level must have a field")
        try:
            level = GroupLevel(
                field=field, sort_direction=sort_direction, level=len(self.group_levels)
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid group level: {e}") from e
        self.group_levels.append(level)
        logger.info("group_level_added", field=field, sort_direction=level.sort_direction)
        return level

    def remove_group_level(self, index: int) -> bool:
        """Remove a level and renumber the rest; False when out of range."""
        if not 0 <= index < len(self.group_levels):
            return False
        del self.group_levels[index]
        self.group_levels = [
            level.model_copy(update={"level": i}) for i, level in enumerate(self.group_levels)
        ]
        logger.info("group_level_removed", index=index)
        return True

    def clear_group_levels(self) -> None:
        self.group_levels = []
        logger.info("group_levels_cleared")

    def set_options(self, **changes: Any) -> GroupOptions:
        """Merge option changes (snake_case or camelCase names) into the current options."""
        try:
            self.options = _merge_options(self.options, changes)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid group options: {e}") from e
        logger.info("group_options_updated", changes=sorted(changes))
        return self.options

    def group_records(self, records: Sequence[Record]) -> GroupingResult:
        return group_records(records, self.group_levels, self.options)

    def export_config(self) -> dict[str, Any]:
        document = GroupingConfig(
            version=self.settings.config_version,
            group_levels=self.group_levels,
            group_options=self.options,
            exported_at=utc_now(),
        )
        return document.to_json_dict()

    def import_config(self, data: Mapping[str, Any]) -> None:
        """Load an exported grouping document.

        Levels are replaced when present; options are merged over the current ones.
        """
        levels = data.get("groupLevels", data.get("group_levels"))
        options = data.get("groupOptions", data.get("group_options"))
        try:
            if levels is not None:
                self.group_levels = [
                    GroupLevel.model_validate(level).model_copy(update={"level": i})
                    for i, level in enumerate(levels)
                ]
            if options is not None:
                self.options = _merge_options(self.options, options)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid grouping configuration: {e}") from e
        logger.info("grouping_config_imported", levels=len(self.group_levels))
