"""Grouping configuration models and group tree structures.

Configuration (levels, options, aggregations) is pydantic and round-trips
through the exported grouping document. The tree and the flattened
presentation items are derived per run and are plain dataclasses.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import Field

from catalog_builder.core.models import ConfigModel, Record, Scalar, SortDirection

# =============================================================================
# Configuration
# =============================================================================


class HeaderStyle(str, Enum):
    """Paragraph style hint for group headers."""

    HEADING1 = "heading1"
    HEADING2 = "heading2"
    HEADING3 = "heading3"
    BOLD = "bold"
    CUSTOM = "custom"


class SeparatorType(str, Enum):
    """What the placement collaborator puts between groups."""

    NONE = "none"
    LINE = "line"
    SPACE = "space"
    PAGE_BREAK = "pageBreak"


class AggregationFunction(str, Enum):
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class GroupLevel(ConfigModel):
    """One grouping key; levels are ordered outermost first."""

    field: str = Field(..., description="Record field to group by")
    sort_direction: SortDirection = Field(default=SortDirection.ASC)
    level: int = Field(default=0, ge=0, description="Position in the level list")


class GroupOptions(ConfigModel):
    """Presentation switches applied when flattening the tree."""

    show_headers: bool = True
    show_footers: bool = False
    show_item_count: bool = True
    page_break_per_group: bool = False
    header_style: HeaderStyle = HeaderStyle.HEADING1
    separator_type: SeparatorType = SeparatorType.LINE


class Aggregation(ConfigModel):
    """A per-group summary of one numeric field."""

    field: str
    function: AggregationFunction
    alias: str | None = Field(default=None, description="Result key; defaults to field_function")

    @property
    def key(self) -> str:
        return self.alias or f"{self.field}_{self.function}"


class GroupingConfig(ConfigModel):
    """Exported grouping document: ``{version, groupLevels, groupOptions, exportedAt}``."""

    version: str = "1.0"
    group_levels: list[GroupLevel] = Field(default_factory=list)
    group_options: GroupOptions = Field(default_factory=GroupOptions)
    exported_at: datetime | None = None


# =============================================================================
# Group tree
# =============================================================================

AggregateValue = float | int | None


@dataclass
class LeafGroup:
    """Deepest-level group; holds the records directly."""

    level: int
    field: str
    value: Scalar
    path: str
    records: list[Record] = field(default_factory=list)
    aggregations: dict[str, AggregateValue] = field(default_factory=dict)
    kind: Literal["leaf"] = field(default="leaf", init=False)

    @property
    def item_count(self) -> int:
        return len(self.records)


@dataclass
class BranchGroup:
    """Inner group; its records live in the subgroups only."""

    level: int
    field: str
    value: Scalar
    path: str
    subgroups: list[Group] = field(default_factory=list)
    aggregations: dict[str, AggregateValue] = field(default_factory=dict)
    kind: Literal["branch"] = field(default="branch", init=False)

    @property
    def item_count(self) -> int:
        return sum(subgroup.item_count for subgroup in self.subgroups)


Group = LeafGroup | BranchGroup


def iter_leaf_records(group: Group) -> Iterator[Record]:
    """Yield every record under a group, in tree order."""
    if isinstance(group, LeafGroup):
        yield from group.records
        return
    for subgroup in group.subgroups:
        yield from iter_leaf_records(subgroup)


# =============================================================================
# Presentation items
# =============================================================================


@dataclass
class GroupHeaderItem:
    level: int
    field: str
    value: Scalar
    item_count: int
    path: str
    page_break: bool = False
    type: Literal["group-header"] = field(default="group-header", init=False)


@dataclass
class RecordItem:
    data: Record
    group_path: str
    group_value: Scalar = None
    type: Literal["record"] = field(default="record", init=False)


@dataclass
class GroupFooterItem:
    level: int
    field: str
    value: Scalar
    item_count: int
    path: str
    type: Literal["group-footer"] = field(default="group-footer", init=False)


PresentationItem = GroupHeaderItem | RecordItem | GroupFooterItem


@dataclass
class GroupingResult:
    """Output of a grouping run: the tree and its linear rendering."""

    groups: list[Group]
    flat_list: list[PresentationItem]


@dataclass
class TocEntry:
    """One table-of-contents line for a group."""

    level: int
    title: str
    item_count: int
    page_number: int | str | None
    path: str


@dataclass
class KeyedGroup:
    """Records sharing one computed key (see ``group_by_key``)."""

    value: Scalar
    records: list[Record] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)
