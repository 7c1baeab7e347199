"""Tests for the grouping engine."""

from __future__ import annotations

from collections import Counter
from typing import Any

import pytest

from catalog_builder.core.errors import ValidationError
from catalog_builder.grouping import (
    Aggregation,
    BranchGroup,
    Group,
    GroupFooterItem,
    GroupHeaderItem,
    GroupingEngine,
    GroupLevel,
    GroupOptions,
    LeafGroup,
    RecordItem,
    calculate_aggregations,
    count_groups,
    generate_table_of_contents,
    group_by_key,
    group_records,
    iter_leaf_records,
)


def _levels(*level_keys: str) -> list[GroupLevel]:
    """'category' or 'brand:desc' -> GroupLevel list."""
    levels = []
    for index, level_key in enumerate(level_keys):
        field, _, direction = level_key.partition(":")
        levels.append(GroupLevel(field=field, sort_direction=direction or "asc", level=index))
    return levels


def _walk(groups: list[Group]) -> list[Group]:
    nodes: list[Group] = []
    for group in groups:
        nodes.append(group)
        if isinstance(group, BranchGroup):
            nodes.extend(_walk(group.subgroups))
    return nodes


LEVEL_CONFIGURATIONS = [
    ("category",),
    ("brand:desc",),
    ("category", "brand"),
    ("category:desc", "active", "brand"),
    ("stock",),
    ("missing_field", "category"),
]


class TestGroupRecords:
    """Tests for tree building."""

    def test_single_level(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, _levels("category"))

        assert [(g.value, g.item_count) for g in result.groups] == [
            ("Lighting", 3),
            ("Seating", 2),
            ("Storage", 1),
        ]
        assert all(isinstance(g, LeafGroup) for g in result.groups)

    def test_nested_levels_with_direction(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, _levels("category", "brand:desc"))

        lighting = result.groups[0]
        assert isinstance(lighting, BranchGroup)
        assert [(g.value, g.item_count) for g in lighting.subgroups] == [
            ("Lumo", 2),
            ("Brightly", 1),
        ]
        assert lighting.item_count == 3
        assert lighting.subgroups[1].path == "0.1"

    def test_records_keep_input_order_within_group(
        self, products: list[dict[str, Any]]
    ) -> None:
        result = group_records(products, _levels("category"))

        assert [r["id"] for r in iter_leaf_records(result.groups[0])] == ["P1", "P2", "P5"]

    @pytest.mark.parametrize("level_keys", LEVEL_CONFIGURATIONS)
    def test_every_record_in_exactly_one_leaf(
        self, products: list[dict[str, Any]], level_keys: tuple[str, ...]
    ) -> None:
        result = group_records(products, _levels(*level_keys))

        leaf_ids = [r["id"] for g in result.groups for r in iter_leaf_records(g)]
        assert Counter(leaf_ids) == Counter(r["id"] for r in products)

    @pytest.mark.parametrize("level_keys", LEVEL_CONFIGURATIONS)
    def test_leaf_iff_deepest_level(
        self, products: list[dict[str, Any]], level_keys: tuple[str, ...]
    ) -> None:
        result = group_records(products, _levels(*level_keys))

        for node in _walk(result.groups):
            assert isinstance(node, LeafGroup) == (node.level == len(level_keys) - 1)

    @pytest.mark.parametrize("level_keys", LEVEL_CONFIGURATIONS)
    def test_item_count_matches_flattened_records(
        self, products: list[dict[str, Any]], level_keys: tuple[str, ...]
    ) -> None:
        result = group_records(products, _levels(*level_keys))
        record_paths = [i.group_path for i in result.flat_list if isinstance(i, RecordItem)]

        for node in _walk(result.groups):
            under = [p for p in record_paths if p == node.path or p.startswith(node.path + ".")]
            assert node.item_count == len(under)

    def test_values_grouped_by_text_form(self) -> None:
        records = [{"k": 5}, {"k": "5"}, {"k": 5.0}, {"k": "6"}]

        result = group_records(records, _levels("k"))

        assert [g.item_count for g in result.groups] == [3, 1]

    def test_absent_values_form_first_group(self) -> None:
        records = [{"k": "b"}, {}, {"k": "a"}, {"k": None}]

        result = group_records(records, _levels("k"))

        assert [(g.value, g.item_count) for g in result.groups] == [
            (None, 2),
            ("a", 1),
            ("b", 1),
        ]

    def test_no_levels(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, [])

        assert result.groups == []
        assert [i.data for i in result.flat_list if isinstance(i, RecordItem)] == products
        assert all(isinstance(i, RecordItem) and i.group_path == "" for i in result.flat_list)

    def test_empty_input(self) -> None:
        result = group_records([], _levels("category"))

        assert result.groups == []
        assert result.flat_list == []

    def test_count_groups(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, _levels("category", "brand"))

        # 3 categories + Lighting(Brightly, Lumo) + Seating(Oakline, Sitwell) + Storage(Oakline)
        assert count_groups(result.groups) == 8


class TestFlatten:
    """Tests for the flattened presentation sequence."""

    def test_headers_then_records(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, _levels("category"))

        kinds = [item.type for item in result.flat_list]
        assert kinds[:5] == ["group-header", "record", "record", "record", "group-header"]
        assert "group-footer" not in kinds

    def test_footers_and_no_headers(self, products: list[dict[str, Any]]) -> None:
        options = GroupOptions(show_headers=False, show_footers=True)
        result = group_records(products, _levels("category"), options)

        footers = [i for i in result.flat_list if isinstance(i, GroupFooterItem)]
        assert not any(isinstance(i, GroupHeaderItem) for i in result.flat_list)
        assert [(f.value, f.item_count) for f in footers] == [
            ("Lighting", 3),
            ("Seating", 2),
            ("Storage", 1),
        ]
        assert isinstance(result.flat_list[3], GroupFooterItem)

    def test_nested_footer_follows_subgroups(self, products: list[dict[str, Any]]) -> None:
        options = GroupOptions(show_footers=True)
        result = group_records(products, _levels("category", "brand"), options)

        paths = [(i.type, getattr(i, "path", None)) for i in result.flat_list[:8]]
        assert paths == [
            ("group-header", "0"),
            ("group-header", "0.0"),
            ("record", None),
            ("group-footer", "0.0"),
            ("group-header", "0.1"),
            ("record", None),
            ("record", None),
            ("group-footer", "0.1"),
        ]
        assert result.flat_list[8].type == "group-footer"

    def test_page_break_only_on_outer_level(self, products: list[dict[str, Any]]) -> None:
        options = GroupOptions(page_break_per_group=True)
        result = group_records(products, _levels("category", "brand"), options)

        headers = [i for i in result.flat_list if isinstance(i, GroupHeaderItem)]
        assert all(h.page_break == (h.level == 0) for h in headers)

    def test_record_items_carry_group(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, _levels("category"))

        item = next(i for i in result.flat_list if isinstance(i, RecordItem))
        assert item.group_path == "0"
        assert item.group_value == "Lighting"
        assert item.data["id"] == "P1"


class TestAggregations:
    """Tests for calculate_aggregations."""

    def test_leaf_aggregates(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, _levels("category"))
        calculate_aggregations(
            result.groups,
            [
                Aggregation(field="price", function="sum"),
                Aggregation(field="price", function="avg", alias="avg_price"),
                Aggregation(field="stock", function="count"),
                Aggregation(field="stock", function="min"),
                Aggregation(field="stock", function="max"),
            ],
        )

        lighting, seating, _ = result.groups
        assert lighting.aggregations == {
            "price_sum": 245,
            "avg_price": pytest.approx(245 / 3),
            "stock_count": 2,
            "stock_min": 0,
            "stock_max": 12,
        }
        assert seating.aggregations["price_sum"] == 285

    def test_branch_aggregates_cover_all_leaves(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, _levels("category", "brand"))
        calculate_aggregations(result.groups, [Aggregation(field="price", function="max")])

        lighting = result.groups[0]
        assert isinstance(lighting, BranchGroup)
        assert lighting.aggregations == {"price_max": 120}
        assert [g.aggregations["price_max"] for g in lighting.subgroups] == [85, 120]

    def test_no_values(self) -> None:
        result = group_records([{"k": "a"}], _levels("k"))
        calculate_aggregations(
            result.groups,
            [Aggregation(field="price", function=f) for f in ("count", "sum", "avg", "min", "max")],
        )

        assert result.groups[0].aggregations == {
            "price_count": 0,
            "price_sum": 0,
            "price_avg": None,
            "price_min": None,
            "price_max": None,
        }

    def test_records_not_mutated(self, products: list[dict[str, Any]]) -> None:
        before = [dict(r) for r in products]
        result = group_records(products, _levels("category"))
        calculate_aggregations(result.groups, [Aggregation(field="price", function="sum")])

        assert products == before

    def test_unknown_function(self) -> None:
        with pytest.raises(ValueError):
            Aggregation(field="price", function="median")


class TestTableOfContents:
    """Tests for generate_table_of_contents."""

    def test_depth_first_entries(self, products: list[dict[str, Any]]) -> None:
        result = group_records(products, _levels("category", "brand"))

        toc = generate_table_of_contents(result.groups, {"0": 3, "Seating": 7})

        assert [(e.level, e.title, e.item_count) for e in toc[:3]] == [
            (0, "category: Lighting", 3),
            (1, "brand: Brightly", 1),
            (1, "brand: Lumo", 2),
        ]
        pages = {e.title: e.page_number for e in toc if e.level == 0}
        assert pages == {
            "category: Lighting": 3,
            "category: Seating": 7,
            "category: Storage": None,
        }


class TestGroupByKey:
    """Tests for group_by_key."""

    def test_first_seen_order(self, products: list[dict[str, Any]]) -> None:
        def band(record: dict[str, Any]) -> str:
            return "budget" if float(record["price"]) < 100 else "premium"

        groups = group_by_key(products, band)

        assert [(g.value, g.count) for g in groups] == [("budget", 3), ("premium", 3)]
        assert [r["id"] for r in groups[0].records] == ["P1", "P4", "P5"]


class TestGroupingEngine:
    """Tests for the GroupingEngine service."""

    def test_levels_numbered(self) -> None:
        engine = GroupingEngine()
        engine.add_group_level("category")
        engine.add_group_level("brand", "desc")
        engine.add_group_level("name")

        engine.remove_group_level(0)

        assert [(lvl.field, lvl.level) for lvl in engine.group_levels] == [
            ("brand", 0),
            ("name", 1),
        ]
        assert engine.remove_group_level(9) is False

    def test_add_requires_field(self) -> None:
        with pytest.raises(ValidationError):
            GroupingEngine().add_group_level("")

    def test_set_options_accepts_both_spellings(self) -> None:
        engine = GroupingEngine()
        engine.set_options(show_footers=True)
        engine.set_options(pageBreakPerGroup=True, headerStyle="bold")

        assert engine.options.show_footers is True
        assert engine.options.page_break_per_group is True
        assert engine.options.header_style == "bold"

    def test_set_options_rejects_unknown_style(self) -> None:
        with pytest.raises(ValidationError):
            GroupingEngine().set_options(header_style="comic-sans")

    def test_clear(self) -> None:
        engine = GroupingEngine()
        engine.add_group_level("category")
        engine.clear_group_levels()

        assert engine.group_levels == []

    def test_group_records_uses_configuration(self, products: list[dict[str, Any]]) -> None:
        engine = GroupingEngine()
        engine.add_group_level("category")
        engine.set_options(show_headers=False)

        result = engine.group_records(products)

        assert len(result.groups) == 3
        assert all(isinstance(i, RecordItem) for i in result.flat_list)

    def test_export_shape(self) -> None:
        engine = GroupingEngine()
        engine.add_group_level("category", "desc")

        document = engine.export_config()

        assert set(document) == {"version", "groupLevels", "groupOptions", "exportedAt"}
        assert document["groupLevels"] == [
            {"field": "category", "sortDirection": "desc", "level": 0}
        ]
        assert document["groupOptions"]["separatorType"] == "line"

    def test_import_merges_options(self) -> None:
        engine = GroupingEngine()
        engine.set_options(show_footers=True)

        engine.import_config(
            {"groupLevels": [{"field": "brand"}], "groupOptions": {"showHeaders": False}}
        )

        assert [lvl.field for lvl in engine.group_levels] == ["brand"]
        assert engine.options.show_headers is False
        assert engine.options.show_footers is True
