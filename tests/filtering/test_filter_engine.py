"""Tests for FilterEngine: configuration, presets and export."""

from __future__ import annotations

from typing import Any

import pytest

from catalog_builder.core.errors import NotFoundError, ValidationError
from catalog_builder.filtering import Filter, FilterEngine


@pytest.fixture
def engine() -> FilterEngine:
    engine = FilterEngine()
    engine.add_filter({"field": "price", "operator": "greaterThan", "value": 50})
    engine.add_sort_rule("price", "desc", "number")
    return engine


class TestFilterConfiguration:
    """Tests for adding and removing filters and sort rules."""

    def test_add_filter_from_mapping(self, engine: FilterEngine) -> None:
        assert engine.filters == [Filter(field="price", operator="greaterThan", value=50)]

    def test_add_filter_requires_field(self) -> None:
        with pytest.raises(ValidationError, match="field"):
            FilterEngine().add_filter({"operator": "equals", "value": 1})

    def test_add_filter_requires_operator(self) -> None:
        with pytest.raises(ValidationError, match="operator"):
            FilterEngine().add_filter(Filter(field="a", operator=""))

    def test_remove_filter(self, engine: FilterEngine) -> None:
        assert engine.remove_filter(5) is False
        assert engine.remove_filter(0) is True
        assert engine.filters == []

    def test_invalid_sort_direction(self) -> None:
        with pytest.raises(ValidationError):
            FilterEngine().add_sort_rule("price", "sideways")

    def test_clear(self, engine: FilterEngine) -> None:
        engine.clear_filters()
        engine.clear_sort_rules()

        assert engine.filters == []
        assert engine.sort_rules == []

    def test_apply_filters_then_sorts(
        self, engine: FilterEngine, products: list[dict[str, Any]]
    ) -> None:
        result = engine.apply(products)

        assert [r["id"] for r in result] == ["P3", "P6", "P2", "P5"]

    def test_statistics(self, engine: FilterEngine, products: list[dict[str, Any]]) -> None:
        stats = engine.get_statistics(products, engine.apply_filters(products))

        assert stats.total == 6
        assert stats.filtered == 4
        assert stats.excluded == 2
        assert stats.percentage == 66.7

    def test_statistics_empty_input(self) -> None:
        assert FilterEngine.get_statistics([], []).percentage == 0.0


class TestPresets:
    """Tests for saving and loading presets."""

    def test_preset_is_a_deep_copy(self, engine: FilterEngine) -> None:
        engine.save_preset("expensive")
        engine.filters[0].value = 1000
        engine.add_sort_rule("name")

        preset = engine.presets[0]
        assert preset.filters[0].value == 50
        assert len(preset.sort_rules) == 1

    def test_load_replaces_current(self, engine: FilterEngine) -> None:
        engine.save_preset("expensive")
        engine.clear_filters()
        engine.add_filter({"field": "stock", "operator": "isEmpty"})

        engine.load_preset("expensive")

        assert [f.field for f in engine.filters] == ["price"]
        engine.filters[0].value = 1
        assert engine.presets[0].filters[0].value == 50

    def test_same_name_replaces(self, engine: FilterEngine) -> None:
        engine.save_preset("p", "first")
        engine.save_preset("p", "second")

        assert [(p.name, p.description) for p in engine.presets] == [("p", "second")]

    def test_load_unknown(self) -> None:
        with pytest.raises(NotFoundError, match="weekly"):
            FilterEngine().load_preset("weekly")

    def test_delete(self, engine: FilterEngine) -> None:
        engine.save_preset("p")

        assert engine.delete_preset("p") is True
        assert engine.delete_preset("p") is False


class TestExportImport:
    """Tests for the exported filter/sort document."""

    def test_export_shape(self, engine: FilterEngine) -> None:
        engine.save_preset("expensive")
        document = engine.export_config()

        assert set(document) == {"version", "filters", "sortRules", "presets", "exportedAt"}
        assert document["sortRules"] == [
            {"field": "price", "direction": "desc", "type": "number"}
        ]
        assert set(document["presets"][0]) == {
            "name",
            "description",
            "filters",
            "sortRules",
            "createdAt",
        }

    def test_import_round_trip(self, engine: FilterEngine) -> None:
        engine.save_preset("expensive")
        other = FilterEngine()

        other.import_config(engine.export_config())

        assert other.filters == engine.filters
        assert other.sort_rules == engine.sort_rules
        assert [p.name for p in other.presets] == ["expensive"]

    def test_import_keeps_missing_sections(self, engine: FilterEngine) -> None:
        engine.import_config({"filters": []})

        assert engine.filters == []
        assert len(engine.sort_rules) == 1

    def test_import_rejects_bad_document(self) -> None:
        with pytest.raises(ValidationError):
            FilterEngine().import_config({"sortRules": [{"direction": "asc"}]})
