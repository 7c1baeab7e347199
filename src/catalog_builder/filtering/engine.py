"""Filter and sort engine.

Holds the current filter list, sort rules and named presets for one host
session and applies them to record collections.

Usage:
    engine = FilterEngine()
    engine.add_filter({"field": "price", "operator": "greaterThan", "value": 10})
    engine.add_sort_rule("category", "asc")
    visible = engine.apply(records, "AND")
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from catalog_builder.core.config import Settings, get_settings
from catalog_builder.core.errors import NotFoundError, ValidationError
from catalog_builder.core.logging import get_logger
from catalog_builder.core.models import FilterLogic, Record, SortDirection, utc_now
from catalog_builder.filtering.models import (
    Filter,
    FilterPreset,
    FilterSortConfig,
    FilterStatistics,
    SortRule,
    SortType,
)
from catalog_builder.filtering.operators import apply_filters
from catalog_builder.filtering.sorting import apply_sort

logger = get_logger(__name__)


def validate_filter(filter: Filter | Mapping[str, Any]) -> Filter:
    """Build a Filter and check it names a field and an operator.

    Raises:
        ValidationError: if the field or operator is missing
    """
    if isinstance(filter, Mapping):
        if not filter.get("field"):
            raise ValidationError("Filter must have a field")
        if not filter.get("operator"):
            raise ValidationError("Filter must have an operator")
        try:
            filter = Filter.model_validate(filter)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid filter: {e}") from e

    if not filter.field:
        raise ValidationError("Filter must have a field")
    if not filter.operator:
        raise ValidationError("Filter must have an operator")
    return filter


def validate_sort_rule(rule: SortRule | Mapping[str, Any]) -> SortRule:
    """Build a SortRule, translating schema errors.

    Raises:
        ValidationError: if the field is missing or direction/type are unknown
    """
    if isinstance(rule, Mapping):
        try:
            rule = SortRule.model_validate(rule)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid sort rule: {e}") from e
    if not rule.field:
        raise ValidationError("Sort rule must have a field")
    return rule


class FilterEngine:
    """Filters, sort rules and presets for a record collection."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.filters: list[Filter] = []
        self.sort_rules: list[SortRule] = []
        self.presets: list[FilterPreset] = []

    # -------------------------------------------------------------------------
    # Filters
    # -------------------------------------------------------------------------

    def add_filter(self, filter: Filter | Mapping[str, Any]) -> Filter:
        """Validate and append a filter."""
        try:
            validated = validate_filter(filter)
        except ValidationError as e:
            logger.error("filter_add_failed", error=str(e))
            raise
        self.filters.append(validated)
        logger.info(
            "filter_added",
            field=validated.field,
            operator=validated.operator,
            value=validated.value,
        )
        return validated

    def remove_filter(self, index: int) -> bool:
        """Remove the filter at ``index``; False when out of range."""
        if 0 <= index < len(self.filters):
            del self.filters[index]
            logger.info("filter_removed", index=index)
            return True
        return False

    def clear_filters(self) -> None:
        self.filters = []
        logger.info("filters_cleared")

    def apply_filters(
        self, records: Sequence[Record], logic: FilterLogic | str = FilterLogic.AND
    ) -> list[Record]:
        return apply_filters(records, self.filters, logic)

    # -------------------------------------------------------------------------
    # Sorting
    # -------------------------------------------------------------------------

    def add_sort_rule(
        self,
        field: str,
        direction: SortDirection | str = SortDirection.ASC,
        type: SortType | str = SortType.AUTO,
    ) -> SortRule:
        """Append a sort rule; later rules break ties of earlier ones."""
        rule = validate_sort_rule({"field": field, "direction": direction, "type": type})
        self.sort_rules.append(rule)
        logger.info("sort_rule_added", field=field, direction=rule.direction, type=rule.type)
        return rule

    def remove_sort_rule(self, index: int) -> bool:
        """Remove the sort rule at ``index``; False when out of range."""
        if 0 <= index < len(self.sort_rules):
            del self.sort_rules[index]
            logger.info("sort_rule_removed", index=index)
            return True
        return False

    def clear_sort_rules(self) -> None:
        self.sort_rules = []
        logger.info("sort_rules_cleared")

    def apply_sort(self, records: Sequence[Record]) -> list[Record]:
        return apply_sort(records, self.sort_rules)

    def apply(
        self, records: Sequence[Record], logic: FilterLogic | str = FilterLogic.AND
    ) -> list[Record]:
        """Filter, then sort."""
        return self.apply_sort(self.apply_filters(records, logic))

    # -------------------------------------------------------------------------
    # Presets
    # -------------------------------------------------------------------------

    def save_preset(self, name: str, description: str = "") -> FilterPreset:
        """Snapshot the current filters and sort rules under ``name``.

        The snapshot is a deep copy; later edits to the engine don't change it.
        Saving under an existing name replaces that preset.
        """
        if not name:
            raise ValidationError("Preset must have a name")

        preset = FilterPreset(
            name=name,
            description=description,
            filters=[f.model_copy(deep=True) for f in self.filters],
            sort_rules=[r.model_copy(deep=True) for r in self.sort_rules],
        )
        self.presets = [p for p in self.presets if p.name != name]
        self.presets.append(preset)
        logger.info("preset_saved", name=name)
        return preset

    def load_preset(self, name: str) -> FilterPreset:
        """Replace the current filters and sort rules with a preset's.

        Raises:
            NotFoundError: if no preset has that name
        """
        for preset in self.presets:
            if preset.name == name:
                self.filters = [f.model_copy(deep=True) for f in preset.filters]
                self.sort_rules = [r.model_copy(deep=True) for r in preset.sort_rules]
                logger.info("preset_loaded", name=name)
                return preset
        raise NotFoundError(f"Preset not found: {name}")

    def delete_preset(self, name: str) -> bool:
        remaining = [p for p in self.presets if p.name != name]
        if len(remaining) == len(self.presets):
            return False
        self.presets = remaining
        logger.info("preset_deleted", name=name)
        return True

    # -------------------------------------------------------------------------
    # Statistics and (de)serialization
    # -------------------------------------------------------------------------

    @staticmethod
    def get_statistics(
        records: Sequence[Record], filtered_records: Sequence[Record]
    ) -> FilterStatistics:
        total = len(records)
        kept = len(filtered_records)
        percentage = round(kept / total * 100, 1) if total else 0.0
        return FilterStatistics(
            total=total, filtered=kept, excluded=total - kept, percentage=percentage
        )

    def export_config(self) -> dict[str, Any]:
        """Export as ``{version, filters, sortRules, presets, exportedAt}``."""
        document = FilterSortConfig(
            version=self.settings.config_version,
            filters=self.filters,
            sort_rules=self.sort_rules,
            presets=self.presets,
            exported_at=utc_now(),
        )
        return document.to_json_dict()

    def import_config(self, data: Mapping[str, Any]) -> None:
        """Load an exported document; sections absent from it are left unchanged.

        Raises:
            ValidationError: if the document does not match the expected shape
        """
        try:
            document = FilterSortConfig.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid filter configuration: {e}") from e

        if "filters" in data:
            self.filters = [validate_filter(f) for f in document.filters]
        if "sortRules" in data or "sort_rules" in data:
            self.sort_rules = list(document.sort_rules)
        if "presets" in data:
            self.presets = list(document.presets)
        logger.info(
            "filter_config_imported",
            filters=len(self.filters),
            sort_rules=len(self.sort_rules),
            presets=len(self.presets),
        )
