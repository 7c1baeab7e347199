"""Pipeline definitions and their YAML loader.

A pipeline definition lists the formulas, filters, sort rules, group levels
and aggregations for one run. Definitions are only loaded and validated
here; `CatalogPipeline` runs them.

Example YAML:

    name: price-list
    formulas:
      - name: price_gross
        expression: "ROUND({price} * 1.2, 2)"
    filters:
      - field: stock
        operator: greaterThan
        value: 0
    sort_rules:
      - field: price_gross
        direction: desc
    group_levels:
      - field: category
    aggregations:
      - field: price_gross
        function: avg
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from catalog_builder.core.errors import PipelineConfigError, ValidationError
from catalog_builder.core.logging import get_logger
from catalog_builder.core.models import ConfigModel, FilterLogic
from catalog_builder.filtering.engine import validate_filter
from catalog_builder.filtering.models import Filter, SortRule
from catalog_builder.formulas.engine import validate_formula
from catalog_builder.formulas.models import Formula
from catalog_builder.grouping.models import Aggregation, GroupLevel, GroupOptions

logger = get_logger(__name__)


class PipelineConfig(ConfigModel):
    """One pipeline run: formulas, then filters and sort, then grouping."""

    name: str = "default"
    description: str | None = None
    formulas: list[Formula] = Field(default_factory=list)
    filters: list[Filter] = Field(default_factory=list)
    filter_logic: FilterLogic = FilterLogic.AND
    sort_rules: list[SortRule] = Field(default_factory=list)
    group_levels: list[GroupLevel] = Field(default_factory=list)
    group_options: GroupOptions = Field(default_factory=GroupOptions)
    aggregations: list[Aggregation] = Field(default_factory=list)

    @field_validator("filter_logic", mode="before")
    @classmethod
    def normalise_filter_logic(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


def parse_pipeline_config(data: Mapping[str, Any]) -> PipelineConfig:
    """Validate a raw pipeline definition.

    Group levels are renumbered in list order. Formula expressions and filters
    are checked the same way the engines check them.

    Raises:
        PipelineConfigError: if the definition is malformed
    """
    try:
        config = PipelineConfig.model_validate(data)
    except PydanticValidationError as e:
        raise PipelineConfigError(f"Invalid pipeline definition: {e}") from e

    try:
        for formula in config.formulas:
            validate_formula(formula.expression)
        for filter in config.filters:
            validate_filter(filter)
    except ValidationError as e:
        raise PipelineConfigError(f"Invalid pipeline definition: {e}") from e

    config.group_levels = [
        level.model_copy(update={"level": i}) for i, level in enumerate(config.group_levels)
    ]
    return config


def load_pipeline_config(config_path: Path | str) -> PipelineConfig:
    """Load a pipeline definition from a YAML file.

    Raises:
        PipelineConfigError: if the file is missing, is not valid YAML, or
            does not describe a valid pipeline
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise PipelineConfigError(f"Pipeline file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PipelineConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not raw_config:
        logger.warning("empty_pipeline_file", path=str(config_path))
        return PipelineConfig()
    if not isinstance(raw_config, dict):
        raise PipelineConfigError(f"Pipeline file must contain a mapping: {config_path}")

    config = parse_pipeline_config(raw_config)
    logger.info(
        "pipeline_config_loaded",
        path=str(config_path),
        name=config.name,
        formulas=len(config.formulas),
        filters=len(config.filters),
        group_levels=len(config.group_levels),
    )
    return config
