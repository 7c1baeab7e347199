"""Pipeline definitions and runner chaining formulas, filters and grouping."""

from catalog_builder.pipeline.config import (
    PipelineConfig,
    load_pipeline_config,
    parse_pipeline_config,
)
from catalog_builder.pipeline.runner import CatalogPipeline, PipelineResult

__all__ = [
    "CatalogPipeline",
    "PipelineConfig",
    "PipelineResult",
    "load_pipeline_config",
    "parse_pipeline_config",
]
