"""Catalog Builder transformation core.

Turns flat catalog records into an enriched, filtered, sorted and grouped
presentation sequence, and keeps a cross-reference graph between records.

Example:
    from catalog_builder import CatalogPipeline, parse_pipeline_config

    config = parse_pipeline_config({
        "formulas": [{"name": "gross", "expression": "ROUND({price} * 1.2, 2)"}],
        "group_levels": [{"field": "category"}],
    })
    result = CatalogPipeline(config).run(records)
"""

__version__ = "0.1.0"

from catalog_builder.core.models.base import Result
from catalog_builder.filtering import FilterEngine
from catalog_builder.formulas import FormulaEngine
from catalog_builder.grouping import GroupingEngine
from catalog_builder.pipeline import CatalogPipeline, load_pipeline_config, parse_pipeline_config
from catalog_builder.references import ReferenceGraph

__all__ = [
    "CatalogPipeline",
    "FilterEngine",
    "FormulaEngine",
    "GroupingEngine",
    "ReferenceGraph",
    "Result",
    "load_pipeline_config",
    "parse_pipeline_config",
    "__version__",
]
