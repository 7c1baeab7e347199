"""Core infrastructure: logging, settings, errors, base models and coercion."""

from catalog_builder.core.errors import (
    CatalogBuilderError,
    EvaluationError,
    NotFoundError,
    PipelineConfigError,
    ValidationError,
)
from catalog_builder.core.models import Record, Result, Scalar

__all__ = [
    "CatalogBuilderError",
    "EvaluationError",
    "NotFoundError",
    "PipelineConfigError",
    "Record",
    "Result",
    "Scalar",
    "ValidationError",
]
