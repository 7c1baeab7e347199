"""Core models shared by all engines."""

from catalog_builder.core.models.base import (
    ConfigModel,
    FilterLogic,
    Record,
    Result,
    Scalar,
    SortDirection,
    utc_now,
)

__all__ = [
    "ConfigModel",
    "FilterLogic",
    "Record",
    "Result",
    "Scalar",
    "SortDirection",
    "utc_now",
]
