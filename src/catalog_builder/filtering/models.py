"""Pydantic models for filters, sort rules and presets.

Filters and sort rules are created by the host application's configuration
and consumed read-only by the filter engine.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from catalog_builder.core.models import ConfigModel, Scalar, SortDirection, utc_now


class FilterOperator(str, Enum):
    """Known filter operators.

    ``Filter.operator`` is a plain string so that unknown operators can still
    be configured; they pass every record through.
    """

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    BETWEEN = "between"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    IS_TRUE = "isTrue"
    IS_FALSE = "isFalse"
    REGEX = "regex"


class SortType(str, Enum):
    """How sort values are compared."""

    AUTO = "auto"  # Numeric when both sides are numbers, else text
    STRING = "string"  # Same as auto
    NUMBER = "number"
    DATE = "date"


class Filter(ConfigModel):
    """A single predicate against one field."""

    field: str = Field(..., description="Record field to test")
    operator: str = Field(..., description="Operator name, e.g. 'equals' or 'between'")
    value: Scalar = Field(None, description="Comparison value")
    min: Scalar = Field(None, description="Lower bound for 'between' (inclusive)")
    max: Scalar = Field(None, description="Upper bound for 'between' (inclusive)")


class SortRule(ConfigModel):
    """One ranking key; rules apply in list order as tie-breakers."""

    field: str = Field(..., description="Record field to sort by")
    direction: SortDirection = Field(default=SortDirection.ASC)
    type: SortType = Field(default=SortType.AUTO)


class FilterPreset(ConfigModel):
    """A named snapshot of filters and sort rules."""

    name: str
    description: str = ""
    filters: list[Filter] = Field(default_factory=list)
    sort_rules: list[SortRule] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class FilterSortConfig(ConfigModel):
    """Exported filter/sort document: ``{version, filters, sortRules, presets, exportedAt}``."""

    version: str = "1.0"
    filters: list[Filter] = Field(default_factory=list)
    sort_rules: list[SortRule] = Field(default_factory=list)
    presets: list[FilterPreset] = Field(default_factory=list)
    exported_at: datetime | None = None


class FilterStatistics(BaseModel):
    """How many records a filter pass kept and excluded."""

    total: int
    filtered: int
    excluded: int
    percentage: float = Field(description="Share of records kept, in percent (one decimal)")


class OperatorInfo(BaseModel):
    """UI catalogue entry for an operator."""

    value: FilterOperator
    label: str
    types: list[str]


FILTER_OPERATORS: list[OperatorInfo] = [
    OperatorInfo(value=FilterOperator.EQUALS, label="Equals", types=["string", "number", "date"]),
    OperatorInfo(
        value=FilterOperator.NOT_EQUALS, label="Not Equals", types=["string", "number", "date"]
    ),
    OperatorInfo(value=FilterOperator.CONTAINS, label="Contains", types=["string"]),
    OperatorInfo(value=FilterOperator.NOT_CONTAINS, label="Does Not Contain", types=["string"]),
    OperatorInfo(value=FilterOperator.STARTS_WITH, label="Starts With", types=["string"]),
    OperatorInfo(value=FilterOperator.ENDS_WITH, label="Ends With", types=["string"]),
    OperatorInfo(value=FilterOperator.GREATER_THAN, label="Greater Than", types=["number", "date"]),
    OperatorInfo(value=FilterOperator.LESS_THAN, label="Less Than", types=["number", "date"]),
    OperatorInfo(
        value=FilterOperator.GREATER_OR_EQUAL, label="Greater or Equal", types=["number", "date"]
    ),
    OperatorInfo(
        value=FilterOperator.LESS_OR_EQUAL, label="Less or Equal", types=["number", "date"]
    ),
    OperatorInfo(value=FilterOperator.BETWEEN, label="Between", types=["number", "date"]),
    OperatorInfo(value=FilterOperator.IS_EMPTY, label="Is Empty", types=["string", "number"]),
    OperatorInfo(
        value=FilterOperator.IS_NOT_EMPTY, label="Is Not Empty", types=["string", "number"]
    ),
    OperatorInfo(value=FilterOperator.IS_TRUE, label="Is True", types=["boolean"]),
    OperatorInfo(value=FilterOperator.IS_FALSE, label="Is False", types=["boolean"]),
    OperatorInfo(value=FilterOperator.REGEX, label="Regular Expression", types=["string"]),
]
