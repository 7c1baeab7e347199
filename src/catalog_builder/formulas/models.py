"""Models for calculated fields (formulas).

Formulas are configured by the host application and consumed read-only by the
engine. Batch results are plain dataclasses produced on each run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import Field

from catalog_builder.core.models import ConfigModel, utc_now


class Formula(ConfigModel):
    """A named calculated field."""

    name: str = Field(..., description="Destination field written into enriched records")
    expression: str = Field(..., description="Expression, e.g. 'ROUND({price} * 1.2, 2)'")
    created_at: datetime = Field(default_factory=utc_now, description="When it was registered")


class FormulaExport(ConfigModel):
    """Exported formula document: ``{version, formulas, exportedAt}``."""

    version: str = "1.0"
    formulas: list[Formula] = Field(default_factory=list)
    exported_at: datetime | None = None


@dataclass
class FormulaFailure:
    """One record whose formula could not be evaluated."""

    record_index: int
    formula_name: str
    error: str


@dataclass
class FormulaBatchResult:
    """Output of applying formulas to a record batch."""

    records: list[dict[str, Any]] = field(default_factory=list)
    failures: list[FormulaFailure] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)


# Common expressions offered to users as starting points
FORMULA_TEMPLATES: dict[str, str] = {
    "TAX": "{price} * (1 + {tax_rate} / 100)",
    "DISCOUNT_PERCENT": "{price} - ({price} * {discount} / 100)",
    "DISCOUNT_FIXED": "{price} - {discount_amount}",
    "MARGIN": "({price} - {cost}) / {cost} * 100",
    "BULK_DISCOUNT": "IF({quantity} > 100, {price} * 0.9, {price})",
    "CURRENCY_CONVERSION": "ROUND({price} * {exchange_rate}, 2)",
    "PRICE_WITH_TAX": "ROUND({price} * 1.20, 2)",
    "TOTAL": "{price} * {quantity}",
    "PROFIT": "{price} - {cost}",
    "PROFIT_MARGIN": "ROUND(({price} - {cost}) / {price} * 100, 2)",
}
