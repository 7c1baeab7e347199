"""Base models and types used across all modules.

This module contains the fundamental types that don't belong to any specific
engine (formulas, filtering, grouping, references).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# A field value imported from CSV/JSON/XML. A missing key and None are both "absent".
Scalar = str | int | float | bool | None

# One catalog entry. Schemas vary per import, so records stay plain mappings.
Record = Mapping[str, Scalar]


class Result[T](BaseModel):
    """Result type for operations that can fail.

    Use this instead of exceptions for expected failures.
    Exceptions are reserved for unexpected/programming errors.
    """

    success: bool
    value: T | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, value: T, warnings: list[str] | None = None) -> Result[T]:
        """Create a successful result."""
        return cls(success=True, value=value, warnings=warnings or [])

    @classmethod
    def fail(cls, error: str, warnings: list[str] | None = None) -> Result[T]:
        """Create a failed result."""
        return cls(success=False, error=error, warnings=warnings or [])

    def unwrap(self) -> T | None:
        """Get the value or raise if failed."""
        if not self.success:
            raise ValueError(f"Result failed: {self.error}")
        return self.value

    def map(self, fn: Callable[[T], Any]) -> Result[Any]:
        """Transform the value if successful."""
        if self.success and self.value is not None:
            return Result.ok(fn(self.value), self.warnings)
        return self


class ConfigModel(BaseModel):
    """Base for configuration shapes exchanged with the host application.

    Serialises to camelCase (``sortRules``, ``exportedAt``) and accepts either
    camelCase or snake_case on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-ready dict using the camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True)


# === Enums ===


class SortDirection(str, Enum):
    """Ordering direction for sort rules and group levels."""

    ASC = "asc"
    DESC = "desc"


class FilterLogic(str, Enum):
    """How multiple filters combine."""

    AND = "AND"
    OR = "OR"


def utc_now() -> datetime:
    """Current time in UTC, used for createdAt/exportedAt stamps."""
    return datetime.now(UTC)
