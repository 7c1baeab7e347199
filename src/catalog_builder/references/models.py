"""Cross-reference models.

References are typed, directed edges between record identifiers. Identifiers
are stored in their text form so that ``5`` and ``"5"`` name the same record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from catalog_builder.core.coercion import to_text
from catalog_builder.core.models import ConfigModel, Record, utc_now


class ReferenceType(str, Enum):
    """Built-in reference types. Other type names are accepted as free text."""

    RELATED = "related"
    VARIANT = "variant"
    SEE_ALSO = "see_also"
    REPLACED_BY = "replaced_by"
    SUPERSEDED_BY = "superseded_by"
    ACCESSORY = "accessory"
    COMPATIBLE = "compatible"
    SERIES = "series"
    COLLECTION = "collection"


class Reference(ConfigModel):
    """A directed, typed edge ``source_id -> target_id``."""

    source_id: str
    target_id: str
    type: str = ReferenceType.RELATED.value
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("source_id", "target_id", mode="before")
    @classmethod
    def normalise_id(cls, value: Any) -> Any:
        return to_text(value) if isinstance(value, int | float) else value


class BrokenReferenceKind(str, Enum):
    SOURCE_NOT_FOUND = "source_not_found"
    TARGET_NOT_FOUND = "target_not_found"


class BrokenReference(ConfigModel):
    """An edge whose source or target is missing from the record set."""

    type: BrokenReferenceKind
    source_id: str
    target_id: str
    reference_type: str
    message: str


@dataclass
class ResolvedReference:
    """An outgoing reference paired with the record it points at."""

    type: str
    record: Record
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class BidirectionalReferences:
    outgoing: list[Reference]
    incoming: list[Reference]


class ReferenceStatistics(ConfigModel):
    total_records_with_references: int
    total_references: int
    average_references_per_record: float
    references_by_type: dict[str, int] = Field(default_factory=dict)


class SourceReferences(ConfigModel):
    """All outgoing edges of one source, as exported."""

    source_id: str
    references: list[Reference] = Field(default_factory=list)

    @field_validator("source_id", mode="before")
    @classmethod
    def normalise_id(cls, value: Any) -> Any:
        return to_text(value) if isinstance(value, int | float) else value


class ReferenceExport(ConfigModel):
    """Exported reference document: ``{version, references, exportedAt}``."""

    version: str = "1.0"
    references: list[SourceReferences] = Field(default_factory=list)
    exported_at: datetime | None = None
