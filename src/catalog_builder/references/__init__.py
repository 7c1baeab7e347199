"""Cross-reference graph between catalog records."""

from catalog_builder.references.graph import ReferenceGraph
from catalog_builder.references.models import (
    BidirectionalReferences,
    BrokenReference,
    BrokenReferenceKind,
    Reference,
    ReferenceExport,
    ReferenceStatistics,
    ReferenceType,
    ResolvedReference,
    SourceReferences,
)

__all__ = [
    "BidirectionalReferences",
    "BrokenReference",
    "BrokenReferenceKind",
    "Reference",
    "ReferenceExport",
    "ReferenceGraph",
    "ReferenceStatistics",
    "ReferenceType",
    "ResolvedReference",
    "SourceReferences",
]
