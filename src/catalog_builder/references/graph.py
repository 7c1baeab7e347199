"""Cross-reference graph between catalog records.

Edges live in an arena keyed by edge id. The forward index (source -> edge
ids) and the reverse index (target -> edge ids) are only ever changed through
``_link`` and ``_unlink``, which update both together.

Usage:
    graph = ReferenceGraph()
    graph.add_reference("A-100", "A-200", ReferenceType.ACCESSORY)
    broken = graph.validate_references(records)
    chains = graph.find_chains("A-100", max_depth=3)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import networkx as nx
from pydantic import ValidationError as PydanticValidationError

from catalog_builder.core.coercion import to_text
from catalog_builder.core.config import Settings, get_settings
from catalog_builder.core.errors import ValidationError
from catalog_builder.core.logging import get_logger
from catalog_builder.core.models import Record, utc_now
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

logger = get_logger(__name__)


def _record_id(value: Any) -> str | None:
    if value is None:
        return None
    text = to_text(value)
    return text or None


def _type_name(type: ReferenceType | str) -> str:
    return type.value if isinstance(type, ReferenceType) else str(type)


class ReferenceGraph:
    """Typed directed edges between record identifiers, indexed both ways."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._edges: dict[int, Reference] = {}
        self._forward: dict[str, list[int]] = {}
        self._reverse: dict[str, list[int]] = {}
        self._next_edge_id = 0

    # -------------------------------------------------------------------------
    # Mutation (the only code paths touching the indices)
    # -------------------------------------------------------------------------

    def _link(self, reference: Reference) -> int:
        edge_id = self._next_edge_id
        self._next_edge_id += 1
        self._edges[edge_id] = reference
        self._forward.setdefault(reference.source_id, []).append(edge_id)
        self._reverse.setdefault(reference.target_id, []).append(edge_id)
        return edge_id

    def _unlink(self, edge_id: int) -> Reference:
        reference = self._edges.pop(edge_id)
        for index, key in (
            (self._forward, reference.source_id),
            (self._reverse, reference.target_id),
        ):
            remaining = [e for e in index[key] if e != edge_id]
            if remaining:
                index[key] = remaining
            else:
                del index[key]
        return reference

    def add_reference(
        self,
        source_id: Any,
        target_id: Any,
        type: ReferenceType | str = ReferenceType.RELATED,
        metadata: Mapping[str, Any] | None = None,
    ) -> Reference:
        """Add an edge. Parallel edges (same pair, any type) are allowed.

        Raises:
            ValidationError: if either id or the type is empty
        """
        source = _record_id(source_id)
        target = _record_id(target_id)
        type_name = _type_name(type)
        if source is None or target is None:
            logger.error("reference_add_failed", source_id=source_id, target_id=target_id)
            raise ValidationError("Reference must have a source id and a target id")
        if not type_name:
            raise ValidationError("Reference must have a type")

        reference = Reference(
            source_id=source,
            target_id=target,
            type=type_name,
            metadata=dict(metadata or {}),
        )
        self._link(reference)
        logger.debug("reference_added", source_id=source, target_id=target, type=type_name)
        return reference

    def remove_reference(
        self, source_id: Any, target_id: Any, type: ReferenceType | str | None = None
    ) -> bool:
        """Remove every edge ``source -> target`` (of ``type``, when given)."""
        source = to_text(source_id)
        target = to_text(target_id)
        type_name = _type_name(type) if type is not None else None

        matching = [
            edge_id
            for edge_id in self._forward.get(source, [])
            if self._edges[edge_id].target_id == target
            and (type_name is None or self._edges[edge_id].type == type_name)
        ]
        for edge_id in matching:
            self._unlink(edge_id)

        if matching:
            logger.debug(
                "reference_removed", source_id=source, target_id=target, count=len(matching)
            )
        return bool(matching)

    def clear_all(self) -> None:
        self._edges.clear()
        self._forward.clear()
        self._reverse.clear()
        logger.info("references_cleared")

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def references(self) -> list[Reference]:
        """All edges in insertion order."""
        return list(self._edges.values())

    def __len__(self) -> int:
        return len(self._edges)

    def _lookup(
        self, index: dict[str, list[int]], record_id: Any, type: ReferenceType | str | None
    ) -> list[Reference]:
        edges = [self._edges[e] for e in index.get(to_text(record_id), [])]
        if type is None:
            return edges
        type_name = _type_name(type)
        return [ref for ref in edges if ref.type == type_name]

    def get_references(
        self, record_id: Any, type: ReferenceType | str | None = None
    ) -> list[Reference]:
        """Outgoing edges of a record."""
        return self._lookup(self._forward, record_id, type)

    def get_referenced_by(
        self, record_id: Any, type: ReferenceType | str | None = None
    ) -> list[Reference]:
        """Incoming edges of a record."""
        return self._lookup(self._reverse, record_id, type)

    def get_bidirectional_references(
        self, record_id: Any, type: ReferenceType | str | None = None
    ) -> BidirectionalReferences:
        return BidirectionalReferences(
            outgoing=self.get_references(record_id, type),
            incoming=self.get_referenced_by(record_id, type),
        )

    def are_linked(self, first_id: Any, second_id: Any) -> bool:
        """True if an edge exists in either direction."""
        first = to_text(first_id)
        second = to_text(second_id)
        return any(ref.target_id == second for ref in self.get_references(first)) or any(
            ref.target_id == first for ref in self.get_references(second)
        )

    def group_by_type(self, record_id: Any) -> dict[str, list[Reference]]:
        grouped: dict[str, list[Reference]] = {}
        for ref in self.get_references(record_id):
            grouped.setdefault(ref.type, []).append(ref)
        return grouped

    def forward_index(self) -> dict[str, list[Reference]]:
        """Snapshot of source id -> outgoing edges."""
        return {key: [self._edges[e] for e in ids] for key, ids in self._forward.items()}

    def reverse_index(self) -> dict[str, list[Reference]]:
        """Snapshot of target id -> incoming edges."""
        return {key: [self._edges[e] for e in ids] for key, ids in self._reverse.items()}

    # -------------------------------------------------------------------------
    # Integrity against a record set
    # -------------------------------------------------------------------------

    def _id_field(self, id_field: str | None) -> str:
        field = id_field if id_field is not None else self.settings.default_id_field
        if not field:
            raise ValidationError("An id field is required")
        return field

    def validate_references(
        self, records: Sequence[Record], id_field: str | None = None
    ) -> list[BrokenReference]:
        """Report every edge whose source or target id is not in ``records``.

        Findings are returned, never raised.
        """
        field = self._id_field(id_field)
        valid_ids = {
            record_id
            for record_id in (_record_id(record.get(field)) for record in records)
            if record_id is not None
        }

        broken: list[BrokenReference] = []
        for ref in self._edges.values():
            if ref.source_id not in valid_ids:
                broken.append(
                    BrokenReference(
                        type=BrokenReferenceKind.SOURCE_NOT_FOUND,
                        source_id=ref.source_id,
                        target_id=ref.target_id,
                        reference_type=ref.type,
                        message=f"Source record not found: {ref.source_id}",
                    )
                )
            if ref.target_id not in valid_ids:
                broken.append(
                    BrokenReference(
                        type=BrokenReferenceKind.TARGET_NOT_FOUND,
                        source_id=ref.source_id,
                        target_id=ref.target_id,
                        reference_type=ref.type,
                        message=f"Target record not found: {ref.target_id}",
                    )
                )

        if broken:
            logger.warning("broken_references_found", count=len(broken))
        else:
            logger.info("references_valid", references=len(self._edges))
        return broken

    def resolve_references(
        self, record_id: Any, records: Sequence[Record], id_field: str | None = None
    ) -> list[ResolvedReference]:
        """Pair each outgoing edge with its target record; unknown targets are skipped."""
        field = self._id_field(id_field)
        by_id: dict[str, Record] = {}
        for record in records:
            key = _record_id(record.get(field))
            if key is not None and key not in by_id:
                by_id[key] = record

        return [
            ResolvedReference(type=ref.type, record=by_id[ref.target_id], metadata=ref.metadata)
            for ref in self.get_references(record_id)
            if ref.target_id in by_id
        ]

    def export_to_data(
        self, records: Sequence[Record], id_field: str | None = None
    ) -> list[dict[str, Any]]:
        """Copies of ``records`` annotated with ``_references`` and ``_referencedBy``."""
        field = self._id_field(id_field)
        enriched = []
        for record in records:
            record_id = record.get(field)
            enriched.append(
                {
                    **record,
                    "_references": [
                        {"id": ref.target_id, "type": ref.type}
                        for ref in self.get_references(record_id)
                    ],
                    "_referencedBy": [
                        {"id": ref.source_id, "type": ref.type}
                        for ref in self.get_referenced_by(record_id)
                    ],
                }
            )
        return enriched

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def build_graph(self) -> nx.MultiDiGraph:  # type: ignore[type-arg]
        """Build a networkx multigraph with one edge per reference."""
        G: nx.MultiDiGraph = nx.MultiDiGraph()  # type: ignore[type-arg]
        for edge_id, ref in self._edges.items():
            G.add_edge(
                ref.source_id,
                ref.target_id,
                key=edge_id,
                type=ref.type,
                metadata=ref.metadata,
            )
        return G

    def find_cycles(self) -> list[list[str]]:
        """Simple cycles in the reference graph, ignoring edge types."""
        return [list(cycle) for cycle in nx.simple_cycles(nx.DiGraph(self.build_graph()))]

    def find_chains(
        self,
        start_id: Any,
        max_depth: int | None = None,
        max_chains: int | None = None,
    ) -> list[list[str]]:
        """All reference paths from ``start_id`` that end at a record with no outgoing edges.

        A record is not revisited within one path, but may appear again on a
        different path. Paths deeper than ``max_depth`` are dropped. At most
        ``max_chains`` paths are returned.
        """
        depth_limit = self.settings.default_chain_depth if max_depth is None else max_depth
        chain_limit = self.settings.max_chain_results if max_chains is None else max_chains
        chains: list[list[str]] = []
        visited: set[str] = set()
        truncated = False

        def traverse(current: str, chain: list[str], depth: int) -> None:
            nonlocal truncated
            if truncated or depth > depth_limit or current in visited:
                return

            # Parallel edges to the same target are walked once
            targets = list(dict.fromkeys(ref.target_id for ref in self.get_references(current)))
            if not targets:
                if len(chain) > 1:
                    if len(chains) >= chain_limit:
                        truncated = True
                        return
                    chains.append(list(chain))
                return

            visited.add(current)
            for target in targets:
                traverse(target, [*chain, target], depth + 1)
            visited.discard(current)

        start = to_text(start_id)
        traverse(start, [start], 0)

        if truncated:
            logger.warning(
                "reference_chains_truncated",
                start_id=start,
                max_chains=chain_limit,
                max_depth=depth_limit,
            )
        return chains

    # -------------------------------------------------------------------------
    # Bulk import, statistics, (de)serialization
    # -------------------------------------------------------------------------

    def import_from_field(
        self,
        records: Sequence[Record],
        id_field: str | None = None,
        ref_field: str = "related_products",
        type: ReferenceType | str = ReferenceType.RELATED,
        delimiter: str | None = None,
    ) -> int:
        """Create one edge per target id listed in ``ref_field``.

        Returns the number of edges created. Records without an id are skipped.

        Raises:
            ValidationError: if the delimiter is empty
        """
        field = self._id_field(id_field)
        separator = delimiter if delimiter is not None else self.settings.reference_delimiter
        if not separator:
            raise ValidationError("Reference delimiter must not be empty")
        count = 0
        skipped = 0

        for record in records:
            raw_targets = record.get(ref_field)
            if raw_targets is None or raw_targets == "":
                continue
            source = _record_id(record.get(field))
            if source is None:
                skipped += 1
                continue
            for target in to_text(raw_targets).split(separator):
                target = target.strip()
                if target:
                    self.add_reference(source, target, type)
                    count += 1

        if skipped:
            logger.warning("references_skipped_without_id", count=skipped, id_field=field)
        logger.info("references_imported", count=count, ref_field=ref_field)
        return count

    def get_statistics(self) -> ReferenceStatistics:
        by_type: dict[str, int] = {}
        for ref in self._edges.values():
            by_type[ref.type] = by_type.get(ref.type, 0) + 1

        sources = len(self._forward)
        total = len(self._edges)
        return ReferenceStatistics(
            total_records_with_references=sources,
            total_references=total,
            average_references_per_record=round(total / sources, 2) if sources else 0.0,
            references_by_type=by_type,
        )

    def export_to_json(self) -> dict[str, Any]:
        """Export as ``{version, references: [{sourceId, references}], exportedAt}``."""
        document = ReferenceExport(
            version=self.settings.config_version,
            references=[
                SourceReferences(source_id=source, references=refs)
                for source, refs in self.forward_index().items()
            ],
            exported_at=utc_now(),
        )
        return document.to_json_dict()

    def import_from_json(self, data: Mapping[str, Any]) -> int:
        """Replace all edges with those of an exported document.

        Raises:
            ValidationError: if the document does not match the expected shape
        """
        try:
            document = ReferenceExport.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid reference document: {e}") from e

        edges = [ref for group in document.references for ref in group.references]
        if any(not ref.source_id or not ref.target_id for ref in edges):
            raise ValidationError("Reference must have a source id and a target id")

        self.clear_all()
        for ref in edges:
            self._link(ref)

        logger.info("references_imported_from_json", count=len(self._edges))
        return len(self._edges)
