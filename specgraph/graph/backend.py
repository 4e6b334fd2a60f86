"""The backend contract shared by the Neo4j and in-memory graph stores."""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from specgraph.models.graph import (
    GraphNode,
    GraphRelationship,
    GraphStatistics,
    TraversalResult,
)

# One outgoing edge together with the node it points at.
Neighbour = tuple[GraphRelationship, GraphNode]


class GraphBackend(Protocol):
    """Storage strategy behind :class:`specgraph.graph.store.GraphStore`.

    Implementations must be observably identical for every method; only
    :attr:`is_persistent` tells them apart.  Outgoing relationships are
    always reported in (relationship type, target id) order.
    """

    is_persistent: bool

    def merge_node(self, labels: Sequence[str], properties: dict[str, Any], node_id: str) -> GraphNode: ...

    def merge_relationship(
        self,
        start_id: str,
        end_id: str,
        rel_type: str,
        properties: Optional[dict[str, Any]] = None,
    ) -> GraphRelationship: ...

    def find_by_id(self, node_id: str) -> Optional[GraphNode]: ...

    def find_by_label(self, label: str) -> list[GraphNode]: ...

    def find_by_properties(self, label: str, properties: dict[str, Any]) -> list[GraphNode]: ...

    def expand(
        self,
        node_ids: Sequence[str],
        rel_types: Optional[Sequence[str]] = None,
    ) -> dict[str, list[Neighbour]]: ...

    def traverse(
        self,
        start_id: str,
        max_depth: int,
        rel_types: Optional[Sequence[str]] = None,
    ) -> TraversalResult: ...

    def search_by_pattern(
        self,
        label: str,
        pattern: dict[str, Any],
        limit: int,
    ) -> tuple[list[GraphNode], int]: ...

    def statistics(self) -> GraphStatistics: ...

    def clear(self) -> None: ...

    def close(self) -> None: ...
