"""In-memory graph backend.

Holds nodes and relationships in plain dicts owned by this instance.  It
is the reference behaviour for the Neo4j backend: every query the Neo4j
backend translates to Cypher must produce the same result here.

Single writer: only the indexer writes, so there is no locking.  Callers
always receive copies, never the stored records.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Optional, Sequence

import structlog

from specgraph.graph.backend import Neighbour
from specgraph.graph.errors import NodeNotFoundError
from specgraph.graph.search import matches_pattern
from specgraph.graph.traversal import breadth_first
from specgraph.models.graph import (
    GraphNode,
    GraphRelationship,
    GraphStatistics,
    TraversalResult,
)
from specgraph.models.identity import relationship_id

logger = structlog.get_logger(__name__)


def _apply_properties(target: dict[str, Any], updates: dict[str, Any]) -> None:
    # Same as Cypher ``SET x += $props``: a null value removes the key.
    for key, value in updates.items():
        if value is None:
            target.pop(key, None)
        else:
            target[key] = value


class InMemoryGraphBackend:
    """Dict-backed implementation of :class:`GraphBackend`."""

    is_persistent = False

    def __init__(self) -> None:
        self._nodes: dict[str, GraphNode] = {}
        self._relationships: dict[str, GraphRelationship] = {}
        # start id -> {relationship id: relationship}
        self._outgoing: dict[str, dict[str, GraphRelationship]] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def merge_node(self, labels: Sequence[str], properties: dict[str, Any], node_id: str) -> GraphNode:
        node = self._nodes.get(node_id)
        if node is None:
            node = GraphNode(id=node_id)
            self._nodes[node_id] = node
        node.labels = sorted(set(node.labels).union(labels))
        _apply_properties(node.properties, properties)
        node.properties["nodeId"] = node_id
        return node.model_copy(deep=True)

    def merge_relationship(
        self,
        start_id: str,
        end_id: str,
        rel_type: str,
        properties: Optional[dict[str, Any]] = None,
    ) -> GraphRelationship:
        missing = [nid for nid in (start_id, end_id) if nid not in self._nodes]
        if missing:
            raise NodeNotFoundError(*missing)

        rel_id = relationship_id(start_id, rel_type, end_id)
        rel = self._relationships.get(rel_id)
        if rel is None:
            rel = GraphRelationship(
                id=rel_id,
                type=rel_type,
                start_node_id=start_id,
                end_node_id=end_id,
            )
            self._relationships[rel_id] = rel
            self._outgoing.setdefault(start_id, {})[rel_id] = rel
        _apply_properties(rel.properties, properties or {})
        return rel.model_copy(deep=True)

    def clear(self) -> None:
        logger.debug("memory_graph_cleared", nodes=len(self._nodes), relationships=len(self._relationships))
        self._nodes.clear()
        self._relationships.clear()
        self._outgoing.clear()

    def close(self) -> None:
        # Nothing to release; data stays until clear().
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, node_id: str) -> Optional[GraphNode]:
        node = self._nodes.get(node_id)
        return node.model_copy(deep=True) if node is not None else None

    def find_by_label(self, label: str) -> list[GraphNode]:
        return [
            node.model_copy(deep=True)
            for node in sorted(self._nodes.values(), key=lambda n: n.id)
            if label in node.labels
        ]

    def find_by_properties(self, label: str, properties: dict[str, Any]) -> list[GraphNode]:
        return [
            node
            for node in self.find_by_label(label)
            if all(node.properties.get(k) == v for k, v in properties.items())
        ]

    def expand(
        self,
        node_ids: Sequence[str],
        rel_types: Optional[Sequence[str]] = None,
    ) -> dict[str, list[Neighbour]]:
        allowed = set(rel_types) if rel_types is not None else None
        result: dict[str, list[Neighbour]] = {}
        for node_id in node_ids:
            neighbours: list[Neighbour] = []
            for rel in self._outgoing.get(node_id, {}).values():
                if allowed is not None and rel.type not in allowed:
                    continue
                target = self._nodes.get(rel.end_node_id)
                if target is not None:
                    neighbours.append((rel.model_copy(deep=True), target.model_copy(deep=True)))
            neighbours.sort(key=lambda pair: (pair[0].type, pair[1].id))
            result[node_id] = neighbours
        return result

    def traverse(
        self,
        start_id: str,
        max_depth: int,
        rel_types: Optional[Sequence[str]] = None,
    ) -> TraversalResult:
        return breadth_first(self.find_by_id(start_id), max_depth, self.expand, rel_types)

    def search_by_pattern(
        self,
        label: str,
        pattern: dict[str, Any],
        limit: int,
    ) -> tuple[list[GraphNode], int]:
        matched = [n for n in self.find_by_label(label) if matches_pattern(n.properties, pattern)]
        return matched[:limit], len(matched)

    def statistics(self) -> GraphStatistics:
        nodes_by_label: Counter[str] = Counter()
        for node in self._nodes.values():
            nodes_by_label.update(node.labels)
        relationships_by_type = Counter(rel.type for rel in self._relationships.values())
        return GraphStatistics.from_counts(
            node_count=len(self._nodes),
            relationship_count=len(self._relationships),
            nodes_by_label=dict(nodes_by_label),
            relationships_by_type=dict(relationships_by_type),
        )
