"""Backend-agnostic graph store.

:class:`GraphStore` picks its storage strategy once, on first use:
Neo4j when a URI is configured and the server answers, otherwise the
in-memory backend for the rest of the process lifetime.  There is no
retry loop.  Callers see the same API and the same results either way.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

import structlog

from specgraph.config import Settings, settings
from specgraph.graph.backend import GraphBackend, Neighbour
from specgraph.graph.database import Neo4jGraphBackend
from specgraph.graph.errors import BackendUnavailableError
from specgraph.graph.memory import InMemoryGraphBackend
from specgraph.graph.search import check_identifier, pattern_to_json
from specgraph.graph.setup_index import ensure_schema
from specgraph.models.graph import (
    GraphNode,
    GraphRelationship,
    GraphStatistics,
    NodeLabel,
    PatternMatch,
    PatternSearchResult,
    RelationshipType,
    TraversalResult,
)

logger = structlog.get_logger(__name__)


def _value(item: Any) -> Any:
    """Unwrap ``NodeLabel`` / ``RelationshipType`` members to plain strings."""
    return getattr(item, "value", item)


def _values(items: Optional[Iterable[Any]]) -> Optional[list[str]]:
    return None if items is None else [_value(i) for i in items]


class GraphStore:
    """Typed node/relationship store over Neo4j or process memory.

    Args:
        config: Settings to read the Neo4j connection from.  Defaults to
            the module-level :data:`specgraph.config.settings`.
        backend: An explicit backend; skips capability detection.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        backend: Optional[GraphBackend] = None,
    ) -> None:
        self._settings = config or settings
        self._backend: Optional[GraphBackend] = backend

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> GraphBackend:
        """Select the backend.  Idempotent; connectivity errors never escape."""
        if self._backend is None:
            self._backend = self._select_backend()
        return self._backend

    def _select_backend(self) -> GraphBackend:
        cfg = self._settings
        if not cfg.neo4j_uri:
            logger.info("graph_backend_selected", backend="memory", reason="neo4j_uri_not_configured")
            return InMemoryGraphBackend()

        neo4j_backend = Neo4jGraphBackend(
            uri=cfg.neo4j_uri,
            user=cfg.neo4j_user,
            password=cfg.neo4j_password,
            database=cfg.neo4j_database,
            max_connection_pool_size=cfg.neo4j_max_connection_pool_size,
            connection_timeout=cfg.neo4j_connection_timeout,
        )
        try:
            neo4j_backend.connect()
        except BackendUnavailableError as exc:
            logger.warning("neo4j_unavailable_using_memory", uri=cfg.neo4j_uri, error=str(exc))
            return InMemoryGraphBackend()

        ensure_schema(neo4j_backend)
        logger.info("graph_backend_selected", backend="neo4j", uri=cfg.neo4j_uri)
        return neo4j_backend

    @property
    def backend(self) -> GraphBackend:
        return self.initialize()

    def is_using_persistent_backend(self) -> bool:
        return self.backend.is_persistent

    def close(self) -> None:
        """Release backend resources; safe to call when never initialized."""
        if self._backend is not None:
            self._backend.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_or_merge_node(
        self,
        labels: Sequence[str | NodeLabel],
        properties: dict[str, Any],
        node_id: str,
    ) -> GraphNode:
        """Create the node if absent, otherwise update its properties in place.

        Properties set to ``None`` are removed from an existing node.

        Raises:
            ValueError: If *labels* is empty, a label is not a plain
                identifier or *node_id* is blank.
        """
        if not labels:
            raise ValueError("A node needs at least one label")
        if not node_id:
            raise ValueError("A node needs a non-empty id")
        return self.backend.merge_node(
            [check_identifier(_value(label), "label") for label in labels], properties, node_id
        )

    def create_or_merge_relationship(
        self,
        start_id: str,
        end_id: str,
        rel_type: str | RelationshipType,
        properties: Optional[dict[str, Any]] = None,
    ) -> GraphRelationship:
        """Create the (start, type, end) relationship if absent, else update it.

        Raises:
            NodeNotFoundError: If either endpoint does not exist.
        """
        rel_type = check_identifier(_value(rel_type), "relationship type")
        return self.backend.merge_relationship(start_id, end_id, rel_type, properties)

    def clear_all(self) -> None:
        """Delete every node and relationship."""
        logger.warning("graph_clear_all", persistent=self.is_using_persistent_backend())
        self.backend.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, node_id: str) -> Optional[GraphNode]:
        return self.backend.find_by_id(node_id)

    def find_by_label(self, label: str | NodeLabel) -> list[GraphNode]:
        return self.backend.find_by_label(check_identifier(_value(label), "label"))

    def find_by_properties(self, label: str | NodeLabel, properties: dict[str, Any]) -> list[GraphNode]:
        """Return nodes of *label* whose properties equal *properties*, ordered by id.

        A ``None`` value matches nodes that do not have the property.
        """
        return self.backend.find_by_properties(check_identifier(_value(label), "label"), properties)

    def get_outgoing(
        self,
        node_id: str,
        rel_types: Optional[Iterable[str | RelationshipType]] = None,
    ) -> list[Neighbour]:
        """Outgoing relationships of one node with their targets."""
        return self.backend.expand([node_id], _values(rel_types)).get(node_id, [])

    def traverse(
        self,
        start_id: str,
        max_depth: int,
        rel_types: Optional[Iterable[str | RelationshipType]] = None,
    ) -> TraversalResult:
        """Breadth-first expansion along outgoing relationships.

        See :func:`specgraph.graph.traversal.breadth_first` for the exact
        visiting rules.
        """
        return self.backend.traverse(start_id, max_depth, _values(rel_types))

    def search_by_pattern(
        self,
        node_type: str | NodeLabel,
        pattern: dict[str, Any],
        limit: int = 50,
    ) -> PatternSearchResult:
        """Match nodes of *node_type* against a property pattern.

        Raises:
            ValueError: If *limit* is not positive or *node_type* is not
                a plain identifier.
        """
        if limit <= 0:
            raise ValueError(f"limit must be > 0, got {limit}")
        label = check_identifier(_value(node_type), "label")
        nodes, total = self.backend.search_by_pattern(label, pattern, limit)
        return PatternSearchResult(
            pattern=pattern_to_json(pattern),
            matches=[PatternMatch(nodes=[node], matched_properties=node.properties) for node in nodes],
            total_matches=total,
        )

    def get_statistics(self) -> GraphStatistics:
        return self.backend.statistics()
