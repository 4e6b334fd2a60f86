"""Neo4j graph backend.

Uses the **synchronous** ``GraphDatabase.driver`` and ``execute_query``
API.  Every call runs in its own short-lived managed transaction, so no
transaction ever spans more than one indexer item.

Every node carries the base label :data:`BASE_LABEL` next to its type
label (``Endpoint``, ``Schema`` ...).  Lookups by ``nodeId`` go through
that label so they hit the uniqueness constraint instead of scanning.
The base label is never reported back to callers.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import structlog
from neo4j import Driver, GraphDatabase, RoutingControl
from neo4j.exceptions import DriverError, Neo4jError

from specgraph.graph.backend import Neighbour
from specgraph.graph.errors import BackendUnavailableError, NodeNotFoundError
from specgraph.graph.search import check_identifier, pattern_where_clause
from specgraph.graph.traversal import breadth_first
from specgraph.models.graph import (
    GraphNode,
    GraphRelationship,
    GraphStatistics,
    TraversalResult,
)
from specgraph.models.identity import relationship_id

logger = structlog.get_logger(__name__)

BASE_LABEL: str = "SpecEntity"


class Neo4jGraphBackend:
    """Neo4j implementation of :class:`GraphBackend`.

    Usage::

        backend = Neo4jGraphBackend(uri, user, password)
        backend.connect()
        backend.merge_node(["Tag"], {"name": "payments"}, "tag_payments")
        backend.close()

    Or as a context manager::

        with Neo4jGraphBackend(uri, user, password) as backend:
            backend.statistics()

    Attributes:
        uri: Bolt / ``neo4j://`` connection string.
        user: Database username.
        database: Target database name.
    """

    is_persistent = True

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: str = "neo4j",
        max_connection_pool_size: int = 50,
        connection_timeout: float = 60.0,
    ) -> None:
        self.uri = uri
        self.user = user
        self._password = password
        self.database = database
        self.max_connection_pool_size = max_connection_pool_size
        self.connection_timeout = connection_timeout
        self._driver: Optional[Driver] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the driver and verify the server is reachable.

        Raises:
            BackendUnavailableError: If the driver cannot be created or the
                server cannot be reached or authenticated.
        """
        if self._driver is not None:
            return
        try:
            driver = GraphDatabase.driver(
                self.uri,
                auth=(self.user, self._password),
                max_connection_pool_size=self.max_connection_pool_size,
                connection_timeout=self.connection_timeout,
                connection_acquisition_timeout=self.connection_timeout,
            )
        except (DriverError, Neo4jError, ValueError) as exc:
            raise BackendUnavailableError(f"Invalid Neo4j configuration: {exc}") from exc

        try:
            driver.verify_connectivity()
        except (DriverError, Neo4jError, OSError) as exc:
            driver.close()
            raise BackendUnavailableError(f"Neo4j unreachable at {self.uri}: {exc}") from exc

        self._driver = driver
        logger.info("neo4j_connected", uri=self.uri, database=self.database)

    def close(self) -> None:
        """Close the driver; safe to call when never connected."""
        if self._driver is not None:
            self._driver.close()
            self._driver = None
            logger.info("neo4j_disconnected")

    def __enter__(self) -> Neo4jGraphBackend:
        self.connect()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _ensure_driver(self) -> Driver:
        if self._driver is None:
            raise RuntimeError("Neo4jGraphBackend is not connected. Call connect() first.")
        return self._driver

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def merge_node(self, labels: Sequence[str], properties: dict[str, Any], node_id: str) -> GraphNode:
        label_clause = "".join(f":`{check_identifier(label, 'label')}`" for label in labels)
        set_labels = f"SET n{label_clause}" if label_clause else ""
        cypher = f"""
        MERGE (n:{BASE_LABEL} {{nodeId: $node_id}})
        {set_labels}
        SET n += $props
        RETURN labels(n) AS labels, properties(n) AS props
        """
        rows = self._write(cypher, node_id=node_id, props={**properties, "nodeId": node_id})
        return _to_node(rows[0]["labels"], rows[0]["props"])

    def merge_relationship(
        self,
        start_id: str,
        end_id: str,
        rel_type: str,
        properties: Optional[dict[str, Any]] = None,
    ) -> GraphRelationship:
        rel_label = check_identifier(rel_type, "relationship type")
        cypher = f"""
        MATCH (a:{BASE_LABEL} {{nodeId: $start_id}})
        MATCH (b:{BASE_LABEL} {{nodeId: $end_id}})
        MERGE (a)-[r:`{rel_label}`]->(b)
        SET r += $props
        RETURN properties(r) AS props
        """
        rows = self._write(cypher, start_id=start_id, end_id=end_id, props=properties or {})
        if not rows:
            raise NodeNotFoundError(*self._missing_ids([start_id, end_id]))
        return _to_relationship(start_id, rel_type, end_id, rows[0]["props"])

    def clear(self) -> None:
        """Delete all nodes and relationships in one transaction."""
        self._write("MATCH (n) DETACH DELETE n")

    def execute_schema(self, cypher: str) -> None:
        """Run one schema statement (constraint or index creation)."""
        self._write(cypher)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, node_id: str) -> Optional[GraphNode]:
        rows = self._read(
            f"MATCH (n:{BASE_LABEL} {{nodeId: $node_id}}) RETURN labels(n) AS labels, properties(n) AS props",
            node_id=node_id,
        )
        return _to_node(rows[0]["labels"], rows[0]["props"]) if rows else None

    def find_by_label(self, label: str) -> list[GraphNode]:
        return self.find_by_properties(label, {})

    def find_by_properties(self, label: str, properties: dict[str, Any]) -> list[GraphNode]:
        label = check_identifier(label, "label")
        conditions = []
        params: dict[str, Any] = {}
        for index, (key, value) in enumerate(properties.items()):
            params[f"k{index}"] = key
            if value is None:
                conditions.append(f"n[$k{index}] IS NULL")
                continue
            params[f"v{index}"] = value
            conditions.append(f"n[$k{index}] = $v{index}")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        cypher = f"""
        MATCH (n:{BASE_LABEL}:`{label}`)
        {where}
        RETURN labels(n) AS labels, properties(n) AS props
        ORDER BY n.nodeId
        """
        return [_to_node(row["labels"], row["props"]) for row in self._read(cypher, **params)]

    def expand(
        self,
        node_ids: Sequence[str],
        rel_types: Optional[Sequence[str]] = None,
    ) -> dict[str, list[Neighbour]]:
        """Fetch the outgoing neighbours of a whole frontier in one query."""
        cypher = f"""
        UNWIND $node_ids AS nid
        MATCH (a:{BASE_LABEL} {{nodeId: nid}})-[r]->(b:{BASE_LABEL})
        WHERE $rel_types IS NULL OR type(r) IN $rel_types
        RETURN a.nodeId AS start_id,
               type(r) AS rel_type,
               properties(r) AS rel_props,
               b.nodeId AS end_id,
               labels(b) AS labels,
               properties(b) AS props
        ORDER BY start_id, rel_type, end_id
        """
        rows = self._read(
            cypher,
            node_ids=list(node_ids),
            rel_types=list(rel_types) if rel_types is not None else None,
        )
        result: dict[str, list[Neighbour]] = {node_id: [] for node_id in node_ids}
        for row in rows:
            rel = _to_relationship(row["start_id"], row["rel_type"], row["end_id"], row["rel_props"])
            result.setdefault(row["start_id"], []).append((rel, _to_node(row["labels"], row["props"])))
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
        label = check_identifier(label, "label")
        clause, params = pattern_where_clause(pattern, var="n")
        cypher = f"""
        MATCH (n:{BASE_LABEL}:`{label}`)
        WHERE {clause}
        WITH n ORDER BY n.nodeId
        WITH collect(n) AS matched
        RETURN size(matched) AS total,
               [m IN matched[0..$limit] | {{labels: labels(m), props: properties(m)}}] AS nodes
        """
        rows = self._read(cypher, limit=limit, **params)
        if not rows:
            return [], 0
        nodes = [_to_node(item["labels"], item["props"]) for item in rows[0]["nodes"]]
        return nodes, rows[0]["total"]

    def statistics(self) -> GraphStatistics:
        node_count = self._read("MATCH (n) RETURN count(n) AS total")[0]["total"]
        relationship_count = self._read("MATCH ()-[r]->() RETURN count(r) AS total")[0]["total"]
        label_rows = self._read(
            """
            MATCH (n)
            UNWIND labels(n) AS label
            WITH label WHERE label <> $base_label
            RETURN label, count(*) AS count
            """,
            base_label=BASE_LABEL,
        )
        type_rows = self._read("MATCH ()-[r]->() RETURN type(r) AS type, count(*) AS count")
        return GraphStatistics.from_counts(
            node_count=node_count,
            relationship_count=relationship_count,
            nodes_by_label={row["label"]: row["count"] for row in label_rows},
            relationships_by_type={row["type"]: row["count"] for row in type_rows},
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _missing_ids(self, node_ids: list[str]) -> list[str]:
        rows = self._read(
            f"""
            UNWIND $node_ids AS nid
            OPTIONAL MATCH (n:{BASE_LABEL} {{nodeId: nid}})
            WITH nid, n WHERE n IS NULL
            RETURN nid
            """,
            node_ids=node_ids,
        )
        return [row["nid"] for row in rows] or node_ids

    def _read(self, cypher: str, **parameters: Any) -> list[dict[str, Any]]:
        return self._execute(cypher, parameters, RoutingControl.READ)

    def _write(self, cypher: str, **parameters: Any) -> list[dict[str, Any]]:
        return self._execute(cypher, parameters, RoutingControl.WRITE)

    def _execute(
        self,
        cypher: str,
        parameters: dict[str, Any],
        routing: RoutingControl,
    ) -> list[dict[str, Any]]:
        driver = self._ensure_driver()
        records, _, _ = driver.execute_query(
            cypher,
            parameters_=parameters,
            database_=self.database,
            routing_=routing,
        )
        return [record.data() for record in records]


# ------------------------------------------------------------------
# Record conversion
# ------------------------------------------------------------------


def _to_node(labels: Sequence[str], props: dict[str, Any]) -> GraphNode:
    properties = dict(props)
    return GraphNode(
        id=properties["nodeId"],
        labels=sorted(label for label in labels if label != BASE_LABEL),
        properties=properties,
    )


def _to_relationship(start_id: str, rel_type: str, end_id: str, props: dict[str, Any]) -> GraphRelationship:
    return GraphRelationship(
        id=relationship_id(start_id, rel_type, end_id),
        type=rel_type,
        start_node_id=start_id,
        end_node_id=end_id,
        properties=dict(props),
    )
