"""Uniqueness constraints and lookup indexes for the Neo4j backend.

Run automatically by :meth:`GraphStore.initialize` after a successful
connection.  Everything here is best-effort: a statement that fails
(already exists under another name, unsupported on this edition) is
logged and skipped.
"""

from __future__ import annotations

import structlog

from specgraph.graph.database import BASE_LABEL, Neo4jGraphBackend

logger = structlog.get_logger(__name__)

# (name, label, properties) -> REQUIRE ... IS UNIQUE
UNIQUENESS_CONSTRAINTS: list[tuple[str, str, tuple[str, ...]]] = [
    ("spec_entity_node_id", BASE_LABEL, ("nodeId",)),
    ("specification_file_name", "Specification", ("fileName",)),
    ("tag_name", "Tag", ("name",)),
    ("schema_spec_file_name", "Schema", ("specFile", "name")),
]

# (name, label, property)
LOOKUP_INDEXES: list[tuple[str, str, str]] = [
    ("endpoint_path", "Endpoint", "path"),
    ("endpoint_method", "Endpoint", "method"),
    ("endpoint_spec_file", "Endpoint", "specFile"),
    ("schema_name", "Schema", "name"),
    ("parameter_name", "Parameter", "name"),
]


def create_uniqueness_constraints(backend: Neo4jGraphBackend) -> int:
    """Create the node-identity constraints.

    Args:
        backend: An already-connected Neo4j backend.

    Returns:
        Number of statements that succeeded.
    """
    created = 0
    for name, label, props in UNIQUENESS_CONSTRAINTS:
        if len(props) == 1:
            target = f"n.{props[0]}"
        else:
            target = "(" + ", ".join(f"n.{p}" for p in props) + ")"
        cypher = f"CREATE CONSTRAINT {name} IF NOT EXISTS FOR (n:{label}) REQUIRE {target} IS UNIQUE"
        if _run_best_effort(backend, "constraint", name, cypher):
            created += 1
    return created


def create_lookup_indexes(backend: Neo4jGraphBackend) -> int:
    """Create range indexes for the properties queries filter on."""
    created = 0
    for name, label, prop in LOOKUP_INDEXES:
        cypher = f"CREATE INDEX {name} IF NOT EXISTS FOR (n:{label}) ON (n.{prop})"
        if _run_best_effort(backend, "index", name, cypher):
            created += 1
    return created


def ensure_schema(backend: Neo4jGraphBackend) -> None:
    constraints = create_uniqueness_constraints(backend)
    indexes = create_lookup_indexes(backend)
    logger.info("neo4j_schema_ensured", constraints=constraints, indexes=indexes)


def _run_best_effort(backend: Neo4jGraphBackend, kind: str, name: str, cypher: str) -> bool:
    try:
        backend.execute_schema(cypher)
    except Exception as exc:
        # Existing equivalent schema under another name, or edition limits.
        logger.warning("neo4j_schema_statement_skipped", kind=kind, name=name, error=str(exc))
        return False
    logger.debug("neo4j_schema_statement_applied", kind=kind, name=name)
    return True
