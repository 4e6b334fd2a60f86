"""Breadth-first traversal over outgoing relationships.

Both backends run the same frontier loop; they only differ in how one
frontier is expanded (a dict lookup in memory, one ``UNWIND`` query per
level against Neo4j).  That keeps visit order, shortest paths and the
relationship set identical across backends.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from specgraph.graph.backend import Neighbour
from specgraph.models.graph import GraphNode, GraphRelationship, TraversalPath, TraversalResult

ExpandFn = Callable[[Sequence[str], Optional[Sequence[str]]], dict[str, list[Neighbour]]]


def breadth_first(
    start: Optional[GraphNode],
    max_depth: int,
    expand: ExpandFn,
    rel_types: Optional[Sequence[str]] = None,
) -> TraversalResult:
    """Expand outward from *start* for at most *max_depth* hops.

    A node is visited once, at the depth it was first discovered; the path
    recorded for it is the one through the frontier node that reached it
    first.  Relationships leaving any expanded node are reported even when
    they point back at an already visited node.

    Args:
        start: The start node, or ``None`` when it does not exist.
        max_depth: Maximum number of hops; ``0`` returns only *start*.
        expand: Returns the ordered outgoing neighbours of each frontier id.
        rel_types: Relationship types to follow; ``None`` follows all.

    Returns:
        The visited nodes (discovery order), traversed relationships and
        one path per reached node.

    Raises:
        ValueError: If *max_depth* is negative.
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")
    if start is None:
        return TraversalResult()

    visited: set[str] = {start.id}
    nodes: list[GraphNode] = [start]
    relationships: dict[str, GraphRelationship] = {}
    paths: list[TraversalPath] = []

    # (node id, node ids from start, relationship types from start)
    frontier: list[tuple[str, list[str], list[str]]] = [(start.id, [start.id], [])]

    for depth in range(1, max_depth + 1):
        if not frontier:
            break
        neighbours = expand([node_id for node_id, _, _ in frontier], rel_types)
        next_frontier: list[tuple[str, list[str], list[str]]] = []

        for node_id, node_path, type_path in frontier:
            for rel, target in neighbours.get(node_id, []):
                relationships.setdefault(rel.id, rel)
                if target.id in visited:
                    continue
                visited.add(target.id)
                nodes.append(target)

                target_path = [*node_path, target.id]
                target_types = [*type_path, rel.type]
                paths.append(
                    TraversalPath(
                        start=start.id,
                        end=target.id,
                        length=depth,
                        node_ids=target_path,
                        relationship_types=target_types,
                    )
                )
                next_frontier.append((target.id, target_path, target_types))

        frontier = next_frontier

    return TraversalResult(
        nodes=nodes,
        relationships=list(relationships.values()),
        paths=paths,
    )
