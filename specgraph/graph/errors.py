"""Exceptions raised by the graph store and indexer."""

from __future__ import annotations


class GraphError(Exception):
    """Base class for every specgraph graph error."""


class BackendUnavailableError(GraphError):
    """The persistent backend could not be reached or authenticated."""


class NodeNotFoundError(GraphError, LookupError):
    """A relationship endpoint does not exist in the graph.

    Attributes:
        node_ids: The ids that could not be resolved.
    """

    def __init__(self, *node_ids: str) -> None:
        self.node_ids = node_ids
        super().__init__(f"Node(s) not found: {', '.join(node_ids)}")


class NotIndexedError(GraphError, RuntimeError):
    """A query was issued before any indexing pass completed."""

    def __init__(self) -> None:
        super().__init__("Graph has not been indexed. Call load_and_index() first.")
