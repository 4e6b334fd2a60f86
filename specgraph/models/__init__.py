"""Pydantic v2 data models for the specgraph node/relationship graph."""

from specgraph.models.graph import (
    EndpointDependency,
    GraphNode,
    GraphRelationship,
    GraphStatistics,
    NodeLabel,
    PatternSearchResult,
    RelatedSchemaResult,
    RelationshipType,
    SpecificationGraph,
    TraversalResult,
)
from specgraph.models.indexing import IndexingPhase, IndexingProgress, IndexingResult
from specgraph.models.spec import OperationInfo, SpecDocument

__all__ = [
    "NodeLabel",
    "RelationshipType",
    "GraphNode",
    "GraphRelationship",
    "TraversalResult",
    "PatternSearchResult",
    "GraphStatistics",
    "RelatedSchemaResult",
    "EndpointDependency",
    "SpecificationGraph",
    "IndexingPhase",
    "IndexingProgress",
    "IndexingResult",
    "OperationInfo",
    "SpecDocument",
]
