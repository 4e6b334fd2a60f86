"""Graph vocabulary and query result models.

These Pydantic v2 models are shared by both graph backends, the indexer
and the HTTP layer, so every backend reports results in exactly the same
shape.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class NodeLabel(str, enum.Enum):
    """Labels of the nodes the indexer creates."""

    SPECIFICATION = "Specification"
    ENDPOINT = "Endpoint"
    SCHEMA = "Schema"
    PARAMETER = "Parameter"
    RESPONSE = "Response"
    TAG = "Tag"
    PROPERTY = "Property"


class RelationshipType(str, enum.Enum):
    """Directed relationship types between nodes."""

    DEFINES_ENDPOINT = "DEFINES_ENDPOINT"
    DEFINES_SCHEMA = "DEFINES_SCHEMA"
    HAS_PARAMETER = "HAS_PARAMETER"
    HAS_RESPONSE = "HAS_RESPONSE"
    HAS_PROPERTY = "HAS_PROPERTY"
    USES_SCHEMA = "USES_SCHEMA"
    REFERENCES = "REFERENCES"
    TAGGED_WITH = "TAGGED_WITH"


class SchemaUsage(str, enum.Enum):
    """Value of the ``context`` property on ``USES_SCHEMA`` relationships."""

    REQUEST = "request"
    RESPONSE = "response"


# ------------------------------------------------------------------
# Core records
# ------------------------------------------------------------------


class GraphNode(BaseModel):
    """A labeled node with a property bag.

    Attributes:
        id: Deterministic node id (also stored as the ``nodeId`` property).
        labels: Sorted node labels.
        properties: Node properties, ``nodeId`` included.
    """

    id: str = Field(..., description="Deterministic node id.")
    labels: list[str] = Field(default_factory=list, description="Sorted node labels.")
    properties: dict[str, Any] = Field(default_factory=dict, description="Node properties.")

    def has_label(self, label: str | NodeLabel) -> bool:
        return str(getattr(label, "value", label)) in self.labels


class GraphRelationship(BaseModel):
    """A directed, typed edge between two nodes."""

    id: str = Field(..., description="Id derived from (start, type, end).")
    type: str = Field(..., description="Relationship type.")
    start_node_id: str
    end_node_id: str
    properties: dict[str, Any] = Field(default_factory=dict)


class TraversalPath(BaseModel):
    """Shortest path from the traversal start to one reached node."""

    start: str
    end: str
    length: int
    node_ids: list[str] = Field(default_factory=list)
    relationship_types: list[str] = Field(default_factory=list)


class TraversalResult(BaseModel):
    """Nodes, relationships and paths visited by a breadth-first traversal."""

    nodes: list[GraphNode] = Field(default_factory=list)
    relationships: list[GraphRelationship] = Field(default_factory=list)
    paths: list[TraversalPath] = Field(default_factory=list)


class PatternMatch(BaseModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    relationships: list[GraphRelationship] = Field(default_factory=list)
    matched_properties: dict[str, Any] = Field(default_factory=dict)


class PatternSearchResult(BaseModel):
    """Result of a property-pattern search.

    Attributes:
        pattern: The pattern, serialised as JSON.
        matches: One entry per matching node, at most ``limit``.
        total_matches: Number of matching nodes before the limit.
    """

    pattern: str
    matches: list[PatternMatch] = Field(default_factory=list)
    total_matches: int = 0


class GraphStatistics(BaseModel):
    """Whole-graph counts."""

    node_count: int = 0
    relationship_count: int = 0
    nodes_by_label: dict[str, int] = Field(default_factory=dict)
    relationships_by_type: dict[str, int] = Field(default_factory=dict)
    specification_count: int = 0
    endpoint_count: int = 0
    schema_count: int = 0
    avg_relationships_per_endpoint: float = 0.0
    avg_properties_per_schema: float = 0.0

    @classmethod
    def from_counts(
        cls,
        node_count: int,
        relationship_count: int,
        nodes_by_label: dict[str, int],
        relationships_by_type: dict[str, int],
    ) -> GraphStatistics:
        """Derive the convenience counts and ratios from raw counts.

        Both backends only gather the four raw inputs; the derived fields
        are computed here once.
        """
        endpoints = nodes_by_label.get(NodeLabel.ENDPOINT.value, 0)
        schemas = nodes_by_label.get(NodeLabel.SCHEMA.value, 0)
        has_parameter = relationships_by_type.get(RelationshipType.HAS_PARAMETER.value, 0)
        has_property = relationships_by_type.get(RelationshipType.HAS_PROPERTY.value, 0)
        return cls(
            node_count=node_count,
            relationship_count=relationship_count,
            nodes_by_label=dict(sorted(nodes_by_label.items())),
            relationships_by_type=dict(sorted(relationships_by_type.items())),
            specification_count=nodes_by_label.get(NodeLabel.SPECIFICATION.value, 0),
            endpoint_count=endpoints,
            schema_count=schemas,
            avg_relationships_per_endpoint=has_parameter / endpoints if endpoints else 0.0,
            avg_properties_per_schema=has_property / schemas if schemas else 0.0,
        )


# ------------------------------------------------------------------
# Derived query results
# ------------------------------------------------------------------


class RelatedSchemaResult(BaseModel):
    schema_name: str
    spec_file: Optional[str] = None
    relationship_type: str = RelationshipType.REFERENCES.value
    depth: int
    path: list[str] = Field(default_factory=list, description="Node ids from the start schema.")


class ParameterSummary(BaseModel):
    name: str
    location: Optional[str] = Field(None, description="query, header, path or cookie.")
    required: bool = False
    schema_ref: Optional[str] = None


class ResponseSummary(BaseModel):
    status_code: str
    schema_ref: Optional[str] = None


class EndpointDependency(BaseModel):
    """Everything one endpoint depends on."""

    endpoint_path: str
    method: str
    spec_file: Optional[str] = None
    parameters: list[ParameterSummary] = Field(default_factory=list)
    request_body_schema: Optional[str] = None
    response_schemas: list[ResponseSummary] = Field(default_factory=list)
    related_schemas: list[str] = Field(default_factory=list)


class EndpointView(BaseModel):
    endpoint: dict[str, Any]
    tags: list[str] = Field(default_factory=list)
    parameters: list[dict[str, Any]] = Field(default_factory=list)
    responses: list[dict[str, Any]] = Field(default_factory=list)


class SchemaView(BaseModel):
    schema_: dict[str, Any] = Field(..., alias="schema")
    properties: list[dict[str, Any]] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class SpecificationGraphStatistics(BaseModel):
    total_endpoints: int = 0
    total_schemas: int = 0
    total_relationships: int = 0


class SpecificationGraph(BaseModel):
    """Projection of one specification and everything it defines."""

    specification: dict[str, Any]
    endpoints: list[EndpointView] = Field(default_factory=list)
    schemas: list[SchemaView] = Field(default_factory=list)
    statistics: SpecificationGraphStatistics = Field(default_factory=SpecificationGraphStatistics)
