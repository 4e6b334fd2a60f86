"""Higher-level queries composed from :class:`GraphStore` primitives.

Nothing here talks to a backend directly, so every query behaves the
same on Neo4j and in memory.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from specgraph.graph.store import GraphStore
from specgraph.models.graph import (
    EndpointDependency,
    EndpointView,
    GraphNode,
    NodeLabel,
    ParameterSummary,
    RelatedSchemaResult,
    RelationshipType,
    ResponseSummary,
    SchemaView,
    SpecificationGraph,
    SpecificationGraphStatistics,
    TraversalResult,
)


def _first(nodes: list[GraphNode]) -> Optional[GraphNode]:
    return nodes[0] if nodes else None


def find_related_schemas(
    store: GraphStore,
    schema_name: str,
    spec_file: Optional[str] = None,
    max_depth: int = 3,
) -> list[RelatedSchemaResult]:
    """Schemas reachable from *schema_name* over ``REFERENCES`` edges.

    When several specifications define the name and no *spec_file* is
    given, the schema with the lowest node id is used.

    Returns:
        One entry per reached schema in breadth-first order; empty when
        the schema is unknown.
    """
    criteria: dict[str, Any] = {"name": schema_name}
    if spec_file is not None:
        criteria["specFile"] = spec_file
    start = _first(store.find_by_properties(NodeLabel.SCHEMA, criteria))
    if start is None:
        return []

    result = store.traverse(start.id, max_depth, [RelationshipType.REFERENCES])
    paths = {path.end: path for path in result.paths}
    related = []
    for node in result.nodes:
        if node.id == start.id or not node.has_label(NodeLabel.SCHEMA):
            continue
        path = paths[node.id]
        related.append(
            RelatedSchemaResult(
                schema_name=node.properties.get("name", node.id),
                spec_file=node.properties.get("specFile"),
                depth=path.length,
                path=path.node_ids,
            )
        )
    return related


def get_endpoint_dependencies(
    store: GraphStore,
    path: str,
    method: str,
    spec_file: Optional[str] = None,
) -> Optional[EndpointDependency]:
    """Parameters, responses and schemas one endpoint depends on.

    *method* is compared case-insensitively.  Returns ``None`` when no
    endpoint matches.
    """
    criteria: dict[str, Any] = {"path": path, "method": method.upper()}
    if spec_file is not None:
        criteria["specFile"] = spec_file
    endpoint = _first(store.find_by_properties(NodeLabel.ENDPOINT, criteria))
    if endpoint is None:
        return None

    parameters: list[ParameterSummary] = []
    responses: list[ResponseSummary] = []
    related: dict[str, None] = {}

    for rel, target in store.get_outgoing(endpoint.id):
        props = target.properties
        if rel.type == RelationshipType.HAS_PARAMETER.value:
            parameters.append(
                ParameterSummary(
                    name=props.get("name", ""),
                    location=props.get("in"),
                    required=bool(props.get("required", False)),
                    schema_ref=props.get("schemaRef"),
                )
            )
        elif rel.type == RelationshipType.HAS_RESPONSE.value:
            responses.append(
                ResponseSummary(
                    status_code=str(props.get("statusCode", "")),
                    schema_ref=props.get("schemaRef"),
                )
            )
        elif rel.type == RelationshipType.USES_SCHEMA.value and "name" in props:
            related.setdefault(props["name"], None)

    return EndpointDependency(
        endpoint_path=endpoint.properties["path"],
        method=endpoint.properties["method"],
        spec_file=endpoint.properties.get("specFile"),
        parameters=parameters,
        request_body_schema=endpoint.properties.get("requestBodySchema"),
        response_schemas=responses,
        related_schemas=list(related),
    )


def traverse_graph(
    store: GraphStore,
    start_node_type: str,
    start_node_filter: dict[str, Any],
    relationship_types: Optional[Sequence[str]] = None,
    max_depth: int = 3,
) -> TraversalResult:
    """Traverse from the first node of *start_node_type* matching the filter.

    The filter is an exact property match.  Returns an empty result when
    nothing matches.
    """
    start = _first(store.find_by_properties(start_node_type, start_node_filter))
    if start is None:
        return TraversalResult()
    return store.traverse(start.id, max_depth, relationship_types)


def get_specification_graph(store: GraphStore, file_name: str) -> Optional[SpecificationGraph]:
    """Project one specification with its endpoints and schemas.

    ``total_relationships`` counts the relationships leaving the
    specification, its endpoints and its schemas.
    """
    spec = _first(store.find_by_properties(NodeLabel.SPECIFICATION, {"fileName": file_name}))
    if spec is None:
        return None

    spec_edges = store.get_outgoing(spec.id)
    relationship_total = len(spec_edges)
    endpoints: list[EndpointView] = []
    schemas: list[SchemaView] = []

    for rel, target in spec_edges:
        outgoing = store.get_outgoing(target.id)
        relationship_total += len(outgoing)

        if rel.type == RelationshipType.DEFINES_ENDPOINT.value:
            endpoints.append(
                EndpointView(
                    endpoint=target.properties,
                    tags=_names(outgoing, RelationshipType.TAGGED_WITH),
                    parameters=_targets(outgoing, RelationshipType.HAS_PARAMETER),
                    responses=_targets(outgoing, RelationshipType.HAS_RESPONSE),
                )
            )
        elif rel.type == RelationshipType.DEFINES_SCHEMA.value:
            schemas.append(
                SchemaView(
                    schema_=target.properties,
                    properties=_targets(outgoing, RelationshipType.HAS_PROPERTY),
                    references=_names(outgoing, RelationshipType.REFERENCES),
                )
            )

    return SpecificationGraph(
        specification=spec.properties,
        endpoints=endpoints,
        schemas=schemas,
        statistics=SpecificationGraphStatistics(
            total_endpoints=len(endpoints),
            total_schemas=len(schemas),
            total_relationships=relationship_total,
        ),
    )


def _targets(outgoing: list, rel_type: RelationshipType) -> list[dict[str, Any]]:
    return [target.properties for rel, target in outgoing if rel.type == rel_type.value]


def _names(outgoing: list, rel_type: RelationshipType) -> list[str]:
    return [props["name"] for props in _targets(outgoing, rel_type) if "name" in props]
