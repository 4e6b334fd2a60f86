"""FastAPI route definitions for the specification graph.

Provides endpoints for:

- ``POST /graph/index`` - Load a directory of documents and index it.
- ``GET /graph/schemas/{name}/related`` - Schemas reachable via references.
- ``GET /graph/endpoints/dependencies`` - What one endpoint depends on.
- ``POST /graph/traverse`` - Breadth-first traversal from a matched node.
- ``GET /graph/specifications/{file_name}`` - One specification's subgraph.
- ``POST /graph/search`` - Wildcard property search.
- ``GET /graph/statistics`` - Node and relationship counts.
- ``GET /graph/backend`` - Which storage backend is active.
- ``DELETE /graph/clear`` - Wipe all graph data (dangerous).

The indexer and its Neo4j driver are **synchronous**, so every call is
dispatched to a thread via ``asyncio.to_thread`` so the FastAPI event
loop stays free.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, TypeVar

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from specgraph.graph.errors import NotIndexedError
from specgraph.graph.indexer import GraphIndexer
from specgraph.models.graph import (
    EndpointDependency,
    GraphStatistics,
    PatternSearchResult,
    RelatedSchemaResult,
    SpecificationGraph,
    TraversalResult,
)
from specgraph.models.indexing import IndexingResult

graph_router = APIRouter(prefix="/graph")

T = TypeVar("T")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _get_indexer(request: Request) -> GraphIndexer:
    return request.app.state.indexer


async def _call(fn: Callable[..., T], *args: Any) -> T:
    """Run a blocking indexer call in a thread and map its errors to HTTP."""
    try:
        return await asyncio.to_thread(fn, *args)
    except NotIndexedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


# ------------------------------------------------------------------
# Request / Response schemas
# ------------------------------------------------------------------


class IndexRequest(BaseModel):
    """Payload for ``POST /graph/index``.

    Attributes:
        path: Directory or single document to load.  Defaults to the
            configured ``spec_dir``.
        clear_existing: Wipe existing graph data before indexing.
    """

    path: Optional[str] = Field(None, description="Directory or document to index.")
    clear_existing: bool = Field(False, description="Wipe existing data first.")


class TraverseRequest(BaseModel):
    """Payload for ``POST /graph/traverse``."""

    start_node_type: str = Field(..., description="Label of the start node, e.g. 'Schema'.")
    start_node_filter: dict[str, Any] = Field(default_factory=dict, description="Exact property match.")
    relationship_types: Optional[list[str]] = Field(None, description="Relationship types to follow.")
    max_depth: Optional[int] = Field(None, ge=0, description="Maximum hops from the start node.")


class SearchRequest(BaseModel):
    """Payload for ``POST /graph/search``."""

    node_type: str = Field(..., description="Label to search, e.g. 'Endpoint'.")
    pattern: dict[str, Any] = Field(..., description="Property pattern; '*' in a string value is a wildcard.")
    limit: Optional[int] = Field(None, ge=1, description="Maximum matches to return.")


class BackendResponse(BaseModel):
    """Response from ``GET /graph/backend``."""

    persistent: bool
    backend: str


class ClearResponse(BaseModel):
    """Response from ``DELETE /graph/clear``."""

    status: str = Field("success")
    message: str


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@graph_router.post(
    "/index",
    response_model=IndexingResult,
    status_code=status.HTTP_200_OK,
    summary="Index specification documents",
    description=(
        "Load every document under the given path and run the four "
        "indexing phases. Per-item failures are returned in 'errors'."
    ),
)
async def graph_index(request: Request, body: IndexRequest) -> IndexingResult:
    """Load and index a directory of specification documents."""
    indexer = _get_indexer(request)

    def _do_index() -> IndexingResult:
        if body.clear_existing:
            indexer.clear_all()
        return indexer.load_and_index(body.path)

    return await _call(_do_index)


@graph_router.get(
    "/schemas/{name}/related",
    response_model=list[RelatedSchemaResult],
    summary="Find related schemas",
)
async def graph_related_schemas(
    request: Request,
    name: str,
    spec_file: Optional[str] = Query(None, description="Restrict to one specification."),
    max_depth: Optional[int] = Query(None, ge=0, description="Maximum reference hops."),
) -> list[RelatedSchemaResult]:
    return await _call(_get_indexer(request).find_related_schemas, name, spec_file, max_depth)


@graph_router.get(
    "/endpoints/dependencies",
    response_model=EndpointDependency,
    summary="Get endpoint dependencies",
)
async def graph_endpoint_dependencies(
    request: Request,
    path: str = Query(..., description="Endpoint path template."),
    method: str = Query(..., description="HTTP method, any case."),
    spec_file: Optional[str] = Query(None, description="Restrict to one specification."),
) -> EndpointDependency:
    dependency = await _call(_get_indexer(request).get_endpoint_dependencies, path, method, spec_file)
    if dependency is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Endpoint not found: {method} {path}")
    return dependency


@graph_router.post(
    "/traverse",
    response_model=TraversalResult,
    summary="Traverse the graph",
)
async def graph_traverse(request: Request, body: TraverseRequest) -> TraversalResult:
    return await _call(
        _get_indexer(request).traverse_graph,
        body.start_node_type,
        body.start_node_filter,
        body.relationship_types,
        body.max_depth,
    )


@graph_router.get(
    "/specifications/{file_name:path}",
    response_model=SpecificationGraph,
    summary="Get one specification's graph",
)
async def graph_specification(request: Request, file_name: str) -> SpecificationGraph:
    graph = await _call(_get_indexer(request).get_specification_graph, file_name)
    if graph is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Specification not found: {file_name}")
    return graph


@graph_router.post(
    "/search",
    response_model=PatternSearchResult,
    summary="Search nodes by property pattern",
)
async def graph_search(request: Request, body: SearchRequest) -> PatternSearchResult:
    return await _call(_get_indexer(request).search_by_pattern, body.node_type, body.pattern, body.limit)


@graph_router.get(
    "/statistics",
    response_model=GraphStatistics,
    summary="Graph statistics",
)
async def graph_statistics(request: Request) -> GraphStatistics:
    return await _call(_get_indexer(request).get_statistics)


@graph_router.get(
    "/backend",
    response_model=BackendResponse,
    summary="Active storage backend",
)
async def graph_backend(request: Request) -> BackendResponse:
    persistent = await _call(_get_indexer(request).is_using_persistent_backend)
    return BackendResponse(persistent=persistent, backend="neo4j" if persistent else "memory")


@graph_router.delete(
    "/clear",
    response_model=ClearResponse,
    status_code=status.HTTP_200_OK,
    summary="Clear all graph data",
    description="Delete all nodes and relationships. Queries return 409 until the next index run.",
)
async def graph_clear(request: Request) -> ClearResponse:
    """Wipe all graph data."""
    await _call(_get_indexer(request).clear_all)
    return ClearResponse(status="success", message="All graph data deleted.")
