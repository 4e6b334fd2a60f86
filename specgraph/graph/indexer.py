"""Graph indexer: specification documents -> graph nodes and relationships.

Runs four strictly ordered phases over a set of loaded documents:

1. **Specifications** - one Specification node per document, plus one
   global Tag node per tag name used by its operations.
2. **Endpoints** - Endpoint, Parameter and Response nodes with their
   relationships, ``USES_SCHEMA`` links and ``TAGGED_WITH`` links.
3. **Schemas** - Schema nodes and their top-level Property nodes.
4. **Relationships** - schema links skipped in phase 2 because the schema
   did not exist yet are retried, then ``REFERENCES`` edges are created
   for every local reference pointer found anywhere in each schema.

Items are processed one at a time.  A failing item is recorded in the
result's error list and the pass moves on; everything already written
stays written.
"""

from __future__ import annotations

import pathlib
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import structlog

from specgraph.config import Settings, settings
from specgraph.core.loader import load_specifications
from specgraph.graph import queries
from specgraph.graph.errors import NodeNotFoundError, NotIndexedError
from specgraph.graph.store import GraphStore
from specgraph.models.graph import (
    EndpointDependency,
    GraphStatistics,
    NodeLabel,
    PatternSearchResult,
    RelatedSchemaResult,
    RelationshipType,
    SchemaUsage,
    SpecificationGraph,
    TraversalResult,
)
from specgraph.models.identity import (
    endpoint_id,
    extract_schema_ref,
    parameter_id,
    property_id,
    response_id,
    schema_id,
    specification_id,
    tag_id,
    validate_node_properties,
)
from specgraph.models.indexing import (
    IndexingPhase,
    IndexingProgress,
    IndexingResult,
    ProgressCallback,
)
from specgraph.models.spec import OperationInfo, SpecDocument

logger = structlog.get_logger(__name__)


def collect_references(tree: Any) -> list[str]:
    """Collect every ``$ref`` string anywhere in a schema definition tree.

    Walks mappings and sequences of any depth; scalars end the walk.
    Shared or self-containing sub-trees (YAML aliases) are visited once.

    Returns:
        Reference pointers in document order, duplicates included.
    """
    refs: list[str] = []
    seen: set[int] = set()

    def walk(value: Any) -> None:
        if isinstance(value, (dict, list)):
            if id(value) in seen:
                return
            seen.add(id(value))
        if isinstance(value, dict):
            ref = value.get("$ref")
            if isinstance(ref, str):
                refs.append(ref)
            for child in value.values():
                walk(child)
        elif isinstance(value, list):
            for child in value:
                walk(child)

    walk(tree)
    return refs


def schema_ref_of(schema: Any) -> Optional[str]:
    """Local schema name a (media type or parameter) schema points at.

    Looks at the schema itself and, for arrays, at its ``items``.
    """
    if not isinstance(schema, dict):
        return None
    name = extract_schema_ref(schema.get("$ref"))
    if name is None and isinstance(schema.get("items"), dict):
        name = extract_schema_ref(schema["items"].get("$ref"))
    return name


def _require(properties: dict[str, Any], fields: Sequence[str]) -> None:
    validation = validate_node_properties(properties, fields)
    if not validation.valid:
        raise ValueError("; ".join(validation.errors))


@dataclass
class _PendingLink:
    start_id: str
    end_id: str
    properties: dict[str, Any]


@dataclass
class _PassState:
    """Mutable counters for one indexing pass."""

    specifications: int = 0
    endpoints: int = 0
    schemas: int = 0
    relationships: int = 0
    errors: list[str] = field(default_factory=list)
    pending: list[_PendingLink] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.errors.append(message)


class GraphIndexer:
    """Indexes specification documents and answers queries over the graph.

    Usage::

        indexer = GraphIndexer()
        result = indexer.load_and_index("specs/", on_progress=print)
        deps = indexer.get_endpoint_dependencies("/v1/payments", "GET")
        indexer.close()

    Args:
        store: Graph store to write into; built from *config* when omitted.
        config: Settings for the store and query defaults.
    """

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self._settings = config or settings
        self._store = store or GraphStore(self._settings)
        self._initialized = False
        self._indexed = False
        self._result: Optional[IndexingResult] = None

    # ------------------------------------------------------------------
    # Lifecycle and state
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        self._store.initialize()
        self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    def is_indexed(self) -> bool:
        return self._indexed

    @property
    def indexing_result(self) -> Optional[IndexingResult]:
        return self._result

    @property
    def graph_store(self) -> GraphStore:
        return self._store

    def is_using_persistent_backend(self) -> bool:
        return self._store.is_using_persistent_backend()

    def clear_all(self) -> None:
        """Delete all graph data; queries fail until the next pass."""
        self._store.clear_all()
        self._indexed = False
        self._result = None

    def close(self) -> None:
        self._store.close()
        self._initialized = False

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def load_and_index(
        self,
        source: Optional[str | pathlib.Path] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IndexingResult:
        """Load every document under *source* and index it.

        Args:
            source: A directory of documents or a single document.
                Defaults to ``settings.spec_dir``.
            on_progress: Called once per item of every phase.

        Returns:
            The pass summary.  Load failures appear in its error list.
        """
        source = source if source is not None else self._settings.spec_dir
        started = time.perf_counter()
        try:
            loaded = load_specifications(source, config=self._settings)
            documents, load_errors = loaded.documents, loaded.errors
        except (FileNotFoundError, NotADirectoryError) as exc:
            logger.error("spec_source_unavailable", source=str(source), error=str(exc))
            documents, load_errors = [], [f"Failed to load specifications from {source}: {exc}"]

        return self._run_pass(documents, on_progress, load_errors, started)

    def index_documents(
        self,
        documents: Sequence[SpecDocument],
        on_progress: Optional[ProgressCallback] = None,
    ) -> IndexingResult:
        """Index already-loaded documents."""
        return self._run_pass(documents, on_progress, [], time.perf_counter())

    def _run_pass(
        self,
        documents: Sequence[SpecDocument],
        on_progress: Optional[ProgressCallback],
        load_errors: list[str],
        started: float,
    ) -> IndexingResult:
        if not self._initialized:
            self.initialize()

        state = _PassState(errors=list(load_errors))

        def report(phase: IndexingPhase, current: int, total: int, item: Optional[str]) -> None:
            if on_progress is not None:
                on_progress(IndexingProgress(phase=phase, current=current, total=total, current_item=item))

        # ------------------------------------------------------------------
        # Phase 1: Specifications and tags
        # ------------------------------------------------------------------
        logger.info("phase_specifications_start", total=len(documents))
        for index, document in enumerate(documents):
            report(IndexingPhase.SPECIFICATIONS, index + 1, len(documents), document.file_name)
            try:
                self._index_specification(document)
                state.specifications += 1
            except Exception as exc:
                logger.exception("specification_index_failed", spec_file=document.file_name)
                state.fail(f"Failed to index specification {document.file_name}: {exc}")
        logger.info("phase_specifications_done", indexed=state.specifications)

        # ------------------------------------------------------------------
        # Phase 2: Endpoints, parameters, responses
        # ------------------------------------------------------------------
        operations = [(doc.file_name, op) for doc in documents for op in doc.operations]
        logger.info("phase_endpoints_start", total=len(operations))
        for index, (spec_file, operation) in enumerate(operations):
            report(IndexingPhase.ENDPOINTS, index + 1, len(operations), operation.label)
            try:
                self._index_endpoint(spec_file, operation, state)
                state.endpoints += 1
            except Exception as exc:
                logger.exception("endpoint_index_failed", spec_file=spec_file, endpoint=operation.label)
                state.fail(f"Failed to index endpoint {operation.label} ({spec_file}): {exc}")
        logger.info("phase_endpoints_done", indexed=state.endpoints, pending_links=len(state.pending))

        # ------------------------------------------------------------------
        # Phase 3: Schemas and their properties
        # ------------------------------------------------------------------
        schemas = [(doc.file_name, name, definition) for doc in documents for name, definition in doc.schemas.items()]
        logger.info("phase_schemas_start", total=len(schemas))
        for index, (spec_file, name, definition) in enumerate(schemas):
            report(IndexingPhase.SCHEMAS, index + 1, len(schemas), name)
            try:
                self._index_schema(spec_file, name, definition, state)
                state.schemas += 1
            except Exception as exc:
                logger.exception("schema_index_failed", spec_file=spec_file, schema=name)
                state.fail(f"Failed to index schema {name} ({spec_file}): {exc}")
        logger.info("phase_schemas_done", indexed=state.schemas)

        # ------------------------------------------------------------------
        # Phase 4: Deferred schema links and schema cross-references
        # ------------------------------------------------------------------
        pending, state.pending = state.pending, []
        total = len(pending) + len(schemas)
        logger.info("phase_relationships_start", pending_links=len(pending), schemas=len(schemas))
        for index, link in enumerate(pending):
            report(IndexingPhase.RELATIONSHIPS, index + 1, total, f"{link.start_id} -> {link.end_id}")
            self._link(link.start_id, link.end_id, RelationshipType.USES_SCHEMA, state, link.properties)
        for index, (spec_file, name, definition) in enumerate(schemas, start=len(pending)):
            report(IndexingPhase.RELATIONSHIPS, index + 1, total, name)
            try:
                self._index_references(spec_file, name, definition, state)
            except Exception as exc:
                logger.exception("schema_references_failed", spec_file=spec_file, schema=name)
                state.fail(f"Failed to create references for schema {name} ({spec_file}): {exc}")
        logger.info("phase_relationships_done", relationships=state.relationships)

        result = IndexingResult(
            success=not state.errors,
            specifications_indexed=state.specifications,
            endpoints_indexed=state.endpoints,
            schemas_indexed=state.schemas,
            relationships_created=state.relationships,
            errors=state.errors,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        self._result = result
        self._indexed = True
        logger.info(
            "indexing_complete",
            success=result.success,
            specifications=result.specifications_indexed,
            endpoints=result.endpoints_indexed,
            schemas=result.schemas_indexed,
            relationships=result.relationships_created,
            errors=len(result.errors),
            duration_ms=round(result.duration_ms, 1),
        )
        return result

    # ------------------------------------------------------------------
    # Per-item work
    # ------------------------------------------------------------------

    def _index_specification(self, document: SpecDocument) -> None:
        props = {
            "fileName": document.file_name,
            "title": document.title,
            "version": document.version,
            "description": document.description,
            "openApiVersion": document.openapi_version,
        }
        _require(props, ["fileName", "title"])
        self._store.create_or_merge_node([NodeLabel.SPECIFICATION], props, specification_id(document.file_name))

        for name in document.tag_names():
            tag_props: dict[str, Any] = {"name": name}
            if name in document.tag_descriptions:
                tag_props["description"] = document.tag_descriptions[name]
            self._store.create_or_merge_node([NodeLabel.TAG], tag_props, tag_id(name))

    def _index_endpoint(self, spec_file: str, operation: OperationInfo, state: _PassState) -> None:
        ep_id = endpoint_id(spec_file, operation.path, operation.method)
        body_refs = self._media_refs((operation.request_body or {}).get("content"))
        props = {
            "path": operation.path,
            "method": operation.method.upper(),
            "operationId": operation.operation_id,
            "summary": operation.summary,
            "description": operation.description,
            "deprecated": operation.deprecated,
            "specFile": spec_file,
            "requestBodySchema": next((name for _, name in body_refs if name), None),
        }
        _require(props, ["path", "method", "specFile"])
        self._store.create_or_merge_node([NodeLabel.ENDPOINT], props, ep_id)
        self._link(specification_id(spec_file), ep_id, RelationshipType.DEFINES_ENDPOINT, state)

        for parameter in operation.parameters:
            self._index_parameter(spec_file, ep_id, parameter, state)

        for status_code, response in operation.responses.items():
            self._index_response(spec_file, ep_id, str(status_code), response or {}, state)

        for media_type, name in body_refs:
            if name:
                self._link_schema(ep_id, spec_file, name, SchemaUsage.REQUEST, media_type, state)

        for tag in operation.tags:
            if tag:
                self._link(ep_id, tag_id(tag), RelationshipType.TAGGED_WITH, state)

    def _index_parameter(self, spec_file: str, ep_id: str, parameter: dict[str, Any], state: _PassState) -> None:
        schema = parameter.get("schema") if isinstance(parameter.get("schema"), dict) else {}
        ref_name = schema_ref_of(schema)
        props = {
            "name": parameter.get("name"),
            "in": parameter.get("in"),
            "required": bool(parameter.get("required", False)),
            "description": parameter.get("description"),
            "type": schema.get("type") or parameter.get("type"),
            "format": schema.get("format") or parameter.get("format"),
            "schemaRef": ref_name,
            "endpointId": ep_id,
        }
        _require(props, ["name", "in"])
        param_id = parameter_id(ep_id, props["name"], props["in"])
        self._store.create_or_merge_node([NodeLabel.PARAMETER], props, param_id)
        self._link(ep_id, param_id, RelationshipType.HAS_PARAMETER, state)
        if ref_name:
            self._link_schema(ep_id, spec_file, ref_name, SchemaUsage.REQUEST, None, state)

    def _index_response(
        self,
        spec_file: str,
        ep_id: str,
        status_code: str,
        response: dict[str, Any],
        state: _PassState,
    ) -> None:
        content = response.get("content")
        refs = self._media_refs(content)
        props = {
            "statusCode": status_code,
            "description": response.get("description"),
            "mediaType": refs[0][0] if refs else None,
            "schemaRef": next((name for _, name in refs if name), None),
            "endpointId": ep_id,
        }
        resp_id = response_id(ep_id, status_code)
        self._store.create_or_merge_node([NodeLabel.RESPONSE], props, resp_id)
        self._link(ep_id, resp_id, RelationshipType.HAS_RESPONSE, state)
        for media_type, name in refs:
            if name:
                self._link_schema(ep_id, spec_file, name, SchemaUsage.RESPONSE, media_type, state)

    def _index_schema(self, spec_file: str, name: str, definition: Any, state: _PassState) -> None:
        if not isinstance(definition, dict):
            raise ValueError(f"schema definition must be a mapping, got {type(definition).__name__}")
        required = definition.get("required")
        required = [str(r) for r in required] if isinstance(required, list) else []
        props = {
            "name": name,
            "type": definition.get("type") or "object",
            "description": definition.get("description"),
            "required": required,
            "specFile": spec_file,
        }
        _require(props, ["name", "specFile"])
        s_id = schema_id(spec_file, name)
        self._store.create_or_merge_node([NodeLabel.SCHEMA], props, s_id)
        self._link(specification_id(spec_file), s_id, RelationshipType.DEFINES_SCHEMA, state)

        properties = definition.get("properties")
        if not isinstance(properties, dict):
            return
        for prop_name, prop_def in properties.items():
            prop_def = prop_def if isinstance(prop_def, dict) else {}
            enum_values = prop_def.get("enum")
            prop_props = {
                "name": str(prop_name),
                "type": prop_def.get("type"),
                "format": prop_def.get("format"),
                "description": prop_def.get("description"),
                "required": prop_name in required,
                "nullable": prop_def.get("nullable"),
                "enum": [str(v) for v in enum_values] if isinstance(enum_values, list) else None,
                "schemaRef": schema_ref_of(prop_def),
                "schemaId": s_id,
            }
            p_id = property_id(s_id, str(prop_name))
            self._store.create_or_merge_node([NodeLabel.PROPERTY], prop_props, p_id)
            self._link(s_id, p_id, RelationshipType.HAS_PROPERTY, state)

    def _index_references(self, spec_file: str, name: str, definition: Any, state: _PassState) -> None:
        source_id = schema_id(spec_file, name)
        for ref in dict.fromkeys(collect_references(definition)):
            target = extract_schema_ref(ref)
            if target is None:
                logger.debug("reference_not_local", schema=name, ref=ref)
                continue
            self._link(source_id, schema_id(spec_file, target), RelationshipType.REFERENCES, state, {"refPath": ref})

    # ------------------------------------------------------------------
    # Relationship helpers
    # ------------------------------------------------------------------

    def _link(
        self,
        start_id: str,
        end_id: str,
        rel_type: RelationshipType,
        state: _PassState,
        properties: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Merge one relationship; a missing endpoint is skipped, not an error."""
        try:
            self._store.create_or_merge_relationship(start_id, end_id, rel_type, properties)
        except NodeNotFoundError as exc:
            logger.debug("relationship_skipped", type=rel_type.value, start=start_id, end=end_id, missing=exc.node_ids)
            return False
        state.relationships += 1
        return True

    def _link_schema(
        self,
        ep_id: str,
        spec_file: str,
        schema_name: str,
        usage: SchemaUsage,
        media_type: Optional[str],
        state: _PassState,
    ) -> None:
        target = schema_id(spec_file, schema_name)
        props = {"context": usage.value, "mediaType": media_type}
        if not self._link(ep_id, target, RelationshipType.USES_SCHEMA, state, props):
            state.pending.append(_PendingLink(ep_id, target, props))

    @staticmethod
    def _media_refs(content: Any) -> list[tuple[str, Optional[str]]]:
        """(media type, referenced schema name or None) for each media type."""
        if not isinstance(content, dict):
            return []
        return [
            (str(media_type), schema_ref_of((media or {}).get("schema") if isinstance(media, dict) else None))
            for media_type, media in content.items()
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _ensure_indexed(self) -> None:
        if not self._indexed:
            raise NotIndexedError()

    def find_related_schemas(
        self,
        schema_name: str,
        spec_file: Optional[str] = None,
        max_depth: Optional[int] = None,
    ) -> list[RelatedSchemaResult]:
        self._ensure_indexed()
        depth = max_depth if max_depth is not None else self._settings.default_max_depth
        return queries.find_related_schemas(self._store, schema_name, spec_file, depth)

    def get_endpoint_dependencies(
        self,
        path: str,
        method: str,
        spec_file: Optional[str] = None,
    ) -> Optional[EndpointDependency]:
        self._ensure_indexed()
        return queries.get_endpoint_dependencies(self._store, path, method, spec_file)

    def traverse_graph(
        self,
        start_node_type: str,
        start_node_filter: dict[str, Any],
        relationship_types: Optional[Sequence[str]] = None,
        max_depth: Optional[int] = None,
    ) -> TraversalResult:
        self._ensure_indexed()
        depth = max_depth if max_depth is not None else self._settings.default_max_depth
        return queries.traverse_graph(self._store, start_node_type, start_node_filter, relationship_types, depth)

    def get_specification_graph(self, file_name: str) -> Optional[SpecificationGraph]:
        self._ensure_indexed()
        return queries.get_specification_graph(self._store, file_name)

    def search_by_pattern(
        self,
        node_type: str,
        pattern: dict[str, Any],
        limit: Optional[int] = None,
    ) -> PatternSearchResult:
        self._ensure_indexed()
        return self._store.search_by_pattern(
            node_type,
            pattern,
            limit if limit is not None else self._settings.default_search_limit,
        )

    def get_statistics(self) -> GraphStatistics:
        self._ensure_indexed()
        return self._store.get_statistics()
