"""Load OpenAPI / Swagger documents from disk into :class:`SpecDocument` models.

The loader is the thin front half of an indexing pass: it crawls a source
directory (or takes a single file), parses each document with PyYAML and
flattens it into the shape the graph indexer consumes.  A document that
cannot be read or parsed is reported and skipped; the others still load.
"""

from __future__ import annotations

import pathlib
from typing import Any, Optional

import structlog
import yaml
from pydantic import BaseModel, Field

from specgraph.config import Settings, settings
from specgraph.core.crawler import FileCrawler
from specgraph.models.spec import OperationInfo, SpecDocument

logger = structlog.get_logger(__name__)

HTTP_METHODS: tuple[str, ...] = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

_LOCAL_COMPONENT_PREFIXES: dict[str, tuple[str, ...]] = {
    "parameters": ("#/components/parameters/", "#/parameters/"),
    "responses": ("#/components/responses/", "#/responses/"),
    "requestBodies": ("#/components/requestBodies/",),
}


class LoadedSpecifications(BaseModel):
    """Outcome of loading a source: the documents plus per-file errors."""

    documents: list[SpecDocument] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


def load_specifications(
    source: str | pathlib.Path,
    config: Optional[Settings] = None,
    blacklist: list[str] | None = None,
) -> LoadedSpecifications:
    """Load every specification document under *source*.

    Args:
        source: A directory (crawled recursively) or a single document.
        config: Settings for extensions, blacklist and size cap.
        blacklist: Optional override for the crawler blacklist.

    Returns:
        Parsed documents in path order, plus one error string per file
        that could not be loaded.

    Raises:
        FileNotFoundError: If *source* does not exist.
    """
    cfg = config or settings
    root = pathlib.Path(source).resolve()
    if not root.exists():
        raise FileNotFoundError(f"Specification source does not exist: {root}")

    if root.is_file():
        files = [root]
        base = root.parent
    else:
        files = list(FileCrawler(root, blacklist=blacklist, config=cfg).crawl())
        base = root

    logger.info("spec_loading_started", source=str(root), files=len(files))
    loaded = LoadedSpecifications()
    for path in files:
        file_name = path.relative_to(base).as_posix()
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
            loaded.documents.append(parse_document(file_name, raw))
        except Exception as exc:
            logger.exception("spec_load_failed", file=file_name)
            loaded.errors.append(f"Failed to load {file_name}: {exc}")

    logger.info("spec_loading_finished", documents=len(loaded.documents), failed=len(loaded.errors))
    return loaded


def parse_document(file_name: str, raw: Any) -> SpecDocument:
    """Flatten one parsed OpenAPI 3 or Swagger 2 document.

    Raises:
        ValueError: If *raw* is not a mapping.
    """
    if not isinstance(raw, dict):
        raise ValueError("document root must be a mapping")

    info = raw.get("info") if isinstance(raw.get("info"), dict) else {}
    components = raw.get("components") if isinstance(raw.get("components"), dict) else {}
    schemas = components.get("schemas")
    if not isinstance(schemas, dict):
        schemas = raw.get("definitions") if isinstance(raw.get("definitions"), dict) else {}

    tag_descriptions: dict[str, str] = {}
    for tag in _as_list(raw.get("tags")):
        if isinstance(tag, dict) and tag.get("name") and tag.get("description"):
            tag_descriptions[str(tag["name"])] = str(tag["description"])

    return SpecDocument(
        file_name=file_name,
        title=str(info.get("title") or file_name),
        version=str(info.get("version") or "unknown"),
        openapi_version=str(raw.get("openapi") or raw.get("swagger") or "unknown"),
        description=info.get("description"),
        operations=_operations(raw),
        schemas=dict(schemas),
        tag_descriptions=tag_descriptions,
    )


def _operations(raw: dict[str, Any]) -> list[OperationInfo]:
    paths = _as_dict(raw.get("paths"))
    consumes = _first_media_type(raw.get("consumes"), "application/json")
    produces = _first_media_type(raw.get("produces"), "application/json")
    operations: list[OperationInfo] = []

    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        shared = [_resolve(raw, "parameters", p) for p in _as_list(path_item.get("parameters"))]
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if not isinstance(operation, dict):
                continue
            own = [_resolve(raw, "parameters", p) for p in _as_list(operation.get("parameters"))]
            parameters = _merge_parameters(shared, own)

            request_body = _resolve(raw, "requestBodies", operation.get("requestBody"))
            body_params = [p for p in parameters if p.get("in") == "body"]
            if body_params and request_body is None:
                # Swagger 2: the body parameter becomes the request body.
                media_type = _first_media_type(operation.get("consumes")) or consumes
                request_body = {"content": {media_type: {"schema": body_params[0].get("schema") or {}}}}
            parameters = [p for p in parameters if p.get("in") != "body"]

            responses = {}
            for status, response in _as_dict(operation.get("responses")).items():
                response = _as_dict(_resolve(raw, "responses", response))
                if "schema" in response and "content" not in response:
                    media_type = _first_media_type(operation.get("produces")) or produces
                    response = {**response, "content": {media_type: {"schema": response["schema"]}}}
                responses[str(status)] = response

            operations.append(
                OperationInfo(
                    path=str(path),
                    method=method.upper(),
                    operation_id=operation.get("operationId"),
                    summary=operation.get("summary"),
                    description=operation.get("description"),
                    deprecated=bool(operation.get("deprecated", False)),
                    parameters=parameters,
                    request_body=request_body,
                    responses=responses,
                    tags=_tags(operation.get("tags")),
                )
            )
    return operations


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _tags(value: Any) -> list[str]:
    """Tag names of an operation; a lone string is one tag."""
    if isinstance(value, str):
        return [value] if value else []
    return [str(t) for t in _as_list(value) if t]


def _merge_parameters(shared: list[Any], own: list[Any]) -> list[dict[str, Any]]:
    """Path-level parameters overridden by operation-level ones on (name, in)."""
    merged: dict[tuple[Any, Any], dict[str, Any]] = {}
    for parameter in [*shared, *own]:
        if isinstance(parameter, dict):
            merged[(parameter.get("name"), parameter.get("in"))] = parameter
    return list(merged.values())


def _resolve(raw: dict[str, Any], kind: str, value: Any) -> Any:
    """Inline a local component reference, one level deep."""
    if not isinstance(value, dict) or not isinstance(value.get("$ref"), str):
        return value
    ref = value["$ref"]
    for prefix in _LOCAL_COMPONENT_PREFIXES[kind]:
        if not ref.startswith(prefix):
            continue
        components = raw.get("components") if isinstance(raw.get("components"), dict) else {}
        container = components.get(kind) if prefix.startswith("#/components/") else raw.get(kind)
        target = (container or {}).get(ref[len(prefix):]) if isinstance(container, dict) else None
        if isinstance(target, dict):
            return target
    logger.debug("component_ref_unresolved", kind=kind, ref=ref)
    return value


def _first_media_type(value: Any, default: Optional[str] = None) -> Optional[str]:
    if isinstance(value, list) and value:
        return str(value[0])
    return default
