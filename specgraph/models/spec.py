"""Parsed specification documents, as handed to the graph indexer.

The parsing side produces these; the indexer only reads them.  Nested
structures (parameter schemas, request bodies, schema definitions) stay
as plain dicts because they are arbitrarily shaped trees.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class OperationInfo(BaseModel):
    """One HTTP operation (path + method) of a document.

    Attributes:
        path: URL path template, e.g. ``/v1/payments/{paymentId}``.
        method: Upper-case HTTP method.
        parameters: Raw parameter objects (``name``, ``in``, ``schema`` ...).
        request_body: Raw request body object, if any.
        responses: Raw response objects keyed by status code.
        tags: Tag names applied to the operation.
    """

    path: str
    method: str
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    deprecated: bool = False
    parameters: list[dict[str, Any]] = Field(default_factory=list)
    request_body: Optional[dict[str, Any]] = None
    responses: dict[str, dict[str, Any]] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.method} {self.path}"


class SpecDocument(BaseModel):
    """A single loaded specification document.

    Attributes:
        file_name: Unique file identifier (the Specification key).
        title: ``info.title``.
        version: ``info.version``.
        openapi_version: ``openapi`` / ``swagger`` field value.
        operations: Every operation, in document order.
        schemas: Named schema definitions, in document order.
        tag_descriptions: Descriptions from the top-level ``tags`` list.
    """

    file_name: str
    title: str
    version: str = "unknown"
    openapi_version: str = "unknown"
    description: Optional[str] = None
    operations: list[OperationInfo] = Field(default_factory=list)
    schemas: dict[str, Any] = Field(default_factory=dict)
    tag_descriptions: dict[str, str] = Field(default_factory=dict)

    def tag_names(self) -> list[str]:
        """Return every tag used by any operation, first-seen order, no duplicates."""
        seen: dict[str, None] = {}
        for operation in self.operations:
            for tag in operation.tags:
                if tag:
                    seen.setdefault(tag, None)
        return list(seen)
