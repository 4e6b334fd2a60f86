"""Deterministic identity derivation for graph nodes and relationships.

Every node id is a pure function of the node's identifying properties, so
re-indexing the same documents merges into the same nodes instead of
creating duplicates.  No counters, no random ids.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_UNDERSCORE_RUN = re.compile(r"_+")

# Local pointers into the document's own schema namespace.  OpenAPI 3 keeps
# them under components/schemas, Swagger 2.0 under definitions.
_LOCAL_SCHEMA_REF = re.compile(r"^#/(?:components/schemas|definitions)/([^/]+)$")


def _sanitize(part: Any) -> str:
    text = "" if part is None else str(part)
    text = _NON_ALNUM.sub("_", text.lower())
    text = _UNDERSCORE_RUN.sub("_", text)
    return text.strip("_")


def derive_id(label: str, *parts: Any) -> str:
    """Build a content-addressed id from a label and its key fields.

    Each part is lower-cased, every character outside ``[a-z0-9]`` becomes
    ``_``, runs of ``_`` collapse and leading/trailing ``_`` are trimmed.

    Example::

        >>> derive_id("endpoint", "pay.yaml", "/v1/payments", "GET")
        'endpoint_pay_yaml_v1_payments_get'

    Args:
        label: Id prefix, usually the node kind.
        *parts: Identifying property values, in a fixed order per kind.

    Returns:
        The derived id string.
    """
    sanitized = [_sanitize(p) for p in parts]
    return "_".join([label.lower(), *sanitized])


def specification_id(file_name: str) -> str:
    return derive_id("spec", file_name)


def endpoint_id(spec_file: str, path: str, method: str) -> str:
    return derive_id("endpoint", spec_file, path, method)


def schema_id(spec_file: str, schema_name: str) -> str:
    return derive_id("schema", spec_file, schema_name)


def parameter_id(owner_endpoint_id: str, name: str, location: str) -> str:
    return derive_id("param", owner_endpoint_id, name, location)


def response_id(owner_endpoint_id: str, status_code: str) -> str:
    return derive_id("response", owner_endpoint_id, status_code)


def tag_id(tag_name: str) -> str:
    # Tags are global: no spec file in the key.
    return derive_id("tag", tag_name)


def property_id(owner_schema_id: str, property_name: str) -> str:
    return derive_id("prop", owner_schema_id, property_name)


def relationship_id(start_id: str, rel_type: str, end_id: str) -> str:
    """Return the id of the (start, type, end) relationship."""
    return f"{start_id}-[{rel_type}]->{end_id}"


def extract_schema_ref(ref: Optional[str]) -> Optional[str]:
    """Resolve a reference pointer to a local schema name.

    Only pointers into the same document's schema namespace resolve;
    external documents, other component kinds and malformed values
    return ``None``.

    Args:
        ref: The raw ``$ref`` value.

    Returns:
        The referenced schema's local name, or ``None``.
    """
    if not isinstance(ref, str):
        return None
    match = _LOCAL_SCHEMA_REF.match(ref.strip())
    if match is None:
        return None
    # JSON pointer escapes: ~1 is "/", ~0 is "~" (order matters).
    return match.group(1).replace("~1", "/").replace("~0", "~")


class PropertyValidation(BaseModel):
    """Outcome of :func:`validate_node_properties`."""

    valid: bool
    errors: list[str] = Field(default_factory=list)


def validate_node_properties(
    properties: dict[str, Any],
    required_fields: Iterable[str],
) -> PropertyValidation:
    """Report every required field that is absent or ``None``.

    Empty strings, zero and ``False`` count as present.
    """
    errors = [
        f"Missing required field: {name}"
        for name in required_fields
        if properties.get(name) is None
    ]
    return PropertyValidation(valid=not errors, errors=errors)
