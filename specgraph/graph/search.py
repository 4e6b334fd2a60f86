"""Property-pattern matching shared by both graph backends.

A pattern maps property names to expected values.  A string value that
contains ``*`` is a wildcard: ``*`` stands for any run of characters,
everything else is literal, and the whole property value must match,
ignoring case.  Any other value must be equal.  All entries must match.

The same pattern is evaluated in Python by the in-memory backend
(:func:`matches_pattern`) and translated to a Cypher ``WHERE`` clause
for Neo4j (:func:`pattern_where_clause`).
"""

from __future__ import annotations

import json
import re
from typing import Any

WILDCARD = "*"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_identifier(value: str, kind: str = "identifier") -> str:
    """Return *value* if it is safe to splice into Cypher as a label or type.

    Raises:
        ValueError: If *value* is not a plain identifier.
    """
    if not isinstance(value, str) or not _IDENTIFIER.match(value):
        raise ValueError(f"Invalid {kind}: {value!r}")
    return value


def is_wildcard(value: Any) -> bool:
    return isinstance(value, str) and WILDCARD in value


def wildcard_to_regex(value: str) -> str:
    """Translate a wildcard expression into an (unanchored) regex body.

    Example::

        >>> wildcard_to_regex("*Account*")
        '.*Account.*'
    """
    return ".*".join(re.escape(part) for part in value.split(WILDCARD))


def compile_wildcard(value: str) -> re.Pattern[str]:
    return re.compile(wildcard_to_regex(value), re.IGNORECASE | re.DOTALL)


def matches_pattern(properties: dict[str, Any], pattern: dict[str, Any]) -> bool:
    """Evaluate *pattern* against a node's properties."""
    for key, expected in pattern.items():
        actual = properties.get(key)
        if is_wildcard(expected):
            if not isinstance(actual, str):
                return False
            if compile_wildcard(expected).fullmatch(actual) is None:
                return False
        elif expected is None:
            if actual is not None:
                return False
        elif actual is None or actual != expected:
            return False
    return True


def pattern_where_clause(pattern: dict[str, Any], var: str = "n") -> tuple[str, dict[str, Any]]:
    """Build a Cypher predicate equivalent to :func:`matches_pattern`.

    Property names are passed as parameters (``n[$k0]``) so they never
    need escaping.

    Returns:
        ``(clause, params)``; the clause is ``"true"`` for an empty pattern.
    """
    conditions: list[str] = []
    params: dict[str, Any] = {}
    for index, (key, expected) in enumerate(pattern.items()):
        key_param, value_param = f"k{index}", f"v{index}"
        params[key_param] = key
        prop = f"{var}[${key_param}]"
        if is_wildcard(expected):
            # Java regex: (?i) case-insensitive, (?u) Unicode case folding,
            # (?s) dot matches newlines; =~ always matches the whole string.
            params[value_param] = "(?isu)" + wildcard_to_regex(expected)
            conditions.append(f"{prop} =~ ${value_param}")
        elif expected is None:
            conditions.append(f"{prop} IS NULL")
        else:
            params[value_param] = expected
            conditions.append(f"{prop} = ${value_param}")
    return (" AND ".join(conditions) or "true"), params


def pattern_to_json(pattern: dict[str, Any]) -> str:
    return json.dumps(pattern, default=str)
