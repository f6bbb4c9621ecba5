"""Response value extraction.

Supports a restricted JSONPath subset:
- Root marker: ``$``
- Field access: ``$.user.id`` or ``$['user']['id']``
- Array indexing: ``$.items[0].id``

Wildcards, slices, filters, unions and recursive descent are rejected.
A path that does not resolve against a body yields ``NOT_FOUND`` instead of
raising, so a missed extraction never interrupts a session.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Union

from jsonpath_ng import parse as parse_jsonpath
from jsonpath_ng.jsonpath import Child, Fields, Index, Root

from apiline.workflows.errors import UnsupportedPath

logger = logging.getLogger(__name__)

Segment = Union[str, int]


class _NotFound:
    """Marker for a path that did not resolve."""

    _instance: _NotFound | None = None

    def __new__(cls) -> _NotFound:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND = _NotFound()


@lru_cache(maxsize=256)
def compile_path(path: str) -> tuple[Segment, ...]:
    """Parse a path expression into a tuple of field names and indexes.

    Args:
        path: Path expression, e.g. ``$.items[0].id``.

    Returns:
        The ordered segments to walk from the root.

    Raises:
        UnsupportedPath: If the expression is invalid or outside the supported subset.
    """
    expression = path.strip()
    if not expression:
        raise UnsupportedPath(path, "empty path")
    try:
        node = parse_jsonpath(expression)
    except Exception as exc:
        raise UnsupportedPath(path, f"invalid syntax ({exc})") from exc
    return tuple(_segments(node, path))


def _segments(node: Any, path: str) -> list[Segment]:
    if isinstance(node, Root):
        return []
    if isinstance(node, Child):
        return _segments(node.left, path) + _segments(node.right, path)
    if isinstance(node, Fields):
        if len(node.fields) != 1 or node.fields[0] == "*":
            raise UnsupportedPath(path, "wildcards and multi-field selections are not supported")
        return [node.fields[0]]
    if isinstance(node, Index):
        # jsonpath-ng >= 1.6.1 stores a tuple of indices, older releases a single index
        indices = getattr(node, "indices", None) or (node.index,)
        if len(indices) != 1:
            raise UnsupportedPath(path, "multiple indexes are not supported")
        return [int(indices[0])]
    raise UnsupportedPath(path, f"'{node}' is not supported (only fields and array indexes)")


def validate_path(path: str) -> str:
    """Check that a path is supported and return it unchanged."""
    compile_path(path)
    return path


def extract_value(body: Any, path: str) -> Any:
    """Extract the value at ``path`` from a parsed response body.

    Args:
        body: Parsed response body (JSON-like value or text).
        path: Path expression rooted at ``$``.

    Returns:
        The value at the location, or ``NOT_FOUND``.
    """
    current = body
    for segment in compile_path(path):
        if isinstance(segment, str):
            if not isinstance(current, dict) or segment not in current:
                return NOT_FOUND
            current = current[segment]
        else:
            if not isinstance(current, list) or not -len(current) <= segment < len(current):
                return NOT_FOUND
            current = current[segment]
    return current


def extract_many(body: Any, paths: dict[str, str]) -> tuple[dict[str, Any], list[tuple[str, str]]]:
    """Extract several variables at once.

    Args:
        body: Parsed response body.
        paths: Mapping of variable name to path expression.

    Returns:
        A tuple of (found values by variable name, list of (name, path) misses).
    """
    found: dict[str, Any] = {}
    missed: list[tuple[str, str]] = []
    for name, path in paths.items():
        value = extract_value(body, path)
        if value is NOT_FOUND:
            logger.info("Extraction miss: %s not found at %s", name, path)
            missed.append((name, path))
        else:
            found[name] = value
    return found, missed
