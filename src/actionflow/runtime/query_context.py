"""
Dotted-path variable bag for placeholder resolution.

Filter values and insert data may reference request-scoped values with
``"$.path"`` strings:

    ctx = QueryContext({"user.id": 7})
    ctx.resolve_value("$.user.id")   # -> 7
    ctx.resolve_value("draft")       # -> "draft"
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from actionflow.core.errors import ResolutionError, StructuralValidationError

PLACEHOLDER_PREFIX = "$."

_MISSING = object()


def _split_path(path: str) -> list[str]:
    if not path:
        raise StructuralValidationError("Context path cannot be empty", field="path")
    segments = path.split(".")
    if any(not segment for segment in segments):
        raise StructuralValidationError(f"Invalid context path: {path!r}", field="path")
    return segments


def walk_path(data: Any, segments: list[str]) -> Any:
    """
    Follow ``segments`` through nested mappings (and list indices).

    Returns the module-level sentinel ``_MISSING`` rather than raising when
    a segment does not exist; callers decide what absence means.
    """
    current = data
    for segment in segments:
        if isinstance(current, Mapping):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, list | tuple) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


class QueryContext:
    """Request-scoped values addressable by dotted path."""

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = {}
        for path, value in (initial or {}).items():
            self.set(path, value)

    def set(self, path: str, value: Any) -> None:
        segments = _split_path(path)
        current = self._data
        for segment in segments[:-1]:
            child = current.get(segment)
            if not isinstance(child, dict):
                child = {}
                current[segment] = child
            current = child
        current[segments[-1]] = value

    def get(self, path: str, default: Any = None) -> Any:
        value = walk_path(self._data, _split_path(path))
        return default if value is _MISSING else value

    def has(self, path: str) -> bool:
        return walk_path(self._data, _split_path(path)) is not _MISSING

    def remove(self, path: str) -> None:
        segments = _split_path(path)
        parent = walk_path(self._data, segments[:-1]) if len(segments) > 1 else self._data
        if isinstance(parent, dict):
            parent.pop(segments[-1], None)

    def all(self) -> dict[str, Any]:
        return self._data

    def resolve_value(self, value: Any) -> Any:
        """
        Replace a ``"$.path"`` placeholder with its context value.

        Raises:
            ResolutionError: if the placeholder names a missing path
        """
        if not isinstance(value, str) or not value.startswith(PLACEHOLDER_PREFIX):
            return value
        path = value[len(PLACEHOLDER_PREFIX) :]
        if not self.has(path):
            raise ResolutionError(f"Context variable not found: {value}", name=value)
        return self.get(path)

    def resolve_deep(self, value: Any) -> Any:
        """Resolve placeholders anywhere inside lists and mappings."""
        if isinstance(value, Mapping):
            return {key: self.resolve_deep(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self.resolve_deep(item) for item in value]
        return self.resolve_value(value)

    def __repr__(self) -> str:
        return f"QueryContext({self._data!r})"
