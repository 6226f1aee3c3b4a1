"""
Filter tree normalization and validation.

Callers may write filters in three shapes:

    full form   {"op": "and", "conditions": [{"attribute": "a", "op": "is", "value": 1}]}
    list form   [{"attribute": "a", "value": 1}, {"attribute": "b", "op": "gt", "value": 2}]
    shorthand   {"a": 1, "b": 2}

``normalize`` turns every shape into the full form and ``validate`` checks
the result. Both work on plain dicts and never mutate their input.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from actionflow.core.errors import StructuralValidationError
from actionflow.specs.filters import FilterGroup, LogicalOperator, is_valid_operator

_LOGICAL_OPS = {op.value for op in LogicalOperator}


def is_group(node: Any) -> bool:
    """True for ``{op, conditions}`` nodes."""
    return isinstance(node, Mapping) and "op" in node and "conditions" in node


def normalize_condition(condition: Any) -> dict[str, Any]:
    """
    Normalize one member of a list-form filter.

    Nested groups pass through untouched; leaves get ``op`` defaulted to
    ``is`` and ``value`` defaulted to None.
    """
    if is_group(condition):
        return dict(condition)
    if not isinstance(condition, Mapping) or "attribute" not in condition:
        raise StructuralValidationError(
            "Filter condition must specify an attribute", field="attribute"
        )
    return {
        "op": condition.get("op") or "is",
        "attribute": condition["attribute"],
        "value": condition.get("value"),
    }


def normalize_filters(filters: Any) -> Any:
    """Normalize a filter value of any accepted shape into a group."""
    if is_group(filters):
        return filters
    if isinstance(filters, list | tuple):
        return {
            "op": "and",
            "conditions": [normalize_condition(c) for c in filters],
        }
    if isinstance(filters, Mapping):
        # A lone leaf is wrapped like a one-element list
        if "attribute" in filters:
            return {"op": "and", "conditions": [normalize_condition(filters)]}
        return {
            "op": "and",
            "conditions": [
                {"op": "eq", "attribute": attribute, "value": value}
                for attribute, value in filters.items()
            ],
        }
    return filters


def normalize(operation: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize the ``filters`` of an operation.

    Examples:
        >>> normalize({"filters": {"name": "x"}})["filters"]
        {'op': 'and', 'conditions': [{'op': 'eq', 'attribute': 'name', 'value': 'x'}]}
    """
    result = dict(operation)
    if result.get("filters") is None:
        return result
    result["filters"] = normalize_filters(result["filters"])
    return result


def validate(tree: Any, path: str = "filters") -> None:
    """
    Validate a normalized filter tree.

    Raises:
        StructuralValidationError: naming the offending field (``op``,
            ``conditions`` or ``attribute``) and its position in the tree
    """
    if not isinstance(tree, Mapping):
        raise StructuralValidationError(
            f"Filter node at {path} must be an object", field="conditions", details={"path": path}
        )

    if "conditions" in tree:
        op = tree.get("op")
        if not isinstance(op, str) or op.lower() not in _LOGICAL_OPS:
            raise StructuralValidationError(
                f"Invalid filter group operator: {op!r}", field="op", details={"path": path}
            )
        conditions = tree["conditions"]
        if not isinstance(conditions, list | tuple) or not conditions:
            raise StructuralValidationError(
                "Filter group must specify a non-empty conditions array",
                field="conditions",
                details={"path": path},
            )
        for index, child in enumerate(conditions):
            validate(child, f"{path}.conditions[{index}]")
        return

    attribute = tree.get("attribute")
    if not isinstance(attribute, str) or not attribute:
        raise StructuralValidationError(
            "Filter condition must specify an attribute",
            field="attribute",
            details={"path": path},
        )
    if "op" not in tree:
        raise StructuralValidationError(
            "Filter condition must specify an operator", field="op", details={"path": path}
        )
    if not is_valid_operator(tree["op"]):
        raise StructuralValidationError(
            f"Invalid filter operator: {tree['op']!r}", field="op", details={"path": path}
        )


def parse_filter_tree(tree: Any) -> FilterGroup:
    """Validate a wire filter tree and build its typed form."""
    validate(tree)
    try:
        return FilterGroup.model_validate(tree)
    except ValidationError as e:
        raise StructuralValidationError(f"Invalid filter tree: {e}", field="filters") from e


def merge_filters(
    scope_filters: Mapping[str, Any] | None, filters: Mapping[str, Any] | None
) -> dict[str, Any] | None:
    """
    Combine resolved scope filters with caller filters.

    Two ``and`` groups merge into one flat ``and`` group; anything else is
    wrapped under a new ``and`` group.
    """
    if not scope_filters:
        return dict(filters) if filters else None
    if not filters:
        return dict(scope_filters)
    if scope_filters.get("op") == "and" and filters.get("op") == "and":
        return {
            "op": "and",
            "conditions": [*scope_filters["conditions"], *filters["conditions"]],
        }
    return {"op": "and", "conditions": [dict(scope_filters), dict(filters)]}


def prefix_attributes(tree: Mapping[str, Any], prefix: str) -> dict[str, Any]:
    """Return a copy of ``tree`` with ``prefix.`` prepended to every leaf attribute."""
    if "conditions" in tree:
        return {
            **tree,
            "conditions": [prefix_attributes(child, prefix) for child in tree["conditions"]],
        }
    return {**tree, "attribute": f"{prefix}.{tree['attribute']}"}


def map_leaves(tree: Mapping[str, Any], fn) -> dict[str, Any]:
    """Rebuild ``tree`` applying ``fn`` to each leaf, depth first."""
    if "conditions" in tree:
        return {**tree, "conditions": [map_leaves(child, fn) for child in tree["conditions"]]}
    return fn(dict(tree))
