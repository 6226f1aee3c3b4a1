"""
Built-in actions: their state graphs and pre-execution input checks.

Each action is a fixed state graph over the built-in task resources (see
``runtime.tasks``). Graphs are plain wire data so they can be rendered,
inspected or copied as the starting point of a custom graph.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from functools import cache
from typing import Any

from actionflow.core.errors import StructuralValidationError, UnsupportedActionError
from actionflow.runtime.filters import is_group, normalize_condition
from actionflow.specs.operation import SortDirection
from actionflow.specs.state_graph import StateGraphSpec


class ActionName(StrEnum):
    """Actions with a built-in graph."""

    CREATE = "create"
    READ_ONE = "readOne"
    READ_LIST = "readList"
    UPDATE = "update"
    DELETE = "delete"
    COUNT = "count"
    CONFIG = "config"


# =============================================================================
# Graphs
# =============================================================================


def _task(resource: str, next_state: str | None = None) -> dict[str, Any]:
    if next_state is None:
        return {"Type": "Task", "Resource": resource, "End": True}
    return {"Type": "Task", "Resource": resource, "Next": next_state}


ACTION_GRAPHS: dict[str, dict[str, Any]] = {
    ActionName.CREATE: {
        "StartAt": "CleanInput",
        "States": {
            "CleanInput": _task("clean_input", "ValidateInput"),
            "ValidateInput": _task("validate", "GenerateAttributes"),
            "GenerateAttributes": _task("generate_attributes", "DatabaseInsert"),
            "DatabaseInsert": _task("database.insert", "DatabaseRead"),
            "DatabaseRead": _task("database.refresh"),
        },
    },
    ActionName.READ_ONE: {
        "StartAt": "ValidateInput",
        "States": {
            "ValidateInput": _task("validate", "DatabaseRead"),
            "DatabaseRead": _task("database.read_one", "CheckFound"),
            "CheckFound": {
                "Type": "Choice",
                "Choices": [{"Variable": "$.result", "IsNull": True, "Next": "NotFound"}],
                "Default": "Success",
            },
            "NotFound": _task("handle_not_found"),
            "Success": _task("transform_results"),
        },
    },
    ActionName.READ_LIST: {
        "StartAt": "ValidateInput",
        "States": {
            "ValidateInput": _task("validate", "CheckPagination"),
            "CheckPagination": {
                "Type": "Choice",
                "Choices": [
                    {
                        "And": [
                            {"Variable": "$.pagination", "IsPresent": True},
                            {"Not": {"Variable": "$.pagination", "IsNull": True}},
                        ],
                        "Next": "DatabasePaginate",
                    }
                ],
                "Default": "DatabaseSelect",
            },
            "DatabasePaginate": _task("database.paginate", "TransformResults"),
            "DatabaseSelect": _task("database.select", "TransformResults"),
            "TransformResults": _task("transform_results"),
        },
    },
    ActionName.UPDATE: {
        "StartAt": "ValidateInput",
        "States": {
            "ValidateInput": _task("validate", "DatabaseUpdate"),
            "DatabaseUpdate": _task("database.update", "DatabaseRead"),
            "DatabaseRead": _task("database.refresh"),
        },
    },
    ActionName.DELETE: {
        "StartAt": "ValidateInput",
        "States": {
            "ValidateInput": _task("validate", "CheckSoftDelete"),
            "CheckSoftDelete": {
                "Type": "Choice",
                "Choices": [
                    {
                        "Variable": "$$.config.softDelete",
                        "BooleanEquals": True,
                        "Next": "SoftDelete",
                    }
                ],
                "Default": "HardDelete",
            },
            "SoftDelete": _task("database.soft_delete"),
            "HardDelete": _task("database.delete"),
        },
    },
    ActionName.COUNT: {
        "StartAt": "ValidateInput",
        "States": {
            "ValidateInput": _task("validate", "DatabaseCount"),
            "DatabaseCount": _task("database.count"),
        },
    },
    ActionName.CONFIG: {
        "StartAt": "GenerateConfig",
        "States": {"GenerateConfig": _task("generate_config")},
    },
}


def action_names() -> list[str]:
    return [str(name) for name in ActionName]


@cache
def graph_for(action: str) -> StateGraphSpec:
    """
    The built-in graph for ``action``.

    Raises:
        UnsupportedActionError: if the action has no built-in graph
    """
    try:
        wire = ACTION_GRAPHS[ActionName(action)]
    except ValueError:
        raise UnsupportedActionError(
            f"Unsupported action '{action}'. Supported: {', '.join(action_names())}",
            details={"action": action},
        ) from None
    return StateGraphSpec.from_wire(wire)


# =============================================================================
# Input Validation
# =============================================================================


class ActionInputValidator:
    """
    Structural checks on an action's input, run before its graph starts.

    The checks are about shape only; attribute-level checks against the
    model schema happen in the ``validate`` task.
    """

    def validate(self, action: str, payload: Any) -> dict[str, Any]:
        """
        Check ``payload`` for ``action`` and return it with normalized conditions.

        Raises:
            StructuralValidationError: naming the offending field
        """
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise StructuralValidationError(
                f"Input for {action} must be an object, got {type(payload).__name__}",
                field="input",
            )
        payload = dict(payload)

        check = getattr(self, f"_check_{action}", None)
        if check is not None:
            check(payload)

        if "conditions" in payload and not is_group(payload["conditions"]):
            payload["conditions"] = self.normalize_conditions(payload["conditions"])
        return payload

    @staticmethod
    def normalize_conditions(conditions: Any) -> dict[str, Any]:
        """Wrap bare conditions in an ``and`` group."""
        if isinstance(conditions, list | tuple):
            items = list(conditions)
        elif isinstance(conditions, Mapping) and "attribute" in conditions:
            items = [conditions]
        elif isinstance(conditions, Mapping):
            items = [
                {"attribute": key, "op": "eq", "value": value}
                for key, value in conditions.items()
            ]
        else:
            raise StructuralValidationError(
                "Conditions must be a filter group, a list or a mapping", field="conditions"
            )
        return {"op": "and", "conditions": [normalize_condition(c) for c in items]}

    def _check_create(self, payload: dict[str, Any]) -> None:
        data = payload.get("data", payload)
        if not data:
            raise StructuralValidationError("Create requires data", field="data")

    def _check_readOne(self, payload: dict[str, Any]) -> None:  # noqa: N802
        if not payload.get("filters"):
            raise StructuralValidationError("readOne requires filters", field="filters")

    def _check_readList(self, payload: dict[str, Any]) -> None:  # noqa: N802
        pagination = payload.get("pagination")
        if pagination is not None:
            if not isinstance(pagination, Mapping):
                raise StructuralValidationError(
                    "Pagination must be an object", field="pagination"
                )
            for key in ("page", "per_page"):
                value = pagination.get(key)
                if value is None:
                    continue
                if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                    raise StructuralValidationError(
                        f"Pagination {key} must be an integer >= 1, got {value!r}",
                        field=f"pagination.{key}",
                    )

        sorts = payload.get("sorts")
        if sorts is None:
            return
        if not isinstance(sorts, list):
            raise StructuralValidationError("Sorts must be a list", field="sorts")
        directions = [str(d) for d in SortDirection]
        for index, sort in enumerate(sorts):
            if not isinstance(sort, Mapping) or not sort.get("attribute"):
                raise StructuralValidationError(
                    f"Sort {index} requires an attribute", field=f"sorts[{index}].attribute"
                )
            # Missing direction means asc
            direction = sort.get("direction")
            if direction is None:
                continue
            if not isinstance(direction, str) or direction.lower() not in directions:
                raise StructuralValidationError(
                    f"Sort {index} direction must be asc or desc, got {direction!r}",
                    field=f"sorts[{index}].direction",
                )

    def _check_update(self, payload: dict[str, Any]) -> None:
        self._require_conditions(payload)
        data = payload.get("data")
        if not isinstance(data, Mapping) or not data:
            raise StructuralValidationError("Update requires a non-empty data object", field="data")

    def _check_delete(self, payload: dict[str, Any]) -> None:
        self._require_conditions(payload)

    @staticmethod
    def _require_conditions(payload: dict[str, Any]) -> None:
        if payload.get("conditions") is None:
            raise StructuralValidationError("Conditions are required", field="conditions")
