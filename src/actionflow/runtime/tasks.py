"""
Built-in task handlers.

These are the resources the fixed action graphs reference. Each handler is
called as ``handler(payload, context, **task_args)`` and returns the next
payload; database handlers go through ``context.pipeline``.

Payload shapes:

    create    {"data": row | [rows]}
    readOne   {"filters": ..., "scopes"?, "attributes"?, "expand"?}
    readList  {"filters"?, "scopes"?, "sorts"?, "pagination"?, "attributes"?, "expand"?}
    update    {"conditions": ..., "data": {...}}
    delete    {"conditions": ...}
    count     {"conditions"? | "filters"?, "scopes"?}
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from actionflow.core.errors import StructuralValidationError
from actionflow.runtime.filters import normalize_filters, validate as validate_filter_tree
from actionflow.runtime.logging import get_tasks_logger, log_with_context
from actionflow.runtime.packet import ActionContext
from actionflow.runtime.registry import TaskRegistry
from actionflow.runtime.relationships import relationship_keys
from actionflow.specs.model import AttributeSpec, AttributeType, GenerateStrategy

logger = get_tasks_logger()

# Keys of a read payload forwarded into the select operation
_SELECT_KEYS = ("filters", "scopes", "sorts", "pagination", "attributes", "expand", "joins")


def _rows(payload: Mapping[str, Any]) -> tuple[list[dict[str, Any]], bool]:
    """Rows of a create payload and whether a single row was given."""
    data = payload.get("data", payload)
    if isinstance(data, list):
        return [dict(row) for row in data], False
    if isinstance(data, Mapping):
        return [dict(data)], True
    raise StructuralValidationError("Create data must be an object or a list", field="data")


def _pack(rows: list[dict[str, Any]], single: bool) -> dict[str, Any]:
    return {"data": rows[0] if single else rows, "single": single}


# =============================================================================
# Input Handling
# =============================================================================


def clean_input(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    """Drop attributes the model does not declare (models without a schema keep everything)."""
    rows, single = _rows(payload)
    schema = context.schema
    if not schema:
        return _pack(rows, single)

    cleaned = []
    for row in rows:
        dropped = sorted(set(row) - set(schema))
        if dropped:
            log_with_context(
                logger,
                logging.DEBUG,
                f"Dropped undeclared attributes from {context.model.name} input",
                dropped=dropped,
            )
        cleaned.append({key: value for key, value in row.items() if key in schema})
    return _pack(cleaned, single)


_TYPE_CHECKS: dict[AttributeType, Callable[[Any], bool]] = {
    AttributeType.STRING: lambda v: isinstance(v, str),
    AttributeType.TEXT: lambda v: isinstance(v, str),
    AttributeType.INTEGER: lambda v: isinstance(v, int) and not isinstance(v, bool),
    AttributeType.NUMBER: lambda v: isinstance(v, int | float) and not isinstance(v, bool),
    AttributeType.BOOLEAN: lambda v: isinstance(v, bool),
    AttributeType.UUID: lambda v: isinstance(v, str | uuid.UUID),
    AttributeType.DATE: lambda v: isinstance(v, str | date),
    AttributeType.TIMESTAMP: lambda v: isinstance(v, str | datetime | int | float),
    AttributeType.JSON: lambda v: True,
    AttributeType.OBJECT: lambda v: isinstance(v, Mapping),
    AttributeType.ARRAY: lambda v: isinstance(v, list | tuple),
}


def _check_types(model_name: str, schema: dict[str, AttributeSpec], row: Mapping[str, Any]) -> None:
    for name, value in row.items():
        spec = schema.get(name)
        if spec is None or value is None:
            continue
        if not _TYPE_CHECKS[spec.type](value):
            raise StructuralValidationError(
                f"Attribute '{name}' of {model_name} expects {spec.type.value}, "
                f"got {type(value).__name__}",
                field=name,
            )


def validate(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    """
    Check the payload against the model before touching storage.

    create: required attributes without a default or generator are present
    and every value matches its declared type. update: data values match
    their types. Filters and conditions are normalized and validated.
    """
    result = dict(payload)
    schema = context.schema
    model_name = context.model.name

    if context.action == "create":
        rows, _ = _rows(payload)
        for index, row in enumerate(rows):
            for name, spec in schema.items():
                missing = row.get(name) is None
                if spec.required and missing and spec.default is None and spec.generate is None:
                    raise StructuralValidationError(
                        f"Attribute '{name}' is required to create {model_name}",
                        field=name,
                        details={"row": index},
                    )
            _check_types(model_name, schema, row)
    elif context.action == "update" and schema:
        unknown = sorted(set(payload.get("data", {})) - set(schema))
        if unknown:
            raise StructuralValidationError(
                f"Unknown attribute(s) for {model_name}: {', '.join(unknown)}",
                field=unknown[0],
            )
        _check_types(model_name, schema, payload.get("data", {}))

    for key in ("filters", "conditions"):
        if result.get(key) is not None:
            tree = normalize_filters(result[key])
            validate_filter_tree(tree, path=key)
            result[key] = tree
    return result


def generate_attributes(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    """Fill defaults and generated values (uuid, timestamp) for missing attributes."""
    rows, single = _rows(payload)
    now = datetime.now(UTC).isoformat()
    for row in rows:
        for name, spec in context.schema.items():
            if row.get(name) is not None:
                continue
            if spec.generate == GenerateStrategy.UUID:
                row[name] = str(uuid.uuid4())
            elif spec.generate == GenerateStrategy.TIMESTAMP:
                row[name] = now
            elif spec.default is not None:
                row[name] = spec.default
    return _pack(rows, single)


# =============================================================================
# Database
# =============================================================================


def database_insert(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    rows, single = _rows(payload)
    inserted = context.pipeline.run(
        {
            "type": "insert",
            "modelName": context.model.name,
            "purpose": "create",
            "data": rows[0] if single else rows,
        }
    )
    return {"result": list(inserted or []), "single": single}


def database_refresh(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    """Re-read the rows a write affected, by primary key."""
    affected = payload.get("result") or []
    single = bool(payload.get("single"))
    primary_key = context.model.primary_key
    ids = [row[primary_key] for row in affected if row.get(primary_key) is not None]

    if not ids:
        rows: list[dict[str, Any]] = list(affected)
    else:
        response = context.pipeline.run(
            {
                "type": "select",
                "modelName": context.model.name,
                "purpose": "refresh",
                "filters": {
                    "op": "and",
                    "conditions": [{"attribute": primary_key, "op": "in", "value": ids}],
                },
            }
        )
        rows = list(response.get("result", []))

    if single:
        return {"data": rows[0] if rows else None}
    return {"data": rows, "meta": {"count": len(rows)}}


def _select(payload: Mapping[str, Any], context: ActionContext, purpose: str) -> dict[str, Any]:
    operation: dict[str, Any] = {
        "type": "select",
        "modelName": context.model.name,
        "purpose": purpose,
    }
    for key in _SELECT_KEYS:
        if payload.get(key) is not None:
            operation[key] = payload[key]
    return context.pipeline.run(operation)


def database_read_one(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    response = _select({**payload, "pagination": None}, context, "readOne")
    rows = response.get("result") or []
    return {"result": rows[0] if rows else None}


def database_select(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    response = _select({**payload, "pagination": None}, context, "readList")
    return {"result": list(response.get("result") or [])}


def database_paginate(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    response = _select(payload, context, "readList")
    return {
        "result": list(response.get("result") or []),
        "pagination": response.get("pagination") or dict(payload.get("pagination") or {}),
    }


def database_count(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    """Count matching rows; ``conditions`` and ``filters`` are interchangeable."""
    operation: dict[str, Any] = {
        "type": "count",
        "modelName": context.model.name,
        "purpose": "count",
    }
    filters = payload.get("conditions")
    if filters is None:
        filters = payload.get("filters")
    if filters is not None:
        operation["filters"] = filters
    if payload.get("scopes") is not None:
        operation["scopes"] = payload["scopes"]
    response = context.pipeline.run(operation)
    count = response.get("result") if isinstance(response, Mapping) else response
    return {"data": {"count": count or 0}}


def database_update(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    updated = context.pipeline.run(
        {
            "type": "update",
            "modelName": context.model.name,
            "purpose": "update",
            "data": dict(payload["data"]),
            "conditions": payload["conditions"],
        }
    )
    return {"result": list(updated or []), "single": False}


def _delete(payload: Mapping[str, Any], context: ActionContext, soft: bool) -> dict[str, Any]:
    deleted = list(
        context.pipeline.run(
            {
                "type": "delete",
                "modelName": context.model.name,
                "purpose": "delete",
                "conditions": payload["conditions"],
                "soft": soft,
            }
        )
        or []
    )
    return {"data": deleted, "meta": {"deleted": len(deleted), "soft": soft}}


def database_delete(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    return _delete(payload, context, soft=False)


def database_soft_delete(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    return _delete(payload, context, soft=True)


# =============================================================================
# Results
# =============================================================================


def transform_results(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    """Shape a read result as ``{"data": ..., "meta"?: ...}``."""
    result = payload.get("result")
    if isinstance(result, list):
        meta: dict[str, Any] = {"count": len(result)}
        if payload.get("pagination"):
            meta["pagination"] = payload["pagination"]
        return {"data": result, "meta": meta}
    return {"data": result}


def handle_not_found(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    singular = context.model.config.singular or context.model.name
    return {
        "data": None,
        "error": {"code": "not_found", "message": f"{singular} not found"},
    }


def generate_config(payload: Mapping[str, Any], context: ActionContext) -> dict[str, Any]:
    """Describe the model: attributes, configuration, relationships, scopes and aliases."""
    model = context.model
    relationships = {}
    for name, rel in model.relationships.items():
        keys = relationship_keys(rel)
        relationships[name] = {
            "kind": rel.kind,
            "model": rel.related_model,
            "current_key": keys.current_key,
            "related_key": keys.related_key,
        }
    return {
        "data": {
            "name": model.name,
            "config": dict(context.config),
            "attributes": {
                name: spec.model_dump(mode="json", exclude_none=True)
                for name, spec in model.attributes.items()
            },
            "relationships": relationships,
            "scopes": dict(model.scopes),
            "aliases": {
                name: alias.model_dump(exclude_none=True) for name, alias in model.aliases.items()
            },
        }
    }


BUILTIN_TASKS: dict[str, Callable[..., Any]] = {
    "clean_input": clean_input,
    "validate": validate,
    "generate_attributes": generate_attributes,
    "database.insert": database_insert,
    "database.refresh": database_refresh,
    "database.read_one": database_read_one,
    "database.select": database_select,
    "database.paginate": database_paginate,
    "database.count": database_count,
    "database.update": database_update,
    "database.delete": database_delete,
    "database.soft_delete": database_soft_delete,
    "transform_results": transform_results,
    "handle_not_found": handle_not_found,
    "generate_config": generate_config,
}


def register_builtin_tasks(tasks: TaskRegistry) -> TaskRegistry:
    """Register every built-in handler not already overridden by the caller."""
    for name, handler in BUILTIN_TASKS.items():
        if not tasks.has(name):
            tasks.register(name, handler)
    return tasks
