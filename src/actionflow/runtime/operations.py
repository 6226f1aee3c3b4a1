"""
The database operation pipeline.

Every operation an action issues, and every subquery the relationship
resolver and expander issue, travels the same path:

    scopes -> filter normalization/validation -> relationship push-down
    -> "$." placeholder resolution -> typed operation -> operator
    -> relationship expansion -> aliases (selects only)

Operations enter as wire dicts (``{"type": "select", "modelName": ...}``)
and reach the operator as frozen ``DatabaseOperation`` values.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from actionflow.core.config import ActionFlowSettings
from actionflow.core.errors import ResolutionError, StructuralValidationError
from actionflow.runtime.aliases import apply_aliases, source_attribute
from actionflow.runtime.filters import map_leaves, merge_filters, normalize_filters, validate
from actionflow.runtime.logging import get_operations_logger, log_with_context
from actionflow.runtime.query_context import QueryContext
from actionflow.runtime.registry import ModelRegistry, OperatorRegistry
from actionflow.runtime.relation_expander import RelationshipExpander
from actionflow.runtime.relation_resolver import RelationshipResolver
from actionflow.runtime.relationships import join_for, relationship_keys
from actionflow.runtime.scopes import ScopeResolver
from actionflow.specs.model import ModelDefinition
from actionflow.specs.operation import SelectOperation, parse_operation

logger = get_operations_logger()

OPERATION_TYPES = ("insert", "update", "delete", "select", "count")

# Key holding the filter tree, by operation type
_FILTER_KEYS = {
    "select": "filters",
    "count": "filters",
    "update": "conditions",
    "delete": "conditions",
}


class OperationPipeline:
    """
    Runs wire operations for one action execution.

    Args:
        models: Frozen model registry
        operators: Operators keyed by connection id
        settings: Runtime settings (default connection, page size cap, ...)
        query_context: Values for ``"$.path"`` placeholders; without one,
            ``"$."`` strings are ordinary values
        view_name: View whose scope table backs bare scope names
    """

    def __init__(
        self,
        models: ModelRegistry,
        operators: OperatorRegistry,
        settings: ActionFlowSettings | None = None,
        query_context: QueryContext | None = None,
        view_name: str | None = None,
    ):
        self.models = models
        self.operators = operators
        self.settings = settings or ActionFlowSettings()
        self.query_context = query_context
        self.view_name = view_name

    def run(self, operation: Mapping[str, Any]) -> Any:
        """
        Run one wire operation and return the operator's response.

        Raises:
            StructuralValidationError: malformed operation or filter tree
            ResolutionError: unknown model, scope, relationship or placeholder
        """
        op_type = operation.get("type")
        if op_type not in OPERATION_TYPES:
            raise StructuralValidationError(f"Unknown operation type: {op_type!r}", field="type")
        model_name = operation.get("modelName") or operation.get("model_name")
        if not model_name:
            raise StructuralValidationError("Operation must specify a modelName", field="modelName")
        model = self.models.get(model_name)

        prepared = self.prepare(model, operation)
        added_keys = self._project_expand_keys(model, prepared)
        typed = self.build(model, prepared)

        log_with_context(
            logger,
            logging.DEBUG,
            f"Running {op_type} on {model.name}",
            model=model.name,
            table=typed.table,
            connection=typed.connection,
            purpose=typed.purpose,
        )
        operator = self.operators.get(typed.connection)
        response = operator.run(typed)

        if not isinstance(typed, SelectOperation) or not isinstance(response, Mapping):
            return response
        if typed.expand:
            expander = RelationshipExpander(self.models, model.name, self.run)
            response = expander.expand(dict(response), list(typed.expand))
        rows = list(response.get("result") or [])
        if typed.purpose != "relationship_filter":
            rows = apply_aliases(model, rows)
        if added_keys:
            rows = [{k: v for k, v in row.items() if k not in added_keys} for row in rows]
        return {**response, "result": rows}

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def prepare(self, model: ModelDefinition, operation: Mapping[str, Any]) -> dict[str, Any]:
        """Apply every rewrite stage, returning the final wire dict."""
        prepared = dict(operation)
        op_type = prepared["type"]
        prepared["modelName"] = model.name
        prepared.pop("model_name", None)

        filter_key = _FILTER_KEYS.get(op_type)
        if filter_key:
            prepared = self._normalize_filters(model, prepared, filter_key)
            if prepared.get(filter_key):
                resolver = RelationshipResolver(self.models, model.name, self.run)
                prepared = resolver.resolve_filters(prepared, filter_key)
                if self.query_context is not None:
                    prepared[filter_key] = map_leaves(prepared[filter_key], self._resolve_leaf)

        writes_data = op_type in ("insert", "update") and "data" in prepared
        if writes_data and self.query_context is not None:
            prepared["data"] = self.query_context.resolve_deep(prepared["data"])
        return prepared

    def _normalize_filters(
        self, model: ModelDefinition, operation: dict[str, Any], key: str
    ) -> dict[str, Any]:
        tree = operation.get(key)
        if tree is not None:
            tree = normalize_filters(tree)

        scopes = operation.pop("scopes", None)
        if scopes:
            if key != "filters":
                raise StructuralValidationError(
                    f"Scopes are only supported on select operations, not {operation['type']}",
                    field="scopes",
                )
            resolver = ScopeResolver(self.models, model.name, self._view_for(model))
            tree = merge_filters(resolver.resolve(scopes), tree)

        if tree is not None:
            validate(tree, path=key)
            if model.aliases:
                tree = map_leaves(tree, lambda leaf: self._unalias_leaf(model, leaf))
            operation[key] = tree
        return operation

    @staticmethod
    def _unalias_leaf(model: ModelDefinition, leaf: dict[str, Any]) -> dict[str, Any]:
        """Filters on an alias read its source attribute."""
        alias = model.aliases.get(leaf.get("attribute"))
        source = source_attribute(alias) if alias is not None else None
        if source:
            leaf["attribute"] = source
        return leaf

    def _project_expand_keys(self, model: ModelDefinition, prepared: dict[str, Any]) -> list[str]:
        """
        Add the key columns expansion reads to a narrowed select projection.

        Returns the added columns, which are dropped again from the result.
        """
        attributes = prepared.get("attributes")
        expand = prepared.get("expand")
        if prepared["type"] != "select" or not isinstance(attributes, list) or not attributes:
            return []
        if not isinstance(expand, list):
            return []
        added: list[str] = []
        for path in expand:
            if not isinstance(path, str):
                continue
            relationship = model.get_relationship(path.partition(".")[0])
            key = relationship_keys(relationship).current_key
            if key not in attributes and key not in added:
                added.append(key)
        if added:
            prepared["attributes"] = [*attributes, *added]
        return added

    def _view_for(self, model: ModelDefinition) -> str | None:
        if not self.view_name:
            return None
        view = self.models.get_view(self.view_name)
        return view.name if view.model == model.name else None

    def _resolve_leaf(self, leaf: dict[str, Any]) -> dict[str, Any]:
        if "value" in leaf:
            leaf["value"] = self.query_context.resolve_deep(leaf["value"])
        return leaf

    def build(self, model: ModelDefinition, prepared: dict[str, Any]) -> Any:
        """Build the typed, frozen operation handed to the operator."""
        config = model.config
        wire = {
            **prepared,
            "table": config.table,
            "connection": config.connection or self.settings.default_connection,
        }
        delete_column = config.delete_column or self.settings.soft_delete_column

        if wire["type"] in ("select", "count") and config.soft_delete:
            wire["deleteColumn"] = delete_column
        if wire["type"] == "select":
            wire["joins"] = [self._join(model, join) for join in wire.get("joins") or []]
            pagination = wire.get("pagination")
            if isinstance(pagination, Mapping) and "per_page" in pagination:
                per_page = pagination["per_page"]
                if isinstance(per_page, int) and per_page > self.settings.max_per_page:
                    wire["pagination"] = {**pagination, "per_page": self.settings.max_per_page}
        elif wire["type"] == "delete" and wire.get("soft"):
            wire["deleteColumn"] = delete_column

        try:
            return parse_operation(wire)
        except ValidationError as e:
            raise StructuralValidationError(
                f"Invalid {wire['type']} operation on '{model.name}': {e}",
                field=wire["type"],
            ) from e

    def _join(self, model: ModelDefinition, join: Any) -> Any:
        """Joins may be given as relationship names; derive their columns."""
        if not isinstance(join, str):
            return join
        relationship = model.get_relationship(join)
        try:
            related = self.models.get(relationship.related_model)
        except ResolutionError:
            raise ResolutionError(
                f"Join '{join}' targets unknown model '{relationship.related_model}'",
                name=join,
                model=model.name,
            ) from None
        return join_for(model, relationship, related)
