"""
Scope reference resolution.

A scope reference is one of:

    "published"                       bare name on the current model (or view)
    "comments.approved"               scope of a related model, attributes prefixed
    ["published", "recent"]           implicit AND
    {"op": "or", "scopes": [...]}     explicit tree, nested freely

The result is a canonical filter group ready to merge into an operation's
filters.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from actionflow.core.errors import ResolutionError, StructuralValidationError
from actionflow.runtime.filters import prefix_attributes
from actionflow.runtime.logging import get_relations_logger
from actionflow.runtime.registry import ModelRegistry

logger = get_relations_logger()


class ScopeResolver:
    """Resolves scope references against one model (and optionally a view)."""

    def __init__(self, registry: ModelRegistry, model_name: str, view_name: str | None = None):
        self.registry = registry
        self.model_name = model_name
        self.view_name = view_name

    def resolve(self, scopes: Any) -> dict[str, Any]:
        """
        Resolve a scope reference of any accepted shape into a filter group.

        Raises:
            ResolutionError: unknown scope or relationship
            StructuralValidationError: a reference of the wrong shape
        """
        if isinstance(scopes, str):
            return self.resolve_single(scopes)

        if isinstance(scopes, list | tuple):
            if not scopes:
                raise StructuralValidationError("Scope list cannot be empty", field="scopes")
            if len(scopes) == 1:
                return self.resolve(scopes[0])
            return {"op": "and", "conditions": [self.resolve(scope) for scope in scopes]}

        if isinstance(scopes, Mapping) and "op" in scopes:
            op = scopes["op"]
            members = scopes.get("scopes")
            if not isinstance(op, str) or op.lower() not in ("and", "or"):
                raise StructuralValidationError(f"Invalid scope operator: {op!r}", field="op")
            if not isinstance(members, list | tuple) or not members:
                raise StructuralValidationError(
                    "Scope group must specify a non-empty scopes array", field="scopes"
                )
            return {
                "op": op.lower(),
                "conditions": [self._unwrap(self.resolve(member)) for member in members],
            }

        raise StructuralValidationError(f"Invalid scope structure: {scopes!r}", field="scopes")

    def resolve_single(self, scope_name: str) -> dict[str, Any]:
        """Resolve one bare or dotted scope name."""
        if not scope_name:
            raise StructuralValidationError("Scope name cannot be empty", field="scopes")
        if "." in scope_name:
            return self._resolve_relationship_scope(scope_name)

        model = self.registry.get(self.model_name)
        if model.has_scope(scope_name):
            return model.get_scope(scope_name)
        if self.view_name:
            view = self.registry.get_view(self.view_name)
            if view.has_scope(scope_name):
                return view.get_scope(scope_name)
        raise ResolutionError(
            f"Scope '{scope_name}' not found on model '{self.model_name}'",
            name=scope_name,
            model=self.model_name,
        )

    def _resolve_relationship_scope(self, scope_name: str) -> dict[str, Any]:
        relation, remainder = scope_name.split(".", 1)
        model = self.registry.get(self.model_name)
        relationship = model.get_relationship(relation)

        # Further hops resolve against the related model without the view
        related = ScopeResolver(self.registry, relationship.related_model)
        fragment = related.resolve_single(remainder)
        logger.debug(
            "Resolved scope %s through relationship %s.%s",
            scope_name,
            self.model_name,
            relation,
        )
        return prefix_attributes(fragment, relation)

    @staticmethod
    def _unwrap(group: dict[str, Any]) -> dict[str, Any]:
        """A single-condition group inside a scope tree collapses to its condition."""
        conditions = group.get("conditions", [])
        if len(conditions) == 1:
            return conditions[0]
        return group
