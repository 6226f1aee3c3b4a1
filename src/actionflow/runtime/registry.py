"""
Registries for models, views, task handlers and database operators.

Registries are populated up front and frozen before any action executes.
After ``freeze()`` they are read-only, so concurrent executions can share
them without locking.

Example:
    >>> models = ModelRegistry()
    >>> _ = models.register({"name": "post", "relationships": {"has_many": {"comments": {}}}})
    >>> _ = models.register({"name": "comment"})
    >>> models.freeze()
    >>> models.get("post").get_relationship("comments").foreign_key
    'post_id'
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from actionflow.core.errors import RegistryFrozenError, ResolutionError, StructuralValidationError
from actionflow.specs.model import BelongsTo, ModelDefinition, ViewDefinition
from actionflow.specs.operation import (
    CountOperation,
    DeleteOperation,
    InsertOperation,
    SelectOperation,
    UpdateOperation,
)

logger = logging.getLogger(__name__)

TaskHandler = Callable[..., Any]


@runtime_checkable
class DatabaseOperator(Protocol):
    """
    The component that executes canonical operations against real storage.

    Insert/Update/Delete return the affected rows. Select returns
    ``{"result": rows, "operation": <wire echo>, "pagination"?: meta}``.
    Count returns ``{"result": n, "operation": <wire echo>}``.
    Exceptions are propagated to the caller untouched.
    """

    def run(
        self,
        operation: InsertOperation
        | UpdateOperation
        | DeleteOperation
        | SelectOperation
        | CountOperation,
    ) -> Any: ...


class _FreezableRegistry:
    """Shared freeze discipline."""

    kind = "registry"

    def __init__(self) -> None:
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def _check_mutable(self, name: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register '{name}': {self.kind} registry is frozen",
                details={"name": name},
            )


# =============================================================================
# Models
# =============================================================================


class ModelRegistry(_FreezableRegistry):
    """Model definitions by name, plus views over them."""

    kind = "model"

    def __init__(self) -> None:
        super().__init__()
        self._models: dict[str, ModelDefinition] = {}
        self._views: dict[str, ViewDefinition] = {}

    def register(self, model: ModelDefinition | Mapping[str, Any]) -> ModelDefinition:
        """
        Register a model definition or its declarative mapping.

        Raises:
            StructuralValidationError: if the mapping is not a valid model
            RegistryFrozenError: if the registry is frozen
        """
        if not isinstance(model, ModelDefinition):
            try:
                model = ModelDefinition.model_validate(dict(model))
            except ValidationError as e:
                raise StructuralValidationError(
                    f"Invalid model definition: {e}", field="model"
                ) from e
        self._check_mutable(model.name)
        self._models[model.name] = model
        logger.debug("Registered model %s (table %s)", model.name, model.config.table)
        return model

    def register_view(self, view: ViewDefinition | Mapping[str, Any]) -> ViewDefinition:
        """Register a view carrying its own scope table."""
        if not isinstance(view, ViewDefinition):
            try:
                view = ViewDefinition.model_validate(dict(view))
            except ValidationError as e:
                raise StructuralValidationError(
                    f"Invalid view definition: {e}", field="view"
                ) from e
        self._check_mutable(view.name)
        self._views[view.name] = view
        logger.debug("Registered view %s over %s", view.name, view.model)
        return view

    def freeze(self) -> None:
        """
        Resolve cross-model defaults and make the registry read-only.

        BelongsTo owner keys left unset default to the related model's
        primary key; this needs every model registered first.
        """
        if self._frozen:
            return
        for name, model in list(self._models.items()):
            resolved = {}
            changed = False
            for rel_name, rel in model.relationships.items():
                if isinstance(rel, BelongsTo) and rel.owner_key is None:
                    related = self.get(rel.related_model)
                    rel = rel.model_copy(update={"owner_key": related.primary_key})
                    changed = True
                resolved[rel_name] = rel
            if changed:
                self._models[name] = model.model_copy(update={"relationships": resolved})
        for view in self._views.values():
            self.get(view.model)
        super().freeze()
        logger.info("Model registry frozen with %d model(s)", len(self._models))

    def get(self, name: str) -> ModelDefinition:
        try:
            return self._models[name]
        except KeyError:
            raise ResolutionError(f"Model '{name}' not found", name=name) from None

    def get_view(self, name: str) -> ViewDefinition:
        try:
            return self._views[name]
        except KeyError:
            raise ResolutionError(f"View '{name}' not found", name=name) from None

    def has(self, name: str) -> bool:
        return name in self._models

    def names(self) -> list[str]:
        return sorted(self._models)

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __iter__(self) -> Iterator[ModelDefinition]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)


# =============================================================================
# Tasks
# =============================================================================


class TaskRegistry(_FreezableRegistry):
    """
    Task handlers by resource name.

    Handlers are called as ``handler(payload, context, **task_args)`` and
    return the next payload.

    Example:
        >>> tasks = TaskRegistry()
        >>> @tasks.task("audit")
        ... def audit(payload, context):
        ...     return payload
    """

    kind = "task"

    def __init__(self) -> None:
        super().__init__()
        self._handlers: dict[str, TaskHandler] = {}

    def register(self, name: str, handler: TaskHandler) -> TaskHandler:
        self._check_mutable(name)
        if not callable(handler):
            raise StructuralValidationError(
                f"Task handler for '{name}' is not callable", field="handler"
            )
        self._handlers[name] = handler
        return handler

    def task(self, name: str) -> Callable[[TaskHandler], TaskHandler]:
        """Decorator form of ``register``."""

        def decorator(handler: TaskHandler) -> TaskHandler:
            return self.register(name, handler)

        return decorator

    def get(self, name: str) -> TaskHandler:
        try:
            return self._handlers[name]
        except KeyError:
            raise ResolutionError(f"Task resource '{name}' is not registered", name=name) from None

    def has(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers


# =============================================================================
# Operators
# =============================================================================


class OperatorRegistry(_FreezableRegistry):
    """Database operators keyed by connection id."""

    kind = "operator"

    def __init__(self) -> None:
        super().__init__()
        self._operators: dict[str, DatabaseOperator] = {}

    def register(self, connection: str, operator: DatabaseOperator) -> DatabaseOperator:
        self._check_mutable(connection)
        if not isinstance(operator, DatabaseOperator):
            raise StructuralValidationError(
                f"Operator for connection '{connection}' has no run() method", field="operator"
            )
        self._operators[connection] = operator
        return operator

    def get(self, connection: str) -> DatabaseOperator:
        try:
            return self._operators[connection]
        except KeyError:
            raise ResolutionError(
                f"No operator registered for connection '{connection}'", name=connection
            ) from None

    def __contains__(self, connection: object) -> bool:
        return connection in self._operators
