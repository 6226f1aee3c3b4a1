"""
Error types for actionflow action execution, resolution and validation.
"""

from __future__ import annotations

from typing import Any


class ActionFlowError(Exception):
    """Base exception for all actionflow errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with details if available."""
        if self.details:
            rendered = ", ".join(f"{k}={v!r}" for k, v in sorted(self.details.items()))
            return f"{self.message} ({rendered})"
        return self.message


class StructuralValidationError(ActionFlowError):
    """
    Raised when action input or a filter/scope tree is malformed.

    Examples:
    - Missing required field (conditions, data, filters)
    - Invalid pagination or sort values
    - Filter group with an unknown logical operator
    - Filter leaf without an attribute
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.field = field
        merged = dict(details or {})
        if field is not None:
            merged.setdefault("field", field)
        super().__init__(message, merged)


class ResolutionError(ActionFlowError):
    """
    Raised when a named reference cannot be resolved.

    Examples:
    - Unknown relationship in a dotted filter or expand path
    - Unknown scope on a model or view
    - Unknown model name in an operation
    - Unknown task resource in a state graph
    - Unknown context placeholder in a filter value
    """

    def __init__(
        self,
        message: str,
        name: str | None = None,
        model: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.name = name
        self.model = model
        merged = dict(details or {})
        if name is not None:
            merged.setdefault("name", name)
        if model is not None:
            merged.setdefault("model", model)
        super().__init__(message, merged)


class StateGraphError(ActionFlowError):
    """
    Raised when a state graph is invalid or cannot continue.

    Examples:
    - Next target that is not defined
    - Task with neither Next nor End
    - Choice with no matching rule and no Default
    """

    def __init__(
        self,
        message: str,
        state: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.state = state
        merged = dict(details or {})
        if state is not None:
            merged.setdefault("state", state)
        super().__init__(message, merged)


class RegistryFrozenError(ActionFlowError):
    """Raised when a registry is mutated after it has been frozen."""

    pass


class UnsupportedActionError(ActionFlowError):
    """Raised when an action name has no state graph."""

    pass


class OperatorError(ActionFlowError):
    """
    Raised by the bundled in-memory operator.

    Errors from any operator are propagated to the caller untouched; this
    type only exists so the reference operator has something to raise.
    """

    pass
