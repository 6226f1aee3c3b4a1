"""Core actionflow functionality: errors, settings and inflection helpers."""

from .config import ActionFlowSettings, load_settings
from .errors import (
    ActionFlowError,
    OperatorError,
    RegistryFrozenError,
    ResolutionError,
    StateGraphError,
    StructuralValidationError,
    UnsupportedActionError,
)
from .strings import foreign_key_for, pluralize, singularize, table_name_for, to_snake_case

__all__ = [
    "ActionFlowError",
    "ActionFlowSettings",
    "OperatorError",
    "RegistryFrozenError",
    "ResolutionError",
    "StateGraphError",
    "StructuralValidationError",
    "UnsupportedActionError",
    "foreign_key_for",
    "load_settings",
    "pluralize",
    "singularize",
    "table_name_for",
    "to_snake_case",
]
