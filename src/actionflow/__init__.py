"""
actionflow - declarative backend execution core.

Drives model actions (create, readOne, readList, update, delete, count) through
inspectable state graphs and turns filter, scope and relationship
references into canonical database operations.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _metadata_version

from .core.errors import (
    ActionFlowError,
    OperatorError,
    RegistryFrozenError,
    ResolutionError,
    StateGraphError,
    StructuralValidationError,
    UnsupportedActionError,
)


def _get_version() -> str:
    try:
        return _metadata_version("actionflow")
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _get_version()

__all__ = [
    "__version__",
    "ActionFlowError",
    "OperatorError",
    "RegistryFrozenError",
    "ResolutionError",
    "StateGraphError",
    "StructuralValidationError",
    "UnsupportedActionError",
]
