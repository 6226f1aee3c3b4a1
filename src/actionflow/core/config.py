"""
Runtime settings for actionflow.

Settings come from an optional ``actionflow.toml`` at the project root and
can be overridden through environment variables:

    [actionflow]
    log_level = "DEBUG"
    log_to_file = true
    log_dir = ".actionflow/logs"
    debug_trace = true
    default_connection = "default"
    soft_delete_column = "deleted_at"
    max_per_page = 500

Environment overrides: ACTIONFLOW_LOG_LEVEL, ACTIONFLOW_LOG_DIR,
ACTIONFLOW_DEBUG_TRACE.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from actionflow.core.errors import StructuralValidationError

SETTINGS_FILENAME = "actionflow.toml"

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ActionFlowSettings:
    """Settings shared by the orchestrator, pipeline and logging setup."""

    log_level: str = "INFO"
    log_dir: str = ".actionflow/logs"
    log_to_file: bool = False
    debug_trace: bool = True
    default_connection: str = "default"
    soft_delete_column: str = "deleted_at"
    max_per_page: int = 1000

    @property
    def log_level_number(self) -> int:
        """Numeric logging level for ``log_level``."""
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> ActionFlowSettings:
        """Build settings from a plain mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise StructuralValidationError(
                f"Unknown setting(s) in [actionflow]: {', '.join(unknown)}",
                field=unknown[0],
            )
        for f in fields(cls):
            if f.name not in data:
                continue
            # Every setting's type is the type of its default
            expected = type(f.default)
            value = data[f.name]
            if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
                raise StructuralValidationError(
                    f"Setting {f.name} must be {expected.__name__}, got {type(value).__name__}",
                    field=f.name,
                )
        settings = cls(**data)
        if settings.max_per_page < 1:
            raise StructuralValidationError(
                "max_per_page must be greater than 0", field="max_per_page"
            )
        return settings


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if level := os.environ.get("ACTIONFLOW_LOG_LEVEL"):
        overrides["log_level"] = level
    if log_dir := os.environ.get("ACTIONFLOW_LOG_DIR"):
        overrides["log_dir"] = log_dir
        overrides["log_to_file"] = True
    if trace := os.environ.get("ACTIONFLOW_DEBUG_TRACE"):
        overrides["debug_trace"] = trace.lower() in _TRUTHY
    return overrides


def load_settings(project_root: Path | str | None = None) -> ActionFlowSettings:
    """
    Load settings from ``actionflow.toml`` and the environment.

    Args:
        project_root: Directory containing ``actionflow.toml`` (default: cwd)

    Returns:
        ActionFlowSettings with file values and environment overrides applied
    """
    root = Path(project_root) if project_root is not None else Path.cwd()
    settings_path = root / SETTINGS_FILENAME

    data: dict[str, Any] = {}
    if settings_path.exists():
        with open(settings_path, "rb") as f:
            try:
                document = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise StructuralValidationError(
                    f"Invalid {SETTINGS_FILENAME}: {e}", field="settings"
                ) from e
        section = document.get("actionflow", {})
        if not isinstance(section, dict):
            raise StructuralValidationError(
                f"[actionflow] in {SETTINGS_FILENAME} must be a table", field="actionflow"
            )
        data.update(section)

    data.update(_env_overrides())
    return ActionFlowSettings.from_mapping(data)
