"""
Execution state for one action run.

A ``StateFlowPacket`` is created when an action starts and discarded when it
ends. Its ``ActionContext`` is set once before the first state executes and
is read-only afterwards; task handlers receive it on every call.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from actionflow.runtime.operations import OperationPipeline
    from actionflow.runtime.query_context import QueryContext
    from actionflow.runtime.registry import ModelRegistry
    from actionflow.specs.model import AttributeSpec, ModelDefinition


@dataclass(frozen=True)
class ActionContext:
    """
    Read-mostly context shared by every state of one execution.

    Attributes:
        model: The model the action runs against
        action: Action name (create, readOne, ...)
        config: Model configuration merged with caller overrides (read-only)
        registry: Frozen model registry
        pipeline: Operation pipeline bound to this execution
        query_context: Values for ``"$.path"`` placeholders
        view_name: View whose scopes back bare scope names
        extras: Caller-supplied values for custom task handlers
    """

    model: ModelDefinition
    action: str
    config: MappingProxyType[str, Any]
    registry: ModelRegistry
    pipeline: OperationPipeline
    query_context: QueryContext | None
    view_name: str | None = None
    extras: MappingProxyType[str, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def schema(self) -> dict[str, AttributeSpec]:
        return self.model.attributes

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a value in ``extras`` first, then ``config``."""
        if key in self.extras:
            return self.extras[key]
        return self.config.get(key, default)

    def as_mapping(self) -> dict[str, Any]:
        """The view of this context that ``$$.`` choice variables walk."""
        return {
            "model": self.model.name,
            "action": self.action,
            "config": dict(self.config),
            "view": self.view_name,
            "extras": dict(self.extras),
        }


@dataclass
class StateHistoryEntry:
    """One executed state: what went in, what came out and how long it took."""

    state_name: str
    input: Any
    entered_at: float
    output: Any = None
    exited_at: float | None = None
    duration: float | None = None
    debug: list[dict[str, Any]] = field(default_factory=list)
    started: float = field(default_factory=time.perf_counter, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state_name,
            "input": self.input,
            "output": self.output,
            "entered_at": self.entered_at,
            "exited_at": self.exited_at,
            "duration": self.duration,
            "debug": list(self.debug),
        }


@dataclass
class StateFlowPacket:
    """
    The token walked through a state graph.

    ``current_output`` becomes the next state's ``current_input`` on each
    transition; when the graph ends it is the action result.
    """

    current_input: Any
    context: ActionContext
    current_output: Any = None
    state_history: list[StateHistoryEntry] = field(default_factory=list)
    started: float = field(default_factory=time.perf_counter, repr=False)

    def enter(self, state_name: str) -> StateHistoryEntry:
        entry = StateHistoryEntry(
            state_name=state_name, input=self.current_input, entered_at=time.time()
        )
        self.state_history.append(entry)
        return entry

    def exit(self, entry: StateHistoryEntry, output: Any) -> None:
        self.current_output = output
        entry.output = output
        entry.exited_at = time.time()
        entry.duration = time.perf_counter() - entry.started

    def transition(self) -> None:
        self.current_input = self.current_output

    @property
    def visited(self) -> list[str]:
        """State names in execution order."""
        return [entry.state_name for entry in self.state_history]

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.started
