"""
State graph interpreter.

Walks a ``StateGraphSpec`` from ``StartAt`` to a terminal state, one state
at a time:

- Task states call ``handler(payload, context, **TaskArgs)`` where the
  handler is looked up in the task registry by ``Resource``; the return
  value becomes the output.
- Choice states evaluate their rules in order against the current input
  and pass the input through unchanged.

Every state is recorded in the packet history with its input, output,
timestamps and duration.
"""

from __future__ import annotations

import logging
from numbers import Number
from typing import Any

from actionflow.core.errors import StateGraphError
from actionflow.runtime.logging import get_state_machine_logger, log_with_context
from actionflow.runtime.packet import ActionContext, StateFlowPacket
from actionflow.runtime.query_context import is_missing, walk_path
from actionflow.runtime.registry import TaskRegistry
from actionflow.specs.state_graph import ChoiceRule, ChoiceState, StateGraphSpec, TaskState

logger = get_state_machine_logger()


# =============================================================================
# Choice Evaluation
# =============================================================================


def resolve_variable(variable: str, payload: Any, context: ActionContext | None) -> Any:
    """
    Resolve a choice ``Variable``.

    ``$`` is the whole input, ``$.a.b`` walks the input and ``$$.a.b`` walks
    the execution context. Returns the missing sentinel (see
    ``query_context.is_missing``) for absent paths.
    """
    if variable.startswith("$$"):
        root: Any = context.as_mapping() if context is not None else {}
        path = variable[2:]
    else:
        root = payload
        path = variable[1:]
    path = path.lstrip(".")
    if not path:
        return root
    return walk_path(root, path.split("."))


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _compare(test: str, expected: Any, value: Any) -> bool:
    if is_missing(value):
        # Absence only satisfies IsNull: true and IsPresent: false
        if test == "IsNull":
            return expected is True
        if test == "IsPresent":
            return expected is False
        return False

    match test:
        case "IsPresent":
            return expected is True
        case "IsNull":
            return (value is None) == expected
        case "IsBoolean":
            return isinstance(value, bool) == expected
        case "IsString":
            return isinstance(value, str) == expected
        case "IsNumeric":
            return _is_number(value) == expected
        case "BooleanEquals":
            return isinstance(value, bool) and value == expected
        case "StringEquals":
            return isinstance(value, str) and value == expected
        case "NumericEquals":
            return _is_number(value) and value == expected
        case "NumericGreaterThan":
            return _is_number(value) and value > expected
        case "NumericGreaterThanEquals":
            return _is_number(value) and value >= expected
        case "NumericLessThan":
            return _is_number(value) and value < expected
        case "NumericLessThanEquals":
            return _is_number(value) and value <= expected
    raise StateGraphError(f"Unsupported choice comparison: {test}")


def evaluate_rule(rule: ChoiceRule, payload: Any, context: ActionContext | None = None) -> bool:
    """Evaluate one choice rule against the current input."""
    if rule.all_of is not None:
        return all(evaluate_rule(child, payload, context) for child in rule.all_of)
    if rule.any_of is not None:
        return any(evaluate_rule(child, payload, context) for child in rule.any_of)
    if rule.negate is not None:
        return not evaluate_rule(rule.negate, payload, context)

    value = resolve_variable(rule.variable or "$", payload, context)
    return all(_compare(test, expected, value) for test, expected in rule.tests.items())


# =============================================================================
# Interpreter
# =============================================================================


class StateMachine:
    """
    Interpreter for one state graph.

    Example:
        >>> machine = StateMachine(graph, tasks)
        >>> packet = machine.execute({"data": {...}}, context)
        >>> packet.current_output
    """

    def __init__(self, graph: StateGraphSpec, tasks: TaskRegistry, debug_trace: bool = True):
        self.graph = graph
        self.tasks = tasks
        self.debug_trace = debug_trace

    def execute(self, payload: Any, context: ActionContext) -> StateFlowPacket:
        """
        Run the graph to completion.

        Raises:
            StateGraphError: a missing or undefined transition target
            ResolutionError: a Task resource that is not registered
        """
        packet = StateFlowPacket(current_input=payload, context=context)
        state_name = self.graph.start_at

        while True:
            state = self.graph.get_state(state_name)
            entry = packet.enter(state_name)

            if isinstance(state, TaskState):
                output = self._run_task(state, packet)
                next_state = None if state.end else state.next
                if self.debug_trace:
                    entry.debug.append({"type": "Task", "resource": state.resource})
            elif isinstance(state, ChoiceState):
                output = packet.current_input
                next_state = self._choose(state_name, state, packet)
                if self.debug_trace:
                    entry.debug.append({"type": "Choice", "next": next_state})
            else:
                raise StateGraphError(
                    f"Unsupported state type: {type(state).__name__}", state=state_name
                )

            packet.exit(entry, output)
            log_with_context(
                logger,
                logging.DEBUG,
                f"State {state_name} completed",
                action=context.action,
                model=context.model.name,
                duration=entry.duration,
            )

            if isinstance(state, TaskState) and state.end:
                return packet
            if not next_state:
                raise StateGraphError(
                    f"State '{state_name}' is not terminal and has no next state",
                    state=state_name,
                )
            if next_state not in self.graph.states:
                raise StateGraphError(
                    f"State '{state_name}' transitions to undefined state '{next_state}'",
                    state=state_name,
                    details={"target": next_state},
                )
            packet.transition()
            state_name = next_state

    def _run_task(self, state: TaskState, packet: StateFlowPacket) -> Any:
        handler = self.tasks.get(state.resource)
        return handler(packet.current_input, packet.context, **state.task_args)

    def _choose(self, state_name: str, state: ChoiceState, packet: StateFlowPacket) -> str | None:
        for rule in state.choices:
            if evaluate_rule(rule, packet.current_input, packet.context):
                return rule.next
        if state.default:
            return state.default
        raise StateGraphError(
            f"No choice matched in state '{state_name}' and no Default is set",
            state=state_name,
        )
