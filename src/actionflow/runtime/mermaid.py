"""Mermaid rendering of state graphs."""

from __future__ import annotations

from typing import Any

from actionflow.specs.state_graph import ChoiceRule, ChoiceState, StateGraphSpec, TaskState


def _rule_label(rule: ChoiceRule) -> str:
    if rule.all_of is not None:
        return " and ".join(_rule_label(child) for child in rule.all_of)
    if rule.any_of is not None:
        return " or ".join(_rule_label(child) for child in rule.any_of)
    if rule.negate is not None:
        return f"not ({_rule_label(rule.negate)})"
    tests = ", ".join(f"{test} {_literal(value)}" for test, value in rule.tests.items())
    return f"{rule.variable} {tests}"


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_mermaid(graph: StateGraphSpec, title: str | None = None) -> str:
    """
    Render a state graph as a Mermaid ``stateDiagram-v2``.

    Task states are labelled with their resource; Choice transitions with
    the rule that selects them.
    """
    lines = ["stateDiagram-v2"]
    if title:
        lines.append(f"    %% {title}")
    lines.append(f"    [*] --> {graph.start_at}")

    for name, state in graph.states.items():
        if isinstance(state, TaskState):
            lines.append(f"    {name}: {name} ({state.resource})")
            if state.end:
                lines.append(f"    {name} --> [*]")
            elif state.next:
                lines.append(f"    {name} --> {state.next}")
        elif isinstance(state, ChoiceState):
            lines.append(f"    state {name} <<choice>>")
            for rule in state.choices:
                lines.append(f"    {name} --> {rule.next}: {_rule_label(rule)}")
            if state.default:
                lines.append(f"    {name} --> {state.default}: default")

    return "\n".join(lines)
