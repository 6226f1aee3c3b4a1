"""Tests for state graph validation, choice evaluation and the interpreter."""

from __future__ import annotations

import pytest

from actionflow.core.errors import ResolutionError, StateGraphError
from actionflow.runtime.registry import TaskRegistry
from actionflow.runtime.state_machine import StateMachine, evaluate_rule, resolve_variable
from actionflow.specs.state_graph import ChoiceRule, StateGraphSpec, TaskState


@pytest.fixture
def context(orchestrator):
    return orchestrator.build_context("post", "custom", config={"softDelete": True})


@pytest.fixture
def counter_tasks():
    tasks = TaskRegistry()

    @tasks.task("add")
    def add(payload, context, amount=1):
        return {**payload, "n": payload.get("n", 0) + amount}

    @tasks.task("label")
    def label(payload, context, text="done"):
        return {**payload, "label": text}

    return tasks


def rule(**data):
    return ChoiceRule.model_validate(data)


# =============================================================================
# Graph Validation
# =============================================================================


class TestStateGraphSpec:
    """Graphs are checked when built."""

    def test_valid_graph(self):
        graph = StateGraphSpec.from_wire(
            {
                "StartAt": "A",
                "States": {
                    "A": {"Type": "Task", "Resource": "add", "Next": "B"},
                    "B": {"Type": "Task", "Resource": "add", "End": True},
                },
            }
        )
        assert graph.start_at == "A"
        assert isinstance(graph.get_state("B"), TaskState)

    def test_undefined_start(self):
        with pytest.raises(StateGraphError, match="StartAt"):
            StateGraphSpec.from_wire(
                {"StartAt": "Nope", "States": {"A": {"Type": "Task", "Resource": "x", "End": True}}}
            )

    def test_undefined_next(self):
        with pytest.raises(StateGraphError, match="undefined state 'Missing'") as exc_info:
            StateGraphSpec.from_wire(
                {
                    "StartAt": "A",
                    "States": {"A": {"Type": "Task", "Resource": "x", "Next": "Missing"}},
                }
            )
        assert exc_info.value.state == "A"

    def test_task_without_next_or_end(self):
        with pytest.raises(StateGraphError, match="neither Next nor End"):
            StateGraphSpec.from_wire(
                {"StartAt": "A", "States": {"A": {"Type": "Task", "Resource": "x"}}}
            )

    def test_undefined_default(self):
        with pytest.raises(StateGraphError, match="'Elsewhere'"):
            StateGraphSpec.from_wire(
                {
                    "StartAt": "C",
                    "States": {
                        "C": {
                            "Type": "Choice",
                            "Choices": [{"Variable": "$.x", "IsPresent": True, "Next": "T"}],
                            "Default": "Elsewhere",
                        },
                        "T": {"Type": "Task", "Resource": "x", "End": True},
                    },
                }
            )

    def test_unknown_state_type(self):
        with pytest.raises(StateGraphError, match="Invalid state graph"):
            StateGraphSpec.from_wire(
                {"StartAt": "A", "States": {"A": {"Type": "Parallel", "End": True}}}
            )

    def test_to_wire_round_trips_aliases(self):
        wire = {
            "StartAt": "A",
            "States": {"A": {"Type": "Task", "Resource": "x", "End": True}},
        }
        rendered = StateGraphSpec.from_wire(wire).to_wire()
        assert rendered["StartAt"] == "A"
        assert rendered["States"]["A"]["Resource"] == "x"
        assert rendered["States"]["A"]["End"] is True


class TestChoiceRuleShape:
    def test_exactly_one_test(self):
        with pytest.raises(ValueError, match="exactly one"):
            rule(Variable="$.x", IsNull=True, IsPresent=True, Next="A")

    def test_comparison_needs_variable(self):
        with pytest.raises(ValueError, match="requires a Variable"):
            rule(IsNull=True, Next="A")

    def test_variable_must_be_a_path(self):
        with pytest.raises(ValueError, match="must start with"):
            rule(Variable="x", IsNull=True, Next="A")

    def test_unknown_keys_are_rejected(self):
        with pytest.raises(ValueError):
            rule(Variable="$.x", StringMatches="a*", Next="A")


# =============================================================================
# Choice Evaluation
# =============================================================================


class TestEvaluateRule:
    """Leaf tests, composition and missing-path semantics."""

    @pytest.mark.parametrize(
        ("data", "payload", "expected"),
        [
            ({"Variable": "$.flag", "BooleanEquals": True}, {"flag": True}, True),
            ({"Variable": "$.flag", "BooleanEquals": True}, {"flag": 1}, False),
            ({"Variable": "$.flag", "IsBoolean": True}, {"flag": False}, True),
            ({"Variable": "$.name", "IsString": True}, {"name": "x"}, True),
            ({"Variable": "$.n", "IsNumeric": True}, {"n": 3.5}, True),
            ({"Variable": "$.n", "IsNumeric": True}, {"n": True}, False),
            ({"Variable": "$.s", "StringEquals": "on"}, {"s": "on"}, True),
            ({"Variable": "$.n", "NumericEquals": 3}, {"n": 3}, True),
            ({"Variable": "$.n", "NumericGreaterThan": 3}, {"n": 4}, True),
            ({"Variable": "$.n", "NumericGreaterThanEquals": 3}, {"n": 3}, True),
            ({"Variable": "$.n", "NumericLessThan": 3}, {"n": 3}, False),
            ({"Variable": "$.n", "NumericLessThanEquals": 3}, {"n": 2}, True),
            ({"Variable": "$.n", "NumericGreaterThan": 3}, {"n": "9"}, False),
            ({"Variable": "$.result", "IsNull": True}, {"result": None}, True),
            ({"Variable": "$.result", "IsNull": True}, {"result": {"id": 1}}, False),
            ({"Variable": "$.a.b", "IsPresent": True}, {"a": {"b": 0}}, True),
        ],
    )
    def test_leaf_tests(self, data, payload, expected):
        assert evaluate_rule(rule(**data), payload) is expected

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            ({"Variable": "$.missing", "IsNull": True}, True),
            ({"Variable": "$.missing", "IsPresent": False}, True),
            ({"Variable": "$.missing", "IsPresent": True}, False),
            ({"Variable": "$.missing", "IsNull": False}, False),
            ({"Variable": "$.missing", "BooleanEquals": False}, False),
            ({"Variable": "$.missing", "StringEquals": ""}, False),
            ({"Variable": "$.missing.deeper", "NumericLessThan": 1}, False),
        ],
    )
    def test_missing_path(self, data, expected):
        assert evaluate_rule(rule(**data), {"present": 1}) is expected

    def test_and_or_not(self):
        payload = {"n": 5, "s": "x"}
        both = rule(
            And=[
                {"Variable": "$.n", "NumericGreaterThan": 1},
                {"Variable": "$.s", "StringEquals": "x"},
            ],
            Next="A",
        )
        either = rule(
            Or=[
                {"Variable": "$.n", "NumericLessThan": 1},
                {"Variable": "$.s", "StringEquals": "x"},
            ],
            Next="A",
        )
        negated = rule(Not={"Variable": "$.s", "StringEquals": "x"}, Next="A")
        assert evaluate_rule(both, payload)
        assert evaluate_rule(either, payload)
        assert not evaluate_rule(negated, payload)

    def test_context_variable(self, context):
        soft = rule(Variable="$$.config.softDelete", BooleanEquals=True, Next="A")
        assert evaluate_rule(soft, {}, context)
        assert resolve_variable("$$.model", {}, context) == "post"
        assert resolve_variable("$$.config.table", {}, context) == "posts"

    def test_whole_input(self):
        assert resolve_variable("$", {"a": 1}, None) == {"a": 1}

    def test_list_index(self):
        assert evaluate_rule(rule(Variable="$.rows.1", NumericEquals=2), {"rows": [1, 2]})


# =============================================================================
# Interpreter
# =============================================================================


class TestStateMachine:
    def test_runs_tasks_in_order_with_task_args(self, counter_tasks, context):
        graph = StateGraphSpec.from_wire(
            {
                "StartAt": "First",
                "States": {
                    "First": {"Type": "Task", "Resource": "add", "Next": "Second"},
                    "Second": {
                        "Type": "Task",
                        "Resource": "add",
                        "TaskArgs": {"amount": 10},
                        "End": True,
                    },
                },
            }
        )
        packet = StateMachine(graph, counter_tasks).execute({"n": 0}, context)
        assert packet.current_output == {"n": 11}
        assert packet.visited == ["First", "Second"]

    def test_history_records_input_output_and_timing(self, counter_tasks, context):
        graph = StateGraphSpec.from_wire(
            {
                "StartAt": "Only",
                "States": {"Only": {"Type": "Task", "Resource": "add", "End": True}},
            }
        )
        packet = StateMachine(graph, counter_tasks).execute({"n": 1}, context)
        (entry,) = packet.state_history
        assert entry.input == {"n": 1}
        assert entry.output == {"n": 2}
        assert entry.entered_at <= entry.exited_at
        assert entry.duration >= 0
        assert entry.debug == [{"type": "Task", "resource": "add"}]
        assert entry.to_dict()["state"] == "Only"

    def test_debug_trace_can_be_disabled(self, counter_tasks, context):
        graph = StateGraphSpec.from_wire(
            {
                "StartAt": "Only",
                "States": {"Only": {"Type": "Task", "Resource": "add", "End": True}},
            }
        )
        packet = StateMachine(graph, counter_tasks, debug_trace=False).execute({}, context)
        assert packet.state_history[0].debug == []

    def test_choice_first_match_wins_and_passes_input_through(self, counter_tasks, context):
        graph = StateGraphSpec.from_wire(
            {
                "StartAt": "Pick",
                "States": {
                    "Pick": {
                        "Type": "Choice",
                        "Choices": [
                            {"Variable": "$.n", "NumericGreaterThan": 0, "Next": "Big"},
                            {"Variable": "$.n", "NumericGreaterThan": -1, "Next": "Small"},
                        ],
                        "Default": "Small",
                    },
                    "Big": {
                        "Type": "Task",
                        "Resource": "label",
                        "TaskArgs": {"text": "big"},
                        "End": True,
                    },
                    "Small": {
                        "Type": "Task",
                        "Resource": "label",
                        "TaskArgs": {"text": "small"},
                        "End": True,
                    },
                },
            }
        )
        packet = StateMachine(graph, counter_tasks).execute({"n": 5}, context)
        assert packet.visited == ["Pick", "Big"]
        assert packet.state_history[0].output == {"n": 5}
        assert packet.current_output == {"n": 5, "label": "big"}

    def test_choice_default(self, counter_tasks, context):
        graph = StateGraphSpec.from_wire(
            {
                "StartAt": "Pick",
                "States": {
                    "Pick": {
                        "Type": "Choice",
                        "Choices": [{"Variable": "$.n", "IsPresent": True, "Next": "Count"}],
                        "Default": "Label",
                    },
                    "Count": {"Type": "Task", "Resource": "add", "End": True},
                    "Label": {"Type": "Task", "Resource": "label", "End": True},
                },
            }
        )
        packet = StateMachine(graph, counter_tasks).execute({}, context)
        assert packet.visited == ["Pick", "Label"]

    def test_choice_without_match_or_default(self, counter_tasks, context):
        graph = StateGraphSpec.from_wire(
            {
                "StartAt": "Pick",
                "States": {
                    "Pick": {
                        "Type": "Choice",
                        "Choices": [{"Variable": "$.n", "IsPresent": True, "Next": "Count"}],
                    },
                    "Count": {"Type": "Task", "Resource": "add", "End": True},
                },
            }
        )
        with pytest.raises(StateGraphError, match="No choice matched") as exc_info:
            StateMachine(graph, counter_tasks).execute({}, context)
        assert exc_info.value.state == "Pick"

    def test_unknown_resource(self, counter_tasks, context):
        graph = StateGraphSpec.from_wire(
            {"StartAt": "A", "States": {"A": {"Type": "Task", "Resource": "nope", "End": True}}}
        )
        with pytest.raises(ResolutionError, match="'nope'"):
            StateMachine(graph, counter_tasks).execute({}, context)

    def test_runtime_check_on_unvalidated_graph(self, counter_tasks, context):
        # model_construct skips the build-time checks
        graph = StateGraphSpec.model_construct(
            start_at="A",
            states={"A": TaskState.model_construct(resource="add", next="Ghost", end=False)},
        )
        with pytest.raises(StateGraphError, match="undefined state 'Ghost'"):
            StateMachine(graph, counter_tasks).execute({}, context)

    def test_handler_errors_propagate(self, context):
        tasks = TaskRegistry()

        @tasks.task("boom")
        def boom(payload, context):
            raise RuntimeError("storage unavailable")

        graph = StateGraphSpec.from_wire(
            {"StartAt": "A", "States": {"A": {"Type": "Task", "Resource": "boom", "End": True}}}
        )
        with pytest.raises(RuntimeError, match="storage unavailable"):
            StateMachine(graph, tasks).execute({}, context)
