"""Action orchestrator.

Entry point for running an action against a model.

Data flow::

    execute(model, action, input)
        → look up model, pick the action's graph
        → check input shape (ActionInputValidator)
        → build ActionContext + OperationPipeline for this execution
        → StateMachine.execute() walks Task / Choice states
        → final packet output is the result
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from actionflow.core.config import ActionFlowSettings
from actionflow.core.errors import ActionFlowError
from actionflow.runtime.actions import ActionInputValidator, graph_for
from actionflow.runtime.logging import get_actions_logger, log_with_context
from actionflow.runtime.operations import OperationPipeline
from actionflow.runtime.packet import ActionContext, StateFlowPacket
from actionflow.runtime.query_context import QueryContext
from actionflow.runtime.registry import ModelRegistry, OperatorRegistry, TaskRegistry
from actionflow.runtime.state_machine import StateMachine
from actionflow.runtime.tasks import register_builtin_tasks
from actionflow.specs.state_graph import StateGraphSpec

logger = get_actions_logger()


class ActionOrchestrator:
    """
    Runs actions against registered models.

    The registries are frozen when the orchestrator is built, so one
    orchestrator can serve concurrent executions. Each execution gets its
    own packet, context and pipeline.

    Example:
        >>> orchestrator = ActionOrchestrator(models, operators=operators)
        >>> orchestrator.execute("post", "readOne", {"filters": {"id": 1}})
        {'data': {'id': 1, ...}}
    """

    def __init__(
        self,
        models: ModelRegistry,
        tasks: TaskRegistry | None = None,
        operators: OperatorRegistry | None = None,
        settings: ActionFlowSettings | None = None,
    ) -> None:
        self.models = models
        self.tasks = register_builtin_tasks(tasks or TaskRegistry())
        self.operators = operators or OperatorRegistry()
        self.settings = settings or ActionFlowSettings()
        self.input_validator = ActionInputValidator()

        self.models.freeze()
        self.tasks.freeze()
        self.operators.freeze()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def execute(
        self,
        model_name: str,
        action: str,
        input: Any = None,
        config: Mapping[str, Any] | None = None,
        query_context: QueryContext | Mapping[str, Any] | None = None,
        view_name: str | None = None,
        extras: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Run a built-in action and return its result.

        Args:
            model_name: Registered model name
            action: create, readOne, readList, update, delete, count or config
            input: Action input (shape depends on the action)
            config: Overrides merged over the model configuration
            query_context: Values for ``"$.path"`` placeholders (None leaves
                ``"$."`` strings untouched)
            view_name: View whose scopes back bare scope names
            extras: Values passed through to task handlers

        Raises:
            UnsupportedActionError: unknown action
            ActionFlowError: any validation, resolution or graph error
        """
        packet = self.execute_packet(
            model_name,
            action,
            input,
            config=config,
            query_context=query_context,
            view_name=view_name,
            extras=extras,
        )
        return packet.current_output

    def execute_packet(
        self,
        model_name: str,
        action: str,
        input: Any = None,
        config: Mapping[str, Any] | None = None,
        query_context: QueryContext | Mapping[str, Any] | None = None,
        view_name: str | None = None,
        extras: Mapping[str, Any] | None = None,
    ) -> StateFlowPacket:
        """Like ``execute`` but return the whole packet, history included."""
        graph = graph_for(action)
        return self._run(
            model_name,
            action,
            graph,
            input,
            config=config,
            query_context=query_context,
            view_name=view_name,
            extras=extras,
            check_input=True,
        )

    def execute_custom(
        self,
        model_name: str,
        graph: StateGraphSpec | Mapping[str, Any],
        input: Any = None,
        action: str = "custom",
        config: Mapping[str, Any] | None = None,
        query_context: QueryContext | Mapping[str, Any] | None = None,
        view_name: str | None = None,
        extras: Mapping[str, Any] | None = None,
    ) -> StateFlowPacket:
        """
        Run a caller-supplied graph against a model.

        The graph uses the same vocabulary as the built-in ones and may
        reference built-in or caller-registered task resources. Input is
        passed through as-is.
        """
        if not isinstance(graph, StateGraphSpec):
            graph = StateGraphSpec.from_wire(dict(graph))
        return self._run(
            model_name,
            action,
            graph,
            input,
            config=config,
            query_context=query_context,
            view_name=view_name,
            extras=extras,
            check_input=False,
        )

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def build_context(
        self,
        model_name: str,
        action: str,
        config: Mapping[str, Any] | None = None,
        query_context: QueryContext | Mapping[str, Any] | None = None,
        view_name: str | None = None,
        extras: Mapping[str, Any] | None = None,
    ) -> ActionContext:
        """Build the read-only context for one execution."""
        model = self.models.get(model_name)
        if view_name is not None:
            self.models.get_view(view_name)
        # No context means "$." strings in input are plain values
        if query_context is not None and not isinstance(query_context, QueryContext):
            query_context = QueryContext(query_context)

        pipeline = OperationPipeline(
            self.models,
            self.operators,
            settings=self.settings,
            query_context=query_context,
            view_name=view_name,
        )
        merged = {**model.config.to_wire(), **dict(config or {})}
        return ActionContext(
            model=model,
            action=action,
            config=MappingProxyType(merged),
            registry=self.models,
            pipeline=pipeline,
            query_context=query_context,
            view_name=view_name,
            extras=MappingProxyType(dict(extras or {})),
        )

    def _run(
        self,
        model_name: str,
        action: str,
        graph: StateGraphSpec,
        input: Any,
        *,
        config: Mapping[str, Any] | None,
        query_context: QueryContext | Mapping[str, Any] | None,
        view_name: str | None,
        extras: Mapping[str, Any] | None,
        check_input: bool,
    ) -> StateFlowPacket:
        try:
            context = self.build_context(
                model_name,
                action,
                config=config,
                query_context=query_context,
                view_name=view_name,
                extras=extras,
            )
            if check_input:
                input = self.input_validator.validate(action, input)
            machine = StateMachine(graph, self.tasks, debug_trace=self.settings.debug_trace)
            packet = machine.execute(input, context)
        except ActionFlowError as e:
            log_with_context(
                logger,
                logging.WARNING,
                f"Action {action} on {model_name} failed: {e.message}",
                model=model_name,
                action=action,
                error=type(e).__name__,
                details=e.details or None,
            )
            raise

        log_with_context(
            logger,
            logging.INFO,
            f"Action {action} on {model_name} completed",
            model=model_name,
            action=action,
            states=packet.visited,
            duration_ms=round(packet.elapsed * 1000, 2),
        )
        return packet
