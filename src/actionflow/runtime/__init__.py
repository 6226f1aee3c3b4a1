"""
actionflow runtime.

This module provides:
- The state graph interpreter and the built-in action graphs
- Filter/scope normalization and validation
- Relationship push-down and batched expansion
- The operation pipeline every database operation travels
- Registries for models, task handlers and database operators

Example usage:
    >>> from actionflow.runtime import ActionOrchestrator, InMemoryOperator
    >>> from actionflow.runtime import ModelRegistry, OperatorRegistry
    >>>
    >>> models = ModelRegistry()
    >>> models.register({"name": "post", "schema": {"id": "integer", "title": "string"}})
    >>> operators = OperatorRegistry()
    >>> operators.register("default", InMemoryOperator({"posts": []}))
    >>>
    >>> orchestrator = ActionOrchestrator(models, operators=operators)
    >>> orchestrator.execute("post", "create", {"data": {"title": "Hello"}})
"""

from actionflow.runtime.actions import ACTION_GRAPHS, ActionInputValidator, ActionName, graph_for
from actionflow.runtime.filters import (
    is_group,
    merge_filters,
    normalize,
    normalize_condition,
    normalize_filters,
    parse_filter_tree,
    validate,
)
from actionflow.runtime.memory_operator import InMemoryOperator
from actionflow.runtime.mermaid import render_mermaid
from actionflow.runtime.operations import OperationPipeline
from actionflow.runtime.orchestrator import ActionOrchestrator
from actionflow.runtime.packet import ActionContext, StateFlowPacket, StateHistoryEntry
from actionflow.runtime.query_context import QueryContext
from actionflow.runtime.registry import (
    DatabaseOperator,
    ModelRegistry,
    OperatorRegistry,
    TaskRegistry,
)
from actionflow.runtime.relation_expander import RelationshipExpander
from actionflow.runtime.relation_resolver import RelationshipResolver
from actionflow.runtime.relationships import RelationshipKeys, join_for, relationship_keys
from actionflow.runtime.scopes import ScopeResolver
from actionflow.runtime.state_machine import StateMachine, evaluate_rule
from actionflow.runtime.tasks import BUILTIN_TASKS, register_builtin_tasks

__all__ = [
    # Actions
    "ACTION_GRAPHS",
    "ActionInputValidator",
    "ActionName",
    "ActionOrchestrator",
    "graph_for",
    # State machine
    "ActionContext",
    "StateFlowPacket",
    "StateHistoryEntry",
    "StateMachine",
    "evaluate_rule",
    "render_mermaid",
    # Filters and scopes
    "ScopeResolver",
    "is_group",
    "merge_filters",
    "normalize",
    "normalize_condition",
    "normalize_filters",
    "parse_filter_tree",
    "validate",
    # Relationships
    "RelationshipExpander",
    "RelationshipKeys",
    "RelationshipResolver",
    "join_for",
    "relationship_keys",
    # Operations
    "DatabaseOperator",
    "InMemoryOperator",
    "OperationPipeline",
    "QueryContext",
    # Registries
    "BUILTIN_TASKS",
    "ModelRegistry",
    "OperatorRegistry",
    "TaskRegistry",
    "register_builtin_tasks",
]
