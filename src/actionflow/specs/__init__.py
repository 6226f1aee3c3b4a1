"""
actionflow specification types.

This module exports the declarative types the runtime is driven by:
models and relationships, filter trees, database operations and state
graphs.
"""

from actionflow.specs.filters import (
    OPERATOR_ALIASES,
    FilterCondition,
    FilterGroup,
    FilterOperator,
    LogicalOperator,
    canonical_operator,
    is_valid_operator,
)
from actionflow.specs.model import (
    AliasSpec,
    AttributeSpec,
    AttributeType,
    BelongsTo,
    GenerateStrategy,
    HasMany,
    HasOne,
    ModelConfiguration,
    ModelDefinition,
    Relationship,
    RelationshipKind,
    ViewDefinition,
)
from actionflow.specs.operation import (
    CountOperation,
    DatabaseOperation,
    DeleteOperation,
    InsertOperation,
    Join,
    JoinType,
    Pagination,
    SelectOperation,
    Sort,
    SortDirection,
    UpdateOperation,
    parse_operation,
)
from actionflow.specs.state_graph import (
    CHOICE_TESTS,
    ChoiceRule,
    ChoiceState,
    StateDefinition,
    StateGraphSpec,
    StateType,
    TaskState,
)

__all__ = [
    # Filters
    "OPERATOR_ALIASES",
    "FilterCondition",
    "FilterGroup",
    "FilterOperator",
    "LogicalOperator",
    "canonical_operator",
    "is_valid_operator",
    # Models
    "AliasSpec",
    "AttributeSpec",
    "AttributeType",
    "BelongsTo",
    "GenerateStrategy",
    "HasMany",
    "HasOne",
    "ModelConfiguration",
    "ModelDefinition",
    "Relationship",
    "RelationshipKind",
    "ViewDefinition",
    # Operations
    "CountOperation",
    "DatabaseOperation",
    "DeleteOperation",
    "InsertOperation",
    "Join",
    "JoinType",
    "Pagination",
    "SelectOperation",
    "Sort",
    "SortDirection",
    "UpdateOperation",
    "parse_operation",
    # State graphs
    "CHOICE_TESTS",
    "ChoiceRule",
    "ChoiceState",
    "StateDefinition",
    "StateGraphSpec",
    "StateType",
    "TaskState",
]
