"""Shared pytest fixtures for actionflow tests."""

from __future__ import annotations

import copy
import logging
from typing import Any

import pytest

from actionflow.core.config import ActionFlowSettings
from actionflow.runtime.logging import ROOT_LOGGER_NAME
from actionflow.runtime.memory_operator import InMemoryOperator
from actionflow.runtime.operations import OperationPipeline
from actionflow.runtime.orchestrator import ActionOrchestrator
from actionflow.runtime.query_context import QueryContext
from actionflow.runtime.registry import ModelRegistry, OperatorRegistry, TaskRegistry

MODEL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "user",
        "schema": {
            "id": "integer",
            "name": {"type": "string", "required": True},
            "email": "string",
            "active": {"type": "boolean", "default": True},
        },
        "relationships": {
            "has_many": {"posts": {"foreignKey": "author_id"}},
            "has_one": {"profile": {}},
        },
        "scopes": {"active": {"active": True}},
    },
    {
        "name": "profile",
        "schema": {"id": "integer", "user_id": "integer", "bio": "text"},
        "relationships": {"belongs_to": {"user": {}}},
    },
    {
        "name": "post",
        "schema": {
            "id": "integer",
            "title": {"type": "string", "required": True},
            "status": {"type": "string", "default": "draft"},
            "author_id": "integer",
            "created_at": {"type": "timestamp", "generate": "timestamp"},
        },
        "relationships": {
            "belongs_to": {"author": {"model": "user"}},
            "has_many": {"comments": {}},
        },
        "scopes": {
            "published": {"status": "published"},
            "by_current_user": [{"attribute": "author_id", "op": "is", "value": "$.user.id"}],
        },
    },
    {
        "name": "comment",
        "schema": {
            "id": "integer",
            "post_id": "integer",
            "author_id": "integer",
            "body": "text",
            "status": "string",
        },
        "relationships": {
            "belongs_to": {"post": {}, "author": {"model": "user"}},
        },
        "scopes": {
            "approved": [{"attribute": "status", "op": "is", "value": "approved"}],
        },
    },
]

TABLES: dict[str, list[dict[str, Any]]] = {
    "users": [
        {"id": 7, "name": "Ada", "email": "ada@example.com", "active": True},
        {"id": 8, "name": "Grace", "email": "grace@example.com", "active": False},
    ],
    "profiles": [{"id": 1, "user_id": 7, "bio": "Mathematician"}],
    "posts": [
        {"id": 1, "title": "First", "status": "published", "author_id": 7},
        {"id": 2, "title": "Second", "status": "draft", "author_id": 7},
        {"id": 3, "title": "Third", "status": "published", "author_id": 8},
    ],
    "comments": [
        {"id": 1, "post_id": 1, "author_id": 8, "body": "Nice", "status": "approved"},
        {"id": 2, "post_id": 1, "author_id": 8, "body": "Spam", "status": "pending"},
        {"id": 3, "post_id": 3, "author_id": 7, "body": "Great", "status": "approved"},
    ],
}


@pytest.fixture
def model_definitions() -> list[dict[str, Any]]:
    """Declarative definitions of user, profile, post and comment."""
    return copy.deepcopy(MODEL_DEFINITIONS)


@pytest.fixture
def models(model_definitions) -> ModelRegistry:
    """Frozen registry of the sample models."""
    registry = ModelRegistry()
    for definition in model_definitions:
        registry.register(definition)
    registry.register_view(
        {"name": "post_admin", "model": "post", "scopes": {"drafts": {"status": "draft"}}}
    )
    registry.freeze()
    return registry


@pytest.fixture
def memory_operator() -> InMemoryOperator:
    """In-memory tables seeded with the sample rows."""
    return InMemoryOperator(TABLES)


@pytest.fixture
def operators(memory_operator) -> OperatorRegistry:
    registry = OperatorRegistry()
    registry.register("default", memory_operator)
    return registry


@pytest.fixture
def settings() -> ActionFlowSettings:
    return ActionFlowSettings()


@pytest.fixture
def pipeline(models, operators, settings) -> OperationPipeline:
    """Operation pipeline with a signed-in user 7 in the query context."""
    return OperationPipeline(
        models, operators, settings=settings, query_context=QueryContext({"user.id": 7})
    )


@pytest.fixture
def tasks() -> TaskRegistry:
    """Empty task registry; the orchestrator adds the built-ins."""
    return TaskRegistry()


@pytest.fixture
def orchestrator(models, tasks, operators, settings) -> ActionOrchestrator:
    return ActionOrchestrator(models, tasks=tasks, operators=operators, settings=settings)


@pytest.fixture
def restore_root_logger():
    """Undo handler and level changes made by setup_logging."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    level, handlers = root.level, list(root.handlers)
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
