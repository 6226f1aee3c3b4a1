"""
Relationship filter push-down.

A filter leaf whose attribute crosses a relationship, such as
``{"attribute": "author.name", "op": "is", "value": "Ada"}`` on ``post``, is
rewritten into a plain ``in`` condition on the current model:

    1. select user.id where name is "Ada"          -> [3, 9]
    2. {"attribute": "author_id", "op": "in", "value": [3, 9]}

Multi-hop paths recurse: the select issued in step 1 goes back through the
operation pipeline, which resolves its own dotted filters the same way.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from actionflow.runtime.filters import map_leaves
from actionflow.runtime.logging import get_relations_logger, log_with_context
from actionflow.runtime.registry import ModelRegistry
from actionflow.runtime.relationships import relationship_keys

logger = get_relations_logger()

# Runs a wire operation through the pipeline and returns the operator response
OperationRunner = Callable[[dict[str, Any]], Any]


class RelationshipResolver:
    """Rewrites relationship-path filter leaves of one model."""

    def __init__(self, registry: ModelRegistry, model_name: str, run_operation: OperationRunner):
        self.registry = registry
        self.model_name = model_name
        self.run_operation = run_operation

    def resolve_filters(self, operation: Mapping[str, Any], key: str = "filters") -> dict[str, Any]:
        """Return ``operation`` with every dotted leaf under ``key`` pushed down."""
        result = dict(operation)
        tree = result.get(key)
        if not tree:
            return result
        result[key] = self.resolve_tree(tree)
        return result

    def resolve_tree(self, tree: Mapping[str, Any]) -> dict[str, Any]:
        return map_leaves(tree, self.resolve_condition)

    def resolve_condition(self, condition: dict[str, Any]) -> dict[str, Any]:
        attribute = condition["attribute"]
        if "." not in attribute:
            return condition

        relation_name, remaining = attribute.split(".", 1)
        model = self.registry.get(self.model_name)
        relationship = model.get_relationship(relation_name)
        keys = relationship_keys(relationship)

        select = {
            "type": "select",
            "modelName": relationship.related_model,
            "purpose": "relationship_filter",
            "filters": {
                "op": "and",
                "conditions": [
                    {"attribute": remaining, "op": condition["op"], "value": condition.get("value")}
                ],
            },
            "attributes": [keys.related_key],
        }
        response = self.run_operation(select)
        rows = response.get("result", []) if isinstance(response, Mapping) else response or []

        # Distinct, in first-seen order
        found = dict.fromkeys(row.get(keys.related_key) for row in rows)
        values = [value for value in found if value is not None]

        log_with_context(
            logger,
            logging.DEBUG,
            f"Pushed down {attribute} through {self.model_name}.{relation_name}",
            model=self.model_name,
            relationship=relation_name,
            kind=relationship.kind,
            matched=len(values),
        )
        return {"attribute": keys.current_key, "op": "in", "value": values}
