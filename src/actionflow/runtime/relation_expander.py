"""
Relationship expansion for select results.

After a select runs, each requested expand path attaches related rows to
the result. Every hop issues exactly one batched select, whatever the number
of source rows:

    posts = [{"id": 1, "author_id": 7}, {"id": 2, "author_id": 7}]
    expand ["author"]  ->  select user where id in [7]
                       ->  posts[i]["author"] = {"id": 7, ...}

A remaining path (``"comments.author"``) is carried into the batched select
as its own ``expand``, so deeper hops are handled by the pipeline.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from actionflow.runtime.logging import get_relations_logger, log_with_context
from actionflow.runtime.registry import ModelRegistry
from actionflow.runtime.relation_resolver import OperationRunner
from actionflow.runtime.relationships import is_to_many, relationship_keys

logger = get_relations_logger()


class RelationshipExpander:
    """Attaches related rows to the select results of one model."""

    def __init__(self, registry: ModelRegistry, model_name: str, run_operation: OperationRunner):
        self.registry = registry
        self.model_name = model_name
        self.run_operation = run_operation

    def expand(self, response: dict[str, Any], expand: list[str] | None = None) -> dict[str, Any]:
        """
        Expand the rows of a select response.

        Args:
            response: Operator response ``{"result": rows, "operation": echo}``
            expand: Paths to expand (default: the echoed operation's ``expand``)

        Returns:
            A copy of ``response`` whose ``result`` rows carry the related rows
        """
        if expand is None:
            expand = list(response.get("operation", {}).get("expand") or [])
        rows = list(response.get("result") or [])
        if not expand:
            return response

        log_with_context(
            logger,
            logging.DEBUG,
            "Starting relationship expansion",
            model=self.model_name,
            expand=expand,
        )
        for path in expand:
            rows = self.expand_path(path, rows)
        return {**response, "result": rows}

    def expand_path(self, path: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Expand one dotted path over ``rows``."""
        relation_name, _, remaining = path.partition(".")
        model = self.registry.get(self.model_name)
        relationship = model.get_relationship(relation_name)
        keys = relationship_keys(relationship)
        to_many = is_to_many(relationship)

        # Distinct, in first-seen order
        found = dict.fromkeys(row.get(keys.current_key) for row in rows)
        source_values = [value for value in found if value is not None]

        if not source_values:
            logger.debug("No %s values to expand %s; skipping", keys.current_key, path)
            return rows

        select: dict[str, Any] = {
            "type": "select",
            "modelName": relationship.related_model,
            "purpose": "relationship_expand",
            "filters": {
                "op": "and",
                "conditions": [
                    {"attribute": keys.related_key, "op": "in", "value": source_values}
                ],
            },
        }
        if remaining:
            select["expand"] = [remaining]
        sort_by = getattr(relationship, "sort_by", None)
        if sort_by:
            select["sorts"] = [{"attribute": sort_by, "direction": "asc"}]

        response = self.run_operation(select)
        related_rows = response.get("result", []) if isinstance(response, Mapping) else []

        grouped: dict[Any, list[dict[str, Any]]] = {}
        for related in related_rows:
            grouped.setdefault(related.get(keys.related_key), []).append(related)

        expanded = []
        for row in rows:
            matches = grouped.get(row.get(keys.current_key), [])
            if to_many:
                attached: Any = list(matches)
            else:
                attached = matches[0] if matches else None
            expanded.append({**row, relation_name: attached})

        log_with_context(
            logger,
            logging.DEBUG,
            f"Expanded {self.model_name}.{relation_name}",
            model=self.model_name,
            relationship=relation_name,
            kind=relationship.kind,
            source_values=len(source_values),
            related_rows=len(related_rows),
        )
        return expanded
