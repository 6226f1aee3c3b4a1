"""Tests for relationship filter push-down and batched expansion."""

from __future__ import annotations

import time
from typing import Any

import pytest

from actionflow.core.errors import ResolutionError
from actionflow.runtime.relation_expander import RelationshipExpander
from actionflow.runtime.relation_resolver import RelationshipResolver


class RecordingRunner:
    """Stands in for the pipeline: records operations, answers from canned rows."""

    def __init__(self, rows: list[dict[str, Any]] | None = None):
        self.rows = rows or []
        self.calls: list[dict[str, Any]] = []

    def __call__(self, operation: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(operation)
        return {"result": list(self.rows), "operation": operation}


# =============================================================================
# Push-down
# =============================================================================


class TestRelationshipResolver:
    def test_belongs_to_leaf_becomes_in_condition(self, models):
        runner = RecordingRunner([{"id": 3}, {"id": 9}, {"id": 3}])
        resolver = RelationshipResolver(models, "post", runner)
        result = resolver.resolve_condition(
            {"attribute": "author.name", "op": "is", "value": "Ada"}
        )

        assert result == {"attribute": "author_id", "op": "in", "value": [3, 9]}
        (select,) = runner.calls
        assert select["modelName"] == "user"
        assert select["attributes"] == ["id"]
        assert select["filters"] == {
            "op": "and",
            "conditions": [{"attribute": "name", "op": "is", "value": "Ada"}],
        }

    def test_has_many_leaf_uses_local_key(self, models):
        runner = RecordingRunner([{"post_id": 1}, {"post_id": None}])
        resolver = RelationshipResolver(models, "post", runner)
        result = resolver.resolve_condition(
            {"attribute": "comments.status", "op": "is", "value": "pending"}
        )
        assert result == {"attribute": "id", "op": "in", "value": [1]}
        assert runner.calls[0]["attributes"] == ["post_id"]

    def test_remaining_path_is_carried(self, models):
        runner = RecordingRunner()
        RelationshipResolver(models, "comment", runner).resolve_condition(
            {"attribute": "post.author.name", "op": "is", "value": "Grace"}
        )
        leaf = runner.calls[0]["filters"]["conditions"][0]
        assert leaf["attribute"] == "author.name"

    def test_plain_leaves_and_groups(self, models):
        runner = RecordingRunner([{"id": 7}])
        resolver = RelationshipResolver(models, "post", runner)
        operation = {
            "filters": {
                "op": "or",
                "conditions": [
                    {"attribute": "title", "op": "is", "value": "First"},
                    {
                        "op": "and",
                        "conditions": [{"attribute": "author.name", "op": "is", "value": "Ada"}],
                    },
                ],
            }
        }
        result = resolver.resolve_filters(operation)
        assert result["filters"]["conditions"][0]["attribute"] == "title"
        assert result["filters"]["conditions"][1]["conditions"][0] == {
            "attribute": "author_id",
            "op": "in",
            "value": [7],
        }
        assert operation["filters"]["conditions"][1]["conditions"][0]["attribute"] == "author.name"

    def test_large_key_sets_are_deduplicated_in_order(self, models):
        ids = list(range(20_000, 0, -1))
        runner = RecordingRunner([{"id": i} for i in ids + ids])
        resolver = RelationshipResolver(models, "post", runner)

        started = time.perf_counter()
        result = resolver.resolve_condition(
            {"attribute": "author.active", "op": "is", "value": True}
        )
        elapsed = time.perf_counter() - started

        assert result["value"] == ids
        assert elapsed < 1.0

    def test_unknown_relationship(self, models):
        resolver = RelationshipResolver(models, "post", RecordingRunner())
        with pytest.raises(ResolutionError, match="Relationship 'editor'"):
            resolver.resolve_condition({"attribute": "editor.name", "op": "is", "value": "x"})


class TestPushDownThroughPipeline:
    def test_single_hop(self, pipeline, memory_operator):
        response = pipeline.run(
            {"type": "select", "modelName": "post", "filters": {"author.name": "Ada"}}
        )
        assert [row["id"] for row in response["result"]] == [1, 2]
        (user_select,) = memory_operator.selects("users")
        assert user_select.purpose == "relationship_filter"

    def test_multi_hop(self, pipeline):
        response = pipeline.run(
            {"type": "select", "modelName": "comment", "filters": {"post.author.name": "Grace"}}
        )
        assert [row["id"] for row in response["result"]] == [3]

    def test_no_matches_yields_empty_in(self, pipeline, memory_operator):
        response = pipeline.run(
            {"type": "select", "modelName": "post", "filters": {"author.name": "Nobody"}}
        )
        assert response["result"] == []
        post_select = memory_operator.selects("posts")[-1]
        assert post_select.filters.conditions[0].value == []


# =============================================================================
# Expansion
# =============================================================================


class TestRelationshipExpander:
    def test_shared_foreign_key_issues_one_batched_select(self, models):
        runner = RecordingRunner([{"id": 7, "name": "Ada"}])
        rows = [{"id": 1, "author_id": 7}, {"id": 2, "author_id": 7}]
        expanded = RelationshipExpander(models, "post", runner).expand_path("author", rows)

        assert len(runner.calls) == 1
        condition = runner.calls[0]["filters"]["conditions"][0]
        assert condition == {"attribute": "id", "op": "in", "value": [7]}
        assert expanded[0]["author"] == {"id": 7, "name": "Ada"}
        assert expanded[1]["author"] == {"id": 7, "name": "Ada"}

    def test_no_source_values_skips_the_query(self, models):
        runner = RecordingRunner()
        rows = [{"id": 1, "author_id": None}]
        assert RelationshipExpander(models, "post", runner).expand_path("author", rows) == rows
        assert runner.calls == []

    def test_large_source_sets_are_batched_once(self, models):
        rows = [{"id": i, "author_id": i % 5_000} for i in range(1, 20_001)]
        runner = RecordingRunner()

        started = time.perf_counter()
        expanded = RelationshipExpander(models, "post", runner).expand_path("author", rows)
        elapsed = time.perf_counter() - started

        (select,) = runner.calls
        values = select["filters"]["conditions"][0]["value"]
        assert values == [*range(1, 5_000), 0]
        assert all(row["author"] is None for row in expanded)
        assert elapsed < 1.0

    def test_has_many_attaches_lists(self, models):
        runner = RecordingRunner(
            [{"id": 10, "post_id": 1}, {"id": 11, "post_id": 1}, {"id": 12, "post_id": 3}]
        )
        rows = [{"id": 1}, {"id": 2}, {"id": 3}]
        expanded = RelationshipExpander(models, "post", runner).expand_path("comments", rows)
        assert [len(row["comments"]) for row in expanded] == [2, 0, 1]
        assert runner.calls[0]["filters"]["conditions"][0]["value"] == [1, 2, 3]

    def test_missing_belongs_to_is_none(self, models):
        runner = RecordingRunner([])
        expanded = RelationshipExpander(models, "post", runner).expand_path(
            "author", [{"id": 1, "author_id": 99}]
        )
        assert expanded[0]["author"] is None

    def test_remaining_path_becomes_nested_expand(self, models):
        runner = RecordingRunner()
        RelationshipExpander(models, "post", runner).expand_path("comments.author", [{"id": 1}])
        assert runner.calls[0]["expand"] == ["author"]

    def test_expand_reads_echoed_operation(self, models):
        runner = RecordingRunner([{"id": 1, "user_id": 7, "bio": "x"}])
        response = {
            "result": [{"id": 7}, {"id": 8}],
            "operation": {"expand": ["profile"]},
        }
        expanded = RelationshipExpander(models, "user", runner).expand(response)
        assert expanded["result"][0]["profile"]["bio"] == "x"
        assert expanded["result"][1]["profile"] is None
        assert response["result"][0] == {"id": 7}


class TestExpansionThroughPipeline:
    def test_nested_expand_is_batched_per_hop(self, pipeline, memory_operator):
        response = pipeline.run(
            {"type": "select", "modelName": "post", "expand": ["comments.author", "author"]}
        )
        rows = {row["id"]: row for row in response["result"]}

        assert [c["author"]["name"] for c in rows[1]["comments"]] == ["Grace", "Grace"]
        assert rows[2]["comments"] == []
        assert rows[3]["author"]["name"] == "Grace"
        assert len(memory_operator.selects("comments")) == 1
        # One select for comments.author and one for author
        assert len(memory_operator.selects("users")) == 2

    def test_has_one_without_sort_by_is_unsorted(self, pipeline, memory_operator):
        pipeline.run({"type": "select", "modelName": "user", "expand": ["profile"]})
        (profile_select,) = memory_operator.selects("profiles")
        assert profile_select.purpose == "relationship_expand"
        assert profile_select.sorts == []
