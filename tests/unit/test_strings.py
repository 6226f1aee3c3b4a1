"""Tests for string inflection helpers."""

from __future__ import annotations

import pytest

from actionflow.core.strings import (
    foreign_key_for,
    pluralize,
    singularize,
    table_name_for,
    to_snake_case,
)


class TestPluralize:
    @pytest.mark.parametrize(
        ("word", "expected"),
        [
            ("post", "posts"),
            ("category", "categories"),
            ("day", "days"),
            ("box", "boxes"),
            ("match", "matches"),
            ("knife", "knives"),
            ("shelf", "shelves"),
            ("person", "people"),
            ("Person", "People"),
            ("status", "statuses"),
            ("data", "data"),
            ("blog_entry", "blog_entries"),
            ("BlogEntry", "BlogEntries"),
            ("", ""),
        ],
    )
    def test_pluralize(self, word, expected):
        assert pluralize(word) == expected


class TestSingularize:
    @pytest.mark.parametrize(
        ("word", "expected"),
        [
            ("posts", "post"),
            ("categories", "category"),
            ("boxes", "box"),
            ("knives", "knife"),
            ("shelves", "shelf"),
            ("people", "person"),
            ("status", "status"),
            ("address", "address"),
            ("author", "author"),
            ("blog_posts", "blog_post"),
        ],
    )
    def test_singularize(self, word, expected):
        assert singularize(word) == expected

    @pytest.mark.parametrize("word", ["comment", "category", "person", "box"])
    def test_singularize_inverts_pluralize(self, word):
        assert singularize(pluralize(word)) == word


class TestDerivedNames:
    @pytest.mark.parametrize(
        ("word", "expected"),
        [("BlogPost", "blog_post"), ("blog-post", "blog_post"), ("userID", "user_id")],
    )
    def test_to_snake_case(self, word, expected):
        assert to_snake_case(word) == expected

    def test_foreign_key_for(self):
        assert foreign_key_for("author") == "author_id"
        assert foreign_key_for("Posts") == "post_id"
        assert foreign_key_for("BlogEntries") == "blog_entry_id"

    def test_table_name_for(self):
        assert table_name_for("BlogPost") == "blog_posts"
        assert table_name_for("person") == "people"
        assert table_name_for("comment") == "comments"
