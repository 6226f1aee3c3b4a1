"""
String utility functions for actionflow.

Provides the inflections used to derive table names and relationship keys.
All functions are deterministic and total for any non-empty input.
"""

from __future__ import annotations

import re
from functools import lru_cache

# Irregular plurals that don't follow standard rules
_IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "foot": "feet",
    "tooth": "teeth",
    "goose": "geese",
    "mouse": "mice",
    "ox": "oxen",
    "datum": "data",
    "medium": "media",
    "criterion": "criteria",
    "index": "indices",
    "matrix": "matrices",
    "vertex": "vertices",
    # Common domain-specific terms
    "status": "statuses",
    "address": "addresses",
}

_IRREGULAR_SINGULARS = {plural: singular for singular, plural in _IRREGULAR_PLURALS.items()}

# Words whose singular and plural forms are the same
_UNCOUNTABLE = frozenset({"data", "media", "series", "species", "news", "metadata", "info"})


def _match_case(source: str, word: str) -> str:
    """Apply the capitalization of ``source`` to ``word``."""
    if source.isupper() and len(source) > 1:
        return word.upper()
    if source[:1].isupper():
        return word[:1].upper() + word[1:]
    return word


def _split_last_word(word: str) -> tuple[str, str]:
    """Split ``word`` into a prefix and the last word to inflect.

    Handles snake_case (``blog_posts``) and CamelCase (``BlogPosts``).
    """
    if "_" in word.strip("_"):
        head, _, tail = word.rpartition("_")
        return head + "_", tail
    camel_match = re.match(r"^(.+?)([A-Z][a-z]+)$", word)
    if camel_match:
        return camel_match.group(1), camel_match.group(2)
    return "", word


@lru_cache(maxsize=1024)
def pluralize(word: str) -> str:
    """
    Convert a singular English word to its plural form.

    Examples:
        >>> pluralize("post")
        'posts'
        >>> pluralize("Category")
        'Categories'
        >>> pluralize("blog_entry")
        'blog_entries'
        >>> pluralize("person")
        'people'
    """
    if not word:
        return word

    prefix, last = _split_last_word(word)
    if prefix:
        return prefix + pluralize(last)

    lower_word = word.lower()
    if lower_word in _UNCOUNTABLE:
        return word
    if lower_word in _IRREGULAR_PLURALS:
        return _match_case(word, _IRREGULAR_PLURALS[lower_word])

    if lower_word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if lower_word.endswith("y"):
        if len(word) > 1 and lower_word[-2] in "aeiou":
            return word + "s"
        return word[:-1] + "ies"
    if lower_word.endswith("fe"):
        return word[:-2] + "ves"
    if lower_word.endswith(("elf", "alf", "olf", "eaf", "oaf", "arf")):
        return word[:-1] + "ves"
    if lower_word.endswith(("hero", "potato", "tomato", "echo", "veto")):
        return word + "es"
    return word + "s"


@lru_cache(maxsize=1024)
def singularize(word: str) -> str:
    """
    Convert a plural English word to its singular form.

    Words that already look singular are returned unchanged, so the
    function is safe to apply to either form.

    Examples:
        >>> singularize("comments")
        'comment'
        >>> singularize("categories")
        'category'
        >>> singularize("author")
        'author'
        >>> singularize("people")
        'person'
    """
    if not word:
        return word

    prefix, last = _split_last_word(word)
    if prefix:
        return prefix + singularize(last)

    lower_word = word.lower()
    if lower_word in _UNCOUNTABLE:
        return word
    if lower_word in _IRREGULAR_SINGULARS:
        return _match_case(word, _IRREGULAR_SINGULARS[lower_word])
    if lower_word in _IRREGULAR_PLURALS:
        # Already the singular of an irregular pair (e.g. "status")
        return word

    if lower_word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if lower_word.endswith("ves") and len(word) > 3:
        stem = word[:-3]
        if lower_word[:-3].endswith(("el", "al", "ol", "ea", "oa", "ar")):
            return stem + "f"
        return stem + "fe"
    if lower_word.endswith(("ches", "shes", "xes", "zes", "sses", "oes")):
        return word[:-2]
    if lower_word.endswith(("ss", "us", "is")):
        return word
    if lower_word.endswith("s") and len(word) > 1:
        return word[:-1]
    return word


@lru_cache(maxsize=1024)
def to_snake_case(word: str) -> str:
    """
    Convert CamelCase, kebab-case or spaced words to snake_case.

    Examples:
        >>> to_snake_case("BlogPost")
        'blog_post'
        >>> to_snake_case("blog-post")
        'blog_post'
        >>> to_snake_case("userID")
        'user_id'
    """
    word = re.sub(r"[\s\-]+", "_", word.strip())
    word = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", word)
    word = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", word)
    return re.sub(r"_+", "_", word).lower()


def foreign_key_for(name: str) -> str:
    """
    Derive the conventional foreign key column for a model or relationship name.

    Examples:
        >>> foreign_key_for("author")
        'author_id'
        >>> foreign_key_for("Posts")
        'post_id'
    """
    return f"{to_snake_case(singularize(name))}_id"


def table_name_for(model_name: str) -> str:
    """
    Derive the default table name for a model.

    Examples:
        >>> table_name_for("BlogPost")
        'blog_posts'
        >>> table_name_for("person")
        'people'
    """
    return pluralize(to_snake_case(model_name))
