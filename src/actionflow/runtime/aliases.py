"""
Computed attributes of select results.

A model's aliases are JMESPath expressions evaluated against each result
row after expansion:

    "aliases": {
        "author_name": "author.name",
        "published_on": {
            "source": "published_at",
            "transform": "format_date(value, '%Y-%m-%dT%H:%M:%S', '%d %b %Y')",
        },
        "headline": {"transform": "join(': ', [status, title])"},
    }

Every alias reads the row as the operator returned it, so one alias cannot
see another. A ``source`` value that is a JSON string is decoded before its
``transform`` runs.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from functools import cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jmespath
from jmespath import functions
from jmespath.exceptions import JMESPathError
from jmespath.parser import ParsedResult

from actionflow.core.errors import StructuralValidationError
from actionflow.runtime.logging import get_operations_logger, log_with_context
from actionflow.specs.model import AliasSpec, ModelDefinition

logger = get_operations_logger()

# A source that names a (possibly dotted) attribute rather than an expression
_ATTRIBUTE_PATH = re.compile(r"^[A-Za-z_]\w*(\.[A-Za-z_]\w*)*$")


class AliasFunctions(functions.Functions):
    """JMESPath functions available to alias expressions."""

    @functions.signature(
        {"types": ["string", "null"]},
        {"types": ["string"]},
        {"types": ["string"], "variadic": True},
    )
    def _func_format_date(self, value, from_format, *rest):
        """
        format_date(value, from_format, to_format[, timezone])

        Parses ``value`` with strptime ``from_format`` and renders it with
        strftime ``to_format``, converting to ``timezone`` first when given.
        Naive values are taken as UTC. Unparseable values yield null.
        """
        if value is None:
            return None
        to_format = rest[0]
        try:
            parsed = datetime.strptime(value, from_format)
        except ValueError:
            return None
        if len(rest) > 1 and rest[1]:
            try:
                zone = ZoneInfo(rest[1])
            except (ZoneInfoNotFoundError, ValueError):
                raise JMESPathError(f"format_date: unknown timezone {rest[1]!r}") from None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            parsed = parsed.astimezone(zone)
        return parsed.strftime(to_format)


_OPTIONS = jmespath.Options(custom_functions=AliasFunctions())


@cache
def _compiled(expression: str) -> ParsedResult:
    return jmespath.compile(expression)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _decoded(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


def source_attribute(alias: AliasSpec) -> str | None:
    """The attribute path an alias reads, if its source is a plain path."""
    if alias.source and _ATTRIBUTE_PATH.match(alias.source):
        return alias.source
    return None


def evaluate(name: str, alias: AliasSpec, row: dict[str, Any]) -> Any:
    """
    Evaluate one alias against one row.

    Raises:
        StructuralValidationError: if the expression fails at runtime
    """
    try:
        extracted = None
        if alias.source:
            extracted = _compiled(alias.source).search(row, options=_OPTIONS)
        if not alias.transform:
            return extracted
        data = row if _is_empty(extracted) else {"value": _decoded(extracted)}
        return _compiled(alias.transform).search(data, options=_OPTIONS)
    except JMESPathError as e:
        raise StructuralValidationError(
            f"Alias '{name}' failed: {e}", field=f"aliases.{name}"
        ) from e


def apply_aliases(model: ModelDefinition, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Return copies of ``rows`` carrying every alias of ``model``."""
    if not model.aliases or not rows:
        return rows

    transformed = []
    for row in rows:
        computed = {name: evaluate(name, alias, row) for name, alias in model.aliases.items()}
        transformed.append({**row, **computed})

    log_with_context(
        logger,
        logging.DEBUG,
        f"Applied aliases of {model.name}",
        model=model.name,
        aliases=list(model.aliases),
        rows=len(rows),
    )
    return transformed
