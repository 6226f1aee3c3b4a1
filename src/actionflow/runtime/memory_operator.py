"""
In-memory database operator.

A reference ``DatabaseOperator`` over plain Python lists, used by the tests
and the CLI. Rows live in ``tables[table_name]``; every operation run is
appended to ``operations`` so callers can assert on the exact queries
issued.

Joins are echoed back in the operation but not applied.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from actionflow.core.errors import OperatorError
from actionflow.runtime.logging import get_operations_logger, log_with_context
from actionflow.specs.filters import FilterCondition, FilterGroup, FilterOperator, LogicalOperator
from actionflow.specs.operation import (
    CountOperation,
    DeleteOperation,
    InsertOperation,
    SelectOperation,
    SortDirection,
    UpdateOperation,
)

logger = get_operations_logger()


# =============================================================================
# Filter Evaluation
# =============================================================================


def _normalize(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    return value


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _contains(record_value: Any, value: Any) -> bool:
    if isinstance(record_value, str) and isinstance(value, str):
        return value.strip("%").lower() in record_value.lower()
    if isinstance(record_value, list | tuple):
        return value in record_value
    return False


def compare(record_value: Any, op: FilterOperator, value: Any) -> bool:
    """Evaluate one comparison against a row value."""
    record_value = _normalize(record_value)
    value = _normalize(value)

    match op:
        case FilterOperator.IS:
            return record_value == value
        case FilterOperator.IS_NOT:
            return record_value != value
        case FilterOperator.IS_ANY_OF:
            return isinstance(value, Iterable) and record_value in [_normalize(v) for v in value]
        case FilterOperator.IS_NONE_OF:
            if not isinstance(value, Iterable):
                return True
            return record_value not in [_normalize(v) for v in value]
        case FilterOperator.IS_EMPTY:
            return _is_empty(record_value)
        case FilterOperator.IS_NOT_EMPTY:
            return not _is_empty(record_value)
        case FilterOperator.CONTAINS:
            return _contains(record_value, value)
        case FilterOperator.NOT_CONTAINS:
            return not _contains(record_value, value)

    if record_value is None or value is None:
        return False
    try:
        match op:
            case FilterOperator.GREATER_THAN:
                return record_value > value
            case FilterOperator.GREATER_THAN_OR_EQUAL:
                return record_value >= value
            case FilterOperator.LESS_THAN:
                return record_value < value
            case FilterOperator.LESS_THAN_OR_EQUAL:
                return record_value <= value
    except TypeError:
        return False
    return False


def matches(tree: FilterGroup | FilterCondition | None, row: Mapping[str, Any]) -> bool:
    """Evaluate a typed filter tree against one row."""
    if tree is None:
        return True
    if isinstance(tree, FilterCondition):
        return compare(row.get(tree.attribute), tree.operator, tree.value)
    results = (matches(child, row) for child in tree.conditions)
    if tree.op == LogicalOperator.OR:
        return any(results)
    return all(results)


# =============================================================================
# Operator
# =============================================================================


class InMemoryOperator:
    """
    Runs canonical operations against in-memory tables.

    Args:
        tables: Initial rows by table name (copied)
        primary_keys: Primary key column by table name (default ``id``)

    Integer primary keys missing from inserted rows are assigned
    incrementally per table.
    """

    def __init__(
        self,
        tables: Mapping[str, list[dict[str, Any]]] | None = None,
        primary_keys: Mapping[str, str] | None = None,
    ):
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: copy.deepcopy(list(rows)) for name, rows in (tables or {}).items()
        }
        self.primary_keys = dict(primary_keys or {})
        self.operations: list[Any] = []

    def create_table(self, name: str, rows: list[dict[str, Any]] | None = None) -> None:
        self.tables[name] = copy.deepcopy(list(rows or []))

    def run(self, operation: Any) -> Any:
        self.operations.append(operation)
        match operation:
            case InsertOperation():
                return self._insert(operation)
            case UpdateOperation():
                return self._update(operation)
            case DeleteOperation():
                return self._delete(operation)
            case SelectOperation():
                return self._select(operation)
            case CountOperation():
                return self._count(operation)
        raise OperatorError(
            f"Unsupported operation: {type(operation).__name__}",
            details={"operation": type(operation).__name__},
        )

    def selects(self, table: str | None = None) -> list[SelectOperation]:
        """Select operations run so far, optionally for one table."""
        return [
            op
            for op in self.operations
            if isinstance(op, SelectOperation) and (table is None or op.table == table)
        ]

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def _table(self, name: str) -> list[dict[str, Any]]:
        try:
            return self.tables[name]
        except KeyError:
            raise OperatorError(f"Table '{name}' does not exist", details={"table": name}) from None

    def _insert(self, operation: InsertOperation) -> list[dict[str, Any]]:
        rows = self._table(operation.table)
        primary_key = self.primary_keys.get(operation.table, "id")
        inserted = []
        for data in operation.rows:
            row = dict(data)
            if row.get(primary_key) is None:
                existing = [r.get(primary_key) for r in rows if isinstance(r.get(primary_key), int)]
                row[primary_key] = max(existing, default=0) + 1
            rows.append(row)
            inserted.append(dict(row))
        log_with_context(
            logger, logging.DEBUG, f"Inserted {len(inserted)} row(s) into {operation.table}"
        )
        return inserted

    def _update(self, operation: UpdateOperation) -> list[dict[str, Any]]:
        updated = []
        for row in self._table(operation.table):
            if matches(operation.conditions, row):
                row.update(operation.data)
                updated.append(dict(row))
        return updated

    def _delete(self, operation: DeleteOperation) -> list[dict[str, Any]]:
        rows = self._table(operation.table)
        deleted = [row for row in rows if matches(operation.conditions, row)]
        if operation.soft:
            stamp = datetime.now(UTC).isoformat()
            for row in deleted:
                row[operation.delete_column] = stamp
        else:
            doomed = {id(row) for row in deleted}
            self.tables[operation.table] = [row for row in rows if id(row) not in doomed]
        return [dict(row) for row in deleted]

    def _live_rows(self, operation: SelectOperation | CountOperation) -> list[dict[str, Any]]:
        return [
            row
            for row in self._table(operation.table)
            if matches(operation.filters, row)
            and not (operation.delete_column and row.get(operation.delete_column))
        ]

    def _count(self, operation: CountOperation) -> dict[str, Any]:
        return {"result": len(self._live_rows(operation)), "operation": operation.to_wire()}

    def _select(self, operation: SelectOperation) -> dict[str, Any]:
        rows = self._live_rows(operation)

        # Stable sorts applied last key first; missing values sort last
        for sort in reversed(operation.sorts):
            reverse = sort.direction == SortDirection.DESC
            present = [r for r in rows if r.get(sort.attribute) is not None]
            missing = [r for r in rows if r.get(sort.attribute) is None]
            present.sort(key=lambda r, a=sort.attribute: r[a], reverse=reverse)
            rows = present + missing

        response: dict[str, Any] = {"operation": operation.to_wire()}
        pagination = operation.pagination
        if pagination is not None:
            total = len(rows)
            if pagination.cursor is not None:
                primary_key = self.primary_keys.get(operation.table, "id")
                keys = [_normalize(r.get(primary_key)) for r in rows]
                cursor = _normalize(pagination.cursor)
                start = keys.index(cursor) + 1 if cursor in keys else 0
                rows = rows[start : start + pagination.per_page]
            else:
                rows = rows[pagination.offset : pagination.offset + pagination.per_page]
            response["pagination"] = {
                "page": pagination.page or 1,
                "per_page": pagination.per_page,
                "total": total,
                "pages": -(-total // pagination.per_page),
            }

        if operation.attributes:
            rows = [{a: row.get(a) for a in operation.attributes} for row in rows]
        response["result"] = [dict(row) for row in rows]
        return response
