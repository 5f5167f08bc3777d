"""In-memory CatalogBackend that evaluates predicates like PostgREST would."""

import copy
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Optional

from hobbly.models.query import Operator, Predicate, Query, QueryResult
from hobbly.services.backend import CatalogBackend
from hobbly.utils.errors import BackendError


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and len(value) >= 19 and value[4] == "-" and value[10] == "T":
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _equal(left: Any, right: Any) -> bool:
    if left == right:
        return True
    left_dt, right_dt = _as_datetime(left), _as_datetime(right)
    return left_dt is not None and right_dt is not None and left_dt == right_dt


def matches(row: dict[str, Any], predicate: Predicate) -> bool:
    value = row.get(predicate.field)
    if predicate.op == Operator.EQ:
        if predicate.value is None:
            return value is None
        return _equal(value, predicate.value)
    if predicate.op == Operator.ILIKE:
        return value is not None and str(predicate.value).lower() in str(value).lower()
    if predicate.op == Operator.GTE:
        return value is not None and value >= predicate.value
    if predicate.op == Operator.LTE:
        return value is not None and value <= predicate.value
    if predicate.op == Operator.IN:
        return value in predicate.value
    if predicate.op == Operator.OR:
        return any(matches(row, inner) for inner in predicate.value)
    raise BackendError(f"Unsupported operator: {predicate.op}")


class FakeCatalogBackend(CatalogBackend):
    """
    Tables are plain lists of dicts. `activities_full` is computed on read
    from activities, categories, user_profiles, tags and activity_tags.

    `calls` counts (method, table) pairs; `failures` maps the same pairs to
    an exception raised instead of running the call.
    """

    VIEW = "activities_full"

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {
            "activities": [],
            "activity_tags": [],
            "tags": [],
            "categories": [],
            "user_profiles": [],
        }
        self.calls: Counter = Counter()
        self.failures: dict[tuple[str, str], Exception] = {}
        self.log: list[tuple[str, str, Any]] = []
        # Called with (method, table) right before a write is applied
        self.before_write: Optional[Callable[[str, str], None]] = None

    def _record(self, method: str, table: str, detail: Any = None) -> None:
        self.calls[(method, table)] += 1
        self.log.append((method, table, detail))
        failure = self.failures.get((method, table))
        if failure is not None:
            raise failure
        if method != "select" and self.before_write is not None:
            self.before_write(method, table)

    def fail(self, method: str, table: str, error: Optional[Exception] = None) -> None:
        self.failures[(method, table)] = error or BackendError(f"{method} {table} failed")

    def writes(self) -> list[tuple[str, str, Any]]:
        return [entry for entry in self.log if entry[0] != "select"]

    def _view_rows(self) -> list[dict[str, Any]]:
        categories = {row["id"]: row for row in self.tables["categories"]}
        profiles = {row["id"]: row for row in self.tables["user_profiles"]}
        tags = {row["id"]: row for row in self.tables["tags"]}

        rows = []
        for activity in self.tables["activities"]:
            row = dict(activity)
            category = categories.get(activity.get("category_id"), {})
            organizer = profiles.get(activity.get("user_id"), {})
            row["category_name"] = category.get("name")
            row["category_icon"] = category.get("icon")
            row["organizer_name"] = organizer.get("full_name")
            row["organizer_organization"] = organizer.get("organization_name")
            row["organizer_email"] = organizer.get("email")
            row["tags"] = [
                dict(tags[link["tag_id"]])
                for link in self.tables["activity_tags"]
                if link["activity_id"] == activity["id"] and link["tag_id"] in tags
            ]
            rows.append(row)
        return rows

    def _rows(self, table: str) -> list[dict[str, Any]]:
        if table == self.VIEW:
            return self._view_rows()
        return self.tables[table]

    async def select(self, table: str, query: Query) -> QueryResult:
        self._record("select", table, query)
        rows = [row for row in self._rows(table) if all(matches(row, p) for p in query.predicates)]

        if query.order is not None:
            field = query.order.field
            present = [row for row in rows if row.get(field) is not None]
            missing = [row for row in rows if row.get(field) is None]
            present.sort(key=lambda row: row[field], reverse=not query.order.ascending)
            rows = present + missing

        total = len(rows) if query.count else None
        offset = query.offset or 0
        if query.limit is not None:
            rows = rows[offset:offset + query.limit]

        if query.columns != "*":
            wanted = [column.strip() for column in query.columns.split(",")]
            rows = [{column: row.get(column) for column in wanted} for row in rows]

        return QueryResult(rows=copy.deepcopy(rows), total=total)

    async def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self._record("insert", table, rows)
        stored = copy.deepcopy(rows)
        self.tables[table].extend(stored)
        return copy.deepcopy(stored)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        predicates: list[Predicate],
    ) -> list[dict[str, Any]]:
        self._record("update", table, (values, predicates))
        updated = []
        for row in self.tables[table]:
            if all(matches(row, p) for p in predicates):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table: str, predicates: list[Predicate]) -> list[dict[str, Any]]:
        self._record("delete", table, predicates)
        kept, deleted = [], []
        for row in self.tables[table]:
            (deleted if all(matches(row, p) for p in predicates) else kept).append(row)
        self.tables[table] = kept
        return copy.deepcopy(deleted)
