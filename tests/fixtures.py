"""
Test fixtures: fixed instants and an in-memory stand-in for the Supabase query builder.

Only the calls the repositories and the dispatcher make are supported:
select / insert / upsert / update / delete, eq / neq / in_, order, limit.
"""

from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Callable, Dict, List, Optional


T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def at_ms(ms: int, start: datetime = T0) -> datetime:
    return start + timedelta(milliseconds=ms)


def at_minutes(minutes: float, start: datetime = T0) -> datetime:
    return start + timedelta(minutes=minutes)


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data
        self.count = len(data)


class FakeQuery:
    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._orders: List[tuple] = []
        self._limit: Optional[int] = None

    def select(self, columns: str = "*", count: Optional[str] = None):
        return self

    def insert(self, payload):
        self._op, self._payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict: Optional[str] = None):
        self._op, self._payload, self._on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload):
        self._op, self._payload = "update", payload
        return self

    def delete(self):
        self._op = "delete"
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc: bool = False):
        self._orders.append((column, desc))
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _matches(self, row) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> FakeResponse:
        if self._table in self._client.failing_tables:
            raise RuntimeError(f"relation {self._table} is unavailable")

        rows = self._client.tables.setdefault(self._table, [])

        if self._op == "select":
            found = [dict(r) for r in rows if self._matches(r)]
            for column, desc in reversed(self._orders):
                # NULLS LAST, as Postgres sorts ascending
                found.sort(key=lambda r: (r.get(column) is None, r.get(column) or 0), reverse=desc)
            if self._limit is not None:
                found = found[: self._limit]
            return FakeResponse(found)

        if self._op == "insert":
            return FakeResponse([self._client.add_row(self._table, self._payload)])

        if self._op == "upsert":
            key = self._on_conflict
            for row in rows:
                if key and row.get(key) == self._payload.get(key):
                    row.update(self._payload)
                    return FakeResponse([dict(row)])
            return FakeResponse([self._client.add_row(self._table, self._payload)])

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self._payload)
                    updated.append(dict(row))
            return FakeResponse(updated)

        if self._op == "delete":
            deleted = [dict(r) for r in rows if self._matches(r)]
            self._client.tables[self._table] = [r for r in rows if not self._matches(r)]
            return FakeResponse(deleted)

        raise AssertionError(f"unsupported operation {self._op}")


class FakeSupabaseClient:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.failing_tables = set()
        self._ids = count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def add_row(self, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        row = {"created_at": now, "updated_at": now, **payload}
        if "id" not in row and table != "loop_timeline_state":
            row["id"] = next(self._ids)
        self.tables.setdefault(table, []).append(row)
        return dict(row)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])


