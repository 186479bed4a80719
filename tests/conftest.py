from __future__ import annotations

import copy
import threading
from typing import Any, Callable, Optional

import pytest
from postgrest.exceptions import APIError

from reelworks.db import parse_ts


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return parse_ts(value)
        except ValueError:
            return value
    return value


class _Result:
    def __init__(self, data: list[dict[str, Any]]) -> None:
        self.data = data


class _FakeQuery:
    """Subset of the PostgREST builder chain the stores use."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self._db = db
        self._table = table
        self._action = "select"
        self._columns = "*"
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._filters: list = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None
        self._range: Optional[tuple[int, int]] = None

    # actions
    def select(self, columns: str = "*") -> "_FakeQuery":
        self._action, self._columns = "select", columns
        return self

    def insert(self, payload: Any) -> "_FakeQuery":
        self._action, self._payload = "insert", payload
        return self

    def update(self, payload: dict[str, Any]) -> "_FakeQuery":
        self._action, self._payload = "update", payload
        return self

    def upsert(self, payload: Any, on_conflict: str = "") -> "_FakeQuery":
        self._action, self._payload, self._on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self) -> "_FakeQuery":
        self._action = "delete"
        return self

    # filters / modifiers
    def eq(self, column: str, value: Any) -> "_FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: list[Any]) -> "_FakeQuery":
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def lte(self, column: str, value: Any) -> "_FakeQuery":
        self._filters.append(
            lambda row: row.get(column) is not None
            and _comparable(row[column]) <= _comparable(value)
        )
        return self

    def order(self, column: str, desc: bool = False) -> "_FakeQuery":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "_FakeQuery":
        self._limit = count
        return self

    def range(self, start: int, end: int) -> "_FakeQuery":
        self._range = (start, end)
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> _Result:
        return self._db._execute(self)


class FakeSupabase:
    """In-memory stand-in for the supabase Client, tables keyed by name."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.fail_next = False
        self._lock = threading.Lock()
        self._unique: dict[str, list[tuple[tuple[str, ...], Callable[[dict[str, Any]], bool]]]] = {}

    def table(self, name: str) -> _FakeQuery:
        return _FakeQuery(self, name)

    def rows(self, name: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def seed(self, name: str, row: dict[str, Any]) -> dict[str, Any]:
        self.rows(name).append(copy.deepcopy(row))
        return row

    def add_unique(
        self,
        name: str,
        columns: tuple[str, ...],
        where: Callable[[dict[str, Any]], bool] = lambda row: True,
    ) -> None:
        """Partial unique index: rows matching `where` must differ on `columns`."""
        self._unique.setdefault(name, []).append((columns, where))

    def _check_unique(self, name: str, rows: list[dict[str, Any]]) -> None:
        for columns, where in self._unique.get(name, []):
            seen: set = set()
            for row in rows:
                if not where(row):
                    continue
                key = tuple(row.get(c) for c in columns)
                if key in seen:
                    raise APIError({
                        "message": f"duplicate key value violates unique constraint on {columns}",
                        "code": "23505",
                    })
                seen.add(key)

    def _execute(self, q: _FakeQuery) -> _Result:
        if self.fail_next:
            self.fail_next = False
            raise APIError({"message": "connection refused", "code": "503"})

        # One lock per statement mirrors row-level atomicity of a single UPDATE
        with self._lock:
            rows = self.rows(q._table)

            if q._action == "insert":
                new = q._payload if isinstance(q._payload, list) else [q._payload]
                self._check_unique(q._table, rows + list(new))
                rows.extend(copy.deepcopy(new))
                return _Result(copy.deepcopy(new))

            if q._action == "upsert":
                keys = [k.strip() for k in (q._on_conflict or "id").split(",")]
                payload = copy.deepcopy(q._payload)
                for row in rows:
                    if all(row.get(k) == payload.get(k) for k in keys):
                        self._check_unique(q._table, [r for r in rows if r is not row] + [{**row, **payload}])
                        row.update(payload)
                        return _Result([copy.deepcopy(row)])
                self._check_unique(q._table, rows + [payload])
                rows.append(payload)
                return _Result([copy.deepcopy(payload)])

            matched = [row for row in rows if q._matches(row)]

            if q._action == "update":
                self._check_unique(
                    q._table,
                    [{**row, **q._payload} if q._matches(row) else row for row in rows],
                )
                for row in matched:
                    row.update(copy.deepcopy(q._payload))
                return _Result(copy.deepcopy(matched))

            if q._action == "delete":
                self.tables[q._table] = [row for row in rows if row not in matched]
                return _Result(copy.deepcopy(matched))

            if q._order:
                column, desc = q._order
                matched.sort(key=lambda r: _comparable(r.get(column) or ""), reverse=desc)
            if q._range:
                start, end = q._range
                matched = matched[start:end + 1]
            if q._limit is not None:
                matched = matched[:q._limit]
            if q._columns != "*":
                wanted = [c.strip() for c in q._columns.split(",")]
                matched = [{c: row.get(c) for c in wanted} for row in matched]
            return _Result(copy.deepcopy(matched))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_db() -> FakeSupabase:
    db = FakeSupabase()
    # Mirrors video_queue_active_video in migrations/001_video_queue.sql
    db.add_unique(
        "video_queue",
        ("user_id", "video_id"),
        where=lambda row: row.get("status") in ("queued", "processing"),
    )
    return db
