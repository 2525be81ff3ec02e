"""
In-memory stand-in for the Supabase client used by the repositories.

Supports the query-builder subset the repositories use:
table().insert/select/update, .eq, .order, .limit, .execute.

Failure modes:
- `raise_on_execute`: exception raised by every execute() (e.g. a transport
  error), optionally only for the tables listed in `failing_tables`.
- `response_error`: error payload returned on the response instead of data.
"""

from __future__ import annotations

import copy
import itertools
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Set

OWNER = "0x" + "a1" * 20
FARMER = "0x" + "b2" * 20
BUYER = "0x" + "c3" * 20

HARVEST_DATE = 1717200000


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self.action = "select"
        self.payload: Any = None
        self.filters: List[tuple] = []
        self.ordering: Optional[tuple] = None
        self.row_limit: Optional[int] = None

    def select(self, columns: str = "*", **_: Any) -> "FakeQuery":
        self.action = "select"
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self.action = "insert"
        self.payload = payload
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.action = "update"
        self.payload = payload
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.ordering = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.row_limit = count
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self) -> SimpleNamespace:
        self.db.calls.append((self.table, self.action))
        if self.db.raise_on_execute is not None and (
            not self.db.failing_tables or self.table in self.db.failing_tables
        ):
            raise self.db.raise_on_execute
        if self.db.response_error is not None:
            return SimpleNamespace(data=None, error=self.db.response_error)

        rows = self.db.tables.setdefault(self.table, [])

        if self.action == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            stored = []
            for payload in payloads:
                row = {"id": next(self.db._ids), **copy.deepcopy(payload)}
                rows.append(row)
                stored.append(copy.deepcopy(row))
            return SimpleNamespace(data=stored, error=None)

        if self.action == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(row))
            return SimpleNamespace(data=updated, error=None)

        result = [copy.deepcopy(row) for row in rows if self._matches(row)]
        if self.ordering is not None:
            column, desc = self.ordering
            result.sort(
                key=lambda r: (r.get(column) is None, r.get(column) or 0, r["id"]),
                reverse=desc,
            )
        if self.row_limit is not None:
            result = result[: self.row_limit]
        return SimpleNamespace(data=result, error=None)


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.raise_on_execute: Optional[BaseException] = None
        self.failing_tables: Set[str] = set()
        self.response_error: Any = None
        self._ids = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[Dict[str, Any]]:
        return self.tables.get(name, [])
