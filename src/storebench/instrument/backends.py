"""In-process reference backends.

Small, dependency-free implementations of the backend contracts. Useful
for exercising the interceptor in tests and as a baseline when comparing
real adapters.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator, Sequence
from typing import Any, TypeVar

from .contracts import BlobStore, Row

T = TypeVar("T")

_MISSING = object()


class MemoryBlobStore:
    """Dict-backed blob store.

    Listing walks keys in sorted order. Transactions snapshot the data and
    restore it if the closure raises.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str | Sequence[str]) -> bool | int:
        if isinstance(key, str):
            return self._data.pop(key, _MISSING) is not _MISSING
        return sum(1 for k in key if self._data.pop(k, _MISSING) is not _MISSING)

    def list(
        self,
        prefix: str | None = None,
        start: str | None = None,
        end: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in sorted(self._data):
            if prefix and not key.startswith(prefix):
                continue
            if start and key < start:
                continue
            if end and key >= end:
                continue
            if limit is not None and len(result) >= limit:
                break
            result[key] = self._data[key]
        return result

    def transaction(self, fn: Callable[[BlobStore], T]) -> T:
        snapshot = dict(self._data)
        try:
            return fn(self)
        except Exception:
            self._data = snapshot
            raise

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class SqliteCursor:
    """Cursor contract over a :class:`sqlite3.Cursor`; rows are dicts."""

    def __init__(self, cursor: sqlite3.Cursor) -> None:
        self._cursor = cursor
        self.column_names: list[str] = [d[0] for d in cursor.description or []]
        # rowcount is -1 for statements that do not modify rows
        self.rows_written: int = max(cursor.rowcount, 0)

    def _as_row(self, values: tuple[Any, ...]) -> Row:
        return dict(zip(self.column_names, values))

    def __iter__(self) -> Iterator[Row]:
        for values in self._cursor:
            yield self._as_row(values)

    def to_array(self) -> list[Row]:
        return [self._as_row(values) for values in self._cursor.fetchall()]

    def one(self) -> Row | None:
        values = self._cursor.fetchone()
        return self._as_row(values) if values is not None else None

    def raw(self) -> list[tuple[Any, ...]]:
        return self._cursor.fetchall()


class SqliteExecutor:
    """SqlExecutor contract over a :class:`sqlite3.Connection`."""

    def __init__(self, connection: sqlite3.Connection | None = None) -> None:
        self.connection = connection or sqlite3.connect(":memory:")

    def exec(self, query: str, *bindings: Any) -> SqliteCursor:
        return SqliteCursor(self.connection.execute(query, bindings))

    def commit(self) -> None:
        self.connection.commit()

    def close(self) -> None:
        self.connection.close()
