"""Backend contracts consumed by the storage interceptor.

Any key/value store or SQL executor that provides these methods can be
instrumented; the interceptor needs nothing else from a backend.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

Row = dict[str, Any]


@runtime_checkable
class BlobStore(Protocol):
    """Key/value blob storage."""

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str | Sequence[str]) -> bool | int: ...

    def list(
        self,
        prefix: str | None = None,
        start: str | None = None,
        end: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]: ...

    def transaction(self, fn: Callable[[BlobStore], T]) -> T: ...


@runtime_checkable
class Cursor(Protocol):
    """Result cursor returned by :meth:`SqlExecutor.exec`.

    Backends may additionally expose ``rows_written`` and ``rows_read``.
    """

    column_names: list[str]

    def __iter__(self) -> Iterator[Row]: ...

    def to_array(self) -> list[Row]: ...

    def one(self) -> Row | None: ...


@runtime_checkable
class SqlExecutor(Protocol):
    """SQL execution interface."""

    def exec(self, query: str, *bindings: Any) -> Cursor: ...
