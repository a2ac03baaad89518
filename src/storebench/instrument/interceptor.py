"""Transparent storage interception.

Wraps a :class:`~storebench.instrument.contracts.BlobStore` and a
:class:`~storebench.instrument.contracts.SqlExecutor` in adapters that
forward every call unchanged and meter blobs, bytes, rows and time into
one shared :class:`~storebench.instrument.metrics.VFSMetrics` accumulator.

Usage::

    interceptor = StorageInterceptor(pricing=REFERENCE_PRICING, track_operations=True)
    store = interceptor.wrap_storage(backend_store)
    sql = interceptor.wrap_sql(backend_sql)

    interceptor.record_logical_write(100)
    store.put("doc:1", payload)
    rows = sql.exec("SELECT * FROM docs").to_array()

    metrics = interceptor.get_metrics()
    print(metrics.blobs_written, metrics.write_amplification)

One interceptor (and its metrics) belongs to one benchmark session. It is
not safe to share across threads without external locking.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterator, Sequence
from enum import Enum
from typing import Any, TypeVar

from storebench._constants import DEFAULT_MAX_OPERATIONS, TRACE_TRIM_TO

from .contracts import BlobStore, Cursor, Row, SqlExecutor
from .metrics import (
    Operation,
    OperationTrace,
    OperationType,
    Pricing,
    VFSMetrics,
    estimate_bytes,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LEADING_KEYWORD_RE = re.compile(r"^\s*([A-Za-z]+)")

_READ_KEYWORDS = frozenset({"SELECT"})
_WRITE_KEYWORDS = frozenset({"INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER"})


class QueryKind(str, Enum):
    """How a SQL statement is metered."""

    READ = "read"
    WRITE = "write"
    OTHER = "other"


def classify_query(query: str) -> QueryKind:
    """Classify a statement by its leading keyword."""
    match = _LEADING_KEYWORD_RE.match(query)
    if not match:
        return QueryKind.OTHER
    keyword = match.group(1).upper()
    if keyword in _READ_KEYWORDS:
        return QueryKind.READ
    if keyword in _WRITE_KEYWORDS:
        return QueryKind.WRITE
    return QueryKind.OTHER


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class StorageInterceptor:
    """Meters storage and SQL calls made through wrapped backends."""

    def __init__(
        self,
        pricing: Pricing,
        track_operations: bool = False,
        max_operations: int = DEFAULT_MAX_OPERATIONS,
    ) -> None:
        """Initialize the interceptor.

        Args:
            pricing: Per-million prices for cost estimates
            track_operations: Keep a trace of individual operations
            max_operations: Trace capacity; on overflow the trace is cut
                back to its most recent half
        """
        if max_operations < 1:
            raise ValueError(f"max_operations must be positive, got {max_operations}")
        self.pricing = pricing
        self.track_operations = track_operations
        self._metrics = VFSMetrics()
        self._trace = OperationTrace(
            max_operations=max_operations,
            trim_to=min(TRACE_TRIM_TO, max(1, max_operations // 2)),
        )
        self._logical_bytes_written = 0
        self._logical_bytes_read = 0

    # ------------------------------------------------------------------
    # Wrapping
    # ------------------------------------------------------------------

    def wrap_storage(self, store: BlobStore) -> InstrumentedBlobStore:
        """Return a metered view of *store*."""
        return InstrumentedBlobStore(store, self)

    def wrap_sql(self, sql: SqlExecutor) -> InstrumentedSqlExecutor:
        """Return a metered view of *sql*."""
        return InstrumentedSqlExecutor(sql, self)

    # ------------------------------------------------------------------
    # Caller-supplied logical sizes
    # ------------------------------------------------------------------

    def record_logical_write(self, num_bytes: int) -> None:
        """Record the payload size the caller intended to write."""
        self._logical_bytes_written += num_bytes

    def record_logical_read(self, num_bytes: int) -> None:
        """Record the payload size the caller intended to read."""
        self._logical_bytes_read += num_bytes

    @property
    def logical_bytes_written(self) -> int:
        return self._logical_bytes_written

    @property
    def logical_bytes_read(self) -> int:
        return self._logical_bytes_read

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_metrics(self) -> VFSMetrics:
        """Snapshot of the session with amplification and cost derived."""
        return self._metrics.derive(
            self.pricing,
            logical_bytes_written=self._logical_bytes_written,
            logical_bytes_read=self._logical_bytes_read,
        )

    def get_operations(self) -> list[Operation]:
        """Copy of the operation trace (empty unless tracking is enabled)."""
        return self._trace.snapshot()

    def reset(self) -> None:
        """Zero all counters, logical sizes and the operation trace."""
        logger.debug("Resetting storage metrics (%d operations traced)", len(self._trace))
        self._metrics = VFSMetrics()
        self._trace.clear()
        self._logical_bytes_written = 0
        self._logical_bytes_read = 0

    def format_summary(self) -> str:
        return self.get_metrics().format_summary()

    # ------------------------------------------------------------------
    # Recording (called by the adapters)
    # ------------------------------------------------------------------

    def _trace_op(
        self,
        op_type: OperationType,
        num_bytes: int,
        duration_ms: float,
        key: str | None = None,
        rows: int | None = None,
    ) -> None:
        if not self.track_operations:
            return
        self._trace.append(
            Operation(
                type=op_type,
                bytes=num_bytes,
                duration_ms=duration_ms,
                timestamp=time.time(),
                key=key,
                rows=rows,
            )
        )

    def _record_read(self, num_bytes: int, duration_ms: float, key: str) -> None:
        self._metrics.blobs_read += 1
        self._metrics.bytes_read += num_bytes
        self._metrics.storage_read_ms += duration_ms
        self._trace_op(OperationType.GET, num_bytes, duration_ms, key=key)

    def _record_write(self, num_bytes: int, duration_ms: float, key: str) -> None:
        self._metrics.blobs_written += 1
        self._metrics.bytes_written += num_bytes
        self._metrics.storage_write_ms += duration_ms
        self._trace_op(OperationType.PUT, num_bytes, duration_ms, key=key)

    def _record_delete(self, count: int, duration_ms: float, key: str | None) -> None:
        # Each deleted key is one write unit; deletes move no bytes.
        self._metrics.blobs_written += count
        self._metrics.storage_write_ms += duration_ms
        self._trace_op(OperationType.DELETE, 0, duration_ms, key=key, rows=count)

    def _record_list(self, entries: int, num_bytes: int, duration_ms: float) -> None:
        self._metrics.blobs_read += entries
        self._metrics.bytes_read += num_bytes
        self._metrics.storage_read_ms += duration_ms
        self._trace_op(OperationType.LIST, num_bytes, duration_ms, rows=entries)

    def _record_exec(self, kind: QueryKind, cursor: Any, duration_ms: float) -> None:
        self._metrics.sql_exec_ms += duration_ms
        rows_written = None
        if kind is QueryKind.WRITE:
            rows_written = getattr(cursor, "rows_written", None) or 0
            self._metrics.rows_written += rows_written
        self._trace_op(OperationType.SQL, 0, duration_ms, rows=rows_written)

    def _record_rows_read(self, rows: int) -> None:
        self._metrics.rows_read += rows


class InstrumentedBlobStore:
    """BlobStore adapter that meters every call into its interceptor.

    Attributes not part of the contract are forwarded to the wrapped store.
    """

    def __init__(self, store: BlobStore, interceptor: StorageInterceptor) -> None:
        self._store = store
        self._interceptor = interceptor

    @property
    def wrapped(self) -> BlobStore:
        return self._store

    def get(self, key: str) -> Any | None:
        start = time.perf_counter()
        value = self._store.get(key)
        duration = _elapsed_ms(start)

        if value is not None:
            self._interceptor._record_read(estimate_bytes(value), duration, key)
        return value

    def put(self, key: str, value: Any) -> None:
        start = time.perf_counter()
        result = self._store.put(key, value)
        duration = _elapsed_ms(start)

        self._interceptor._record_write(estimate_bytes(value), duration, key)
        return result

    def delete(self, key: str | Sequence[str]) -> bool | int:
        start = time.perf_counter()
        result = self._store.delete(key)
        duration = _elapsed_ms(start)

        if isinstance(key, str):
            self._interceptor._record_delete(1, duration, key)
        else:
            self._interceptor._record_delete(len(key), duration, None)
        return result

    def list(
        self,
        prefix: str | None = None,
        start: str | None = None,
        end: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        t0 = time.perf_counter()
        result = self._store.list(prefix=prefix, start=start, end=end, limit=limit)
        duration = _elapsed_ms(t0)

        num_bytes = sum(estimate_bytes(v) for v in result.values())
        self._interceptor._record_list(len(result), num_bytes, duration)
        return result

    def transaction(self, fn: Callable[[BlobStore], T]) -> T:
        """Run *fn* in a backend transaction with a metered sub-store."""
        interceptor = self._interceptor

        def _metered(txn: BlobStore) -> T:
            return fn(interceptor.wrap_storage(txn))

        return self._store.transaction(_metered)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._store, name)


class InstrumentedSqlExecutor:
    """SqlExecutor adapter that classifies statements and meters their cursors."""

    def __init__(self, sql: SqlExecutor, interceptor: StorageInterceptor) -> None:
        self._sql = sql
        self._interceptor = interceptor

    @property
    def wrapped(self) -> SqlExecutor:
        return self._sql

    def exec(self, query: str, *bindings: Any) -> InstrumentedCursor:
        start = time.perf_counter()
        cursor = self._sql.exec(query, *bindings)
        duration = _elapsed_ms(start)

        kind = classify_query(query)
        self._interceptor._record_exec(kind, cursor, duration)
        return InstrumentedCursor(cursor, self._interceptor, counts_reads=kind is QueryKind.READ)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._sql, name)


class InstrumentedCursor:
    """Cursor adapter that counts rows as the caller consumes them.

    A cursor may be partially consumed or never consumed at all, so rows
    are counted when surfaced (iteration, ``to_array()``, ``one()``), not
    when the statement is issued.
    """

    def __init__(
        self,
        cursor: Cursor,
        interceptor: StorageInterceptor,
        counts_reads: bool,
    ) -> None:
        self._cursor = cursor
        self._interceptor = interceptor
        self._counts_reads = counts_reads

    @property
    def column_names(self) -> list[str]:
        return getattr(self._cursor, "column_names", [])

    @property
    def rows_read(self) -> int | None:
        return getattr(self._cursor, "rows_read", None)

    @property
    def rows_written(self) -> int | None:
        return getattr(self._cursor, "rows_written", None)

    def __iter__(self) -> Iterator[Row]:
        for row in self._cursor:
            if self._counts_reads:
                self._interceptor._record_rows_read(1)
            yield row

    def to_array(self) -> list[Row]:
        rows = self._cursor.to_array()
        if self._counts_reads:
            self._interceptor._record_rows_read(len(rows))
        return rows

    def one(self) -> Row | None:
        row = self._cursor.one()
        if self._counts_reads and row is not None:
            self._interceptor._record_rows_read(1)
        return row

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cursor, name)
