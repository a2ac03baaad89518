"""Storage instrumentation for storebench.

Wraps key/value and SQL backends to meter blob, byte and row traffic and
derives amplification and cost estimates from it.
"""

from .aggregator import OperationSummary, SessionAggregator, SessionSample, SessionSummary
from .backends import MemoryBlobStore, SqliteCursor, SqliteExecutor
from .contracts import BlobStore, Cursor, SqlExecutor
from .interceptor import (
    InstrumentedBlobStore,
    InstrumentedCursor,
    InstrumentedSqlExecutor,
    QueryKind,
    StorageInterceptor,
    classify_query,
)
from .metrics import (
    REFERENCE_PRICING,
    Operation,
    OperationType,
    Pricing,
    VFSMetrics,
    amplification,
    estimate_bytes,
    format_bytes,
)

__all__ = [
    # Contracts
    "BlobStore",
    "Cursor",
    "SqlExecutor",
    # Metrics model
    "Operation",
    "OperationType",
    "Pricing",
    "REFERENCE_PRICING",
    "VFSMetrics",
    "amplification",
    "estimate_bytes",
    "format_bytes",
    # Interceptor
    "StorageInterceptor",
    "InstrumentedBlobStore",
    "InstrumentedCursor",
    "InstrumentedSqlExecutor",
    "QueryKind",
    "classify_query",
    # Aggregator
    "SessionAggregator",
    "SessionSample",
    "SessionSummary",
    "OperationSummary",
    # Reference backends
    "MemoryBlobStore",
    "SqliteCursor",
    "SqliteExecutor",
]
