"""Metrics model for storage instrumentation.

Value types shared by the interceptor, the session aggregator and the
benchmark record schema. Pricing is row-based: a read or write unit costs
the same regardless of payload size, so packing data into large blobs is
far cheaper for bulk operations than one row per item.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from storebench._constants import (
    REFERENCE_READ_PRICE_PER_MILLION,
    REFERENCE_WRITE_PRICE_PER_MILLION,
)

logger = logging.getLogger(__name__)

_PER_MILLION = 1_000_000


class OperationType(str, Enum):
    """Kinds of intercepted calls."""

    GET = "get"
    PUT = "put"
    DELETE = "delete"
    LIST = "list"
    SQL = "sql"


@dataclass
class Operation:
    """One observed storage or SQL call (kept only when tracing is enabled)."""

    type: OperationType
    bytes: int
    duration_ms: float
    timestamp: float
    key: str | None = None
    rows: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["type"] = self.type.value
        return d


@dataclass(frozen=True)
class Pricing:
    """Per-million-unit prices used for cost estimates."""

    read_per_million: float
    write_per_million: float

    def read_cost(self, units: float) -> float:
        return units / _PER_MILLION * self.read_per_million

    def write_cost(self, units: float) -> float:
        return units / _PER_MILLION * self.write_per_million


REFERENCE_PRICING = Pricing(
    read_per_million=REFERENCE_READ_PRICE_PER_MILLION,
    write_per_million=REFERENCE_WRITE_PRICE_PER_MILLION,
)


@dataclass
class VFSMetrics:
    """Storage cost metrics for one interceptor session.

    Field groups:

    - **Blob layer**: blobs_read, blobs_written, bytes_read, bytes_written.
    - **SQL layer**: rows_read, rows_written.
    - **Derived**: write/read amplification and estimated costs. Only
      populated on snapshots returned by
      :meth:`~storebench.instrument.StorageInterceptor.get_metrics`.
    - **Timing**: storage_read_ms, storage_write_ms, sql_exec_ms.
    """

    # Blob operations
    blobs_read: int = 0
    blobs_written: int = 0
    bytes_read: int = 0
    bytes_written: int = 0

    # Row operations
    rows_read: int = 0
    rows_written: int = 0

    # Amplification = physical bytes / logical bytes
    write_amplification: float = 0.0
    read_amplification: float = 0.0

    # Cost
    estimated_read_cost: float = 0.0
    estimated_write_cost: float = 0.0
    estimated_total_cost: float = 0.0

    # Timing
    storage_read_ms: float = 0.0
    storage_write_ms: float = 0.0
    sql_exec_ms: float = 0.0

    def derive(
        self,
        pricing: Pricing,
        logical_bytes_written: int = 0,
        logical_bytes_read: int = 0,
    ) -> VFSMetrics:
        """Return a copy with amplification and cost fields computed.

        Args:
            pricing: Per-million prices for read and write units
            logical_bytes_written: Bytes the caller intended to persist
            logical_bytes_read: Bytes the caller intended to read

        Returns:
            New VFSMetrics; ``self`` is left untouched
        """
        snapshot = VFSMetrics(**asdict(self))
        snapshot.write_amplification = amplification(self.bytes_written, logical_bytes_written)
        snapshot.read_amplification = amplification(self.bytes_read, logical_bytes_read)
        snapshot.estimated_read_cost = pricing.read_cost(self.rows_read + self.blobs_read)
        snapshot.estimated_write_cost = pricing.write_cost(self.rows_written + self.blobs_written)
        snapshot.estimated_total_cost = (
            snapshot.estimated_read_cost + snapshot.estimated_write_cost
        )
        return snapshot

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    def to_record_fields(self) -> dict[str, Any]:
        """Flatten into the ``vfs_*`` fields of a benchmark record."""
        return {
            "vfs_reads": self.blobs_read,
            "vfs_writes": self.blobs_written,
            "vfs_bytes_read": self.bytes_read,
            "vfs_bytes_written": self.bytes_written,
            "sql_rows_read": self.rows_read,
            "sql_rows_written": self.rows_written,
            "write_amplification": self.write_amplification,
            "read_amplification": self.read_amplification,
            "estimated_cost_usd": self.estimated_total_cost,
        }

    def format_summary(self) -> str:
        """Render a human-readable multi-line summary."""
        return "\n".join(
            [
                "VFS Metrics Summary",
                "-------------------",
                f"Blobs:   {self.blobs_read} read, {self.blobs_written} written",
                f"Bytes:   {format_bytes(self.bytes_read)} read, "
                f"{format_bytes(self.bytes_written)} written",
                f"Rows:    {self.rows_read} read, {self.rows_written} written",
                "",
                "Amplification:",
                f"  Write: {self.write_amplification:.2f}x",
                f"  Read:  {self.read_amplification:.2f}x",
                "",
                "Timing:",
                f"  Storage read:  {self.storage_read_ms:.2f}ms",
                f"  Storage write: {self.storage_write_ms:.2f}ms",
                f"  SQL exec:      {self.sql_exec_ms:.2f}ms",
                "",
                "Estimated Cost (at scale):",
                f"  Read:  ${self.estimated_read_cost:.6f}",
                f"  Write: ${self.estimated_write_cost:.6f}",
                f"  Total: ${self.estimated_total_cost:.6f}",
            ]
        )


def amplification(physical_bytes: int, logical_bytes: int) -> float:
    """Physical over logical bytes.

    1.0 when no logical baseline was recorded but physical bytes exist,
    0.0 when nothing moved at all.
    """
    if logical_bytes > 0:
        return physical_bytes / logical_bytes
    if physical_bytes > 0:
        return 1.0
    return 0.0


def estimate_bytes(value: Any) -> int:
    """Best-effort serialized size of a stored value.

    Never raises: a value that cannot be serialized counts as 0 bytes.
    """
    if value is None:
        return 0
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    if isinstance(value, memoryview):
        return value.nbytes
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    try:
        return len(json.dumps(value, separators=(",", ":")).encode("utf-8"))
    except (TypeError, ValueError, OverflowError, RecursionError) as e:
        logger.debug("Could not estimate size of %s: %s", type(value).__name__, e)
        return 0


def format_bytes(num_bytes: float) -> str:
    """Format a byte count with a binary unit suffix."""
    if num_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{value:.2f} {units[i]}"


@dataclass
class OperationTrace:
    """Bounded ring buffer of recent operations.

    When the buffer grows past ``max_operations`` only the most recent
    ``trim_to`` entries are kept.
    """

    max_operations: int
    trim_to: int
    operations: list[Operation] = field(default_factory=list)

    def append(self, op: Operation) -> None:
        self.operations.append(op)
        if len(self.operations) > self.max_operations:
            self.operations = self.operations[-self.trim_to :]

    def snapshot(self) -> list[Operation]:
        return list(self.operations)

    def clear(self) -> None:
        self.operations = []

    def __len__(self) -> int:
        return len(self.operations)
