"""Session aggregation of storage samples.

Collects ``(operation, rows_read, rows_written, duration_ms)`` samples
across many interceptor sessions and summarizes them with the same
per-million pricing as :class:`~storebench.instrument.metrics.VFSMetrics`.
"""

from __future__ import annotations

import json
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any

from .metrics import Pricing, VFSMetrics


@dataclass
class SessionSample:
    """One recorded storage operation."""

    timestamp: float
    operation: str
    rows_read: int
    rows_written: int
    duration_ms: float


@dataclass
class OperationSummary:
    """Per-operation means."""

    count: int = 0
    avg_rows_read: float = 0.0
    avg_rows_written: float = 0.0
    avg_duration_ms: float = 0.0


@dataclass
class SessionSummary:
    """Summary over all samples of an aggregator."""

    total_samples: int = 0
    total_rows_read: int = 0
    total_rows_written: int = 0
    total_duration_ms: float = 0.0
    avg_rows_read: float = 0.0
    avg_rows_written: float = 0.0
    avg_duration_ms: float = 0.0
    estimated_read_cost: float = 0.0
    estimated_write_cost: float = 0.0
    by_operation: dict[str, OperationSummary] = field(default_factory=dict)

    @property
    def estimated_total_cost(self) -> float:
        return self.estimated_read_cost + self.estimated_write_cost

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["estimated_total_cost"] = self.estimated_total_cost
        return d


class SessionAggregator:
    """Aggregates storage samples for batch analysis."""

    def __init__(self, pricing: Pricing) -> None:
        self.pricing = pricing
        self._samples: list[SessionSample] = []

    def record(
        self,
        operation: str,
        rows_read: int,
        rows_written: int,
        duration_ms: float,
    ) -> None:
        """Append one sample."""
        self._samples.append(
            SessionSample(
                timestamp=time.time(),
                operation=operation,
                rows_read=rows_read,
                rows_written=rows_written,
                duration_ms=duration_ms,
            )
        )

    def record_metrics(self, operation: str, metrics: VFSMetrics, duration_ms: float) -> None:
        """Fold an interceptor snapshot into one sample.

        Blob reads and writes count as row units, matching how
        :meth:`VFSMetrics.derive` prices them.
        """
        self.record(
            operation,
            rows_read=metrics.rows_read + metrics.blobs_read,
            rows_written=metrics.rows_written + metrics.blobs_written,
            duration_ms=duration_ms,
        )

    def get_summary(self) -> SessionSummary:
        """Compute totals, means, costs and the per-operation breakdown."""
        n = len(self._samples)
        if n == 0:
            return SessionSummary()

        total_read = sum(s.rows_read for s in self._samples)
        total_written = sum(s.rows_written for s in self._samples)
        total_duration = sum(s.duration_ms for s in self._samples)

        grouped: dict[str, list[SessionSample]] = defaultdict(list)
        for sample in self._samples:
            grouped[sample.operation].append(sample)

        by_operation = {
            name: OperationSummary(
                count=len(samples),
                avg_rows_read=sum(s.rows_read for s in samples) / len(samples),
                avg_rows_written=sum(s.rows_written for s in samples) / len(samples),
                avg_duration_ms=sum(s.duration_ms for s in samples) / len(samples),
            )
            for name, samples in grouped.items()
        }

        return SessionSummary(
            total_samples=n,
            total_rows_read=total_read,
            total_rows_written=total_written,
            total_duration_ms=total_duration,
            avg_rows_read=total_read / n,
            avg_rows_written=total_written / n,
            avg_duration_ms=total_duration / n,
            estimated_read_cost=self.pricing.read_cost(total_read),
            estimated_write_cost=self.pricing.write_cost(total_written),
            by_operation=by_operation,
        )

    def reset(self) -> None:
        """Clear all samples."""
        self._samples = []

    def export_samples(self) -> str:
        """Serialize the raw samples as indented JSON for offline analysis."""
        return json.dumps([asdict(s) for s in self._samples], indent=2)

    def __len__(self) -> int:
        return len(self._samples)
