"""JSONL result reader.

Reads benchmark records from one or more result logs, with filtering,
sorting, pagination, grouping and run-to-run comparison. Everything is
built on :meth:`ResultReader.stream`, which reads line by line so logs of
any size can be processed in bounded memory.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable, Collection, Iterator, Mapping, Sequence
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from storebench._constants import DEFAULT_SIGNIFICANCE_PCT

from .errors import RecordError
from .record import BenchmarkRecord

logger = logging.getLogger(__name__)

PathLike = Path | str


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _one_of(value: Any, allowed: Any) -> bool:
    if isinstance(allowed, (str, Enum)):
        return _plain(value) == _plain(allowed)
    return _plain(value) in {_plain(a) for a in allowed}


def _iso(value: str | datetime) -> str:
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass
class ResultFilter:
    """Conjunctive filter over benchmark records.

    Every field that is set must match. ``database``, ``dataset`` and
    ``environment`` accept a single value or a collection of allowed
    values; ``benchmark`` accepts an exact name or a compiled regex.
    Timestamp bounds are inclusive and compare ISO-8601 UTC strings.
    """

    benchmark: str | re.Pattern[str] | None = None
    database: str | Collection[str] | None = None
    dataset: str | Collection[str] | None = None
    environment: str | Enum | Collection[str | Enum] | None = None
    run_id: str | None = None
    git_sha: str | None = None
    timestamp_after: str | datetime | None = None
    timestamp_before: str | datetime | None = None
    tags: dict[str, str] | None = None
    predicate: Callable[[BenchmarkRecord], bool] | None = None

    @classmethod
    def coerce(cls, value: ResultFilter | Mapping[str, Any] | None) -> ResultFilter | None:
        """Accept a filter, a mapping of filter fields, or None."""
        if value is None or isinstance(value, ResultFilter):
            return value
        unknown = set(value) - _FILTER_FIELDS
        if unknown:
            raise ValueError(f"Unknown filter field(s): {', '.join(sorted(unknown))}")
        return cls(**value)

    def matches(self, record: BenchmarkRecord) -> bool:
        if self.benchmark is not None:
            if isinstance(self.benchmark, re.Pattern):
                if not self.benchmark.search(record.benchmark):
                    return False
            elif record.benchmark != self.benchmark:
                return False

        if self.database is not None and not _one_of(record.database, self.database):
            return False
        if self.dataset is not None and not _one_of(record.dataset, self.dataset):
            return False
        if self.environment is not None and not _one_of(record.environment, self.environment):
            return False

        if self.run_id is not None and record.run_id != self.run_id:
            return False
        if self.git_sha is not None and record.git_sha != self.git_sha:
            return False

        if self.timestamp_after is not None and record.timestamp < _iso(self.timestamp_after):
            return False
        if self.timestamp_before is not None and record.timestamp > _iso(self.timestamp_before):
            return False

        if self.tags:
            if not record.tags:
                return False
            for key, value in self.tags.items():
                if record.tags.get(key) != value:
                    return False

        if self.predicate is not None and not self.predicate(record):
            return False

        return True


_FILTER_FIELDS = frozenset(f.name for f in fields(ResultFilter))

FilterLike = ResultFilter | Mapping[str, Any] | None


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class RangeStats:
    """min/max/mean/median over one field of a group."""

    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0


@dataclass
class TotalStats:
    """Sum and mean over one counter of a group."""

    total: float = 0
    mean: float = 0.0


@dataclass
class ResultSummary:
    """Aggregate of one group of records."""

    group: dict[str, Any]
    count: int
    timing: dict[str, RangeStats]
    throughput: dict[str, RangeStats]
    vfs: dict[str, TotalStats]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Comparison:
    """One benchmark/database pair compared across two runs.

    Positive latency changes mean the current run is slower.
    """

    benchmark: str
    database: str
    baseline: BenchmarkRecord
    current: BenchmarkRecord
    p50_change_pct: float
    p99_change_pct: float
    ops_per_sec_change_pct: float
    significant: bool
    regression: bool
    threshold_pct: float = DEFAULT_SIGNIFICANCE_PCT

    @property
    def improved(self) -> bool:
        return self.ops_per_sec_change_pct > self.threshold_pct

    def to_dict(self) -> dict[str, Any]:
        return {
            "benchmark": self.benchmark,
            "database": self.database,
            "baseline_run_id": self.baseline.run_id,
            "current_run_id": self.current.run_id,
            "p50_change_pct": self.p50_change_pct,
            "p99_change_pct": self.p99_change_pct,
            "ops_per_sec_change_pct": self.ops_per_sec_change_pct,
            "significant": self.significant,
            "regression": self.regression,
            "improved": self.improved,
        }


@dataclass
class FieldStats:
    """Statistics over one numeric field."""

    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    stddev: float = 0.0
    count: int = 0


@dataclass
class BaselineReport:
    """Comparisons of the latest run against a baseline, bucketed."""

    baseline_run_id: str
    current_run_id: str | None = None
    regressions: list[Comparison] = field(default_factory=list)
    improvements: list[Comparison] = field(default_factory=list)
    unchanged: list[Comparison] = field(default_factory=list)


def percent_change(baseline: float, current: float) -> float:
    """Relative change in percent; 0 when the baseline is 0."""
    if baseline == 0:
        return 0.0
    return (current - baseline) / baseline * 100


def _range_stats(values: list[float]) -> RangeStats:
    if not values:
        return RangeStats()
    ordered = sorted(values)
    return RangeStats(
        min=ordered[0],
        max=ordered[-1],
        mean=sum(ordered) / len(ordered),
        median=ordered[len(ordered) // 2],
    )


def _total_stats(values: list[float]) -> TotalStats:
    if not values:
        return TotalStats()
    total = sum(values)
    return TotalStats(total=total, mean=total / len(values))


def _summarize(group: dict[str, Any], records: list[BenchmarkRecord]) -> ResultSummary:
    return ResultSummary(
        group=group,
        count=len(records),
        timing={
            "p50_ms": _range_stats([r.p50_ms for r in records]),
            "p99_ms": _range_stats([r.p99_ms for r in records]),
            "mean_ms": _range_stats([r.mean_ms for r in records]),
        },
        throughput={"ops_per_sec": _range_stats([r.ops_per_sec for r in records])},
        vfs={
            "reads": _total_stats([r.vfs_reads for r in records]),
            "writes": _total_stats([r.vfs_writes for r in records]),
            "bytes_read": _total_stats([r.vfs_bytes_read for r in records]),
            "bytes_written": _total_stats([r.vfs_bytes_written for r in records]),
        },
    )


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class ResultReader:
    """Reader over one or more JSONL result logs.

    A missing file contributes no records; it is not an error.

    Args:
        input_path: A log path or a list of paths, read in order
        limit: Maximum number of records returned (None for all)
        offset: Number of matching records to skip
        sort_by: Record field to sort ``read()`` results by; file order when None
        sort_direction: ``"desc"`` (default) or ``"asc"``
    """

    def __init__(
        self,
        input_path: PathLike | Sequence[PathLike],
        limit: int | None = None,
        offset: int = 0,
        sort_by: str | None = None,
        sort_direction: str = "desc",
    ) -> None:
        if isinstance(input_path, (str, Path)):
            self.paths = [Path(input_path)]
        else:
            self.paths = [Path(p) for p in input_path]

        if sort_direction not in ("asc", "desc"):
            raise ValueError(f"sort_direction must be 'asc' or 'desc', got {sort_direction!r}")

        self.limit = limit if limit and limit > 0 else None
        self.offset = max(offset, 0)
        self.sort_by = sort_by
        self.sort_direction = sort_direction

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read(self, filter: FilterLike = None) -> list[BenchmarkRecord]:
        """Load, filter, sort and paginate every record."""
        records = list(self._scan(ResultFilter.coerce(filter)))
        if self.sort_by:
            records = self._sort(records)
        records = records[self.offset :]
        if self.limit is not None:
            records = records[: self.limit]
        return records

    def stream(self, filter: FilterLike = None) -> Iterator[BenchmarkRecord]:
        """Lazily yield matching records in file order.

        Offset and limit are applied while iterating; once the limit is
        reached the remaining lines are never read. Each call returns a
        fresh generator.
        """
        flt = ResultFilter.coerce(filter)
        skipped = 0
        count = 0
        for record in self._scan(flt):
            if skipped < self.offset:
                skipped += 1
                continue
            if self.limit is not None and count >= self.limit:
                return
            yield record
            count += 1

    def first(self, filter: FilterLike = None) -> BenchmarkRecord | None:
        records = self.stream(filter)
        try:
            return next(records, None)
        finally:
            records.close()

    def last(self, filter: FilterLike = None) -> BenchmarkRecord | None:
        records = self.read(filter)
        return records[-1] if records else None

    def count(self, filter: FilterLike = None) -> int:
        return sum(1 for _ in self.stream(filter))

    def exists(self, filter: FilterLike = None) -> bool:
        return self.first(filter) is not None

    def distinct(self, field_name: str, filter: FilterLike = None) -> list[Any]:
        """Unique values of one field, in first-seen order."""
        seen: dict[Any, None] = {}
        for record in self.stream(filter):
            value = _plain(getattr(record, field_name))
            if isinstance(value, dict):
                value = json.dumps(value, sort_keys=True)
            seen.setdefault(value, None)
        return list(seen)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def aggregate(self, group_by: Sequence[str], filter: FilterLike = None) -> list[ResultSummary]:
        """Group records by the given fields and summarize each group.

        Groups are returned in order of first appearance.
        """
        if not group_by:
            raise ValueError("group_by requires at least one field")

        groups: dict[tuple[Any, ...], list[BenchmarkRecord]] = {}
        for record in self.stream(filter):
            key = tuple(_plain(getattr(record, name, None)) for name in group_by)
            groups.setdefault(key, []).append(record)

        return [
            _summarize(dict(zip(group_by, key)), records) for key, records in groups.items()
        ]

    def compare(
        self,
        baseline_run_id: str,
        current_run_id: str,
        threshold_pct: float = DEFAULT_SIGNIFICANCE_PCT,
    ) -> list[Comparison]:
        """Compare two runs joined on ``(benchmark, database)``.

        A pair is significant when p50 or p99 moved by more than
        *threshold_pct* in either direction, and a regression when either
        got slower by more than *threshold_pct*. Current records without a
        baseline counterpart are left out. Both runs are read in full,
        ignoring the reader's offset and limit.
        """
        baseline_by_key: dict[tuple[str, str], BenchmarkRecord] = {}
        for record in self._scan(ResultFilter(run_id=baseline_run_id)):
            baseline_by_key[(record.benchmark, record.database)] = record

        comparisons: list[Comparison] = []
        for current in self._scan(ResultFilter(run_id=current_run_id)):
            baseline = baseline_by_key.get((current.benchmark, current.database))
            if baseline is None:
                continue

            p50_change = percent_change(baseline.p50_ms, current.p50_ms)
            p99_change = percent_change(baseline.p99_ms, current.p99_ms)
            ops_change = percent_change(baseline.ops_per_sec, current.ops_per_sec)

            comparisons.append(
                Comparison(
                    benchmark=current.benchmark,
                    database=current.database,
                    baseline=baseline,
                    current=current,
                    p50_change_pct=p50_change,
                    p99_change_pct=p99_change,
                    ops_per_sec_change_pct=ops_change,
                    significant=abs(p50_change) > threshold_pct or abs(p99_change) > threshold_pct,
                    regression=p50_change > threshold_pct or p99_change > threshold_pct,
                    threshold_pct=threshold_pct,
                )
            )

        logger.debug(
            "Compared %s -> %s: %d pairs", baseline_run_id, current_run_id, len(comparisons)
        )
        return comparisons

    def stats(self, field_name: str, filter: FilterLike = None) -> FieldStats:
        """min/max/mean/median/stddev/count over one numeric field.

        Records where the field is unset are skipped. The median is the
        upper median and the standard deviation is the population one.
        """
        values = sorted(
            v
            for v in (getattr(r, field_name) for r in self.stream(filter))
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        )
        if not values:
            return FieldStats()

        n = len(values)
        mean = sum(values) / n
        variance = sum((v - mean) ** 2 for v in values) / n
        return FieldStats(
            min=values[0],
            max=values[-1],
            mean=mean,
            median=values[n // 2],
            stddev=math.sqrt(variance),
            count=n,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scan(self, flt: ResultFilter | None) -> Iterator[BenchmarkRecord]:
        """Yield every valid, matching record from every file in order."""
        for path in self.paths:
            try:
                f = open(path, "rb")
            except FileNotFoundError:
                logger.debug("Result log %s does not exist, skipping", path)
                continue

            with f:
                for lineno, raw in enumerate(f, start=1):
                    if not raw.strip():
                        continue
                    try:
                        record = BenchmarkRecord.from_dict(json.loads(raw.decode("utf-8")))
                    except (UnicodeDecodeError, json.JSONDecodeError, RecordError) as e:
                        logger.warning("Skipping malformed line %s:%d: %s", path, lineno, e)
                        continue
                    if flt is None or flt.matches(record):
                        yield record

    def _sort(self, records: list[BenchmarkRecord]) -> list[BenchmarkRecord]:
        assert self.sort_by is not None
        name = self.sort_by
        present = [r for r in records if getattr(r, name, None) is not None]
        missing = [r for r in records if getattr(r, name, None) is None]
        present.sort(
            key=lambda r: _plain(getattr(r, name)),
            reverse=self.sort_direction == "desc",
        )
        return present + missing


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------


def read_results(input_path: PathLike | Sequence[PathLike], filter: FilterLike = None) -> list[BenchmarkRecord]:
    """Read every matching record from one or more logs."""
    return ResultReader(input_path).read(filter)


def read_recent_results(
    input_path: PathLike, count: int, filter: FilterLike = None
) -> list[BenchmarkRecord]:
    """The *count* most recent records, newest first."""
    return ResultReader(input_path, sort_by="timestamp", sort_direction="desc", limit=count).read(
        filter
    )


def find_fastest(input_path: PathLike, benchmark: str) -> BenchmarkRecord | None:
    """The record of *benchmark* with the lowest p50 latency."""
    fastest = ResultReader(input_path, sort_by="p50_ms", sort_direction="asc", limit=1).read(
        {"benchmark": benchmark}
    )
    return fastest[0] if fastest else None


def compare_to_baseline(
    input_path: PathLike,
    baseline_run_id: str,
    threshold_pct: float = DEFAULT_SIGNIFICANCE_PCT,
) -> BaselineReport:
    """Compare the most recent non-baseline run against *baseline_run_id*.

    The current run is the run of the newest record (by timestamp, later
    lines winning ties) whose run ID differs from the baseline.
    """
    reader = ResultReader(input_path)
    current_run_id: str | None = None
    newest = ""
    for record in reader.stream():
        if record.run_id != baseline_run_id and record.timestamp >= newest:
            newest = record.timestamp
            current_run_id = record.run_id

    report = BaselineReport(baseline_run_id=baseline_run_id, current_run_id=current_run_id)
    if current_run_id is None:
        return report

    for comparison in reader.compare(baseline_run_id, current_run_id, threshold_pct):
        if comparison.regression:
            report.regressions.append(comparison)
        if comparison.improved:
            report.improvements.append(comparison)
        if not comparison.significant:
            report.unchanged.append(comparison)
    return report


def _signed_pct(value: float) -> str:
    return f"{value:+.1f}%"


def format_comparison(comparison: Comparison) -> str:
    """Render one comparison as a short multi-line block."""
    if comparison.regression:
        status = "[REGRESSION]"
    elif comparison.improved:
        status = "[IMPROVED]"
    else:
        status = "[OK]"

    base, cur = comparison.baseline, comparison.current
    return "\n".join(
        [
            f"{status} {comparison.benchmark} ({comparison.database})",
            f"  p50:  {base.p50_ms:.2f}ms -> {cur.p50_ms:.2f}ms ({_signed_pct(comparison.p50_change_pct)})",
            f"  p99:  {base.p99_ms:.2f}ms -> {cur.p99_ms:.2f}ms ({_signed_pct(comparison.p99_change_pct)})",
            f"  ops/s: {base.ops_per_sec:.0f} -> {cur.ops_per_sec:.0f} ({_signed_pct(comparison.ops_per_sec_change_pct)})",
        ]
    )


def format_summary(summary: ResultSummary) -> str:
    """Render one aggregate group as a short multi-line block."""
    group = ", ".join(f"{k}={v}" for k, v in summary.group.items())
    p50 = summary.timing["p50_ms"]
    p99 = summary.timing["p99_ms"]
    ops = summary.throughput["ops_per_sec"]
    return "\n".join(
        [
            f"Group: {group} ({summary.count} results)",
            f"  p50:  min={p50.min:.2f}ms, max={p50.max:.2f}ms, mean={p50.mean:.2f}ms",
            f"  p99:  min={p99.min:.2f}ms, max={p99.max:.2f}ms, mean={p99.mean:.2f}ms",
            f"  ops/s: min={ops.min:.0f}, max={ops.max:.0f}, mean={ops.mean:.0f}",
            f"  VFS: {summary.vfs['reads'].total:.0f} reads, {summary.vfs['writes'].total:.0f} writes",
        ]
    )
