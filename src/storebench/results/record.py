"""Benchmark record schema.

One :class:`BenchmarkRecord` is one benchmark measurement. Records are
serialized as one JSON object per line (JSONL) and never updated in place,
so field names here are the on-disk format and must stay stable for
cross-run comparison.
"""

from __future__ import annotations

import json
import math
import subprocess
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .errors import RecordError

if TYPE_CHECKING:
    from storebench.instrument.metrics import VFSMetrics

T = TypeVar("T")


class Environment(str, Enum):
    """Where the benchmark ran."""

    WORKER = "worker"
    DO = "do"
    CONTAINER = "container"
    LOCAL = "local"


class ContainerSize(str, Enum):
    """Container instance sizes."""

    STANDARD_1 = "standard-1"
    STANDARD_2 = "standard-2"
    STANDARD_4 = "standard-4"
    STANDARD_8 = "standard-8"
    GPU_1 = "gpu-1"


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_run_id() -> str:
    """Generate a run ID: ``YYYYmmdd-HHMMSS-<6 hex>``."""
    return datetime.now().strftime("%Y%m%d-%H%M%S") + "-" + uuid.uuid4().hex[:6]


@dataclass
class BenchmarkRecord:
    """A single benchmark measurement.

    Field groups:

    - **Identity**: benchmark (``"{category}/{test-name}"``), database,
      dataset, run_id.
    - **Timing** (milliseconds): p50, p99, min, max, mean, stddev.
    - **Throughput**: ops_per_sec, iterations, total_duration_ms.
    - **VFS**: blob reads/writes and bytes, SQL rows, amplification and
      estimated cost. See :meth:`with_vfs`.
    - **Environment**: timestamp, environment, container/colo details.
    - **Provenance**: git sha/branch, task, tags, notes.

    ``benchmark``, ``database`` and ``run_id`` are always present; every
    other field has a default so partial records are always constructible.
    """

    benchmark: str
    database: str
    run_id: str
    dataset: str = "default"

    # Timing
    p50_ms: float = 0.0
    p99_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    mean_ms: float = 0.0
    stddev_ms: float | None = None

    # Throughput
    ops_per_sec: float = 0.0
    iterations: int = 0
    total_duration_ms: float | None = None

    # VFS / storage cost
    vfs_reads: int = 0
    vfs_writes: int = 0
    vfs_bytes_read: int = 0
    vfs_bytes_written: int = 0
    sql_rows_read: int | None = None
    sql_rows_written: int | None = None
    write_amplification: float | None = None
    read_amplification: float | None = None
    estimated_cost_usd: float | None = None

    # Environment
    timestamp: str = field(default_factory=utc_timestamp)
    environment: Environment = Environment.LOCAL
    container_size: ContainerSize | None = None
    cold_start_ms: float | None = None
    memory_bytes: int | None = None
    cpu_time_ms: float | None = None
    colo: str | None = None

    # Provenance
    git_sha: str | None = None
    git_branch: str | None = None
    task: str | None = None
    tags: dict[str, str] | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.environment, Environment):
            self.environment = Environment(self.environment)
        if self.container_size is not None and not isinstance(self.container_size, ContainerSize):
            self.container_size = ContainerSize(self.container_size)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict, omitting unset optional fields."""
        d = {k: v for k, v in asdict(self).items() if v is not None}
        d["environment"] = self.environment.value
        if self.container_size is not None:
            d["container_size"] = self.container_size.value
        return d

    def to_json(self) -> str:
        """Serialize to one JSONL line (without the newline)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BenchmarkRecord:
        """Deserialize from a dict.

        Unknown keys are ignored so newer logs stay readable.

        Raises:
            RecordError: If a required field is missing or a value is invalid
        """
        if not isinstance(data, Mapping):
            raise RecordError(f"Expected a JSON object, got {type(data).__name__}")

        missing = [name for name in _REQUIRED_FIELDS if not isinstance(data.get(name), str)]
        if missing:
            raise RecordError(f"Missing required field(s): {', '.join(missing)}")

        for name in NUMERIC_FIELDS:
            value = data.get(name)
            if value is not None and (
                isinstance(value, bool) or not isinstance(value, (int, float))
            ):
                raise RecordError(f"Field '{name}' must be a number, got {value!r}")

        for name in _STRING_FIELDS:
            if name in data and not isinstance(data[name], str):
                raise RecordError(f"Field '{name}' must be a string, got {data[name]!r}")
        for name in _OPTIONAL_STRING_FIELDS:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise RecordError(f"Field '{name}' must be a string, got {value!r}")

        tags = data.get("tags")
        if tags is not None and not (
            isinstance(tags, Mapping)
            and all(isinstance(k, str) and isinstance(v, str) for k, v in tags.items())
        ):
            raise RecordError(f"Field 'tags' must map strings to strings, got {tags!r}")

        kwargs = {k: v for k, v in data.items() if k in _FIELD_NAMES}
        try:
            return cls(**kwargs)
        except (TypeError, ValueError) as e:
            raise RecordError(str(e)) from e

    @classmethod
    def from_partial(cls, partial: Mapping[str, Any]) -> BenchmarkRecord:
        """Build a record from a partial payload.

        Only ``benchmark`` and ``run_id`` are required; ``database`` falls
        back to ``"unknown"``.
        """
        data = dict(partial)
        data.setdefault("database", "unknown")
        return cls.from_dict(data)

    def with_vfs(self, metrics: VFSMetrics) -> BenchmarkRecord:
        """Return a copy carrying an interceptor metrics snapshot."""
        return replace(self, **metrics.to_record_fields())


_FIELD_NAMES = frozenset(f.name for f in fields(BenchmarkRecord))
_REQUIRED_FIELDS = ("benchmark", "database", "run_id")
# Strings with a non-null default; null is rejected rather than defaulted.
_STRING_FIELDS = ("dataset", "timestamp")
_OPTIONAL_STRING_FIELDS = ("colo", "git_sha", "git_branch", "task", "notes")
NUMERIC_FIELDS = (
    "p50_ms",
    "p99_ms",
    "min_ms",
    "max_ms",
    "mean_ms",
    "stddev_ms",
    "ops_per_sec",
    "iterations",
    "total_duration_ms",
    "vfs_reads",
    "vfs_writes",
    "vfs_bytes_read",
    "vfs_bytes_written",
    "sql_rows_read",
    "sql_rows_written",
    "write_amplification",
    "read_amplification",
    "estimated_cost_usd",
    "cold_start_ms",
    "memory_bytes",
    "cpu_time_ms",
)

RECORD_FIELDS = _FIELD_NAMES


def create_record(benchmark: str, database: str, **overrides: Any) -> BenchmarkRecord:
    """Create a record with defaults, generating a run ID when none is given."""
    overrides.setdefault("run_id", generate_run_id())
    return BenchmarkRecord(benchmark=benchmark, database=database, **overrides)


# ---------------------------------------------------------------------------
# Provenance helpers
# ---------------------------------------------------------------------------


@dataclass
class GitInfo:
    """Git commit and branch of the working tree."""

    sha: str
    branch: str


def get_git_info(cwd: str | None = None) -> GitInfo | None:
    """Return the current git sha and branch, or None outside a git checkout."""
    try:
        sha = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
            cwd=cwd,
        ).stdout.strip()
        branch = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
            cwd=cwd,
        ).stdout.strip()
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired):
        return None
    return GitInfo(sha=sha, branch=branch)


# ---------------------------------------------------------------------------
# Timing helpers
# ---------------------------------------------------------------------------


@dataclass
class SampleStats:
    """Summary statistics over timing samples (milliseconds)."""

    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    p50: float = 0.0
    p99: float = 0.0
    stddev: float = 0.0

    def to_record_fields(self) -> dict[str, float]:
        """Map onto the timing fields of a benchmark record."""
        return {
            "p50_ms": self.p50,
            "p99_ms": self.p99,
            "min_ms": self.min,
            "max_ms": self.max,
            "mean_ms": self.mean,
            "stddev_ms": self.stddev,
        }


def calculate_stats(samples: list[float]) -> SampleStats:
    """Compute timing statistics from raw samples.

    Percentiles use nearest-rank indexing (``sorted[floor(n * q)]``) and the
    standard deviation is the population one. No samples yields all zeros.
    """
    if not samples:
        return SampleStats()

    ordered = sorted(samples)
    n = len(ordered)
    mean = sum(ordered) / n
    variance = sum((v - mean) ** 2 for v in ordered) / n

    return SampleStats(
        min=ordered[0],
        max=ordered[-1],
        mean=mean,
        median=ordered[n // 2],
        p50=ordered[math.floor(n * 0.5)],
        p99=ordered[min(math.floor(n * 0.99), n - 1)],
        stddev=math.sqrt(variance),
    )


@dataclass
class Measurement(Generic[T]):
    """Result of :func:`measure`."""

    result: T
    samples: list[float]
    stats: SampleStats

    @property
    def ops_per_sec(self) -> float:
        total_ms = sum(self.samples)
        return len(self.samples) / (total_ms / 1000) if total_ms > 0 else 0.0


def measure(fn: Callable[[], T], iterations: int = 1) -> Measurement[T]:
    """Time *fn* over several iterations.

    Returns:
        The last result, the per-iteration samples in milliseconds and
        their statistics
    """
    if iterations < 1:
        raise ValueError(f"iterations must be positive, got {iterations}")

    samples: list[float] = []
    result: Any = None
    for _ in range(iterations):
        start = time.perf_counter()
        result = fn()
        samples.append((time.perf_counter() - start) * 1000)

    return Measurement(result=result, samples=samples, stats=calculate_stats(samples))
