"""Benchmark recorder.

Turns raw timing samples into :class:`BenchmarkRecord` objects and writes
them to a result log. Interceptor metrics are passed in explicitly with
each record; there is no lookup by benchmark name.

Usage::

    with BenchRecorder(ResultWriter("results.jsonl"), tags={"suite": "vfs"}) as rec:
        interceptor = StorageInterceptor(REFERENCE_PRICING)
        store = interceptor.wrap_storage(MemoryBlobStore())
        rec.bench("vfs-cost/sqlite insert 100 rows", lambda: load(store), 20, interceptor=interceptor)
"""

from __future__ import annotations

import logging
import os
import re
import time
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

from .record import (
    BenchmarkRecord,
    Environment,
    GitInfo,
    calculate_stats,
    generate_run_id,
    get_git_info,
    measure,
    utc_timestamp,
)
from .writer import ResultWriter

if TYPE_CHECKING:
    from storebench.instrument.interceptor import StorageInterceptor
    from storebench.instrument.metrics import VFSMetrics

logger = logging.getLogger(__name__)

# Checked in order; the first substring found wins
KNOWN_DATABASES = ("db4", "evodb", "postgres", "sqlite", "duckdb", "mongo", "tigerbeetle")
DATABASE_ALIASES = {"pglite": "postgres", "libsql": "sqlite"}
KNOWN_DATASETS = ("clickbench", "tpc-h", "ecommerce")

_ROWS_RE = re.compile(r"(\d+)\s*(rows?|records?|items?)", re.IGNORECASE)
_SIZE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(gb|mb|kb)", re.IGNORECASE)

CONTAINER_ENV_VARS = ("CONTAINER_RUNTIME", "KUBERNETES_SERVICE_HOST")

SUMMARY_ROWS_PER_DATABASE = 5


def extract_database(name: str, default: str = "unknown") -> str:
    """Guess the database under test from a benchmark name."""
    lower = name.lower()
    for db in KNOWN_DATABASES:
        if db in lower:
            return db
    for alias, db in DATABASE_ALIASES.items():
        if alias in lower:
            return db
    return default


def extract_dataset(name: str, default: str = "default") -> str:
    """Guess the dataset from a benchmark name.

    ``"insert 100 rows"`` gives ``"synthetic-100"``, ``"scan 1.5 GB"`` gives
    ``"1.5gb"``, and a few well-known dataset names are recognized as-is.
    """
    lower = name.lower()

    match = _ROWS_RE.search(lower)
    if match:
        return f"synthetic-{match.group(1)}"

    match = _SIZE_RE.search(lower)
    if match:
        return f"{match.group(1)}{match.group(2).lower()}"

    for dataset in KNOWN_DATASETS:
        if dataset in lower:
            return dataset

    return default


def detect_environment(
    default: Environment | str = Environment.LOCAL,
    environ: Mapping[str, str] | None = None,
) -> Environment:
    """``container`` when a container runtime variable is set, else *default*."""
    env = os.environ if environ is None else environ
    if any(env.get(var) for var in CONTAINER_ENV_VARS):
        return Environment.CONTAINER
    return Environment(default)


def normalize_benchmark_name(full_name: str, category: str | None = None) -> str:
    """Normalize a display name into ``category/test-name`` form.

    ``"VFS Cost - Write Amplification > db4 insert 100 rows"`` becomes
    ``"vfs-cost/write-amplification/db4-insert-100-rows"``.
    """
    name = full_name.lower()
    name = re.sub(r"\s+>\s+", "/", name)
    name = re.sub(r"\s+-\s+", "/", name)
    name = re.sub(r"\s+", "-", name)
    name = re.sub(r"[^a-z0-9/-]", "", name)
    return f"{category}/{name}" if category else name


class BenchRecorder:
    """Builds benchmark records and writes them through a ResultWriter.

    Args:
        writer: Destination writer; closed together with the recorder
        run_id: Run identifier shared by every record (generated when omitted)
        default_database: Used when the name does not reveal the database
        default_dataset: Used when the name does not reveal the dataset
        default_environment: Used when no container runtime is detected
        tags: Tags attached to every record
        git: Attach the current git sha and branch when available
        print_summary: Print a per-database table on close
        console: Console for the summary
    """

    def __init__(
        self,
        writer: ResultWriter,
        run_id: str | None = None,
        default_database: str = "unknown",
        default_dataset: str = "default",
        default_environment: Environment | str = Environment.LOCAL,
        tags: dict[str, str] | None = None,
        git: bool = True,
        print_summary: bool = False,
        console: Console | None = None,
    ) -> None:
        self.writer = writer
        self.run_id = run_id or generate_run_id()
        self.default_database = default_database
        self.default_dataset = default_dataset
        self.environment = detect_environment(default_environment)
        self.tags = dict(tags) if tags else None
        self.git_info: GitInfo | None = get_git_info() if git else None
        self.print_summary_on_close = print_summary
        self.console = console or Console()

        self.results: list[BenchmarkRecord] = []
        self._start_time = time.monotonic()

    def record(
        self,
        name: str,
        samples: Sequence[float],
        vfs: VFSMetrics | None = None,
        **overrides: Any,
    ) -> BenchmarkRecord:
        """Build a record from per-iteration samples (ms) and write it.

        Args:
            name: Benchmark name, ``"{category}/{test-name}"``
            samples: Per-iteration durations in milliseconds
            vfs: Interceptor metrics snapshot for this benchmark
            **overrides: Any record field, applied last

        Returns:
            The record as written
        """
        stats = calculate_stats(list(samples))
        total_ms = sum(samples)

        fields: dict[str, Any] = {
            "benchmark": name,
            "database": extract_database(name, self.default_database),
            "dataset": extract_dataset(name, self.default_dataset),
            "run_id": self.run_id,
            **stats.to_record_fields(),
            "ops_per_sec": len(samples) / (total_ms / 1000) if total_ms > 0 else 0.0,
            "iterations": len(samples),
            "total_duration_ms": total_ms,
            "timestamp": utc_timestamp(),
            "environment": self.environment,
            "task": name,
            "tags": dict(self.tags) if self.tags else None,
        }
        if self.git_info:
            fields["git_sha"] = self.git_info.sha
            fields["git_branch"] = self.git_info.branch
        if vfs is not None:
            fields.update(vfs.to_record_fields())
        fields.update(overrides)

        record = BenchmarkRecord(**fields)
        self.writer.write(record)
        self.results.append(record)
        logger.debug("Recorded %s (%s): p50=%.2fms", record.benchmark, record.database, record.p50_ms)
        return record

    def bench(
        self,
        name: str,
        fn: Callable[[], Any],
        iterations: int = 10,
        interceptor: StorageInterceptor | None = None,
        **overrides: Any,
    ) -> BenchmarkRecord:
        """Time *fn* and record the result.

        When an interceptor is given it is reset before the first
        iteration and its metrics are attached to the record.
        """
        if interceptor is not None:
            interceptor.reset()
        measurement = measure(fn, iterations)
        vfs = interceptor.get_metrics() if interceptor is not None else None
        return self.record(name, measurement.samples, vfs=vfs, **overrides)

    def close(self) -> None:
        """Close the writer and optionally print the run summary."""
        self.writer.close()
        logger.info(
            "Run %s: %d benchmarks written to %s",
            self.run_id,
            len(self.results),
            self.writer.output_path,
        )
        if self.print_summary_on_close:
            self.print_summary()

    def __enter__(self) -> BenchRecorder:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def print_summary(self) -> None:
        """Print a per-database table of the recorded benchmarks."""
        if not self.results:
            self.console.print("\nNo benchmark results collected.")
            return

        elapsed = time.monotonic() - self._start_time
        header = (
            f"[bold]Run ID:[/bold] {self.run_id}\n"
            f"Total benchmarks: {len(self.results)} | "
            f"Total time: {elapsed:.2f}s | "
            f"Output: {self.writer.output_path}"
        )
        if self.git_info:
            header += f"\nGit: {self.git_info.branch} @ {self.git_info.sha[:7]}"
        self.console.print()
        self.console.print(header)

        by_database: dict[str, list[BenchmarkRecord]] = {}
        for result in self.results:
            by_database.setdefault(result.database, []).append(result)

        for database, results in by_database.items():
            table = Table(title=database, show_header=True, header_style="bold")
            table.add_column("Benchmark", style="cyan")
            table.add_column("p50 (ms)", justify="right")
            table.add_column("p99 (ms)", justify="right")
            table.add_column("ops/s", justify="right")
            for result in results[:SUMMARY_ROWS_PER_DATABASE]:
                short_name = "/".join(result.benchmark.split("/")[-2:])
                table.add_row(
                    short_name,
                    f"{result.p50_ms:.2f}",
                    f"{result.p99_ms:.2f}",
                    f"{result.ops_per_sec:.0f}",
                )
            self.console.print(table)
            if len(results) > SUMMARY_ROWS_PER_DATABASE:
                self.console.print(f"  ... and {len(results) - SUMMARY_ROWS_PER_DATABASE} more")
        self.console.print()
