"""Shared fixtures for storebench test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from storebench.config import StorebenchConfig
from storebench.instrument import (
    REFERENCE_PRICING,
    MemoryBlobStore,
    SqliteExecutor,
    StorageInterceptor,
)
from storebench.results import BenchmarkRecord, write_results


def make_record(**overrides) -> BenchmarkRecord:
    """Create a BenchmarkRecord with sensible defaults for testing.

    This is the canonical record factory for tests. Prefer this over
    hand-building records so new fields are handled in one place.
    """
    base: dict = {
        "benchmark": "vfs-cost/insert-100-rows",
        "database": "sqlite",
        "run_id": "r1",
        "dataset": "synthetic-100",
        "p50_ms": 5.0,
        "p99_ms": 9.0,
        "min_ms": 4.0,
        "max_ms": 12.0,
        "mean_ms": 5.5,
        "ops_per_sec": 200.0,
        "iterations": 100,
        "timestamp": "2026-01-01T00:00:00.000Z",
    }
    base.update(overrides)
    return BenchmarkRecord(**base)


def make_config(**overrides) -> StorebenchConfig:
    """Create a StorebenchConfig for testing."""
    base: dict = {"name": "test-fixture"}
    base.update(overrides)
    return StorebenchConfig(**base)


@pytest.fixture
def log_path(tmp_path) -> Path:
    """Path of a result log that does not exist yet."""
    return tmp_path / "out" / "results.jsonl"


@pytest.fixture
def two_run_log(tmp_path) -> Path:
    """A log with a baseline run r1 and a slower run r2."""
    path = tmp_path / "results.jsonl"
    write_results(
        path,
        [
            make_record(run_id="r1", timestamp="2026-01-01T00:00:00.000Z"),
            make_record(
                benchmark="vfs-cost/point-read",
                database="postgres",
                run_id="r1",
                p50_ms=2.0,
                p99_ms=4.0,
                ops_per_sec=500.0,
                timestamp="2026-01-01T00:00:01.000Z",
            ),
            make_record(
                run_id="r2",
                p50_ms=6.0,
                p99_ms=10.0,
                ops_per_sec=160.0,
                timestamp="2026-01-02T00:00:00.000Z",
            ),
            make_record(
                benchmark="vfs-cost/point-read",
                database="postgres",
                run_id="r2",
                p50_ms=2.02,
                p99_ms=4.1,
                ops_per_sec=560.0,
                timestamp="2026-01-02T00:00:01.000Z",
            ),
        ],
    )
    return path


@pytest.fixture
def interceptor() -> StorageInterceptor:
    return StorageInterceptor(REFERENCE_PRICING)


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def sqlite_executor():
    executor = SqliteExecutor()
    yield executor
    executor.close()
