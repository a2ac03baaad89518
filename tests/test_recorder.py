"""Tests for the benchmark recorder and name parsing helpers."""

from __future__ import annotations

import io

import pytest
from rich.console import Console

from storebench.instrument import REFERENCE_PRICING, MemoryBlobStore, StorageInterceptor, VFSMetrics
from storebench.results import recorder as recorder_module
from storebench.results import (
    BenchRecorder,
    Environment,
    GitInfo,
    ResultWriter,
    detect_environment,
    extract_database,
    extract_dataset,
    normalize_benchmark_name,
    read_results,
)


@pytest.fixture(autouse=True)
def _no_container_env(monkeypatch):
    monkeypatch.delenv("CONTAINER_RUNTIME", raising=False)
    monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)


@pytest.fixture
def recorder(log_path):
    rec = BenchRecorder(ResultWriter(log_path, flush_interval=0), run_id="run-1", git=False)
    yield rec
    rec.writer.close()


class TestNameParsing:
    """Tests for database/dataset extraction."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("vfs-cost/sqlite insert 100 rows", "sqlite"),
            ("cold-start/PostgreSQL open", "postgres"),
            ("cold-start/pglite boot", "postgres"),
            ("query/libsql point read", "sqlite"),
            ("query/duckdb scan", "duckdb"),
            ("query/something else", "unknown"),
        ],
    )
    def test_extract_database(self, name, expected):
        assert extract_database(name) == expected

    def test_extract_database_default(self):
        assert extract_database("misc/warmup", default="evodb") == "evodb"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("insert 100 rows", "synthetic-100"),
            ("bulk load 5000 records", "synthetic-5000"),
            ("scan 1.5 GB", "1.5gb"),
            ("tpc-h q1", "tpc-h"),
            ("ClickBench hits", "clickbench"),
            ("open connection", "default"),
        ],
    )
    def test_extract_dataset(self, name, expected):
        assert extract_dataset(name) == expected

    def test_normalize_benchmark_name(self):
        assert (
            normalize_benchmark_name("VFS Cost - Write Amplification > db4 insert 100 rows")
            == "vfs-cost/write-amplification/db4-insert-100-rows"
        )

    def test_normalize_with_category(self):
        assert normalize_benchmark_name("Point Read", "query") == "query/point-read"


class TestDetectEnvironment:
    def test_container_runtime(self):
        assert detect_environment(environ={"CONTAINER_RUNTIME": "1"}) is Environment.CONTAINER

    def test_kubernetes(self):
        env = {"KUBERNETES_SERVICE_HOST": "10.0.0.1"}
        assert detect_environment(Environment.DO, environ=env) is Environment.CONTAINER

    def test_default(self):
        assert detect_environment("worker", environ={}) is Environment.WORKER


class TestBenchRecorder:
    """Tests for record building and writing."""

    def test_record_from_samples(self, recorder, log_path):
        record = recorder.record("vfs-cost/sqlite insert 100 rows", [1.0, 2.0, 3.0, 4.0])

        assert record.run_id == "run-1"
        assert record.database == "sqlite"
        assert record.dataset == "synthetic-100"
        assert record.iterations == 4
        assert record.total_duration_ms == 10.0
        assert record.ops_per_sec == pytest.approx(400.0)
        assert record.p50_ms == 3.0
        assert record.min_ms == 1.0
        assert record.max_ms == 4.0
        assert record.task == "vfs-cost/sqlite insert 100 rows"
        assert record.git_sha is None
        assert recorder.results == [record]

        recorder.writer.flush()
        assert read_results(log_path) == [record]

    def test_defaults_when_name_is_opaque(self, log_path):
        rec = BenchRecorder(
            ResultWriter(log_path, flush_interval=0),
            run_id="r",
            default_database="evodb",
            default_dataset="fixture",
            default_environment="do",
            git=False,
        )
        record = rec.record("misc/warmup", [1.0])
        rec.close()

        assert record.database == "evodb"
        assert record.dataset == "fixture"
        assert record.environment is Environment.DO

    def test_container_detected(self, log_path, monkeypatch):
        monkeypatch.setenv("CONTAINER_RUNTIME", "1")
        rec = BenchRecorder(ResultWriter(log_path, flush_interval=0), git=False)
        assert rec.record("x/y", [1.0]).environment is Environment.CONTAINER
        rec.close()

    def test_generated_run_id(self, log_path):
        rec = BenchRecorder(ResultWriter(log_path, flush_interval=0), git=False)
        assert rec.run_id
        rec.close()

    def test_tags_and_overrides(self, log_path):
        rec = BenchRecorder(
            ResultWriter(log_path, flush_interval=0), run_id="r", tags={"suite": "vfs"}, git=False
        )
        record = rec.record("x/sqlite y", [1.0], notes="cold", database="duckdb")
        rec.close()

        assert record.tags == {"suite": "vfs"}
        assert record.notes == "cold"
        assert record.database == "duckdb"

    def test_vfs_metrics_attached(self, recorder):
        metrics = VFSMetrics(blobs_read=2, blobs_written=3, bytes_written=300)
        record = recorder.record("vfs-cost/sqlite put", [1.0], vfs=metrics)
        assert record.vfs_reads == 2
        assert record.vfs_writes == 3
        assert record.vfs_bytes_written == 300

    def test_empty_samples(self, recorder):
        record = recorder.record("x/y", [])
        assert record.iterations == 0
        assert record.ops_per_sec == 0.0
        assert record.p50_ms == 0.0

    def test_bench_with_interceptor(self, recorder):
        interceptor = StorageInterceptor(REFERENCE_PRICING)
        store = interceptor.wrap_storage(MemoryBlobStore())
        store.put("warmup", "x")  # cleared by bench()

        counter = iter(range(1000))
        record = recorder.bench(
            "vfs-cost/sqlite put",
            lambda: store.put(f"k{next(counter)}", "abc"),
            iterations=5,
            interceptor=interceptor,
        )

        assert record.iterations == 5
        assert record.vfs_writes == 5
        assert record.vfs_bytes_written == 15
        assert record.estimated_cost_usd == pytest.approx(5 / 1_000_000)

    def test_bench_without_interceptor(self, recorder):
        record = recorder.bench("x/y", lambda: None, iterations=3)
        assert record.iterations == 3
        assert record.vfs_reads == 0

    def test_git_info_attached(self, log_path, monkeypatch):
        monkeypatch.setattr(
            recorder_module, "get_git_info", lambda: GitInfo(sha="abc1234def", branch="main")
        )
        rec = BenchRecorder(ResultWriter(log_path, flush_interval=0), run_id="r")
        record = rec.record("x/y", [1.0])
        rec.close()

        assert record.git_sha == "abc1234def"
        assert record.git_branch == "main"

    def test_context_manager_closes_writer(self, log_path):
        with BenchRecorder(ResultWriter(log_path, flush_interval=0), run_id="r", git=False) as rec:
            rec.record("x/y", [1.0])
        assert rec.writer.closed
        assert len(read_results(log_path)) == 1


class TestPrintSummary:
    """Tests for the rich summary table."""

    @staticmethod
    def _recorder(log_path, out):
        console = Console(file=out, width=120, force_terminal=False)
        return BenchRecorder(
            ResultWriter(log_path, flush_interval=0),
            run_id="run-42",
            git=False,
            print_summary=True,
            console=console,
        )

    def test_summary_on_close(self, log_path):
        out = io.StringIO()
        rec = self._recorder(log_path, out)
        rec.record("vfs-cost/sqlite insert 100 rows", [1.0, 2.0])
        rec.record("query/duckdb scan", [5.0])
        rec.close()

        text = out.getvalue()
        assert "run-42" in text
        assert "Total benchmarks: 2" in text
        assert "sqlite" in text
        assert "duckdb" in text

    def test_summary_truncates_long_groups(self, log_path):
        out = io.StringIO()
        rec = self._recorder(log_path, out)
        for i in range(7):
            rec.record(f"query/sqlite read {i}", [1.0])
        rec.close()

        assert "... and 2 more" in out.getvalue()

    def test_empty_summary(self, log_path):
        out = io.StringIO()
        rec = self._recorder(log_path, out)
        rec.close()
        assert "No benchmark results collected" in out.getvalue()
