"""CLI surface tests using typer.testing.CliRunner.

These tests drive every command through Typer's test harness against
small result logs written to tmp_path.
"""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from storebench import __version__
from storebench.cli import app
from storebench.results import write_results

from tests.conftest import make_record

runner = CliRunner()


def _json(result):
    return json.loads(result.stdout)


# =============================================================================
# version / init
# =============================================================================


class TestVersionCommand:
    """Tests for 'storebench version'."""

    def test_version_output(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "Usage" in result.output


class TestInitCommand:
    """Tests for 'storebench init'."""

    def test_init_creates_file(self, tmp_path):
        output = tmp_path / "storebench.yaml"
        result = runner.invoke(app, ["init", "--output", str(output)])
        assert result.exit_code == 0
        assert output.exists()
        assert "name: storebench" in output.read_text()

    def test_init_custom_name(self, tmp_path):
        output = tmp_path / "out.yaml"
        result = runner.invoke(app, ["init", "--output", str(output), "--name", "nightly"])
        assert result.exit_code == 0
        assert "name: nightly" in output.read_text()

    def test_init_refuses_overwrite(self, tmp_path):
        output = tmp_path / "existing.yaml"
        output.write_text("keep me")
        result = runner.invoke(app, ["init", "--output", str(output)])
        assert result.exit_code == 1
        assert output.read_text() == "keep me"

    def test_init_force_overwrites(self, tmp_path):
        output = tmp_path / "existing.yaml"
        output.write_text("old")
        result = runner.invoke(app, ["init", "--output", str(output), "--force"])
        assert result.exit_code == 0
        assert "name: storebench" in output.read_text()

    def test_init_default_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert runner.invoke(app, ["init"]).exit_code == 0
        assert (tmp_path / "storebench.yaml").exists()


# =============================================================================
# show
# =============================================================================


class TestShowCommand:
    """Tests for 'storebench show'."""

    def test_show_json(self, two_run_log):
        result = runner.invoke(app, ["show", "-f", str(two_run_log), "--format", "json"])
        assert result.exit_code == 0
        records = _json(result)
        assert len(records) == 4
        assert records[0]["run_id"] == "r1"

    def test_show_filters(self, two_run_log):
        result = runner.invoke(
            app,
            ["show", "-f", str(two_run_log), "-d", "sqlite", "--run", "r2", "--format", "json"],
        )
        records = _json(result)
        assert len(records) == 1
        assert records[0]["p50_ms"] == 6.0

    def test_show_repeatable_database(self, two_run_log):
        result = runner.invoke(
            app,
            ["show", "-f", str(two_run_log), "-d", "sqlite", "-d", "postgres", "--format", "json"],
        )
        assert len(_json(result)) == 4

    def test_show_match(self, two_run_log):
        result = runner.invoke(
            app, ["show", "-f", str(two_run_log), "-m", "point-read$", "--format", "json"]
        )
        assert {r["database"] for r in _json(result)} == {"postgres"}

    def test_show_since(self, two_run_log):
        result = runner.invoke(
            app,
            ["show", "-f", str(two_run_log), "--since", "2026-01-02T00:00:00.000Z", "--format", "json"],
        )
        assert {r["run_id"] for r in _json(result)} == {"r2"}

    def test_show_tag(self, tmp_path):
        path = tmp_path / "tagged.jsonl"
        write_results(path, [make_record(tags={"suite": "nightly"}), make_record(run_id="r2")])
        result = runner.invoke(
            app, ["show", "-f", str(path), "--tag", "suite=nightly", "--format", "json"]
        )
        assert [r["run_id"] for r in _json(result)] == ["r1"]

    def test_show_sort_and_limit(self, two_run_log):
        result = runner.invoke(
            app,
            ["show", "-f", str(two_run_log), "--sort", "p50_ms", "--asc", "-n", "1", "--format", "json"],
        )
        records = _json(result)
        assert len(records) == 1
        assert records[0]["p50_ms"] == 2.0

    def test_show_table(self, two_run_log):
        result = runner.invoke(app, ["show", "-f", str(two_run_log)])
        assert result.exit_code == 0
        assert "4 record(s)" in result.output

    def test_show_missing_file(self, tmp_path):
        result = runner.invoke(app, ["show", "-f", str(tmp_path / "none.jsonl")])
        assert result.exit_code == 0
        assert "No matching records" in result.output

    def test_show_unknown_sort_field(self, two_run_log):
        result = runner.invoke(app, ["show", "-f", str(two_run_log), "--sort", "speed"])
        assert result.exit_code == 1
        assert "Unknown sort field" in result.output

    def test_benchmark_and_match_exclusive(self, two_run_log):
        result = runner.invoke(
            app, ["show", "-f", str(two_run_log), "-b", "x", "-m", "y"]
        )
        assert result.exit_code == 1
        assert "mutually exclusive" in result.output

    def test_invalid_regex(self, two_run_log):
        result = runner.invoke(app, ["show", "-f", str(two_run_log), "-m", "("])
        assert result.exit_code == 1
        assert "Invalid --match" in result.output

    def test_invalid_tag(self, two_run_log):
        result = runner.invoke(app, ["show", "-f", str(two_run_log), "--tag", "novalue"])
        assert result.exit_code == 1
        assert "KEY=VALUE" in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ["show"],
            ["summary"],
            ["stats", "p50_ms"],
            ["compare", "r1"],
        ],
    )
    def test_unknown_format_rejected(self, two_run_log, args):
        result = runner.invoke(app, [*args, "-f", str(two_run_log), "--format", "yaml"])
        assert result.exit_code == 1
        assert "Unknown output format: yaml" in result.output


# =============================================================================
# summary / stats
# =============================================================================


class TestSummaryCommand:
    """Tests for 'storebench summary'."""

    def test_summary_default_groups_by_database(self, two_run_log):
        result = runner.invoke(app, ["summary", "-f", str(two_run_log), "--format", "json"])
        assert result.exit_code == 0
        summaries = _json(result)
        assert [s["group"] for s in summaries] == [{"database": "sqlite"}, {"database": "postgres"}]
        assert summaries[0]["count"] == 2
        assert summaries[0]["timing"]["p50_ms"]["mean"] == pytest.approx(5.5)

    def test_summary_multiple_groups(self, two_run_log):
        result = runner.invoke(
            app,
            ["summary", "-f", str(two_run_log), "-g", "database", "-g", "run_id", "--format", "json"],
        )
        assert len(_json(result)) == 4

    def test_summary_table(self, two_run_log):
        result = runner.invoke(app, ["summary", "-f", str(two_run_log)])
        assert result.exit_code == 0
        assert result.output.strip()

    def test_summary_unknown_field(self, two_run_log):
        result = runner.invoke(app, ["summary", "-f", str(two_run_log), "-g", "colour"])
        assert result.exit_code == 1


class TestStatsCommand:
    """Tests for 'storebench stats'."""

    def test_stats_json(self, two_run_log):
        result = runner.invoke(
            app, ["stats", "p50_ms", "-f", str(two_run_log), "-d", "sqlite", "--format", "json"]
        )
        assert result.exit_code == 0
        data = _json(result)
        assert data["field"] == "p50_ms"
        assert data["count"] == 2
        assert data["min"] == 5.0
        assert data["max"] == 6.0

    def test_stats_table(self, two_run_log):
        result = runner.invoke(app, ["stats", "ops_per_sec", "-f", str(two_run_log)])
        assert result.exit_code == 0
        assert "ops_per_sec" in result.output

    def test_stats_rejects_non_numeric_field(self, two_run_log):
        result = runner.invoke(app, ["stats", "database", "-f", str(two_run_log)])
        assert result.exit_code == 1
        assert "Not a numeric record field" in result.output


# =============================================================================
# compare
# =============================================================================


class TestCompareCommand:
    """Tests for 'storebench compare'."""

    def test_compare_json(self, two_run_log):
        result = runner.invoke(
            app, ["compare", "r1", "r2", "-f", str(two_run_log), "--format", "json"]
        )
        assert result.exit_code == 0
        data = _json(result)
        assert data["baseline_run_id"] == "r1"
        assert data["current_run_id"] == "r2"
        assert data["threshold_pct"] == 5.0
        by_db = {c["database"]: c for c in data["comparisons"]}
        assert by_db["sqlite"]["regression"] is True
        assert by_db["sqlite"]["p50_change_pct"] == pytest.approx(20.0)
        assert by_db["postgres"]["significant"] is False

    def test_compare_defaults_to_latest_run(self, two_run_log):
        result = runner.invoke(app, ["compare", "r1", "-f", str(two_run_log), "--format", "json"])
        assert result.exit_code == 0
        assert _json(result)["current_run_id"] == "r2"

    def test_compare_table(self, two_run_log):
        result = runner.invoke(app, ["compare", "r1", "r2", "-f", str(two_run_log)])
        assert result.exit_code == 0
        assert "1 regressed" in result.output

    def test_fail_on_regression(self, two_run_log):
        result = runner.invoke(
            app, ["compare", "r1", "r2", "-f", str(two_run_log), "--fail-on-regression"]
        )
        assert result.exit_code == 1

    def test_threshold_option(self, two_run_log):
        result = runner.invoke(
            app,
            [
                "compare", "r1", "r2", "-f", str(two_run_log),
                "--threshold", "25", "--fail-on-regression",
            ],
        )
        assert result.exit_code == 0

    def test_threshold_from_config(self, two_run_log, tmp_path):
        config = tmp_path / "cfg.yaml"
        config.write_text("compare:\n  threshold_pct: 30\n")
        result = runner.invoke(
            app,
            ["compare", "r1", "r2", "-f", str(two_run_log), "-c", str(config), "--format", "json"],
        )
        data = _json(result)
        assert data["threshold_pct"] == 30.0
        assert not any(c["regression"] for c in data["comparisons"])

    def test_no_other_run(self, tmp_path):
        path = tmp_path / "r.jsonl"
        write_results(path, [make_record(run_id="only")])
        result = runner.invoke(app, ["compare", "only", "-f", str(path)])
        assert result.exit_code == 0
        assert "No run other than only" in result.output

    def test_no_common_benchmarks(self, tmp_path):
        path = tmp_path / "r.jsonl"
        write_results(path, [make_record(run_id="a"), make_record(benchmark="x/other", run_id="b")])
        result = runner.invoke(app, ["compare", "a", "b", "-f", str(path)])
        assert result.exit_code == 0
        assert "No benchmarks in common" in result.output


# =============================================================================
# rotate
# =============================================================================


class TestRotateCommand:
    """Tests for 'storebench rotate'."""

    def test_rotate(self, two_run_log):
        result = runner.invoke(app, ["rotate", "-f", str(two_run_log), "--max-bytes", "10"])
        assert result.exit_code == 0
        assert "Rotated" in result.output
        assert two_run_log.read_text() == ""
        assert len(list(two_run_log.parent.glob("results-*.jsonl"))) == 1

    def test_rotate_below_threshold(self, two_run_log):
        result = runner.invoke(app, ["rotate", "-f", str(two_run_log)])
        assert result.exit_code == 0
        assert "INFO" in result.output
        assert two_run_log.read_text() != ""


# =============================================================================
# config discovery
# =============================================================================


class TestConfigDiscovery:
    """Tests for --config and ./storebench.yaml auto-discovery."""

    def test_auto_discovered_config(self, tmp_path, monkeypatch, two_run_log):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "storebench.yaml").write_text(f"output:\n  path: {two_run_log}\n")
        result = runner.invoke(app, ["show", "--format", "json"])
        assert result.exit_code == 0
        assert len(_json(result)) == 4

    def test_invalid_config_exits(self, tmp_path, two_run_log):
        config = tmp_path / "bad.yaml"
        config.write_text("output:\n  buffer_size: 0\n")
        result = runner.invoke(app, ["show", "-f", str(two_run_log), "-c", str(config)])
        assert result.exit_code == 1
        assert "validation failed" in result.output

    def test_missing_config_exits(self, tmp_path, two_run_log):
        result = runner.invoke(
            app, ["show", "-f", str(two_run_log), "-c", str(tmp_path / "nope.yaml")]
        )
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_verbose_flag(self, two_run_log):
        result = runner.invoke(app, ["-v", "show", "-f", str(two_run_log), "--format", "json"])
        assert result.exit_code == 0
