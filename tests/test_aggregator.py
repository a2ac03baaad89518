"""Tests for the session aggregator."""

import json

import pytest

from storebench.instrument import REFERENCE_PRICING, Pricing, SessionAggregator, VFSMetrics


class TestSessionAggregator:
    """Tests for SessionAggregator summaries."""

    def test_empty_summary_is_zero(self):
        summary = SessionAggregator(REFERENCE_PRICING).get_summary()
        assert summary.total_samples == 0
        assert summary.avg_duration_ms == 0.0
        assert summary.estimated_total_cost == 0.0
        assert summary.by_operation == {}

    def test_pricing_is_required(self):
        with pytest.raises(TypeError):
            SessionAggregator()  # type: ignore[call-arg]

    def test_totals_and_means(self):
        agg = SessionAggregator(REFERENCE_PRICING)
        agg.record("insert", rows_read=0, rows_written=10, duration_ms=4.0)
        agg.record("select", rows_read=30, rows_written=0, duration_ms=2.0)

        summary = agg.get_summary()
        assert summary.total_samples == 2
        assert summary.total_rows_read == 30
        assert summary.total_rows_written == 10
        assert summary.total_duration_ms == 6.0
        assert summary.avg_rows_read == 15.0
        assert summary.avg_rows_written == 5.0
        assert summary.avg_duration_ms == 3.0

    def test_by_operation(self):
        agg = SessionAggregator(REFERENCE_PRICING)
        agg.record("insert", 0, 10, 4.0)
        agg.record("insert", 0, 20, 6.0)
        agg.record("select", 5, 0, 1.0)

        by_op = agg.get_summary().by_operation
        assert set(by_op) == {"insert", "select"}
        assert by_op["insert"].count == 2
        assert by_op["insert"].avg_rows_written == 15.0
        assert by_op["insert"].avg_duration_ms == 5.0
        assert by_op["select"].avg_rows_read == 5.0

    def test_costs_use_injected_pricing(self):
        agg = SessionAggregator(pricing=Pricing(read_per_million=10.0, write_per_million=20.0))
        agg.record("bulk", rows_read=100_000, rows_written=50_000, duration_ms=1.0)

        summary = agg.get_summary()
        assert summary.estimated_read_cost == pytest.approx(1.0)
        assert summary.estimated_write_cost == pytest.approx(1.0)
        assert summary.estimated_total_cost == pytest.approx(2.0)

    def test_record_metrics_folds_blobs_and_rows(self):
        agg = SessionAggregator(REFERENCE_PRICING)
        metrics = VFSMetrics(blobs_read=2, blobs_written=1, rows_read=8, rows_written=4)
        agg.record_metrics("session", metrics, duration_ms=12.5)

        summary = agg.get_summary()
        assert summary.total_rows_read == 10
        assert summary.total_rows_written == 5
        assert summary.total_duration_ms == 12.5

    def test_reset(self):
        agg = SessionAggregator(REFERENCE_PRICING)
        agg.record("x", 1, 1, 1.0)
        agg.reset()
        assert len(agg) == 0
        assert agg.get_summary().total_samples == 0

    def test_export_samples(self):
        agg = SessionAggregator(REFERENCE_PRICING)
        agg.record("insert", 0, 3, 1.5)

        exported = agg.export_samples()
        samples = json.loads(exported)
        assert len(samples) == 1
        assert samples[0]["operation"] == "insert"
        assert samples[0]["rows_written"] == 3
        assert "timestamp" in samples[0]
        assert "\n" in exported

    def test_summary_to_dict(self):
        agg = SessionAggregator(REFERENCE_PRICING)
        agg.record("insert", 0, 1_000_000, 1.0)
        d = agg.get_summary().to_dict()
        assert d["estimated_total_cost"] == pytest.approx(1.0)
        assert d["by_operation"]["insert"]["count"] == 1
