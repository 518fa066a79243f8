"""Tests for metric registers and the per-run registry."""

import math
import threading

import pytest

from loadrig.exceptions import ConfigurationError
from loadrig.metrics import Counter, Gauge, MetricRegistry, Rate, Trend
from loadrig.scenario import RequestOutcome


class TestCounter:
    def test_sums_adds(self):
        counter = Counter("requests")
        counter.add()
        counter.add(4)
        assert counter.count == 5

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            Counter("requests").add(-1)

    def test_rate_per_second(self):
        counter = Counter("requests")
        counter.add(50)
        assert counter.aggregate("rate", elapsed_seconds=10.0) == 5.0
        assert math.isnan(counter.aggregate("rate"))

    def test_concurrent_adds_are_not_lost(self):
        counter = Counter("requests")

        def work():
            for _ in range(1000):
                counter.add(1)

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert counter.count == 8000


class TestRate:
    def test_fraction_of_trues(self):
        rate = Rate("errors")
        for _ in range(3):
            rate.add(True)
        for _ in range(7):
            rate.add(False)
        assert rate.rate == pytest.approx(0.3)
        assert rate.passes == 3
        assert rate.fails == 7

    def test_empty_rate_is_nan(self):
        rate = Rate("errors")
        assert math.isnan(rate.rate)
        assert rate.empty

    def test_summary_reports_passes_and_fails(self):
        rate = Rate("checks")
        rate.add(True)
        rate.add(False)
        assert rate.summary() == {"rate": 0.5, "passes": 1, "fails": 1}


class TestTrend:
    def test_p100_is_max_and_p0_is_min(self):
        trend = Trend("latency")
        for value in [12.0, 3.0, 48.0, 7.0, 25.0]:
            trend.add(value)
        assert trend.percentile(100) == 48.0
        assert trend.percentile(0) == 3.0
        assert trend.min == 3.0
        assert trend.max == 48.0

    def test_identical_samples_mean(self):
        trend = Trend("latency")
        for _ in range(20):
            trend.add(42.5)
        assert trend.mean == 42.5
        assert trend.percentile(95) == 42.5

    @pytest.mark.parametrize("value,k", [(0.1, 3), (0.1, 10), (1.1, 7), (123.456, 50)])
    def test_identical_inexact_samples_mean(self, value, k):
        trend = Trend("latency")
        for _ in range(k):
            trend.add(value)
        assert trend.mean == value
        assert trend.summary()["avg"] == value
        assert trend.aggregate("avg") == value

    def test_linear_interpolation(self):
        trend = Trend("latency")
        for value in range(1, 101):
            trend.add(float(value))
        assert trend.median == pytest.approx(50.5)
        assert trend.percentile(95) == pytest.approx(95.05)

    def test_empty_trend(self):
        trend = Trend("latency")
        assert math.isnan(trend.mean)
        assert math.isnan(trend.percentile(95))
        assert trend.summary()["count"] == 0

    def test_percentile_out_of_range(self):
        with pytest.raises(ValueError):
            Trend("latency").percentile(101)

    def test_aggregates(self):
        trend = Trend("latency")
        for value in [10.0, 20.0, 30.0]:
            trend.add(value)
        assert trend.aggregate("avg") == 20.0
        assert trend.aggregate("med") == 20.0
        assert trend.aggregate("count") == 3.0
        assert trend.aggregate("p", percentile=50) == 20.0


class TestGauge:
    def test_tracks_last_min_max(self):
        gauge = Gauge("vus")
        for value in [3, 10, 1, 4]:
            gauge.set(value)
        assert gauge.value == 4
        assert gauge.aggregate("min") == 1
        assert gauge.aggregate("max") == 10


class TestMetricRegistry:
    def test_builtins_present(self):
        registry = MetricRegistry()
        for name in ("http_reqs", "http_req_duration", "http_req_failed", "checks", "iterations", "vus"):
            assert name in registry

    def test_declare_custom_and_redeclare(self):
        registry = MetricRegistry()
        errors = registry.declare("errors", "rate")
        assert registry.declare("errors", "rate") is errors
        assert registry.rate("errors") is errors

    def test_declare_conflicting_kind(self):
        registry = MetricRegistry()
        registry.declare("errors", "rate")
        with pytest.raises(ConfigurationError):
            registry.declare("errors", "counter")

    def test_declare_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            MetricRegistry().declare("errors", "histogram")

    def test_get_unknown_metric(self):
        with pytest.raises(ConfigurationError) as exc_info:
            MetricRegistry().get("latency")
        assert exc_info.value.code == "unknown_metric"

    def test_typed_accessor_rejects_wrong_kind(self):
        with pytest.raises(ConfigurationError):
            MetricRegistry().trend("http_reqs")

    def test_record_request(self):
        registry = MetricRegistry()
        registry.record_request(RequestOutcome(status=200, body=b"hello", elapsed_ms=12.0))
        registry.record_request(RequestOutcome(status=500, body=b"", elapsed_ms=30.0))
        assert registry.counter("http_reqs").count == 2
        assert registry.trend("http_req_duration").max == 30.0
        assert registry.rate("http_req_failed").rate == 0.5
        assert registry.counter("data_received").count == 5

    def test_record_check_tallies_by_name(self):
        registry = MetricRegistry()
        registry.record_check("status is 200", True)
        registry.record_check("status is 200", False)
        registry.record_check("has body", True)
        assert registry.check_results() == {
            "status is 200": {"passes": 1, "fails": 1},
            "has body": {"passes": 1, "fails": 0},
        }
        assert registry.rate("checks").rate == pytest.approx(2 / 3)

    def test_snapshot_skips_empty(self):
        registry = MetricRegistry()
        registry.counter("iterations").add(3)
        snap = registry.snapshot(elapsed_seconds=1.5)
        assert snap["iterations"] == {"count": 3, "rate": 2.0}
        assert "http_req_duration" not in snap
        assert "http_req_duration" in registry.snapshot(include_empty=True)
