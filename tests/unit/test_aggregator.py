"""Tests for MetricAggregator."""

from __future__ import annotations

import random
import threading
import time

import numpy as np
import pytest

from rampforge.metrics.aggregator import MetricAggregator
from rampforge.metrics.models import CheckResult, ErrorKind, RequestMetric


def _make_metric(
    name: str = "Test",
    latency_ms: float = 10.0,
    status_code: int = 200,
    error: str | None = None,
    error_kind: ErrorKind | None = None,
    content_length: int = 100,
) -> RequestMetric:
    return RequestMetric(
        timestamp=time.monotonic(),
        name=name,
        method="GET",
        url=f"http://localhost/{name.lower()}",
        status_code=status_code,
        latency_ms=latency_ms,
        content_length=content_length,
        error=error,
        error_kind=error_kind,
    )


class TestRequestAggregation:
    def test_empty_snapshot_reads_zero(self):
        snapshot = MetricAggregator().snapshot(elapsed_seconds=1.0)
        assert snapshot.total_requests == 0
        assert snapshot.error_rate == 0.0
        assert snapshot.http_req_duration.p95 == 0.0
        assert snapshot.checks_rate == 0.0
        assert snapshot.endpoints == {}

    def test_counts_and_rates(self):
        agg = MetricAggregator()
        for i in range(1, 11):
            agg.record_request(_make_metric(latency_ms=float(i)))
        agg.record_request(_make_metric(status_code=500))
        agg.record_request(
            _make_metric(
                status_code=0,
                error="ClientConnectorError: refused",
                error_kind=ErrorKind.CONNECTION_REFUSED,
                content_length=0,
            )
        )

        snapshot = agg.snapshot(elapsed_seconds=4.0)
        assert snapshot.total_requests == 12
        assert snapshot.requests_per_second == pytest.approx(3.0)
        assert snapshot.total_errors == 2
        assert snapshot.error_rate == pytest.approx(2 / 12)
        assert snapshot.errors_by_status == {500: 1}
        assert snapshot.errors_by_kind == {"connection_refused": 1}
        assert snapshot.data_received == 1100

    def test_per_endpoint_breakdown(self):
        agg = MetricAggregator()
        for _ in range(3):
            agg.record_request(_make_metric(name="Home", latency_ms=10.0))
        agg.record_request(_make_metric(name="Login", latency_ms=100.0, status_code=401))

        endpoints = agg.snapshot(elapsed_seconds=1.0).endpoints
        assert set(endpoints) == {"Home", "Login"}
        assert endpoints["Home"].request_count == 3
        assert endpoints["Home"].error_rate == 0.0
        assert endpoints["Login"].error_count == 1
        assert 99.0 <= endpoints["Login"].duration.max <= 100.1

    def test_p95_matches_exact_percentile(self):
        """p95 lies within 0.1% of the exact value over 10,000 samples."""
        rng = random.Random(42)
        latencies = [rng.lognormvariate(4.0, 0.8) for _ in range(10_000)]

        agg = MetricAggregator()
        for latency in latencies:
            agg.record_request(_make_metric(latency_ms=latency))

        exact = float(np.percentile(latencies, 95, method="inverted_cdf"))
        observed = agg.snapshot(elapsed_seconds=10.0).http_req_duration.p95
        assert observed == pytest.approx(exact, rel=1e-3)

    def test_order_independent(self):
        rng = random.Random(7)
        latencies = [rng.uniform(1, 500) for _ in range(2_000)]
        shuffled = latencies[:]
        rng.shuffle(shuffled)

        first, second = MetricAggregator(), MetricAggregator()
        for a, b in zip(latencies, shuffled, strict=True):
            first.record_request(_make_metric(latency_ms=a))
            second.record_request(_make_metric(latency_ms=b))

        s1 = first.snapshot(elapsed_seconds=1.0).http_req_duration
        s2 = second.snapshot(elapsed_seconds=1.0).http_req_duration
        assert s1 == s2

    def test_concurrent_writers(self):
        agg = MetricAggregator()
        per_thread = 2_000

        def writer(offset: int) -> None:
            for i in range(per_thread):
                agg.record_request(_make_metric(latency_ms=float(offset + i % 50)))
                agg.record_check(CheckResult("ok", passed=i % 4 != 0))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = agg.snapshot(elapsed_seconds=1.0)
        assert snapshot.total_requests == 8 * per_thread
        assert snapshot.http_req_duration.count == 8 * per_thread
        assert snapshot.checks_passed + snapshot.checks_failed == 8 * per_thread
        assert snapshot.checks_failed == 8 * per_thread // 4


class TestChecksAndIterations:
    def test_check_counters(self):
        agg = MetricAggregator()
        for passed in (True, True, True, False):
            agg.record_check(CheckResult("status equals 200", passed))
        agg.record_check(CheckResult("body not empty", True))

        snapshot = agg.snapshot(elapsed_seconds=1.0)
        assert snapshot.checks_passed == 4
        assert snapshot.checks_failed == 1
        assert snapshot.checks_rate == pytest.approx(0.8)
        assert snapshot.checks["status equals 200"].rate == pytest.approx(0.75)
        assert snapshot.checks["body not empty"].failed == 0

    def test_iterations(self):
        agg = MetricAggregator()
        for duration in (1000.0, 1010.0, 990.0):
            agg.record_iteration(duration)

        snapshot = agg.snapshot(elapsed_seconds=3.0)
        assert snapshot.iterations == 3
        assert snapshot.iterations_per_second == pytest.approx(1.0)
        assert 989.0 <= snapshot.iteration_duration.min <= 991.0


class TestWindows:
    def test_flush_tick_resets_interval_but_not_cumulative(self):
        agg = MetricAggregator()
        for _ in range(5):
            agg.record_request(_make_metric())

        tick = agg.flush_tick(elapsed_seconds=1.0)
        assert tick.total_requests == 5
        assert tick.interval_seconds > 0

        agg.record_request(_make_metric())
        second = agg.flush_tick(elapsed_seconds=2.0)
        assert second.total_requests == 1
        assert agg.snapshot(elapsed_seconds=2.0).total_requests == 6

    def test_active_and_max_users(self):
        agg = MetricAggregator()
        agg.set_active_users(10)
        agg.set_active_users(4)

        snapshot = agg.snapshot(elapsed_seconds=1.0)
        assert snapshot.active_users == 4
        assert snapshot.max_users == 10


class TestPercentiles:
    def test_default_percentiles(self):
        agg = MetricAggregator()
        assert agg.percentiles == (50.0, 75.0, 90.0, 95.0, 99.0, 99.9)

    def test_extra_percentiles_tracked(self):
        agg = MetricAggregator(percentiles=[80, 95.0])
        assert 80.0 in agg.percentiles
        assert agg.percentiles == tuple(sorted(set(agg.percentiles)))

        for i in range(1, 101):
            agg.record_request(_make_metric(latency_ms=float(i)))
        trend = agg.snapshot(elapsed_seconds=1.0).http_req_duration
        assert 79.0 <= trend.percentile(80) <= 81.0

    def test_track_percentiles_later(self):
        agg = MetricAggregator()
        agg.track_percentiles([12.5])
        agg.record_request(_make_metric())
        assert 12.5 in agg.snapshot(elapsed_seconds=1.0).http_req_duration.percentiles
