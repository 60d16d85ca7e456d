"""Thread-safe metric aggregation over HDR histograms.

The ``MetricAggregator`` is the single metrics sink of a run.  Virtual
users push request samples, check results and iteration durations into it
from any thread or coroutine; the runner reads per-tick and cumulative
``MetricSnapshot`` objects out of it.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import TYPE_CHECKING

from rampforge._internal.logging import get_logger
from rampforge.metrics.histogram import LatencyHistogram
from rampforge.metrics.models import (
    CheckMetrics,
    EndpointMetrics,
    MetricSnapshot,
    TrendStats,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from rampforge.metrics.models import CheckResult, RequestMetric

logger = get_logger("metrics.aggregator")

_DEFAULT_PERCENTILES = (50.0, 75.0, 90.0, 95.0, 99.0, 99.9)


def _trend(hist: LatencyHistogram, percentiles: Iterable[float]) -> TrendStats:
    return TrendStats(
        count=hist.count,
        min=hist.min(),
        max=hist.max(),
        avg=hist.mean(),
        percentiles={p: hist.percentile(p) for p in percentiles},
    )


class _Window:
    """Histograms and counters for one aggregation window."""

    def __init__(self) -> None:
        self.durations = LatencyHistogram()
        self.endpoint_durations: dict[str, LatencyHistogram] = {}
        self.iteration_durations = LatencyHistogram()
        self.request_count = 0
        self.error_count = 0
        self.data_received = 0
        self.errors_by_status: dict[int, int] = defaultdict(int)
        self.errors_by_kind: dict[str, int] = defaultdict(int)
        self.endpoint_counts: dict[str, int] = defaultdict(int)
        self.endpoint_errors: dict[str, int] = defaultdict(int)
        self.checks: dict[str, CheckMetrics] = {}
        self.iterations = 0

    def add_request(self, metric: RequestMetric) -> None:
        name = metric.name
        self.durations.record(metric.latency_ms)
        if name not in self.endpoint_durations:
            self.endpoint_durations[name] = LatencyHistogram()
        self.endpoint_durations[name].record(metric.latency_ms)

        self.request_count += 1
        self.endpoint_counts[name] += 1
        self.data_received += metric.content_length

        if metric.failed:
            self.error_count += 1
            self.endpoint_errors[name] += 1
            if metric.status_code >= 400:
                self.errors_by_status[metric.status_code] += 1
            if metric.error_kind is not None:
                self.errors_by_kind[str(metric.error_kind)] += 1

    def add_check(self, result: CheckResult) -> None:
        counters = self.checks.get(result.name)
        if counters is None:
            counters = self.checks[result.name] = CheckMetrics(name=result.name)
        if result.passed:
            counters.passed += 1
        else:
            counters.failed += 1

    def add_iteration(self, duration_ms: float) -> None:
        self.iterations += 1
        self.iteration_durations.record(duration_ms)

    def build(
        self,
        *,
        elapsed_seconds: float,
        interval: float,
        active_users: int,
        max_users: int,
        percentiles: tuple[float, ...],
    ) -> MetricSnapshot:
        interval = max(interval, 0.001)
        endpoints: dict[str, EndpointMetrics] = {}
        for name, hist in self.endpoint_durations.items():
            count = self.endpoint_counts.get(name, 0)
            errors = self.endpoint_errors.get(name, 0)
            endpoints[name] = EndpointMetrics(
                name=name,
                request_count=count,
                error_count=errors,
                error_rate=errors / count if count > 0 else 0.0,
                requests_per_second=count / interval,
                duration=_trend(hist, percentiles),
            )

        checks = {
            name: CheckMetrics(name=name, passed=c.passed, failed=c.failed)
            for name, c in self.checks.items()
        }

        return MetricSnapshot(
            timestamp=time.monotonic(),
            elapsed_seconds=elapsed_seconds,
            active_users=active_users,
            interval_seconds=interval,
            max_users=max_users,
            total_requests=self.request_count,
            requests_per_second=self.request_count / interval,
            http_req_duration=_trend(self.durations, percentiles),
            total_errors=self.error_count,
            error_rate=(
                self.error_count / self.request_count if self.request_count > 0 else 0.0
            ),
            errors_by_status=dict(self.errors_by_status),
            errors_by_kind=dict(self.errors_by_kind),
            endpoints=endpoints,
            checks_passed=sum(c.passed for c in checks.values()),
            checks_failed=sum(c.failed for c in checks.values()),
            checks=checks,
            iterations=self.iterations,
            iteration_duration=_trend(self.iteration_durations, percentiles),
            data_received=self.data_received,
        )


class MetricAggregator:
    """Collects samples from every virtual user into running distributions.

    Two windows are maintained:
    - **Tick**: reset by :meth:`flush_tick`, captures interval statistics.
    - **Cumulative**: never reset, backs :meth:`snapshot` and thresholds.

    All public methods are thread-safe; a single lock guards both windows.
    Ingestion order does not affect any aggregate.

    Args:
        percentiles: Extra percentiles to report in every ``TrendStats``
            on top of p50/p75/p90/p95/p99/p99.9.
    """

    def __init__(self, percentiles: Iterable[float] = ()) -> None:
        self._lock = threading.Lock()
        self._percentiles: tuple[float, ...] = _DEFAULT_PERCENTILES
        self.track_percentiles(percentiles)

        self._tick = _Window()
        self._cumulative = _Window()
        self._tick_started = time.monotonic()
        self._active_users = 0
        self._max_users = 0

    @property
    def percentiles(self) -> tuple[float, ...]:
        """Percentiles included in every snapshot, ascending."""
        return self._percentiles

    def track_percentiles(self, percentiles: Iterable[float]) -> None:
        """Add percentiles (0-100) to every subsequent snapshot."""
        with self._lock:
            merged = set(self._percentiles) | {float(p) for p in percentiles}
            self._percentiles = tuple(sorted(merged))
        logger.debug("Tracking percentiles: %s", self._percentiles)

    def set_active_users(self, count: int) -> None:
        """Update the active user count reported in snapshots."""
        with self._lock:
            self._active_users = count
            self._max_users = max(self._max_users, count)

    def record_request(self, metric: RequestMetric) -> None:
        """Ingest one request sample.

        Designed to be passed as ``HttpClient(metric_callback=...)``.
        """
        with self._lock:
            self._tick.add_request(metric)
            self._cumulative.add_request(metric)

    def record_check(self, result: CheckResult) -> None:
        """Ingest one check outcome.

        Designed to be passed as ``HttpClient(check_callback=...)``.
        """
        with self._lock:
            self._tick.add_check(result)
            self._cumulative.add_check(result)

    def record_iteration(self, duration_ms: float) -> None:
        """Ingest the duration of one completed virtual user iteration."""
        with self._lock:
            self._tick.add_iteration(duration_ms)
            self._cumulative.add_iteration(duration_ms)

    def flush_tick(self, elapsed_seconds: float) -> MetricSnapshot:
        """Return the snapshot for the interval since the last flush and reset it.

        Args:
            elapsed_seconds: Seconds since the test started.

        Returns:
            MetricSnapshot covering only the samples of this interval.
        """
        with self._lock:
            now = time.monotonic()
            snapshot = self._tick.build(
                elapsed_seconds=elapsed_seconds,
                interval=now - self._tick_started,
                active_users=self._active_users,
                max_users=self._max_users,
                percentiles=self._percentiles,
            )
            self._tick = _Window()
            self._tick_started = now
        return snapshot

    def snapshot(self, elapsed_seconds: float) -> MetricSnapshot:
        """Return a cumulative snapshot of everything recorded so far.

        Safe to call at any time; samples still being recorded concurrently
        show up in a later snapshot.

        Args:
            elapsed_seconds: Seconds since the test started; also used as the
                interval for rate computation.

        Returns:
            Cumulative MetricSnapshot.
        """
        with self._lock:
            return self._cumulative.build(
                elapsed_seconds=elapsed_seconds,
                interval=elapsed_seconds,
                active_users=self._active_users,
                max_users=self._max_users,
                percentiles=self._percentiles,
            )
