"""Metric samples and aggregation dataclasses for RampForge."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rampforge.thresholds.evaluator import ThresholdReport

__all__ = [
    "CheckMetrics",
    "CheckResult",
    "EndpointMetrics",
    "ErrorKind",
    "MetricSnapshot",
    "RequestMetric",
    "TestResult",
    "TrendStats",
]


class ErrorKind(StrEnum):
    """Classification of a request that failed before a response arrived."""

    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    DNS = "dns"
    CONNECTION = "connection"
    INVALID_URL = "invalid_url"
    OTHER = "other"


@dataclass(frozen=True)
class RequestMetric:
    """Raw sample emitted for every HTTP request.

    Attributes:
        timestamp: Monotonic timestamp when the request started.
        name: Logical name for metric grouping (e.g., "HomePage").
        method: HTTP method (GET, POST, etc.).
        url: Full request URL.
        status_code: HTTP response status code (0 if request failed).
        latency_ms: Wall-clock time until the body was read, in ms.
        content_length: Response body size in bytes.
        error: ``"<ExceptionType>: <message>"`` if the request failed.
        error_kind: Classification of *error*, None on success.
        worker_id: Virtual user that made the request.
        scenario: Scenario the virtual user belongs to.
    """

    timestamp: float
    name: str
    method: str
    url: str
    status_code: int
    latency_ms: float
    content_length: int
    error: str | None = None
    error_kind: ErrorKind | None = None
    worker_id: int = 0
    scenario: str = "default"

    @property
    def failed(self) -> bool:
        """True for network errors and HTTP status >= 400."""
        return self.error is not None or self.status_code >= 400


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one named check predicate."""

    name: str
    passed: bool
    scenario: str = "default"


@dataclass(frozen=True)
class TrendStats:
    """Summary statistics of a latency-like distribution, in milliseconds.

    Attributes:
        count: Number of values.
        min: Smallest value.
        max: Largest value.
        avg: Mean value.
        percentiles: Value at each tracked percentile, keyed by percentile
            (e.g. ``95.0``).
    """

    count: int = 0
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    percentiles: dict[float, float] = field(default_factory=dict)

    def percentile(self, p: float) -> float:
        """Return the tracked value at percentile *p*.

        Raises:
            KeyError: If *p* was not tracked when the snapshot was built.
        """
        return self.percentiles[float(p)]

    @property
    def med(self) -> float:
        return self.percentiles.get(50.0, 0.0)

    @property
    def p90(self) -> float:
        return self.percentiles.get(90.0, 0.0)

    @property
    def p95(self) -> float:
        return self.percentiles.get(95.0, 0.0)

    @property
    def p99(self) -> float:
        return self.percentiles.get(99.0, 0.0)


@dataclass
class EndpointMetrics:
    """Aggregated metrics for a single endpoint (logical request name).

    Attributes:
        name: Logical endpoint name.
        request_count: Total number of requests to this endpoint.
        error_count: Number of failed requests (status >= 400 or error).
        error_rate: Fraction of requests that failed (0.0 to 1.0).
        requests_per_second: Requests per second to this endpoint.
        duration: Latency distribution for this endpoint.
    """

    name: str
    request_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    requests_per_second: float = 0.0
    duration: TrendStats = field(default_factory=TrendStats)


@dataclass
class CheckMetrics:
    """Pass/fail counters for one named check."""

    name: str
    passed: int = 0
    failed: int = 0

    @property
    def rate(self) -> float:
        """Fraction of evaluations that passed (0.0 when never evaluated)."""
        total = self.passed + self.failed
        return self.passed / total if total else 0.0


@dataclass
class MetricSnapshot:
    """Aggregated metrics over an interval (one tick) or the whole run.

    Attributes:
        timestamp: Monotonic timestamp of the snapshot.
        elapsed_seconds: Seconds since the test started.
        interval_seconds: Length of the period the snapshot covers.
        active_users: Virtual users active when the snapshot was taken.
        max_users: Highest active user count seen so far.
        total_requests: Requests in the covered period.
        requests_per_second: Request rate over the covered period.
        http_req_duration: Latency distribution of all requests.
        total_errors: Failed requests in the covered period.
        error_rate: Fraction of requests that failed (0.0 to 1.0).
        errors_by_status: Failed request counts by HTTP status code.
        errors_by_kind: Network error counts by :class:`ErrorKind` value.
        endpoints: Per-endpoint metrics keyed by endpoint name.
        checks_passed: Check evaluations that passed.
        checks_failed: Check evaluations that failed.
        checks: Per-check counters keyed by check name.
        iterations: Completed virtual user iterations.
        iteration_duration: Duration distribution of completed iterations.
        data_received: Response body bytes received.
    """

    timestamp: float
    elapsed_seconds: float
    active_users: int
    interval_seconds: float = 0.0
    max_users: int = 0
    total_requests: int = 0
    requests_per_second: float = 0.0
    http_req_duration: TrendStats = field(default_factory=TrendStats)
    total_errors: int = 0
    error_rate: float = 0.0
    errors_by_status: dict[int, int] = field(default_factory=dict)
    errors_by_kind: dict[str, int] = field(default_factory=dict)
    endpoints: dict[str, EndpointMetrics] = field(default_factory=dict)
    checks_passed: int = 0
    checks_failed: int = 0
    checks: dict[str, CheckMetrics] = field(default_factory=dict)
    iterations: int = 0
    iteration_duration: TrendStats = field(default_factory=TrendStats)
    data_received: int = 0

    @property
    def checks_rate(self) -> float:
        """Fraction of check evaluations that passed (0.0 when none ran)."""
        total = self.checks_passed + self.checks_failed
        return self.checks_passed / total if total else 0.0

    @property
    def iterations_per_second(self) -> float:
        return self.iterations / self.interval_seconds if self.interval_seconds > 0 else 0.0

    @property
    def data_received_per_second(self) -> float:
        return self.data_received / self.interval_seconds if self.interval_seconds > 0 else 0.0


@dataclass
class TestResult:
    """Complete result of a load test run.

    Attributes:
        script_name: File name of the load script.
        start_time: Monotonic time when the test started.
        end_time: Monotonic time when the test completed.
        duration_seconds: Total wall-clock duration of the test.
        scenario_descriptions: Pattern description per scenario name.
        snapshots: Time-series of per-tick snapshots.
        peak_requests_per_second: Highest request rate of any single tick.
        final_summary: Cumulative snapshot over the whole run.
        threshold_report: Final threshold evaluation, None when the run
            declared no thresholds.
        aborted: True if a threshold with ``abort_on_fail`` ended the run
            early, or a signal interrupted it.
    """

    __test__ = False  # not a pytest test class

    script_name: str
    start_time: float
    end_time: float
    duration_seconds: float
    scenario_descriptions: dict[str, str] = field(default_factory=dict)
    snapshots: list[MetricSnapshot] = field(default_factory=list)
    peak_requests_per_second: float = 0.0
    final_summary: MetricSnapshot | None = None
    threshold_report: ThresholdReport | None = None
    aborted: bool = False

    @property
    def passed(self) -> bool:
        """True when every threshold passed (or none were declared)."""
        return self.threshold_report is None or self.threshold_report.passed
