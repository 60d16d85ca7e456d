"""Threshold evaluation against aggregated metric snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from rampforge._internal.durations import parse_duration
from rampforge._internal.errors import ConfigError
from rampforge._internal.logging import get_logger
from rampforge.metrics.models import TrendStats
from rampforge.thresholds.expression import (
    AggregationKind,
    parse_expression,
    parse_selector,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from rampforge.dsl.options import Threshold
    from rampforge.metrics.models import MetricSnapshot
    from rampforge.thresholds.expression import MetricSelector, ThresholdExpression

logger = get_logger("thresholds.evaluator")


class MetricKind(StrEnum):
    """Shape of a built-in metric, which decides the valid aggregations."""

    TREND = "trend"
    RATE = "rate"
    COUNTER = "counter"
    GAUGE = "gauge"


BUILTIN_METRICS: dict[str, MetricKind] = {
    "http_req_duration": MetricKind.TREND,
    "iteration_duration": MetricKind.TREND,
    "http_req_failed": MetricKind.RATE,
    "checks": MetricKind.RATE,
    "http_reqs": MetricKind.COUNTER,
    "iterations": MetricKind.COUNTER,
    "data_received": MetricKind.COUNTER,
    "vus": MetricKind.GAUGE,
    "vus_max": MetricKind.GAUGE,
}

_ALLOWED_AGGREGATIONS: dict[MetricKind, frozenset[AggregationKind]] = {
    MetricKind.TREND: frozenset(
        {
            AggregationKind.AVG,
            AggregationKind.MIN,
            AggregationKind.MAX,
            AggregationKind.MED,
            AggregationKind.PERCENTILE,
        }
    ),
    MetricKind.RATE: frozenset({AggregationKind.RATE}),
    MetricKind.COUNTER: frozenset({AggregationKind.COUNT, AggregationKind.RATE}),
    MetricKind.GAUGE: frozenset({AggregationKind.VALUE}),
}

# Metrics that can be narrowed to one endpoint with a ``{name:...}`` tag.
_ENDPOINT_METRICS = frozenset({"http_req_duration", "http_req_failed", "http_reqs"})


@dataclass(frozen=True)
class ParsedThreshold:
    """A validated threshold ready for evaluation.

    Attributes:
        selector: Metric (and optional endpoint filter) the threshold reads.
        expression: Parsed comparison.
        abort_on_fail: Stop the whole run as soon as this threshold fails.
        delay_abort_eval: Seconds into the run before an abort may trigger.
    """

    selector: MetricSelector
    expression: ThresholdExpression
    abort_on_fail: bool = False
    delay_abort_eval: float = 0.0


@dataclass(frozen=True)
class ThresholdResult:
    """Outcome of one threshold.

    Attributes:
        metric: Metric selector text, e.g. ``"http_req_duration"``.
        expression: Expression text, e.g. ``"p(95)<2000"``.
        observed: The statistic the expression was compared against.
        passed: Whether the expression held.
        abort_on_fail: Copied from the threshold declaration.
    """

    metric: str
    expression: str
    observed: float
    passed: bool
    abort_on_fail: bool = False


@dataclass
class ThresholdReport:
    """All threshold outcomes of one evaluation; passes only if every one does."""

    results: list[ThresholdResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> list[ThresholdResult]:
        return [r for r in self.results if not r.passed]


def _parse_one(metric: str, item: str | Threshold) -> ParsedThreshold:
    selector = parse_selector(metric)
    kind = BUILTIN_METRICS.get(selector.metric)
    if kind is None:
        known = ", ".join(sorted(BUILTIN_METRICS))
        msg = f"Unknown metric {selector.metric!r} in thresholds (known metrics: {known})"
        raise ConfigError(msg)

    for key, _value in selector.tags:
        if key != "name" or selector.metric not in _ENDPOINT_METRICS:
            msg = f"Unsupported tag filter {key!r} on metric {selector.metric!r}"
            raise ConfigError(msg)

    if isinstance(item, str):
        expression = parse_expression(item)
        abort_on_fail = False
        delay = 0.0
    else:
        expression = parse_expression(item.expression)
        abort_on_fail = item.abort_on_fail
        delay = parse_duration(item.delay_abort_eval, "delay_abort_eval")

    if expression.aggregation.kind not in _ALLOWED_AGGREGATIONS[kind]:
        allowed = ", ".join(sorted(str(a) for a in _ALLOWED_AGGREGATIONS[kind]))
        msg = (
            f"Aggregation {expression.aggregation} is not valid for {kind} metric "
            f"{selector.metric!r} (use one of: {allowed})"
        )
        raise ConfigError(msg)

    return ParsedThreshold(
        selector=selector,
        expression=expression,
        abort_on_fail=abort_on_fail,
        delay_abort_eval=delay,
    )


def _trend_value(stats: TrendStats, threshold: ParsedThreshold) -> float:
    aggregation = threshold.expression.aggregation
    if aggregation.kind is AggregationKind.AVG:
        return stats.avg
    if aggregation.kind is AggregationKind.MIN:
        return stats.min
    if aggregation.kind is AggregationKind.MAX:
        return stats.max
    if aggregation.kind is AggregationKind.MED:
        return stats.med
    assert aggregation.percentile is not None  # noqa: S101
    return stats.percentiles.get(aggregation.percentile, 0.0)


class ThresholdEvaluator:
    """Evaluates declared thresholds against a ``MetricSnapshot``.

    Every threshold is parsed and validated in the constructor, so a bad
    declaration fails before any traffic is generated.

    Args:
        thresholds: Mapping from metric selector (``"http_req_duration"``,
            ``"http_req_duration{name:Home}"``) to a list of expression
            strings or :class:`~rampforge.dsl.options.Threshold` objects.

    Raises:
        ConfigError: On unknown metrics, unsupported tags, malformed
            expressions or aggregations that do not fit the metric.

    Example::

        evaluator = ThresholdEvaluator({"http_req_duration": ["p(95)<2000"]})
        report = evaluator.evaluate(aggregator.snapshot(elapsed_seconds=180.0))
        report.passed
    """

    def __init__(self, thresholds: Mapping[str, Sequence[str | Threshold]]) -> None:
        parsed: list[ParsedThreshold] = []
        for metric, items in thresholds.items():
            if isinstance(items, str):
                items = [items]  # noqa: PLW2901
            parsed.extend(_parse_one(metric, item) for item in items)
        self._thresholds = parsed

    @property
    def thresholds(self) -> list[ParsedThreshold]:
        return list(self._thresholds)

    def __len__(self) -> int:
        return len(self._thresholds)

    def required_percentiles(self) -> set[float]:
        """Percentiles the aggregator must track for these thresholds."""
        return {
            t.expression.aggregation.percentile
            for t in self._thresholds
            if t.expression.aggregation.percentile is not None
        }

    def evaluate(self, snapshot: MetricSnapshot) -> ThresholdReport:
        """Evaluate every threshold against *snapshot*.

        Metrics with no samples read as zero.

        Args:
            snapshot: Usually the aggregator's cumulative snapshot.

        Returns:
            A report with one result per declared threshold.
        """
        results = []
        for threshold in self._thresholds:
            observed = self._observe(snapshot, threshold)
            passed = threshold.expression.check(observed)
            results.append(
                ThresholdResult(
                    metric=str(threshold.selector),
                    expression=threshold.expression.source,
                    observed=observed,
                    passed=passed,
                    abort_on_fail=threshold.abort_on_fail,
                )
            )
            if not passed:
                logger.debug(
                    "Threshold failed: %s %s (observed %.3f)",
                    threshold.selector,
                    threshold.expression.source,
                    observed,
                )
        return ThresholdReport(results=results)

    def should_abort(self, report: ThresholdReport, elapsed_seconds: float) -> bool:
        """Return True if a failed ``abort_on_fail`` threshold may stop the run now."""
        for threshold, result in zip(self._thresholds, report.results, strict=True):
            if (
                not result.passed
                and threshold.abort_on_fail
                and elapsed_seconds >= threshold.delay_abort_eval
            ):
                return True
        return False

    def _observe(self, snapshot: MetricSnapshot, threshold: ParsedThreshold) -> float:
        metric = threshold.selector.metric
        aggregation = threshold.expression.aggregation.kind
        endpoint_name = threshold.selector.tag("name")
        endpoint = snapshot.endpoints.get(endpoint_name) if endpoint_name else None

        if metric == "http_req_duration":
            if endpoint_name is not None:
                stats = endpoint.duration if endpoint is not None else TrendStats()
            else:
                stats = snapshot.http_req_duration
            return _trend_value(stats, threshold)

        if metric == "iteration_duration":
            return _trend_value(snapshot.iteration_duration, threshold)

        if metric == "http_req_failed":
            if endpoint_name is not None:
                return endpoint.error_rate if endpoint is not None else 0.0
            return snapshot.error_rate

        if metric == "checks":
            return snapshot.checks_rate

        if metric == "http_reqs":
            if endpoint_name is not None:
                if endpoint is None:
                    return 0.0
                if aggregation is AggregationKind.COUNT:
                    return float(endpoint.request_count)
                return endpoint.requests_per_second
            if aggregation is AggregationKind.COUNT:
                return float(snapshot.total_requests)
            return snapshot.requests_per_second

        if metric == "iterations":
            if aggregation is AggregationKind.COUNT:
                return float(snapshot.iterations)
            return snapshot.iterations_per_second

        if metric == "data_received":
            if aggregation is AggregationKind.COUNT:
                return float(snapshot.data_received)
            return snapshot.data_received_per_second

        if metric == "vus":
            return float(snapshot.active_users)

        return float(snapshot.max_users)
