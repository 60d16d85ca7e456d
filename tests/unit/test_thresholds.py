"""Tests for threshold parsing and evaluation."""

from __future__ import annotations

import time

import pytest

from rampforge._internal.errors import ConfigError
from rampforge.dsl.options import Threshold
from rampforge.metrics.models import CheckMetrics, EndpointMetrics, MetricSnapshot, TrendStats
from rampforge.thresholds import (
    AggregationKind,
    Comparison,
    ThresholdEvaluator,
    parse_expression,
    parse_selector,
)


def _snapshot(**overrides) -> MetricSnapshot:
    fields = {
        "timestamp": time.monotonic(),
        "elapsed_seconds": 10.0,
        "active_users": 5,
        "interval_seconds": 10.0,
        "max_users": 8,
        "total_requests": 100,
        "requests_per_second": 10.0,
        "http_req_duration": TrendStats(
            count=100,
            min=5.0,
            max=3000.0,
            avg=400.0,
            percentiles={50.0: 300.0, 90.0: 1800.0, 95.0: 2500.0, 99.0: 2900.0},
        ),
        "total_errors": 3,
        "error_rate": 0.03,
        "iterations": 50,
        "data_received": 4096,
    }
    fields.update(overrides)
    return MetricSnapshot(**fields)


# =========================================================================
# Expression parsing
# =========================================================================


class TestParseExpression:
    def test_percentile(self):
        expr = parse_expression("p(95)<2000")
        assert expr.aggregation.kind is AggregationKind.PERCENTILE
        assert expr.aggregation.percentile == 95.0
        assert expr.comparison is Comparison.LT
        assert expr.value == 2000.0
        assert expr.source == "p(95)<2000"

    def test_fractional_percentile(self):
        assert parse_expression("p(99.9) <= 150").aggregation.percentile == 99.9

    @pytest.mark.parametrize(
        ("text", "kind", "op"),
        [
            ("avg<200", AggregationKind.AVG, Comparison.LT),
            ("min >= 1", AggregationKind.MIN, Comparison.GE),
            ("max>10", AggregationKind.MAX, Comparison.GT),
            ("med==3", AggregationKind.MED, Comparison.EQ),
            ("rate<0.01", AggregationKind.RATE, Comparison.LT),
            ("count != 0", AggregationKind.COUNT, Comparison.NE),
            ("value<=50", AggregationKind.VALUE, Comparison.LE),
        ],
    )
    def test_aggregations_and_operators(self, text, kind, op):
        expr = parse_expression(text)
        assert expr.aggregation.kind is kind
        assert expr.comparison is op

    def test_whitespace_tolerated(self):
        expr = parse_expression("  p( 90 )   <   1e3 ")
        assert expr.aggregation.percentile == 90.0
        assert expr.value == 1000.0

    @pytest.mark.parametrize(
        "text",
        ["", "p95<2000", "p(95)", "avg<", "avg<<3", "mean<3", "p(95)<2s", "rate < abc"],
    )
    def test_malformed(self, text):
        with pytest.raises(ConfigError, match="Invalid threshold expression"):
            parse_expression(text)

    def test_percentile_out_of_range(self):
        with pytest.raises(ConfigError, match="between 0 and 100"):
            parse_expression("p(150)<3")

    def test_check(self):
        expr = parse_expression("p(95)<2000")
        assert expr.check(1999.9)
        assert not expr.check(2000.0)
        assert not expr.check(2500.0)

    def test_str(self):
        assert str(parse_expression("p(95) < 2000")) == "p(95)<2000"


class TestParseSelector:
    def test_plain_metric(self):
        selector = parse_selector("http_req_duration")
        assert selector.metric == "http_req_duration"
        assert selector.tags == ()
        assert selector.tag("name") is None

    def test_tags(self):
        selector = parse_selector("http_req_duration{name:Home Page}")
        assert selector.tag("name") == "Home Page"
        assert str(selector) == "http_req_duration{name:Home Page}"

    @pytest.mark.parametrize("text", ["", "1metric", "http_reqs{name}", "http_reqs{:x}", "a{b:c"])
    def test_malformed(self, text):
        with pytest.raises(ConfigError):
            parse_selector(text)


# =========================================================================
# Evaluator
# =========================================================================


class TestThresholdEvaluatorValidation:
    def test_unknown_metric(self):
        with pytest.raises(ConfigError, match="Unknown metric 'latency'"):
            ThresholdEvaluator({"latency": ["avg<1"]})

    def test_aggregation_must_fit_metric_kind(self):
        with pytest.raises(ConfigError, match="not valid for rate metric"):
            ThresholdEvaluator({"http_req_failed": ["p(95)<1"]})
        with pytest.raises(ConfigError, match="not valid for trend metric"):
            ThresholdEvaluator({"http_req_duration": ["rate<1"]})
        with pytest.raises(ConfigError, match="not valid for gauge metric"):
            ThresholdEvaluator({"vus": ["count<1"]})

    def test_name_tag_only_on_http_metrics(self):
        with pytest.raises(ConfigError, match="Unsupported tag filter"):
            ThresholdEvaluator({"checks{name:x}": ["rate>0.9"]})
        with pytest.raises(ConfigError, match="Unsupported tag filter"):
            ThresholdEvaluator({"http_req_duration{method:GET}": ["avg<1"]})

    def test_required_percentiles(self):
        evaluator = ThresholdEvaluator(
            {
                "http_req_duration": ["p(95)<2000", "p(99.9)<5000", "avg<100"],
                "iteration_duration": ["p(80)<3000"],
            }
        )
        assert evaluator.required_percentiles() == {95.0, 99.9, 80.0}

    def test_invalid_delay(self):
        with pytest.raises(ConfigError, match="delay_abort_eval"):
            ThresholdEvaluator(
                {"http_req_failed": [Threshold("rate<0.1", delay_abort_eval="later")]}
            )


class TestThresholdEvaluator:
    def test_p95_breach_fails(self):
        """p95 of 2500 ms against p(95)<2000 fails."""
        evaluator = ThresholdEvaluator({"http_req_duration": ["p(95)<2000"]})
        report = evaluator.evaluate(_snapshot())
        assert not report.passed
        [result] = report.results
        assert result.metric == "http_req_duration"
        assert result.expression == "p(95)<2000"
        assert result.observed == 2500.0
        assert report.failures == [result]

    def test_p95_within_bound_passes(self):
        evaluator = ThresholdEvaluator({"http_req_duration": ["p(95)<3000"]})
        assert evaluator.evaluate(_snapshot()).passed

    def test_logical_and(self):
        evaluator = ThresholdEvaluator(
            {
                "http_req_duration": ["avg<500", "p(95)<2000"],
                "http_req_failed": ["rate<0.05"],
            }
        )
        report = evaluator.evaluate(_snapshot())
        assert [r.passed for r in report.results] == [True, False, True]
        assert not report.passed

    def test_empty_evaluator_passes(self):
        evaluator = ThresholdEvaluator({})
        assert len(evaluator) == 0
        assert evaluator.evaluate(_snapshot()).passed

    @pytest.mark.parametrize(
        ("metric", "expression", "observed"),
        [
            ("http_req_duration", "med<1", 300.0),
            ("http_req_duration", "min<1", 5.0),
            ("http_req_duration", "max<1", 3000.0),
            ("http_req_failed", "rate<0", 0.03),
            ("http_reqs", "count<0", 100.0),
            ("http_reqs", "rate<0", 10.0),
            ("iterations", "count<0", 50.0),
            ("iterations", "rate<0", 5.0),
            ("data_received", "count<0", 4096.0),
            ("vus", "value<0", 5.0),
            ("vus_max", "value<0", 8.0),
        ],
    )
    def test_observed_values(self, metric, expression, observed):
        evaluator = ThresholdEvaluator({metric: [expression]})
        [result] = evaluator.evaluate(_snapshot()).results
        assert result.observed == pytest.approx(observed)

    def test_checks_rate(self):
        snapshot = _snapshot(
            checks_passed=9,
            checks_failed=1,
            checks={"status equals 200": CheckMetrics("status equals 200", 9, 1)},
        )
        evaluator = ThresholdEvaluator({"checks": ["rate>0.95"]})
        [result] = evaluator.evaluate(snapshot).results
        assert result.observed == pytest.approx(0.9)
        assert not result.passed

    def test_no_samples_read_as_zero(self):
        empty = MetricSnapshot(timestamp=0.0, elapsed_seconds=1.0, active_users=0)
        evaluator = ThresholdEvaluator(
            {"http_req_duration": ["p(95)<2000"], "checks": ["rate>0.5"]}
        )
        report = evaluator.evaluate(empty)
        assert [r.observed for r in report.results] == [0.0, 0.0]
        assert [r.passed for r in report.results] == [True, False]

    def test_endpoint_sub_metric(self):
        snapshot = _snapshot(
            endpoints={
                "Home": EndpointMetrics(
                    name="Home",
                    request_count=40,
                    error_count=4,
                    error_rate=0.1,
                    requests_per_second=4.0,
                    duration=TrendStats(count=40, avg=90.0, percentiles={95.0: 120.0}),
                )
            }
        )
        evaluator = ThresholdEvaluator(
            {
                "http_req_duration{name:Home}": ["p(95)<200"],
                "http_req_failed{name:Home}": ["rate<0.05"],
                "http_reqs{name:Home}": ["count>=40"],
                "http_reqs{name:Missing}": ["count==0"],
            }
        )
        report = evaluator.evaluate(snapshot)
        assert [r.observed for r in report.results] == [120.0, 0.1, 40.0, 0.0]
        assert [r.passed for r in report.results] == [True, False, True, True]
        assert report.results[0].metric == "http_req_duration{name:Home}"


class TestShouldAbort:
    def test_abort_on_fail(self):
        evaluator = ThresholdEvaluator(
            {"http_req_duration": [Threshold("p(95)<2000", abort_on_fail=True)]}
        )
        report = evaluator.evaluate(_snapshot())
        assert evaluator.should_abort(report, elapsed_seconds=1.0)

    def test_no_abort_without_flag(self):
        evaluator = ThresholdEvaluator({"http_req_duration": ["p(95)<2000"]})
        report = evaluator.evaluate(_snapshot())
        assert not evaluator.should_abort(report, elapsed_seconds=100.0)

    def test_delay_abort_eval(self):
        evaluator = ThresholdEvaluator(
            {
                "http_req_duration": [
                    Threshold("p(95)<2000", abort_on_fail=True, delay_abort_eval="1m")
                ]
            }
        )
        report = evaluator.evaluate(_snapshot())
        assert report.results[0].abort_on_fail
        assert not evaluator.should_abort(report, elapsed_seconds=30.0)
        assert evaluator.should_abort(report, elapsed_seconds=60.0)

    def test_passing_threshold_never_aborts(self):
        evaluator = ThresholdEvaluator(
            {"http_req_duration": [Threshold("p(95)<3000", abort_on_fail=True)]}
        )
        report = evaluator.evaluate(_snapshot())
        assert not evaluator.should_abort(report, elapsed_seconds=500.0)
