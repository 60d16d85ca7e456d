"""Pass/fail thresholds over aggregated run metrics.

Threshold strings are parsed into :class:`ThresholdExpression` trees up
front; :class:`ThresholdEvaluator` compares them against a
``MetricSnapshot`` and ANDs the outcomes.
"""

from __future__ import annotations

from rampforge.thresholds.evaluator import (
    BUILTIN_METRICS,
    MetricKind,
    ThresholdEvaluator,
    ThresholdReport,
    ThresholdResult,
)
from rampforge.thresholds.expression import (
    Aggregation,
    AggregationKind,
    Comparison,
    MetricSelector,
    ThresholdExpression,
    parse_expression,
    parse_selector,
)

__all__ = [
    "BUILTIN_METRICS",
    "Aggregation",
    "AggregationKind",
    "Comparison",
    "MetricKind",
    "MetricSelector",
    "ThresholdEvaluator",
    "ThresholdExpression",
    "ThresholdReport",
    "ThresholdResult",
    "parse_expression",
    "parse_selector",
]
