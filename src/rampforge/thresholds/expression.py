"""Threshold expression and metric selector parsing.

Threshold strings such as ``"p(95)<2000"`` are parsed once, at load time,
into a small typed tree (:class:`ThresholdExpression`) so evaluation never
interprets free-form text.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import TYPE_CHECKING

from rampforge._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Callable

_EXPRESSION_RE = re.compile(
    r"""
    ^\s*
    (?P<agg>avg|min|max|med|rate|count|value|p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\))
    \s*
    (?P<op><=|>=|==|!=|<|>)
    \s*
    (?P<value>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
    \s*$
    """,
    re.VERBOSE,
)

_SELECTOR_RE = re.compile(r"^(?P<metric>[A-Za-z_][A-Za-z0-9_]*)(?:\{(?P<tags>[^{}]*)\})?$")


class Comparison(Enum):
    """Comparison operator of a threshold expression."""

    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    EQ = "=="
    NE = "!="

    def apply(self, observed: float, bound: float) -> bool:
        """Return ``observed <op> bound``."""
        return _OPERATORS[self](observed, bound)


_OPERATORS: dict[Comparison, Callable[[float, float], bool]] = {
    Comparison.LT: operator.lt,
    Comparison.LE: operator.le,
    Comparison.GT: operator.gt,
    Comparison.GE: operator.ge,
    Comparison.EQ: operator.eq,
    Comparison.NE: operator.ne,
}


class AggregationKind(StrEnum):
    """Which statistic of a metric a threshold looks at."""

    AVG = "avg"
    MIN = "min"
    MAX = "max"
    MED = "med"
    PERCENTILE = "p"
    RATE = "rate"
    COUNT = "count"
    VALUE = "value"


@dataclass(frozen=True)
class Aggregation:
    """A statistic, e.g. ``avg`` or ``p(95)``.

    Attributes:
        kind: The statistic.
        percentile: Percentile in 0-100; set only for ``PERCENTILE``.
    """

    kind: AggregationKind
    percentile: float | None = None

    def __str__(self) -> str:
        if self.kind is AggregationKind.PERCENTILE:
            return f"p({self.percentile:g})"
        return str(self.kind)


@dataclass(frozen=True)
class ThresholdExpression:
    """Parsed form of a threshold string such as ``"p(95)<2000"``.

    Attributes:
        aggregation: Statistic to compute from the metric.
        comparison: Operator applied as ``statistic <op> value``.
        value: Right-hand side bound.
        source: The original text, used in reports.
    """

    aggregation: Aggregation
    comparison: Comparison
    value: float
    source: str

    def check(self, observed: float) -> bool:
        """Return True if *observed* satisfies the expression."""
        return self.comparison.apply(observed, self.value)

    def __str__(self) -> str:
        return f"{self.aggregation}{self.comparison.value}{self.value:g}"


@dataclass(frozen=True)
class MetricSelector:
    """A metric name with optional tag filters, e.g. ``http_req_duration{name:Home}``.

    Attributes:
        metric: Built-in metric name.
        tags: Sorted ``(key, value)`` tag filters.
    """

    metric: str
    tags: tuple[tuple[str, str], ...] = ()

    def tag(self, key: str) -> str | None:
        """Return the value of tag *key*, or None if not filtered on."""
        return dict(self.tags).get(key)

    def __str__(self) -> str:
        if not self.tags:
            return self.metric
        rendered = ",".join(f"{k}:{v}" for k, v in self.tags)
        return f"{self.metric}{{{rendered}}}"


def parse_expression(text: str) -> ThresholdExpression:
    """Parse a threshold expression.

    Grammar: ``<aggregation> <operator> <number>`` where aggregation is one
    of ``avg``, ``min``, ``max``, ``med``, ``p(N)``, ``rate``, ``count``,
    ``value`` and operator one of ``<``, ``<=``, ``>``, ``>=``, ``==``,
    ``!=``.  Whitespace between tokens is ignored.

    Args:
        text: The expression, e.g. ``"p(95)<2000"``.

    Returns:
        The parsed expression.

    Raises:
        ConfigError: If *text* does not match the grammar or the percentile
            is outside 0-100.
    """
    match = _EXPRESSION_RE.match(text)
    if match is None:
        msg = (
            f"Invalid threshold expression {text!r} "
            f"(expected e.g. 'p(95)<2000', 'avg<=300', 'rate<0.01')"
        )
        raise ConfigError(msg)

    pct = match.group("pct")
    if pct is not None:
        percentile = float(pct)
        if not 0.0 <= percentile <= 100.0:
            msg = f"Percentile in {text!r} must be between 0 and 100"
            raise ConfigError(msg)
        aggregation = Aggregation(AggregationKind.PERCENTILE, percentile)
    else:
        aggregation = Aggregation(AggregationKind(match.group("agg")))

    return ThresholdExpression(
        aggregation=aggregation,
        comparison=Comparison(match.group("op")),
        value=float(match.group("value")),
        source=text.strip(),
    )


def parse_selector(text: str) -> MetricSelector:
    """Parse ``metric`` or ``metric{key:value,...}``.

    Args:
        text: Metric selector text.

    Returns:
        The parsed selector.

    Raises:
        ConfigError: If the selector is malformed.
    """
    match = _SELECTOR_RE.match(text.strip())
    if match is None:
        msg = f"Invalid metric selector {text!r} (expected e.g. 'http_req_duration{{name:Home}}')"
        raise ConfigError(msg)

    tags: dict[str, str] = {}
    raw_tags = match.group("tags")
    if raw_tags is not None:
        for part in raw_tags.split(","):
            key, sep, value = part.partition(":")
            key, value = key.strip(), value.strip()
            if not sep or not key or not value:
                msg = f"Invalid tag filter {part!r} in metric selector {text!r}"
                raise ConfigError(msg)
            tags[key] = value

    return MetricSelector(metric=match.group("metric"), tags=tuple(sorted(tags.items())))
