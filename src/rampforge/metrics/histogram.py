"""HDR histogram wrapper for streaming percentile estimation.

Wraps ``hdrh.histogram.HdrHistogram`` with a millisecond API.  Values are
stored as integer microseconds, so every percentile is exact to within
the configured number of significant digits (0.1% for the default of 3).
"""

from __future__ import annotations

from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

# Range: 1 microsecond to 1 hour (in microseconds)
_LOWEST_TRACKABLE_US = 1
_HIGHEST_TRACKABLE_US = 3_600_000_000
_SIGNIFICANT_DIGITS = 3


class LatencyHistogram:
    """Latency histogram with a millisecond interface.

    Values outside the trackable range are clamped rather than dropped, so
    :attr:`count` always equals the number of :meth:`record` calls.

    Attributes:
        lowest_us: Lowest trackable value in microseconds.
        highest_us: Highest trackable value in microseconds.
    """

    def __init__(
        self,
        lowest_us: int = _LOWEST_TRACKABLE_US,
        highest_us: int = _HIGHEST_TRACKABLE_US,
        significant_digits: int = _SIGNIFICANT_DIGITS,
    ) -> None:
        self.lowest_us = lowest_us
        self.highest_us = highest_us
        self._histogram: HdrHistogram = HdrHistogram(  # type: ignore[no-any-unimported]
            lowest_us, highest_us, significant_digits
        )

    @property
    def count(self) -> int:
        """Number of recorded values."""
        return int(self._histogram.total_count)

    def record(self, value_ms: float) -> None:
        """Record one value in milliseconds, clamped to the trackable range."""
        value_us = int(round(value_ms * 1000))
        value_us = max(self.lowest_us, min(value_us, self.highest_us))
        self._histogram.record_value(value_us)

    def percentile(self, percentile: float) -> float:
        """Return the value at *percentile* (0-100) in ms, or 0.0 if empty."""
        if self.count == 0:
            return 0.0
        return float(self._histogram.get_value_at_percentile(percentile)) / 1000.0

    def min(self) -> float:
        """Return the smallest recorded value in ms, or 0.0 if empty."""
        if self.count == 0:
            return 0.0
        return float(self._histogram.get_min_value()) / 1000.0

    def max(self) -> float:
        """Return the largest recorded value in ms, or 0.0 if empty."""
        if self.count == 0:
            return 0.0
        return float(self._histogram.get_max_value()) / 1000.0

    def mean(self) -> float:
        """Return the mean of recorded values in ms, or 0.0 if empty."""
        if self.count == 0:
            return 0.0
        return float(self._histogram.get_mean_value()) / 1000.0
