"""Run-wide state shared by every scenario session of one load test."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rampforge._internal.config import RampForgeConfig

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rampforge.metrics.aggregator import MetricAggregator


@dataclass
class RunContext:
    """State handed explicitly to sessions, pools and virtual users.

    Attributes:
        aggregator: Sink for every request, check and iteration sample.
        config: Request timeout, connection pool size and intervals.
    """

    aggregator: MetricAggregator
    config: RampForgeConfig = field(default_factory=RampForgeConfig)
    _vu_ids: Iterator[int] = field(default_factory=lambda: itertools.count(1), repr=False)
    _active_by_scenario: dict[str, int] = field(default_factory=dict, repr=False)

    def next_vu_id(self) -> int:
        """Return a virtual user id that is unique within the run."""
        return next(self._vu_ids)

    def report_active(self, scenario: str, count: int) -> None:
        """Record *count* active users for *scenario* and update the run total."""
        self._active_by_scenario[scenario] = count
        self.aggregator.set_active_users(self.active_users)

    @property
    def active_users(self) -> int:
        return sum(self._active_by_scenario.values())
