"""Thread-safe in-memory time series of per-tick metric snapshots."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rampforge.metrics.models import MetricSnapshot


class MetricStore:
    """Ordered, lock-protected list of ``MetricSnapshot`` objects.

    The runner appends one snapshot per tick and hands the whole series,
    plus its peak request rate, to the final result.
    """

    def __init__(self) -> None:
        self._snapshots: list[MetricSnapshot] = []
        self._lock = threading.Lock()

    def append(self, snapshot: MetricSnapshot) -> None:
        with self._lock:
            self._snapshots.append(snapshot)

    def get_all(self) -> list[MetricSnapshot]:
        """Return a copy of all stored snapshots in chronological order."""
        with self._lock:
            return list(self._snapshots)

    def peak_requests_per_second(self) -> float:
        """Return the highest per-tick request rate seen so far."""
        with self._lock:
            return max((s.requests_per_second for s in self._snapshots), default=0.0)
