"""Abstract base class for all concurrency patterns."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from rampforge._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator

# Tick times closer than this to a breakpoint are merged into it.
_TIME_EPSILON = 1e-9


class LoadPattern(ABC):
    """Abstract base for all concurrency patterns.

    A pattern defines how the target concurrency (number of virtual users)
    changes over a fixed total duration.  Subclasses implement
    :meth:`target_at` as a pure function of elapsed time; the base class
    turns that into a tick stream via :meth:`iter_concurrency`.

    Example::

        pattern = RampingStagesPattern([Stage(target=100, duration="1m")])
        for elapsed, users in pattern.iter_concurrency(tick_interval=10.0):
            print(f"t={elapsed:.1f}s -> {users} users")
    """

    @property
    @abstractmethod
    def total_duration(self) -> float:
        """Total length of the pattern in seconds."""

    @abstractmethod
    def target_at(self, elapsed: float) -> int:
        """Return the target concurrency at *elapsed* seconds from the start.

        Args:
            elapsed: Seconds since the pattern started.  Values past
                :attr:`total_duration` return the final target.

        Returns:
            Non-negative number of virtual users.
        """

    @abstractmethod
    def describe(self) -> str:
        """Return a short human-readable summary for logs and report headers."""

    def breakpoints(self) -> list[float]:
        """Return elapsed times that must appear in the tick stream.

        Subclasses override this so that the concurrency at segment
        boundaries is always emitted exactly, regardless of tick interval.
        """
        return []

    def iter_concurrency(self, tick_interval: float = 0.5) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed_seconds, target_concurrency)`` at each tick.

        Ticks fall on every multiple of *tick_interval* and on every
        breakpoint, in ascending order, from ``0`` to :attr:`total_duration`
        inclusive.

        Args:
            tick_interval: Seconds between regular ticks.  Defaults to 0.5.

        Yields:
            ``(elapsed_seconds, target_concurrency)`` tuples.

        Raises:
            ConfigError: If *tick_interval* is not positive.
        """
        _validate_positive(tick_interval, "tick_interval")
        total = self.total_duration

        times: list[float] = []
        i = 0
        while i * tick_interval < total - _TIME_EPSILON:
            times.append(i * tick_interval)
            i += 1
        times.extend(b for b in self.breakpoints() if 0 <= b <= total)
        times.append(total)

        last: float | None = None
        for elapsed in sorted(times):
            if last is not None and elapsed - last <= _TIME_EPSILON:
                continue
            last = elapsed
            yield (elapsed, self.target_at(elapsed))

    def max_concurrency(self) -> int:
        """Return the highest target this pattern ever asks for."""
        candidates = [0.0, self.total_duration, *self.breakpoints()]
        return max(self.target_at(t) for t in candidates)


def _validate_positive(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is not finite and strictly positive.

    Args:
        value: The numeric value to validate.
        name: Parameter name used in the error message.

    Raises:
        ConfigError: If *value* is not > 0 or is infinite or NaN.
    """
    if not math.isfinite(value) or value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ConfigError(msg)


def _validate_non_negative(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is negative.

    Args:
        value: The numeric value to validate.
        name: Parameter name used in the error message.

    Raises:
        ConfigError: If *value* is < 0.
    """
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ConfigError(msg)
