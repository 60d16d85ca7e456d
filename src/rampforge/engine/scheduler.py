"""Stage scheduler that converts LoadPattern output into scale commands."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from rampforge.patterns.base import _validate_positive

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rampforge.patterns.base import LoadPattern


class ScaleDirection(Enum):
    """Direction of a concurrency scale event."""

    UP = auto()
    DOWN = auto()
    HOLD = auto()


@dataclass(frozen=True)
class ScaleCommand:
    """A command to adjust the number of active virtual users.

    Attributes:
        elapsed_seconds: Time offset from the scenario start.
        target_concurrency: Desired number of active virtual users.
        direction: Whether this is scaling up, down, or holding steady.
        delta: Absolute change in virtual user count (always >= 0).
    """

    elapsed_seconds: float
    target_concurrency: int
    direction: ScaleDirection
    delta: int


class Scheduler:
    """Turns a pattern's concurrency timeline into ScaleCommands.

    One command is emitted per tick of ``LoadPattern.iter_concurrency()``,
    which includes every stage boundary, so the pool always reaches each
    stage's exact target.  The first command is computed against zero
    users.

    Args:
        pattern: The concurrency curve to follow.
        tick_interval: Seconds between regular ticks. Defaults to 0.5.

    Raises:
        ConfigError: If *tick_interval* is not positive.
    """

    def __init__(self, pattern: LoadPattern, tick_interval: float = 0.5) -> None:
        _validate_positive(tick_interval, "tick_interval")
        self._pattern = pattern
        self._tick_interval = tick_interval

    @property
    def pattern(self) -> LoadPattern:
        return self._pattern

    @property
    def duration_seconds(self) -> float:
        return self._pattern.total_duration

    def target_at(self, elapsed: float) -> int:
        """Return the pattern's target concurrency at *elapsed* seconds."""
        return self._pattern.target_at(elapsed)

    def iter_commands(self) -> Iterator[ScaleCommand]:
        """Yield a ScaleCommand for every tick of the pattern.

        Yields:
            Commands in ascending ``elapsed_seconds`` order, ending at the
            pattern's total duration.
        """
        prev_concurrency = 0
        for elapsed, target in self._pattern.iter_concurrency(self._tick_interval):
            delta = target - prev_concurrency
            if delta > 0:
                direction = ScaleDirection.UP
            elif delta < 0:
                direction = ScaleDirection.DOWN
            else:
                direction = ScaleDirection.HOLD

            yield ScaleCommand(
                elapsed_seconds=elapsed,
                target_concurrency=target,
                direction=direction,
                delta=abs(delta),
            )
            prev_concurrency = target

    @property
    def total_ticks(self) -> int:
        """Return the number of commands :meth:`iter_commands` yields."""
        return sum(1 for _ in self._pattern.iter_concurrency(self._tick_interval))
