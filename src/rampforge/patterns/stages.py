"""Ramping stages pattern: piecewise-linear concurrency between stage targets."""

from __future__ import annotations

import math
from dataclasses import dataclass
from itertools import accumulate
from typing import TYPE_CHECKING

from rampforge._internal.durations import format_duration, parse_duration
from rampforge._internal.errors import ConfigError
from rampforge.patterns.base import LoadPattern, _validate_non_negative, _validate_positive

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rampforge._internal.types import DurationLike


@dataclass(frozen=True)
class Stage:
    """One ramping segment: reach *target* users over *duration*.

    Attributes:
        target: Concurrency at the end of the stage.  Must be >= 0.
        duration: Stage length.  Accepts seconds or a duration string such
            as ``"1m"``; always stored as seconds.  Must be > 0.
    """

    target: int
    duration: float

    def __init__(self, target: int, duration: DurationLike) -> None:
        if isinstance(target, bool) or not isinstance(target, int):
            msg = f"stage target must be an integer, got {target!r}"
            raise ConfigError(msg)
        _validate_non_negative(target, "stage target")
        seconds = parse_duration(duration, "stage duration")
        _validate_positive(seconds, "stage duration")
        object.__setattr__(self, "target", target)
        object.__setattr__(self, "duration", seconds)

    @classmethod
    def parse(cls, text: str) -> Stage:
        """Build a stage from ``"<target>:<duration>"``, e.g. ``"50:1m"``.

        Raises:
            ConfigError: If the text is not in that form.
        """
        target_str, sep, duration_str = text.partition(":")
        if not sep:
            msg = f"Invalid stage {text!r} (expected '<target>:<duration>', e.g. '50:1m')"
            raise ConfigError(msg)
        try:
            target = int(target_str.strip())
        except ValueError:
            msg = f"Invalid stage target in {text!r}"
            raise ConfigError(msg) from None
        return cls(target=target, duration=duration_str.strip())


class RampingStagesPattern(LoadPattern):
    """Ramp linearly through an ordered list of stages.

    Stage *k* interpolates from the previous stage's target (or
    *start_users* for the first stage) to its own target over its
    duration.  At the end of stage *k* the concurrency is exactly stage
    *k*'s target.  A final stage with ``target=0`` ramps every user down.

    Args:
        stages: Ordered stages.  Must not be empty.
        start_users: Concurrency at ``t=0``.  Must be >= 0.

    Raises:
        ConfigError: If *stages* is empty or *start_users* is negative.

    Example::

        pattern = RampingStagesPattern(
            [Stage(50, "1m"), Stage(50, "1m"), Stage(0, "1m")],
        )
        pattern.target_at(30.0)  # 25
        pattern.target_at(90.0)  # 50
        pattern.target_at(180.0)  # 0
    """

    def __init__(self, stages: Sequence[Stage], start_users: int = 0) -> None:
        if not stages:
            msg = "stages must contain at least one stage"
            raise ConfigError(msg)
        _validate_non_negative(start_users, "start_users")
        self._stages = tuple(stages)
        self._start_users = start_users
        self._boundaries = list(accumulate(s.duration for s in self._stages))

    @property
    def stages(self) -> tuple[Stage, ...]:
        """The configured stages."""
        return self._stages

    @property
    def start_users(self) -> int:
        """Concurrency at ``t=0``."""
        return self._start_users

    @property
    def total_duration(self) -> float:
        return self._boundaries[-1]

    def breakpoints(self) -> list[float]:
        """Return the cumulative end time of every stage."""
        return list(self._boundaries)

    def target_at(self, elapsed: float) -> int:
        if elapsed <= 0:
            return self._start_users

        segment_start = 0.0
        from_users = self._start_users
        for stage, segment_end in zip(self._stages, self._boundaries, strict=True):
            if elapsed < segment_end:
                fraction = (elapsed - segment_start) / stage.duration
                users = from_users + (stage.target - from_users) * fraction
                # Round half up.
                return max(math.floor(users + 0.5), 0)
            segment_start = segment_end
            from_users = stage.target
        return self._stages[-1].target

    def describe(self) -> str:
        """Return e.g. ``"Stages: 0 -> 50 (1m) -> 50 (1m) -> 0 (1m)"``."""
        parts = [str(self._start_users)]
        parts.extend(f"{s.target} ({format_duration(s.duration)})" for s in self._stages)
        return "Stages: " + " -> ".join(parts)
