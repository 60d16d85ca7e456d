"""Constant concurrency pattern: a fixed number of virtual users."""

from __future__ import annotations

from rampforge._internal.durations import format_duration
from rampforge._internal.errors import ConfigError
from rampforge.patterns.base import LoadPattern, _validate_positive


class ConstantPattern(LoadPattern):
    """Hold a fixed number of virtual users for the whole duration.

    Args:
        users: Number of concurrent virtual users.  Must be >= 1.
        duration: Total duration in seconds.  Must be > 0.

    Raises:
        ConfigError: If *users* < 1 or *duration* is not positive.

    Example::

        pattern = ConstantPattern(users=100, duration=60.0)
        for _t, n in pattern.iter_concurrency():
            assert n == 100
    """

    def __init__(self, users: int, duration: float) -> None:
        if users < 1:
            msg = f"users must be >= 1, got {users}"
            raise ConfigError(msg)
        _validate_positive(duration, "duration")
        self._users = users
        self._duration = duration

    @property
    def total_duration(self) -> float:
        return self._duration

    def target_at(self, elapsed: float) -> int:  # noqa: ARG002
        return self._users

    def describe(self) -> str:
        return f"Constant: {self._users} users for {format_duration(self._duration)}"
