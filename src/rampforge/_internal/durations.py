"""Parsing and formatting of human duration strings such as ``"1m30s"``."""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

from rampforge._internal.errors import ConfigError

if TYPE_CHECKING:
    from rampforge._internal.types import DurationLike

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_FULL_RE = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|s|m|h))+")


def parse_duration(value: DurationLike, name: str = "duration") -> float:
    """Convert a duration into seconds.

    Accepts a number of seconds or a string made of one or more
    ``<number><unit>`` parts, where unit is ``ms``, ``s``, ``m`` or ``h``.
    A bare numeric string is read as seconds.

    Args:
        value: The duration to parse.
        name: Field name used in error messages.

    Returns:
        The duration in seconds.

    Raises:
        ConfigError: If the value is negative, not finite or cannot be parsed.

    Example::

        parse_duration("1m30s")  # 90.0
        parse_duration("500ms")  # 0.5
        parse_duration(45)  # 45.0
    """
    if isinstance(value, bool):
        msg = f"{name} must be a number of seconds or a duration string, got {value!r}"
        raise ConfigError(msg)

    if isinstance(value, int | float):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(" ", "")
        seconds = _parse_text(text, name)
    else:
        msg = f"{name} must be a number of seconds or a duration string, got {value!r}"
        raise ConfigError(msg)

    if not math.isfinite(seconds):
        msg = f"{name} must be a finite duration, got {value!r}"
        raise ConfigError(msg)
    if seconds < 0:
        msg = f"{name} must be non-negative, got {value!r}"
        raise ConfigError(msg)
    return seconds


def _parse_text(text: str, name: str) -> float:
    try:
        return float(text)
    except ValueError:
        pass

    if not text or _FULL_RE.fullmatch(text) is None:
        msg = f"Invalid {name}: {text!r} (expected e.g. '30s', '1m30s', '500ms')"
        raise ConfigError(msg)

    return sum(float(amount) * _UNIT_SECONDS[unit] for amount, unit in _PART_RE.findall(text))


def format_duration(seconds: float) -> str:
    """Render seconds compactly, e.g. ``90.0 -> "1m30s"``.

    Args:
        seconds: Non-negative duration in seconds.

    Returns:
        A duration string that :func:`parse_duration` reads back.
    """
    if seconds < 1 and seconds != 0:
        return f"{seconds * 1000:g}ms"

    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{int(hours)}h")
    if minutes:
        parts.append(f"{int(minutes)}m")
    if secs or not parts:
        parts.append(f"{secs:g}s")
    return "".join(parts)
