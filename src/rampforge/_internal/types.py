"""Shared type aliases for RampForge."""

from __future__ import annotations

# Think time range (min_seconds, max_seconds).
ThinkTime = tuple[float, float]

# A duration given either as seconds or as a string such as "1m30s".
DurationLike = float | int | str
