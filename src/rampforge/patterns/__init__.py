"""Concurrency patterns for RampForge executors.

A pattern maps elapsed time to a target number of virtual users.  All
patterns implement :class:`LoadPattern`; :meth:`LoadPattern.target_at` gives
the target at any instant and :meth:`LoadPattern.iter_concurrency` yields
``(elapsed_seconds, target_concurrency)`` ticks.
"""

from __future__ import annotations

from rampforge.patterns.base import LoadPattern
from rampforge.patterns.constant import ConstantPattern
from rampforge.patterns.stages import RampingStagesPattern, Stage

__all__ = [
    "ConstantPattern",
    "LoadPattern",
    "RampingStagesPattern",
    "Stage",
]
