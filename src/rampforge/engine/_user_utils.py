"""Helpers shared by the virtual user loop and the worker pool."""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rampforge._internal.types import ThinkTime
    from rampforge.dsl.scenario import TaskDefinition


def pick_weighted_task(tasks: list[TaskDefinition]) -> TaskDefinition:
    """Select a task using weighted-random distribution.

    Args:
        tasks: List of task definitions to choose from.

    Returns:
        The selected TaskDefinition.
    """
    if len(tasks) == 1:
        return tasks[0]
    weights = [t.weight for t in tasks]
    return random.choices(tasks, weights=weights, k=1)[0]  # noqa: S311


async def wait_or_timeout(event: asyncio.Event, timeout: float) -> bool:
    """Wait up to *timeout* seconds for *event*.

    Returns:
        True if the event was set before the timeout.
    """
    if event.is_set():
        return True
    if timeout <= 0:
        return False
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
    except TimeoutError:
        return False
    return True


async def think(think_time: ThinkTime, retire: asyncio.Event) -> None:
    """Pause for a random time in *think_time*, ending early on *retire*.

    Always yields to the event loop at least once, so a task that fails
    instantly cannot starve other virtual users.
    """
    low, high = think_time
    delay = random.uniform(low, high) if high > 0 else 0.0  # noqa: S311
    if delay <= 0:
        await asyncio.sleep(0)
        return
    await wait_or_timeout(retire, delay)
