"""Worker pool: keeps the number of running virtual users at a target."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from rampforge._internal.logging import get_logger
from rampforge.engine.virtual_user import VirtualUser

if TYPE_CHECKING:
    from rampforge.dsl.scenario import ScenarioDefinition
    from rampforge.engine.context import RunContext

logger = get_logger("engine.pool")


class WorkerPool:
    """Spawns and retires virtual users for one scenario.

    *Active* users run iterations and count toward the target.  *Draining*
    users were retired: they finish their current iteration and exit, or
    are cancelled once *graceful_ramp_down* expires.

    Args:
        definition: Scenario every user runs.
        context: Run-wide shared state.
        scenario_name: Name used for logs and metric tags.
        graceful_ramp_down: Seconds a retired user gets before it is
            cancelled.

    Example::

        pool = WorkerPool(definition, context, "Scenario_1", graceful_ramp_down=30.0)
        pool.scale_to(50)
        ...
        await pool.stop(graceful_stop=30.0)
    """

    def __init__(
        self,
        definition: ScenarioDefinition,
        context: RunContext,
        scenario_name: str,
        graceful_ramp_down: float = 30.0,
    ) -> None:
        self._definition = definition
        self._context = context
        self._scenario_name = scenario_name
        self._graceful_ramp_down = graceful_ramp_down

        # Spawn order; retiring pops from the end.
        self._active: list[tuple[VirtualUser, asyncio.Task[None]]] = []
        self._draining: dict[asyncio.Task[None], asyncio.TimerHandle | None] = {}

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def draining_count(self) -> int:
        return len(self._draining)

    @property
    def size(self) -> int:
        """Active plus draining users."""
        return len(self._active) + len(self._draining)

    def scale_to(self, target: int) -> None:
        """Reconcile the number of active users with *target*.

        Spawning never blocks; new users start on the next loop iteration.
        Excess users are retired most-recent-first and a forced
        cancellation is armed for each of them.

        Args:
            target: Desired number of active users, >= 0.
        """
        current = len(self._active)

        if target > current:
            for _ in range(target - current):
                self._spawn()
        elif target < current:
            loop = asyncio.get_running_loop()
            for _ in range(current - target):
                user, task = self._active.pop()
                user.retire()
                handle = loop.call_later(self._graceful_ramp_down, self._force_cancel, task)
                self._draining[task] = handle

        if target != current:
            logger.debug(
                "%s: %d -> %d active users (%d draining)",
                self._scenario_name,
                current,
                target,
                len(self._draining),
            )

    async def stop(self, graceful_stop: float = 30.0) -> None:
        """Retire every user and wait for them to exit.

        Users still running after *graceful_stop* seconds are cancelled.

        Args:
            graceful_stop: Seconds in-flight iterations get to finish.
        """
        while self._active:
            user, task = self._active.pop()
            user.retire()
            self._draining[task] = None

        tasks = list(self._draining)
        if not tasks:
            return

        _done, pending = await asyncio.wait(tasks, timeout=graceful_stop)
        if pending:
            logger.info(
                "%s: cancelling %d user(s) still running after graceful stop",
                self._scenario_name,
                len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for handle in self._draining.values():
            if handle is not None:
                handle.cancel()
        self._draining.clear()

    def _spawn(self) -> None:
        vu_id = self._context.next_vu_id()
        user = VirtualUser(vu_id, self._definition, self._context, self._scenario_name)
        task = asyncio.create_task(user.run(), name=f"vu-{self._scenario_name}-{vu_id}")
        task.add_done_callback(self._on_done)
        self._active.append((user, task))

    def _force_cancel(self, task: asyncio.Task[None]) -> None:
        if not task.done():
            logger.debug(
                "%s: graceful ramp-down expired, cancelling %s",
                self._scenario_name,
                task.get_name(),
            )
            task.cancel()

    def _on_done(self, task: asyncio.Task[None]) -> None:
        handle = self._draining.pop(task, None)
        if handle is not None:
            handle.cancel()
        # A user that exits on its own (failed setup) leaves the active set.
        self._active = [(u, t) for u, t in self._active if t is not task]

        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "%s: virtual user %s crashed",
                self._scenario_name,
                task.get_name(),
                exc_info=task.exception(),
            )
