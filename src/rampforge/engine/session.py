"""Scenario session: one executor's lifecycle from start delay to graceful stop."""

from __future__ import annotations

import asyncio
import time
from enum import Enum, auto
from typing import TYPE_CHECKING

from rampforge._internal.errors import EngineError
from rampforge._internal.logging import get_logger
from rampforge.engine._user_utils import wait_or_timeout
from rampforge.engine.pool import WorkerPool
from rampforge.engine.scheduler import Scheduler

if TYPE_CHECKING:
    from rampforge.dsl.options import ScenarioConfig
    from rampforge.dsl.scenario import ScenarioDefinition
    from rampforge.engine.context import RunContext

logger = get_logger("engine.session")


class SessionState(Enum):
    """State machine for a scenario session."""

    CREATED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


class ScenarioSession:
    """Drives one scenario's worker pool along its scheduler.

    State machine: CREATED -> STARTING -> RUNNING -> STOPPING -> COMPLETED
                                                  -> FAILED (on error)

    Args:
        name: Scenario name from ``Options.scenarios``.
        config: Executor configuration.
        definition: Resolved scenario the virtual users run.
        context: Run-wide shared state.
        tick_interval: Seconds between concurrency adjustments.
        stop_event: Set by the runner to end the scenario early.
    """

    def __init__(
        self,
        name: str,
        config: ScenarioConfig,
        definition: ScenarioDefinition,
        context: RunContext,
        *,
        tick_interval: float = 0.5,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.name = name
        self._config = config
        self._definition = definition
        self._context = context
        self._pattern = config.build_pattern()
        self._scheduler = Scheduler(self._pattern, tick_interval)
        self._stop_event = stop_event or asyncio.Event()
        self._pool = WorkerPool(
            definition,
            context,
            name,
            graceful_ramp_down=float(config.graceful_ramp_down),
        )
        self._state = SessionState.CREATED

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    def describe(self) -> str:
        """Return e.g. ``"load_home: Stages: 0 -> 50 (1m) -> 0 (1m)"``."""
        return f"{self._definition.name}: {self._pattern.describe()}"

    def stop(self) -> None:
        """Request an early stop; the pool then gets its graceful stop period."""
        if self._state in (SessionState.STARTING, SessionState.RUNNING):
            logger.info("Scenario %s: stop requested", self.name)
        self._stop_event.set()

    async def run(self) -> None:
        """Run the scenario to completion.

        Raises:
            EngineError: If scheduling or scaling fails.
        """
        self._state = SessionState.STARTING
        start_delay = float(self._config.start_time)
        if start_delay > 0:
            logger.info("Scenario %s starts in %.1fs", self.name, start_delay)
            if await wait_or_timeout(self._stop_event, start_delay):
                self._state = SessionState.COMPLETED
                return

        logger.info(
            "Starting scenario %s: executor=%s, entry=%s, peak=%d VUs, %s",
            self.name,
            self._config.executor,
            self._definition.name,
            self._pattern.max_concurrency(),
            self._pattern.describe(),
        )

        self._state = SessionState.RUNNING
        start = time.monotonic()

        try:
            for command in self._scheduler.iter_commands():
                deadline = start + command.elapsed_seconds
                if await wait_or_timeout(self._stop_event, deadline - time.monotonic()):
                    break

                self._pool.scale_to(command.target_concurrency)
                self._context.report_active(self.name, self._pool.active_count)
                logger.debug(
                    "Scenario %s tick %.1fs: target=%d (%s %d), draining=%d",
                    self.name,
                    command.elapsed_seconds,
                    command.target_concurrency,
                    command.direction.name,
                    command.delta,
                    self._pool.draining_count,
                )
        except Exception as exc:
            self._state = SessionState.FAILED
            logger.exception("Scenario %s failed", self.name)
            msg = f"Scenario {self.name} failed"
            raise EngineError(msg) from exc
        finally:
            if self._state is not SessionState.FAILED:
                self._state = SessionState.STOPPING
            await self._pool.stop(float(self._config.graceful_stop))
            self._context.report_active(self.name, 0)

        self._state = SessionState.COMPLETED
        logger.info(
            "Scenario %s completed after %.1fs",
            self.name,
            time.monotonic() - start,
        )
