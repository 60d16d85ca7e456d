"""One virtual user: a scripted request loop driven by a retire signal."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from rampforge._internal.logging import get_vu_logger
from rampforge.dsl.http_client import HttpClient
from rampforge.engine._user_utils import pick_weighted_task, think

if TYPE_CHECKING:
    from rampforge.dsl.scenario import ScenarioDefinition
    from rampforge.engine.context import RunContext


class VirtualUser:
    """Runs iterations of a scenario until retired.

    Lifecycle: instantiate the scenario class, open an ``HttpClient``, run
    the ``@setup`` hook, then loop (pick a weighted task, run it, record
    the iteration, think) until :meth:`retire` is called.  The
    ``@teardown`` hook runs on every exit path, including cancellation.

    A retired user finishes the iteration in progress; only the owning
    pool's forced cancellation interrupts one.  Interrupted iterations
    are not recorded.

    Attributes:
        vu_id: Run-wide unique id.
        scenario: Name of the scenario this user belongs to.
        iterations: Number of completed iterations.
    """

    def __init__(
        self,
        vu_id: int,
        definition: ScenarioDefinition,
        context: RunContext,
        scenario: str,
    ) -> None:
        self.vu_id = vu_id
        self.scenario = scenario
        self.iterations = 0
        self._definition = definition
        self._context = context
        self._retire = asyncio.Event()
        self._logger = get_vu_logger("engine.virtual_user", scenario, vu_id)

    @property
    def retired(self) -> bool:
        return self._retire.is_set()

    def retire(self) -> None:
        """Ask the user to exit after its current iteration."""
        self._retire.set()

    async def run(self) -> None:
        """Run the user until retired or cancelled.

        Raises:
            asyncio.CancelledError: When the pool force-stops the user.
        """
        definition = self._definition
        config = self._context.config
        aggregator = self._context.aggregator
        instance = definition.cls()

        async with HttpClient(
            base_url=definition.base_url,
            headers=dict(definition.default_headers),
            metric_callback=aggregator.record_request,
            check_callback=aggregator.record_check,
            worker_id=self.vu_id,
            scenario=self.scenario,
            timeout=config.request_timeout,
            pool_size=config.connection_pool_size,
        ) as client:
            try:
                if definition.setup_func is not None:
                    try:
                        await definition.setup_func(instance, client)
                    except Exception:
                        self._logger.warning("Setup failed; user exits", exc_info=True)
                        return

                while not self._retire.is_set():
                    task_def = pick_weighted_task(definition.tasks)
                    started = time.monotonic()
                    try:
                        await task_def.func(instance, client)
                    except Exception:
                        self._logger.debug("Task %s failed", task_def.name, exc_info=True)
                    else:
                        self.iterations += 1
                        aggregator.record_iteration((time.monotonic() - started) * 1000)

                    await think(definition.think_time, self._retire)
            finally:
                if definition.teardown_func is not None:
                    try:
                        await definition.teardown_func(instance, client)
                    except Exception:
                        self._logger.warning("Teardown failed", exc_info=True)
