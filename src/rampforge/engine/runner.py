"""Top-level load test orchestrator."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING

from rampforge._internal.config import load_config
from rampforge._internal.errors import ConfigError, EngineError, ScenarioError
from rampforge._internal.logging import get_logger, setup_logging
from rampforge.dsl.loader import load_script
from rampforge.dsl.options import Options
from rampforge.engine.context import RunContext
from rampforge.engine.session import ScenarioSession
from rampforge.metrics.aggregator import MetricAggregator
from rampforge.metrics.models import TestResult
from rampforge.metrics.store import MetricStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from rampforge._internal.config import RampForgeConfig
    from rampforge.dsl.options import ScenarioConfig
    from rampforge.dsl.scenario import ScenarioDefinition
    from rampforge.metrics.models import MetricSnapshot
    from rampforge.thresholds.evaluator import ThresholdEvaluator

logger = get_logger("engine.runner")


@dataclass
class RunPlan:
    """A validated run: merged options plus the entry point of every scenario.

    Attributes:
        options: Script options with command-line overrides applied.
        scenarios: Scenario name -> (executor config, resolved definition).
        evaluator: Parsed thresholds.
    """

    options: Options
    scenarios: dict[str, tuple[ScenarioConfig, ScenarioDefinition]]
    evaluator: ThresholdEvaluator


class LoadTestRunner:
    """Loads a script and runs all of its scenarios in one event loop.

    Wires together: script loading, option merging, scenario sessions,
    metric aggregation, periodic threshold checks, and result generation.
    Every configuration problem surfaces from :meth:`prepare` before any
    request is sent.

    Attributes:
        script_path: Absolute path to the load script.
    """

    def __init__(
        self,
        script_path: str | Path,
        options: Options | None = None,
        *,
        tick_interval: float | None = None,
        threshold_interval: float | None = None,
        on_snapshot: Callable[[MetricSnapshot], None] | None = None,
        log_level: int = logging.INFO,
        config: RampForgeConfig | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            script_path: Path to the load script .py file.
            options: Overrides for the script's ``options`` (command line).
            tick_interval: Seconds between concurrency adjustments and
                metric snapshots.  Defaults to the config value.
            threshold_interval: Seconds between threshold checks while
                running.  Defaults to the config value.
            on_snapshot: Optional callback invoked with each tick snapshot.
            log_level: Logging level.
            config: Runtime configuration.  Defaults to :func:`load_config`.

        Raises:
            ScenarioError: If the script file does not exist.
            ConfigError: If the environment configuration is invalid.
        """
        self.script_path = Path(script_path).resolve()
        if not self.script_path.exists():
            msg = f"Script file not found: {self.script_path}"
            raise ScenarioError(msg)

        self._overrides = options
        self._config = config or load_config()
        self._tick_interval = tick_interval or self._config.tick_interval
        self._threshold_interval = threshold_interval or self._config.threshold_interval
        self._on_snapshot = on_snapshot
        self._log_level = log_level

        self._stop_event: asyncio.Event | None = None
        self._aborted = False

    def prepare(self) -> RunPlan:
        """Load the script and validate everything the run needs.

        Returns:
            The validated run plan.

        Raises:
            ScenarioError: If the script cannot be loaded or an ``exec``
                entry cannot be resolved.
            ConfigError: If the options are invalid or declare no scenarios.
        """
        script = load_script(self.script_path)
        options = script.options or Options()
        if self._overrides is not None:
            options = _inherit_exec(options, options.merge(self._overrides))

        if not options.scenarios:
            msg = (
                f"No scenarios configured for {self.script_path.name}: declare "
                "options.scenarios in the script or pass --vus/--duration or --stage"
            )
            raise ConfigError(msg)

        scenarios = {
            name: (config, script.resolve(config.exec))
            for name, config in options.scenarios.items()
        }
        return RunPlan(
            options=options,
            scenarios=scenarios,
            evaluator=options.build_evaluator(),
        )

    def run(self, plan: RunPlan | None = None) -> TestResult:
        """Execute the load test and return results.

        This is a blocking call that runs until every scenario has finished,
        a threshold aborts the run, or a stop signal (SIGINT/SIGTERM) is
        received.

        Args:
            plan: A plan from :meth:`prepare`; prepared here when omitted.

        Returns:
            TestResult containing all snapshots, the final summary and the
            threshold report.

        Raises:
            ScenarioError: If the script is invalid.
            ConfigError: If the options are invalid.
            EngineError: If the test fails to execute.
        """
        return asyncio.run(self.run_async(plan))

    async def run_async(self, plan: RunPlan | None = None) -> TestResult:
        """Async variant of :meth:`run` for callers that own an event loop."""
        setup_logging(level=self._log_level, json_format=self._config.json_logs)
        if plan is None:
            plan = self.prepare()
        evaluator = plan.evaluator

        aggregator = MetricAggregator(evaluator.required_percentiles())
        context = RunContext(aggregator=aggregator, config=self._config)
        store = MetricStore()
        self._stop_event = asyncio.Event()
        self._aborted = False

        sessions = [
            ScenarioSession(
                name,
                config,
                definition,
                context,
                tick_interval=self._tick_interval,
                stop_event=self._stop_event,
            )
            for name, (config, definition) in plan.scenarios.items()
        ]

        logger.info(
            "Starting load test: script=%s, scenarios=%d, thresholds=%d",
            self.script_path.name,
            len(sessions),
            len(evaluator),
        )

        self._install_signal_handlers()
        start_time = time.monotonic()
        monitor = asyncio.create_task(
            self._monitor(aggregator, store, evaluator, start_time),
            name="metrics-monitor",
        )
        session_tasks = [asyncio.create_task(s.run(), name=f"scenario-{s.name}") for s in sessions]
        for task in session_tasks:
            task.add_done_callback(self._stop_on_failure)

        try:
            outcomes = await asyncio.gather(*session_tasks, return_exceptions=True)
        finally:
            monitor.cancel()
            await asyncio.gather(monitor, return_exceptions=True)
            self._remove_signal_handlers()

        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures:
            msg = "Load test failed"
            raise EngineError(msg) from failures[0]

        end_time = time.monotonic()
        total_duration = end_time - start_time

        # Samples recorded since the last tick.
        last_tick = aggregator.flush_tick(elapsed_seconds=total_duration)
        if last_tick.total_requests or last_tick.iterations:
            store.append(last_tick)

        final_summary = aggregator.snapshot(elapsed_seconds=total_duration)
        threshold_report = evaluator.evaluate(final_summary) if len(evaluator) else None

        logger.info(
            "Load test completed: duration=%.1fs, total_requests=%d, "
            "avg_rps=%.1f, peak_rps=%.1f, p95=%.1fms, error_rate=%.2f%%, checks=%.2f%%",
            total_duration,
            final_summary.total_requests,
            final_summary.requests_per_second,
            store.peak_requests_per_second(),
            final_summary.http_req_duration.p95,
            final_summary.error_rate * 100,
            final_summary.checks_rate * 100,
        )
        if threshold_report is not None:
            for failed in threshold_report.failures:
                logger.warning(
                    "Threshold breached: %s %s (observed %.3f)",
                    failed.metric,
                    failed.expression,
                    failed.observed,
                )

        return TestResult(
            script_name=self.script_path.name,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=total_duration,
            scenario_descriptions={s.name: s.describe() for s in sessions},
            snapshots=store.get_all(),
            peak_requests_per_second=store.peak_requests_per_second(),
            final_summary=final_summary,
            threshold_report=threshold_report,
            aborted=self._aborted,
        )

    def stop(self) -> None:
        """Request a graceful stop of every scenario."""
        if self._stop_event is not None and not self._stop_event.is_set():
            logger.info("Graceful shutdown requested")
            self._aborted = True
            self._stop_event.set()

    async def _monitor(
        self,
        aggregator: MetricAggregator,
        store: MetricStore,
        evaluator: ThresholdEvaluator,
        start_time: float,
    ) -> None:
        """Flush a snapshot every tick and check thresholds periodically."""
        tick = 0
        last_evaluation = 0.0
        while True:
            tick += 1
            deadline = start_time + tick * self._tick_interval
            await asyncio.sleep(max(deadline - time.monotonic(), 0.0))

            elapsed = time.monotonic() - start_time
            snapshot = aggregator.flush_tick(elapsed_seconds=elapsed)
            store.append(snapshot)
            if self._on_snapshot is not None:
                self._on_snapshot(snapshot)

            logger.debug(
                "Tick %.1fs: users=%d, rps=%.1f, p95=%.1fms, errors=%d",
                elapsed,
                snapshot.active_users,
                snapshot.requests_per_second,
                snapshot.http_req_duration.p95,
                snapshot.total_errors,
            )

            if len(evaluator) and elapsed - last_evaluation >= self._threshold_interval:
                last_evaluation = elapsed
                report = evaluator.evaluate(aggregator.snapshot(elapsed_seconds=elapsed))
                if evaluator.should_abort(report, elapsed):
                    breached = ", ".join(
                        f"{r.metric} {r.expression}" for r in report.failures if r.abort_on_fail
                    )
                    logger.warning("Aborting run: threshold breached (%s)", breached)
                    self.stop()

    def _stop_on_failure(self, task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            self.stop()

    def _install_signal_handlers(self) -> None:
        """Install SIGINT and SIGTERM handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            self.stop()

        if sys.platform != "win32":
            try:
                loop.add_signal_handler(signal.SIGINT, _signal_handler)
                loop.add_signal_handler(signal.SIGTERM, _signal_handler)
            except (RuntimeError, ValueError):
                # Not the main thread; the caller handles signals.
                logger.debug("Signal handlers not installed outside the main thread")
        else:
            signal.signal(signal.SIGINT, lambda _s, _f: _signal_handler())
            signal.signal(signal.SIGTERM, lambda _s, _f: _signal_handler())

    def _remove_signal_handlers(self) -> None:
        """Remove custom signal handlers, restoring defaults."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)


def _inherit_exec(script_options: Options, merged: Options) -> Options:
    """Point override scenarios without ``exec`` at the script's own entry.

    Command-line ``--vus``/``--stage`` replace the script's scenarios; when
    every script scenario runs the same entry, the replacement runs it too.
    """
    entries = {config.exec for config in script_options.scenarios.values()}
    entry = entries.pop() if len(entries) == 1 else None
    if entry is None:
        return merged
    merged.scenarios = {
        name: config if config.exec is not None else replace(config, exec=entry)
        for name, config in merged.scenarios.items()
    }
    return merged
