"""Declarative run options: scenarios, executors, stages and thresholds.

A load script declares a module-level ``options`` object::

    options = Options(
        thresholds={"http_req_duration": ["p(95)<2000"]},
        scenarios={
            "Scenario_1": ScenarioConfig(
                executor="ramping-vus",
                stages=[Stage(50, "1m"), Stage(50, "1m"), Stage(0, "1m")],
                graceful_stop="30s",
                graceful_ramp_down="30s",
                exec="load_home",
            ),
        },
    )

Everything is validated on construction and raises ``ConfigError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from rampforge._internal.durations import parse_duration
from rampforge._internal.errors import ConfigError
from rampforge.patterns.constant import ConstantPattern
from rampforge.patterns.stages import RampingStagesPattern, Stage
from rampforge.thresholds.evaluator import ThresholdEvaluator

if TYPE_CHECKING:
    from rampforge._internal.types import DurationLike
    from rampforge.patterns.base import LoadPattern


class Executor(StrEnum):
    """How a scenario schedules its virtual users."""

    RAMPING_VUS = "ramping-vus"
    CONSTANT_VUS = "constant-vus"


@dataclass(frozen=True)
class Threshold:
    """A threshold expression with abort behaviour.

    Plain strings in ``Options.thresholds`` are shorthand for
    ``Threshold(expression)``.

    Attributes:
        expression: Expression such as ``"p(95)<2000"``.
        abort_on_fail: Stop the run as soon as the threshold fails.
        delay_abort_eval: Do not abort before this much of the run elapsed.
    """

    expression: str
    abort_on_fail: bool = False
    delay_abort_eval: DurationLike = 0.0


def _coerce_stage(raw: Any, index: int) -> Stage:
    if isinstance(raw, Stage):
        return raw
    if isinstance(raw, dict):
        try:
            return Stage(target=raw["target"], duration=raw["duration"])
        except KeyError as exc:
            msg = f"stages[{index}] is missing {exc.args[0]!r}"
            raise ConfigError(msg) from None
    if isinstance(raw, tuple | list) and len(raw) == 2:
        return Stage(target=raw[0], duration=raw[1])
    if isinstance(raw, str):
        return Stage.parse(raw)
    msg = (
        f"stages[{index}] must be a Stage, (target, duration) pair "
        f"or 'target:duration', got {raw!r}"
    )
    raise ConfigError(msg)


@dataclass
class ScenarioConfig:
    """Executor configuration for one scenario.

    Duration fields accept seconds or strings like ``"30s"`` and are
    normalised to float seconds.  Stages accept :class:`Stage` objects,
    ``(target, duration)`` pairs, ``{"target": .., "duration": ..}`` dicts
    or ``"target:duration"`` strings.

    Attributes:
        executor: ``ramping-vus`` (follows *stages*) or ``constant-vus``
            (holds *vus* for *duration*).
        stages: Ramping stages; required for ``ramping-vus``.
        start_vus: Users at ``t=0`` for ``ramping-vus``.
        vus: User count for ``constant-vus``.
        duration: Run length for ``constant-vus``.
        graceful_stop: Time in-flight iterations get to finish when the
            scenario ends, before they are cancelled.
        graceful_ramp_down: Time in-flight iterations of retired users get
            to finish when the target drops, before they are cancelled.
        exec: Name of the entry point in the script: a ``@scenario`` name
            or class name, or a module-level ``async def``.  None picks the
            only scenario in the script or a function called ``default``.
        start_time: Delay before this scenario starts.
    """

    executor: Executor | str = Executor.RAMPING_VUS
    stages: list[Any] = field(default_factory=list)
    start_vus: int = 0
    vus: int | None = None
    duration: DurationLike | None = None
    graceful_stop: DurationLike = "30s"
    graceful_ramp_down: DurationLike = "30s"
    exec: str | None = None
    start_time: DurationLike = 0.0

    def __post_init__(self) -> None:
        try:
            self.executor = Executor(self.executor)
        except ValueError:
            known = ", ".join(e.value for e in Executor)
            msg = f"Unknown executor {self.executor!r} (choose from: {known})"
            raise ConfigError(msg) from None

        self.stages = [_coerce_stage(raw, i) for i, raw in enumerate(self.stages)]
        self.graceful_stop = parse_duration(self.graceful_stop, "graceful_stop")
        self.graceful_ramp_down = parse_duration(self.graceful_ramp_down, "graceful_ramp_down")
        self.start_time = parse_duration(self.start_time, "start_time")
        if self.duration is not None:
            self.duration = parse_duration(self.duration, "duration")

        if self.exec is not None and not self.exec.strip():
            msg = "exec must be a non-empty name"
            raise ConfigError(msg)

        if self.executor is Executor.RAMPING_VUS:
            if not self.stages:
                msg = "ramping-vus executor requires at least one stage"
                raise ConfigError(msg)
            if self.vus is not None or self.duration is not None:
                msg = "ramping-vus executor takes stages, not vus/duration"
                raise ConfigError(msg)
            if isinstance(self.start_vus, bool) or not isinstance(self.start_vus, int):
                msg = f"start_vus must be an integer, got {self.start_vus!r}"
                raise ConfigError(msg)
            if self.start_vus < 0:
                msg = f"start_vus must be non-negative, got {self.start_vus}"
                raise ConfigError(msg)
        else:
            if self.stages:
                msg = "constant-vus executor takes vus/duration, not stages"
                raise ConfigError(msg)
            if self.vus is None or self.duration is None:
                msg = "constant-vus executor requires both vus and duration"
                raise ConfigError(msg)
            if self.duration <= 0:
                msg = f"duration must be positive, got {self.duration}"
                raise ConfigError(msg)

        # Fail now rather than when the scenario starts.
        self.build_pattern()

    def build_pattern(self) -> LoadPattern:
        """Return the concurrency pattern this executor follows."""
        if self.executor is Executor.CONSTANT_VUS:
            assert self.vus is not None  # noqa: S101
            assert self.duration is not None  # noqa: S101
            return ConstantPattern(users=self.vus, duration=float(self.duration))
        return RampingStagesPattern(self.stages, start_users=self.start_vus)


@dataclass
class Options:
    """Top-level run options.

    Attributes:
        thresholds: Metric selector -> list of threshold expressions.
        scenarios: Scenario name -> executor configuration.
    """

    thresholds: dict[str, list[str | Threshold]] = field(default_factory=dict)
    scenarios: dict[str, ScenarioConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        scenarios: dict[str, ScenarioConfig] = {}
        for name, config in self.scenarios.items():
            if not name or not name.strip():
                msg = "Scenario names must be non-empty"
                raise ConfigError(msg)
            if isinstance(config, dict):
                try:
                    config = ScenarioConfig(**config)  # noqa: PLW2901
                except TypeError as exc:
                    msg = f"Invalid configuration for scenario {name!r}: {exc}"
                    raise ConfigError(msg) from None
            elif not isinstance(config, ScenarioConfig):
                msg = f"Scenario {name!r} must be a ScenarioConfig, got {type(config).__name__}"
                raise ConfigError(msg)
            scenarios[name] = config
        self.scenarios = scenarios

        self.thresholds = {
            metric: [items] if isinstance(items, str | Threshold) else list(items)
            for metric, items in self.thresholds.items()
        }
        # Parses every expression; raises ConfigError on the first bad one.
        self.build_evaluator()

    def build_evaluator(self) -> ThresholdEvaluator:
        """Return an evaluator for :attr:`thresholds`."""
        return ThresholdEvaluator(self.thresholds)

    def merge(self, override: Options) -> Options:
        """Return options where *override* wins.

        Scenarios in *override* replace these scenarios entirely when it
        declares any; threshold lists are concatenated per metric.
        """
        thresholds: dict[str, list[str | Threshold]] = {
            metric: list(items) for metric, items in self.thresholds.items()
        }
        for metric, items in override.thresholds.items():
            thresholds.setdefault(metric, []).extend(items)
        return Options(
            thresholds=thresholds,
            scenarios=dict(override.scenarios or self.scenarios),
        )
