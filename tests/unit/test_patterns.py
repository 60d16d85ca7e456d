"""Tests for concurrency patterns and stages."""

from __future__ import annotations

import random

import pytest

from rampforge._internal.errors import ConfigError
from rampforge.patterns.base import LoadPattern
from rampforge.patterns.constant import ConstantPattern
from rampforge.patterns.stages import RampingStagesPattern, Stage

# =========================================================================
# Stage
# =========================================================================


class TestStage:
    """Tests for Stage construction and parsing."""

    def test_duration_string_normalised(self) -> None:
        stage = Stage(50, "1m")
        assert stage.target == 50
        assert stage.duration == 60.0

    def test_numeric_duration(self) -> None:
        assert Stage(target=10, duration=2.5).duration == 2.5

    def test_negative_target_rejected(self) -> None:
        with pytest.raises(ConfigError, match="stage target"):
            Stage(-1, "10s")

    def test_non_integer_target_rejected(self) -> None:
        with pytest.raises(ConfigError, match="integer"):
            Stage(2.5, "10s")  # type: ignore[arg-type]

    @pytest.mark.parametrize("duration", [0, "0s", -3])
    def test_non_positive_duration_rejected(self, duration) -> None:
        with pytest.raises(ConfigError):
            Stage(10, duration)

    @pytest.mark.parametrize("duration", ["nan", "inf", float("nan"), float("inf")])
    def test_non_finite_duration_rejected(self, duration) -> None:
        with pytest.raises(ConfigError, match="stage duration"):
            Stage(50, duration)

    def test_zero_target_allowed(self) -> None:
        """Ramping down to zero is the usual final stage."""
        assert Stage(0, "30s").target == 0

    def test_parse(self) -> None:
        assert Stage.parse("50:1m") == Stage(50, 60)
        assert Stage.parse(" 5 : 500ms ") == Stage(5, 0.5)

    @pytest.mark.parametrize("text", ["50", "x:1m", "50:", "50:forever"])
    def test_parse_invalid(self, text: str) -> None:
        with pytest.raises(ConfigError):
            Stage.parse(text)

    def test_frozen(self) -> None:
        stage = Stage(1, 1)
        with pytest.raises(AttributeError):
            stage.target = 2  # type: ignore[misc]


# =========================================================================
# RampingStagesPattern
# =========================================================================


def _reference_stages() -> list[Stage]:
    return [Stage(50, "1m"), Stage(50, "1m"), Stage(0, "1m")]


class TestRampingStagesPattern:
    """Tests for RampingStagesPattern."""

    def test_is_load_pattern(self) -> None:
        assert isinstance(RampingStagesPattern(_reference_stages()), LoadPattern)

    def test_reference_ramp_hold_ramp_down(self) -> None:
        """0 -> 50 over a minute, hold 50 for a minute, 50 -> 0 over a minute."""
        pattern = RampingStagesPattern(_reference_stages())
        assert pattern.target_at(0.0) == 0
        assert pattern.target_at(30.0) == 25
        assert pattern.target_at(60.0) == 50
        assert pattern.target_at(90.0) == 50
        assert pattern.target_at(120.0) == 50
        assert pattern.target_at(150.0) == 25
        assert pattern.target_at(180.0) == 0

    def test_total_duration(self) -> None:
        assert RampingStagesPattern(_reference_stages()).total_duration == 180.0

    def test_breakpoints_are_cumulative_stage_ends(self) -> None:
        pattern = RampingStagesPattern(_reference_stages())
        assert pattern.breakpoints() == [60.0, 120.0, 180.0]

    def test_after_end_returns_last_target(self) -> None:
        pattern = RampingStagesPattern([Stage(10, 5), Stage(3, 5)])
        assert pattern.target_at(1000.0) == 3

    def test_negative_elapsed_returns_start(self) -> None:
        pattern = RampingStagesPattern([Stage(10, 5)], start_users=4)
        assert pattern.target_at(-1.0) == 4

    def test_start_users(self) -> None:
        pattern = RampingStagesPattern([Stage(20, 10)], start_users=10)
        assert pattern.target_at(0.0) == 10
        assert pattern.target_at(5.0) == 15
        assert pattern.target_at(10.0) == 20

    @pytest.mark.parametrize(("target", "expected"), [(1, 1), (3, 2), (5, 3)])
    def test_midpoint_rounds_half_up(self, target: int, expected: int) -> None:
        pattern = RampingStagesPattern([Stage(target, 2.0)])
        assert pattern.target_at(1.0) == expected

    def test_ramp_down_midpoint_rounds_half_up(self) -> None:
        pattern = RampingStagesPattern([Stage(0, 2.0)], start_users=1)
        assert pattern.target_at(1.0) == 1
        assert pattern.target_at(1.5) == 0

    def test_interpolation_is_monotonic_within_a_ramp(self) -> None:
        pattern = RampingStagesPattern([Stage(100, 10)])
        values = [pattern.target_at(t / 10) for t in range(101)]
        assert values == sorted(values)

    def test_boundary_equals_stage_target_for_random_stage_lists(self) -> None:
        """At the end of stage k the target is exactly stage k's target."""
        rng = random.Random(1234)
        for _ in range(200):
            stages = [
                Stage(rng.randint(0, 500), rng.choice([0.5, 1, 3, 7.25, 60, 90]))
                for _ in range(rng.randint(1, 6))
            ]
            pattern = RampingStagesPattern(stages, start_users=rng.randint(0, 50))
            for stage, boundary in zip(stages, pattern.breakpoints(), strict=True):
                assert pattern.target_at(boundary) == stage.target

    def test_empty_stages_rejected(self) -> None:
        with pytest.raises(ConfigError, match="at least one stage"):
            RampingStagesPattern([])

    def test_negative_start_users_rejected(self) -> None:
        with pytest.raises(ConfigError, match="start_users"):
            RampingStagesPattern([Stage(1, 1)], start_users=-1)

    def test_describe(self) -> None:
        desc = RampingStagesPattern(_reference_stages()).describe()
        assert desc == "Stages: 0 -> 50 (1m) -> 50 (1m) -> 0 (1m)"

    def test_max_concurrency(self) -> None:
        assert RampingStagesPattern(_reference_stages()).max_concurrency() == 50


class TestIterConcurrency:
    """Tests for the tick stream produced by LoadPattern.iter_concurrency."""

    def test_ticks_include_every_boundary(self) -> None:
        """Boundaries that are not tick multiples still appear."""
        pattern = RampingStagesPattern([Stage(10, 2.5), Stage(0, 2.5)])
        times = [t for t, _ in pattern.iter_concurrency(tick_interval=1.0)]
        assert times == pytest.approx([0.0, 1.0, 2.0, 2.5, 3.0, 4.0, 5.0])

    def test_boundary_targets_exact(self) -> None:
        pattern = RampingStagesPattern([Stage(10, 2.5), Stage(0, 2.5)])
        ticks = dict(pattern.iter_concurrency(tick_interval=1.0))
        assert ticks[2.5] == 10
        assert ticks[5.0] == 0

    def test_no_duplicate_ticks_when_boundary_on_multiple(self) -> None:
        pattern = RampingStagesPattern(_reference_stages())
        times = [t for t, _ in pattern.iter_concurrency(tick_interval=30.0)]
        assert times == pytest.approx([0.0, 30.0, 60.0, 90.0, 120.0, 150.0, 180.0])

    def test_reference_tick_values(self) -> None:
        pattern = RampingStagesPattern(_reference_stages())
        targets = [n for _, n in pattern.iter_concurrency(tick_interval=30.0)]
        assert targets == [0, 25, 50, 50, 50, 25, 0]

    def test_ascending(self) -> None:
        pattern = RampingStagesPattern([Stage(7, 0.3), Stage(2, 1.7), Stage(9, 0.35)])
        times = [t for t, _ in pattern.iter_concurrency(tick_interval=0.25)]
        assert times == sorted(times)
        assert len(times) == len(set(times))
        assert times[-1] == pytest.approx(pattern.total_duration)

    def test_rejects_zero_tick_interval(self) -> None:
        pattern = RampingStagesPattern(_reference_stages())
        with pytest.raises(ConfigError, match="tick_interval"):
            list(pattern.iter_concurrency(tick_interval=0.0))


# =========================================================================
# ConstantPattern
# =========================================================================


class TestConstantPattern:
    """Tests for ConstantPattern."""

    def test_yields_constant_value(self) -> None:
        """Every tick should yield the same user count."""
        pattern = ConstantPattern(users=50, duration=5.0)
        ticks = list(pattern.iter_concurrency(tick_interval=1.0))
        assert [n for _, n in ticks] == [50] * 6

    def test_elapsed_times(self) -> None:
        pattern = ConstantPattern(users=10, duration=3.0)
        elapsed_values = [t for t, _ in pattern.iter_concurrency(tick_interval=1.0)]
        assert elapsed_values == pytest.approx([0.0, 1.0, 2.0, 3.0])

    def test_describe(self) -> None:
        assert ConstantPattern(users=100, duration=90).describe() == "Constant: 100 users for 1m30s"

    def test_rejects_zero_users(self) -> None:
        with pytest.raises(ConfigError, match="users"):
            ConstantPattern(users=0, duration=10)

    def test_rejects_infinite_duration(self) -> None:
        with pytest.raises(ConfigError, match="duration"):
            ConstantPattern(users=5, duration=float("inf"))

    def test_rejects_zero_duration(self) -> None:
        with pytest.raises(ConfigError, match="duration"):
            ConstantPattern(users=1, duration=0)
