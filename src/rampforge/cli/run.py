"""``rampforge run``: execute a load script with live terminal output."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from rampforge._internal.config import load_config
from rampforge._internal.durations import format_duration
from rampforge._internal.errors import ConfigError, EngineError, ScenarioError
from rampforge.dsl.options import Executor, Options, ScenarioConfig
from rampforge.engine.runner import LoadTestRunner
from rampforge.patterns.stages import Stage

if TYPE_CHECKING:
    from rampforge.engine.runner import RunPlan
    from rampforge.metrics.models import MetricSnapshot, TestResult

console = Console(stderr=True)

EXIT_OK = 0
EXIT_THRESHOLDS_FAILED = 1
EXIT_CONFIG_ERROR = 2

# Scenario name used for --vus/--duration and --stage overrides.
CLI_SCENARIO = "default"


# ---------------------------------------------------------------------------
# Option construction helpers
# ---------------------------------------------------------------------------


def _build_overrides(
    vus: int | None,
    duration: str | None,
    stages: list[str],
    thresholds: list[str],
    fail_on_error_rate: float | None,
    exec_name: str | None,
) -> Options | None:
    """Turn command-line flags into options that override the script's.

    Args:
        vus: ``--vus`` value; start users when combined with ``--stage``.
        duration: ``--duration`` value, e.g. ``"30s"``.
        stages: ``--stage`` values, e.g. ``["50:1m", "0:30s"]``.
        thresholds: ``--threshold`` values, e.g. ``["http_req_duration=p(95)<500"]``.
        fail_on_error_rate: Maximum tolerated ``http_req_failed`` rate.
        exec_name: Entry point for the override scenario.

    Returns:
        Override options, or None when no flag asks for one.

    Raises:
        typer.BadParameter: If flags are combined in an unsupported way.
        ConfigError: If a stage, duration or threshold is invalid.
    """
    scenarios: dict[str, ScenarioConfig] = {}
    if stages:
        if duration is not None:
            msg = "--duration cannot be combined with --stage"
            raise typer.BadParameter(msg)
        scenarios[CLI_SCENARIO] = ScenarioConfig(
            executor=Executor.RAMPING_VUS,
            stages=[Stage.parse(s) for s in stages],
            start_vus=vus or 0,
            exec=exec_name,
        )
    elif duration is not None:
        scenarios[CLI_SCENARIO] = ScenarioConfig(
            executor=Executor.CONSTANT_VUS,
            vus=1 if vus is None else vus,
            duration=duration,
            exec=exec_name,
        )
    elif vus is not None:
        msg = "--vus needs --duration (constant load) or --stage (ramping load)"
        raise typer.BadParameter(msg)
    elif exec_name is not None:
        msg = "--exec applies to --vus/--duration or --stage scenarios"
        raise typer.BadParameter(msg)

    threshold_map: dict[str, list[str]] = {}
    for item in thresholds:
        metric, sep, expression = item.partition("=")
        if not sep or not metric.strip() or not expression.strip():
            msg = f"Invalid --threshold {item!r} (expected 'metric=expression')"
            raise typer.BadParameter(msg)
        threshold_map.setdefault(metric.strip(), []).append(expression.strip())
    if fail_on_error_rate is not None:
        threshold_map.setdefault("http_req_failed", []).append(f"rate<={fail_on_error_rate}")

    if not scenarios and not threshold_map:
        return None
    return Options(thresholds=threshold_map, scenarios=scenarios)


# ---------------------------------------------------------------------------
# Rich output
# ---------------------------------------------------------------------------


def _header_panel(script: Path, plan: RunPlan) -> Panel:
    lines = [f"[bold]Script:[/bold]     {script.name}"]
    for name, (config, definition) in plan.scenarios.items():
        lines.append(
            f"[bold]Scenario:[/bold]   {name} ({config.executor}, exec={definition.name})\n"
            f"            {config.build_pattern().describe()}"
        )
    for threshold in plan.evaluator.thresholds:
        lines.append(f"[bold]Threshold:[/bold]  {threshold.selector} {threshold.expression.source}")
    return Panel("\n".join(lines), title="RampForge", border_style="cyan")


def _make_live_table(snapshot: MetricSnapshot | None) -> Table:
    """Build a Rich table summarising the latest tick.

    Args:
        snapshot: Latest tick snapshot, or None if no data yet.

    Returns:
        Formatted Rich Table.
    """
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if snapshot is None:
        table.add_row("Status", "Starting...")
        return table

    latency = snapshot.http_req_duration
    table.add_row("Elapsed", format_duration(snapshot.elapsed_seconds))
    table.add_row("VUs", f"{snapshot.active_users} (max {snapshot.max_users})")
    table.add_row("Requests/sec", f"{snapshot.requests_per_second:.1f}")
    table.add_row("Latency med", f"{latency.med:.1f}ms")
    table.add_row("Latency p95", f"{latency.p95:.1f}ms")
    table.add_row("Latency p99", f"{latency.p99:.1f}ms")
    table.add_row("Failed", f"{snapshot.total_errors} ({snapshot.error_rate * 100:.2f}%)")
    table.add_row("Checks", f"{snapshot.checks_rate * 100:.2f}%")
    table.add_row("Iterations", str(snapshot.iterations))
    return table


def _print_summary(result: TestResult) -> None:
    """Print the final summary, endpoint, check and threshold tables.

    Args:
        result: Completed test result.
    """
    summary = result.final_summary
    table = Table(
        title="Test Complete",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Script", result.script_name)
    for name, description in result.scenario_descriptions.items():
        table.add_row(f"Scenario {name}", description)
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")

    if summary is not None:
        latency = summary.http_req_duration
        table.add_row(
            "http_reqs",
            f"{summary.total_requests} ({summary.requests_per_second:.1f}/s, "
            f"peak {result.peak_requests_per_second:.1f}/s)",
        )
        table.add_row(
            "http_req_duration",
            f"avg={latency.avg:.1f}ms med={latency.med:.1f}ms p(90)={latency.p90:.1f}ms "
            f"p(95)={latency.p95:.1f}ms max={latency.max:.1f}ms",
        )
        table.add_row(
            "http_req_failed",
            f"{summary.error_rate * 100:.2f}% ({summary.total_errors} of {summary.total_requests})",
        )
        table.add_row(
            "iterations",
            f"{summary.iterations} ({summary.iterations_per_second:.2f}/s)",
        )
        table.add_row(
            "iteration_duration",
            f"avg={summary.iteration_duration.avg:.1f}ms "
            f"p(95)={summary.iteration_duration.p95:.1f}ms",
        )
        table.add_row("data_received", f"{summary.data_received} B")
        table.add_row("vus_max", str(summary.max_users))
        table.add_row("checks", f"{summary.checks_rate * 100:.2f}%")

        if summary.endpoints:
            ep_table = Table(
                title="Per-Endpoint Breakdown",
                show_header=True,
                header_style="bold cyan",
                expand=True,
            )
            ep_table.add_column("Endpoint")
            ep_table.add_column("Requests", justify="right")
            ep_table.add_column("RPS", justify="right")
            ep_table.add_column("med", justify="right")
            ep_table.add_column("p95", justify="right")
            ep_table.add_column("Failed", justify="right")

            for ep in summary.endpoints.values():
                ep_table.add_row(
                    ep.name,
                    str(ep.request_count),
                    f"{ep.requests_per_second:.1f}",
                    f"{ep.duration.med:.1f}ms",
                    f"{ep.duration.p95:.1f}ms",
                    f"{ep.error_count} ({ep.error_rate * 100:.2f}%)",
                )
            console.print(ep_table)

        if summary.checks:
            check_table = Table(
                title="Checks",
                show_header=True,
                header_style="bold cyan",
                expand=True,
            )
            check_table.add_column("Check")
            check_table.add_column("Passed", justify="right")
            check_table.add_column("Failed", justify="right")
            check_table.add_column("Rate", justify="right")
            for check in summary.checks.values():
                mark = "[green]✓[/green]" if check.failed == 0 else "[red]✗[/red]"
                check_table.add_row(
                    f"{mark} {check.name}",
                    str(check.passed),
                    str(check.failed),
                    f"{check.rate * 100:.2f}%",
                )
            console.print(check_table)

    console.print(table)

    if result.threshold_report is not None:
        th_table = Table(
            title="Thresholds",
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        th_table.add_column("Metric")
        th_table.add_column("Expression")
        th_table.add_column("Observed", justify="right")
        th_table.add_column("Result", justify="right")
        for r in result.threshold_report.results:
            th_table.add_row(
                r.metric,
                r.expression,
                f"{r.observed:.3f}",
                "[green]PASS[/green]" if r.passed else "[red]FAIL[/red]",
            )
        console.print(th_table)


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    script_file: Path = typer.Argument(
        ...,
        help="Path to the load script .py file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    vus: int | None = typer.Option(
        None,
        "--vus",
        "-u",
        help="Constant virtual users (with --duration) or start users (with --stage).",
        min=0,
    ),
    duration: str | None = typer.Option(
        None,
        "--duration",
        "-d",
        help="Constant-load duration, e.g. 30s or 2m.",
    ),
    stage: list[str] | None = typer.Option(
        None,
        "--stage",
        "-s",
        help="Ramping stage as TARGET:DURATION, e.g. 50:1m. Repeatable.",
    ),
    threshold: list[str] | None = typer.Option(
        None,
        "--threshold",
        "-t",
        help="Threshold as METRIC=EXPRESSION, e.g. 'http_req_duration=p(95)<2000'. Repeatable.",
    ),
    exec_name: str | None = typer.Option(
        None,
        "--exec",
        help="Entry point for --vus/--stage runs: a @scenario name or async function.",
    ),
    fail_on_error_rate: float | None = typer.Option(
        None,
        "--fail-on-error-rate",
        help="Exit non-zero if the failed request rate exceeds this value (e.g., 0.05).",
        min=0.0,
        max=1.0,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit structured JSON log lines.",
    ),
) -> None:
    """Execute a load script with live terminal output.

    Exit codes: 0 when every threshold passes, 1 when a threshold is
    breached or the run fails, 2 on script or configuration errors.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    live_holder: list[Live] = []

    def _on_snapshot(snapshot: MetricSnapshot) -> None:
        if live_holder:
            live_holder[0].update(_make_live_table(snapshot))

    try:
        overrides = _build_overrides(
            vus=vus,
            duration=duration,
            stages=stage or [],
            thresholds=threshold or [],
            fail_on_error_rate=fail_on_error_rate,
            exec_name=exec_name,
        )
        config = load_config()
        if json_logs:
            config = dataclasses.replace(config, json_logs=True)
        test_runner = LoadTestRunner(
            script_file,
            overrides,
            on_snapshot=_on_snapshot,
            log_level=log_level,
            config=config,
        )
        plan = test_runner.prepare()
    except (ConfigError, ScenarioError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc

    console.print(_header_panel(script_file, plan))

    try:
        with Live(
            _make_live_table(None),
            console=console,
            refresh_per_second=2,
            transient=True,
        ) as live:
            live_holder.append(live)
            result = test_runner.run(plan)
    except (ConfigError, ScenarioError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc
    except EngineError as exc:
        console.print(f"[red]Load test failed:[/red] {exc}")
        raise typer.Exit(code=EXIT_THRESHOLDS_FAILED) from exc

    _print_summary(result)

    if result.aborted:
        console.print("[yellow]Run stopped early.[/yellow]")

    if not result.passed:
        assert result.threshold_report is not None  # noqa: S101
        failed = ", ".join(f"{r.metric} {r.expression}" for r in result.threshold_report.failures)
        console.print(f"[red]FAIL:[/red] thresholds breached: {failed}")
        raise typer.Exit(code=EXIT_THRESHOLDS_FAILED)

    console.print("[green]Load test completed successfully.[/green]")
