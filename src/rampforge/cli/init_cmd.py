"""``rampforge init``: scaffold a new load script from a template."""

from __future__ import annotations

from pathlib import Path
from string import Template

import typer
from rich.console import Console

console = Console(stderr=True)

_SCRIPT_TEMPLATE = Template('''\
"""Load script: $name.

Run with:
    rampforge run $filename
"""

from __future__ import annotations

import asyncio

from rampforge import HttpClient, Options, ScenarioConfig, Stage

BASE_URL = "http://localhost:8080"

options = Options(
    thresholds={"http_req_duration": ["p(95)<2000"]},
    scenarios={
        "$scenario_name": ScenarioConfig(
            executor="ramping-vus",
            stages=[Stage(10, "30s"), Stage(10, "1m"), Stage(0, "30s")],
            graceful_stop="30s",
            graceful_ramp_down="30s",
            exec="$entry",
        ),
    },
)


async def $entry(client: HttpClient) -> None:
    """One iteration: fetch the home page, check it, pause."""
    response = await client.get(f"{BASE_URL}/", name="Home")
    client.check(response, {"status equals 200": lambda r: r.status == 200})
    await asyncio.sleep(1)
''')


def init_cmd(
    name: str = typer.Argument(
        "my_load_test",
        help="Name for the script (used as filename and entry function).",
    ),
) -> None:
    """Scaffold a new load script in the current directory."""
    # Sanitise the name for use as a Python identifier
    safe_name = "".join(c if c.isalnum() or c == "_" else "_" for c in name).lower()
    if not safe_name or safe_name[0].isdigit():
        safe_name = "script_" + safe_name

    filename = f"{safe_name}.py"
    display_name = name.replace("_", " ").replace("-", " ").title()

    target = Path.cwd() / filename
    if target.exists():
        console.print(f"[red]File already exists:[/red] {filename}")
        raise typer.Exit(code=1)

    content = _SCRIPT_TEMPLATE.substitute(
        name=display_name,
        filename=filename,
        scenario_name=display_name.replace(" ", "_"),
        entry=f"load_{safe_name}",
    )
    target.write_text(content)
    console.print(f"[green]Created load script:[/green] {filename}")
