"""Home page ramp: 0 -> 50 users over a minute, hold a minute, ramp down.

The run fails when the 95th percentile request duration reaches two
seconds. Run it with:

    rampforge run examples/home_page.py
"""

from __future__ import annotations

import asyncio

from rampforge import HttpClient, Options, ScenarioConfig, Stage

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


async def load_home(client: HttpClient) -> None:
    response = await client.get("http://10.0.0.4:8080/")
    client.check(response, {"status equals 200": lambda r: r.status == 200})
    await asyncio.sleep(1)
