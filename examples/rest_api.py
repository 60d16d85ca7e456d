"""Two scenarios against a REST API, with per-endpoint thresholds.

Browsers ramp up and down while a constant trickle of writers creates
items. Run with:

    rampforge run examples/rest_api.py

Or replace the scenarios from the command line:

    rampforge run examples/rest_api.py --exec Browse --stage 20:30s --stage 0:30s
"""

from __future__ import annotations

import random

from rampforge import HttpClient, Options, ScenarioConfig, Threshold, scenario, task

options = Options(
    thresholds={
        "http_req_duration": ["p(95)<800", "avg<300"],
        "http_req_duration{name:Get Item}": ["p(99)<1000"],
        "http_req_failed": [Threshold("rate<0.05", abort_on_fail=True, delay_abort_eval="30s")],
        "checks": ["rate>0.95"],
    },
    scenarios={
        "browsers": ScenarioConfig(
            executor="ramping-vus",
            stages=["20:30s", "20:1m", "0:30s"],
            exec="Browse",
        ),
        "writers": ScenarioConfig(
            executor="constant-vus",
            vus=2,
            duration="2m",
            start_time="15s",
            exec="Write",
        ),
    },
)


@scenario(name="Browse", base_url="http://localhost:8080", think_time=(0.5, 1.5))
class BrowseScenario:
    """Mostly reads, weighted toward the item list."""

    @task(weight=5)
    async def list_items(self, client: HttpClient) -> None:
        response = await client.get("/items", name="List Items")
        client.check(response, {"list ok": lambda r: r.status == 200})

    @task(weight=3)
    async def get_item(self, client: HttpClient) -> None:
        item_id = random.randint(1, 1000)  # noqa: S311
        response = await client.get(f"/items/{item_id}", name="Get Item")
        client.check(response, {"item found or missing": lambda r: r.status in (200, 404)})


@scenario(name="Write", base_url="http://localhost:8080", think_time=(1.0, 3.0))
class WriteScenario:
    """Creates items."""

    @task()
    async def create_item(self, client: HttpClient) -> None:
        response = await client.post(
            "/items",
            json={"name": f"Item-{random.randint(1, 10000)}"},  # noqa: S311
            name="Create Item",
        )
        client.check(response, {"created": lambda r: r.status == 201})
