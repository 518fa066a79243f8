"""Standard load test: mixed reads and calculations at up to 20 users."""

from __future__ import annotations

from loadrig.context import VUContext
from loadrig.scenario import Options, Pacing, RequestSpec, ScenarioDefinition

JSON_HEADERS = {"Content-Type": "application/json"}


async def body(ctx: VUContext) -> None:
    rng = ctx.rng
    requests = [
        RequestSpec.get("/health"),
        RequestSpec.get(f"/user/{rng.randrange(100)}", name="/user/:id"),
        RequestSpec.post(
            "/calculate/add",
            json={"a": rng.random() * 100, "b": rng.random() * 100},
            headers=JSON_HEADERS,
        ),
        RequestSpec.post(
            "/calculate/divide",
            # b stays in 1..10 so the divide never hits zero
            json={"a": rng.random() * 100, "b": rng.randrange(10) + 1},
            headers=JSON_HEADERS,
        ),
    ]

    outcome = await ctx.request(ctx.pick(requests))

    ctx.metrics.trend("request_duration").add(outcome.elapsed_ms)
    ctx.metrics.counter("requests").add(1)

    success = ctx.check(
        outcome,
        {
            "status is 200 or 400": lambda r: r.status in (200, 400),
            "response has body": lambda r: r.body_length > 0,
        },
    )
    ctx.metrics.rate("errors").add(not success)


SCENARIO = ScenarioDefinition(
    name="basic-load",
    description="Standard load test (4min, 20 users)",
    options=Options(
        stages=[
            {"duration": "30s", "target": 10},
            {"duration": "1m", "target": 10},
            {"duration": "30s", "target": 20},
            {"duration": "1m", "target": 20},
            {"duration": "30s", "target": 0},
        ],
        thresholds={
            "http_req_duration": ["p(95)<500", "p(99)<1000"],
            "http_req_failed": ["rate<0.1"],
            "errors": ["rate<0.1"],
        },
        pacing=Pacing.uniform(0.5, 2.5),
    ),
    body=body,
    metrics={"errors": "rate", "request_duration": "trend", "requests": "counter"},
)
