"""CPU profiling test: a few users hitting a mix that includes the slow endpoint."""

from __future__ import annotations

from loadrig.context import VUContext
from loadrig.scenario import Options, Pacing, RequestSpec, ScenarioDefinition


async def body(ctx: VUContext) -> None:
    rng = ctx.rng
    operations = [
        RequestSpec.get("/health"),
        RequestSpec.get(f"/user/{rng.randrange(100)}", name="/user/:id"),
        RequestSpec.get("/simulate/slow"),
        RequestSpec.post(
            "/calculate/add",
            json={"a": rng.random() * 1000, "b": rng.random() * 1000},
            headers={"Content-Type": "application/json"},
        ),
    ]
    await ctx.request(ctx.pick(operations))


SCENARIO = ScenarioDefinition(
    name="profiling-test",
    description="CPU profiling test (3min, 5 users)",
    options=Options(
        stages=[("30s", 5), ("2m", 5), ("30s", 0)],
        pacing=Pacing.fixed(1.0),
    ),
    body=body,
)
