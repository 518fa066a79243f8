"""Long-running stability test; each iteration is a two-request batch."""

from __future__ import annotations

from loadrig.context import VUContext
from loadrig.scenario import Options, Pacing, RequestSpec, ScenarioDefinition


async def body(ctx: VUContext) -> None:
    outcomes = await ctx.batch(
        [
            RequestSpec.get("/health"),
            RequestSpec.get(f"/user/{ctx.rng.randrange(100)}", name="/user/:id"),
        ]
    )
    for outcome in outcomes:
        ctx.check(outcome, {"status is 200": lambda r: r.status == 200})


SCENARIO = ScenarioDefinition(
    name="soak-test",
    description="Long-running stability test (13min, 20 users)",
    options=Options(
        stages=[("2m", 20), ("10m", 20), ("1m", 0)],
        pacing=Pacing.fixed(1.0),
    ),
    body=body,
)
