"""
loadrig - Drive an HTTP service with ramping virtual users and judge the run
against thresholds.

Run a catalog scenario:
    from loadrig import Runner, RunOverrides

    exit_code = Runner().run("basic-load", RunOverrides(vus=5, duration="30s"))

Define your own:
    from loadrig import Options, Pacing, ScenarioDefinition

    async def body(ctx):
        outcome = await ctx.request("/health")
        ctx.check(outcome, {"status is 200": lambda r: r.status == 200})

    scenario = ScenarioDefinition(
        name="smoke",
        options=Options(
            stages=[("10s", 5), ("10s", 0)],
            thresholds={"checks": ["rate>0.99"]},
            pacing=Pacing.fixed(1.0),
        ),
        body=body,
    )
"""

from loadrig.catalog import Catalog, default_catalog  # noqa: F401
from loadrig.config import Settings, get_settings  # noqa: F401
from loadrig.context import VUContext  # noqa: F401
from loadrig.exceptions import (  # noqa: F401
    ConfigurationError,
    EnvironmentUnavailable,
    LoadrigError,
    RequestFailure,
    ScenarioNotFound,
)
from loadrig.executor import ExecutionStats, RampingVUExecutor  # noqa: F401
from loadrig.metrics import Counter, Gauge, MetricRegistry, Rate, Trend  # noqa: F401
from loadrig.runner import ExitCode, RunOutcome, RunOverrides, Runner  # noqa: F401
from loadrig.scenario import (  # noqa: F401
    Options,
    Pacing,
    RequestOutcome,
    RequestSpec,
    ScenarioDefinition,
    weighted_choice,
)
from loadrig.schedule import Schedule, Stage, parse_duration  # noqa: F401
from loadrig.summary import RunSummary, format_summary, write_summary  # noqa: F401
from loadrig.thresholds import Threshold, ThresholdResult, evaluate  # noqa: F401

__version__ = "0.1.0"
