"""
Tests for the ramping-VU executor.

Schedules here are scaled down to fractions of a second so the timing
behaviour is exercised without slowing the suite.
"""

import asyncio

import httpx
import pytest

from loadrig.executor import RampingVUExecutor
from loadrig.metrics import MetricRegistry
from loadrig.scenario import Options, Pacing, ScenarioDefinition
from loadrig.schedule import Schedule
from loadrig.thresholds import Threshold

BASE_URL = "http://target.test"


def definition(body, stages, pacing=None):
    return ScenarioDefinition(
        name="executor-test",
        options=Options(stages=stages, pacing=pacing or Pacing.none()),
        body=body,
    )


@pytest.fixture
async def client():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="ok"))
    async with httpx.AsyncClient(transport=transport) as client:
        yield client


def make_executor(defn, client, **kwargs):
    registry = MetricRegistry()
    kwargs.setdefault("tick", 0.02)
    executor = RampingVUExecutor(defn, registry, client, base_url=BASE_URL, **kwargs)
    return executor, registry


@pytest.mark.anyio
async def test_ramp_up_hold_down(client):
    async def body(ctx):
        await asyncio.sleep(0.02)

    executor, registry = make_executor(
        definition(body, [(0.2, 4), (0.2, 4), (0.1, 0)]), client
    )
    stats = await executor.run()

    assert stats.vus_max == 4
    assert stats.vus_spawned == 4
    assert stats.iterations > 0
    assert stats.iterations == registry.counter("iterations").count
    assert registry.trend("iteration_duration").count == stats.iterations
    assert registry.gauge("vus_max").value == 4
    assert registry.gauge("vus").value == 0
    assert not stats.interrupted
    assert not stats.aborted_by_threshold
    assert 0.5 <= stats.elapsed_seconds < 2.0


@pytest.mark.anyio
async def test_drain_waits_for_in_flight_iterations(client):
    started = 0
    completed = 0

    async def body(ctx):
        nonlocal started, completed
        started += 1
        await asyncio.sleep(0.15)
        completed += 1

    executor, _ = make_executor(definition(body, [(0.1, 3)]), client)
    stats = await executor.run()

    assert started > 0
    assert started == completed
    assert stats.iterations == completed
    assert executor.running_vus == 0


@pytest.mark.anyio
async def test_retiring_vu_skips_think_time(client):
    async def body(ctx):
        await ctx.request("/health")

    executor, registry = make_executor(
        definition(body, [(0.1, 1)], pacing=Pacing.fixed(5.0)), client
    )
    stats = await executor.run()

    assert stats.elapsed_seconds < 2.0
    assert registry.counter("http_reqs").count >= 1


@pytest.mark.anyio
async def test_stop_event_interrupts_run(client):
    async def body(ctx):
        await asyncio.sleep(0.01)

    stop_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.2, stop_event.set)
    executor, _ = make_executor(definition(body, Schedule.constant(2, "10s")), client)
    stats = await executor.run(stop_event)

    assert stats.interrupted
    assert stats.elapsed_seconds < 2.0
    assert stats.iterations > 0


@pytest.mark.anyio
async def test_abort_on_fail_threshold_stops_run():
    transport = httpx.MockTransport(lambda request: httpx.Response(500))

    async def body(ctx):
        await ctx.request("/simulate/error")
        await asyncio.sleep(0.01)

    async with httpx.AsyncClient(transport=transport) as failing_client:
        executor, registry = make_executor(
            definition(body, Schedule.constant(2, "10s")),
            failing_client,
            abort_thresholds=[
                Threshold("http_req_failed", "rate<0.1", abort_on_fail=True),
            ],
        )
        stats = await executor.run()

    assert stats.aborted_by_threshold
    assert stats.elapsed_seconds < 3.0
    assert registry.rate("http_req_failed").rate == 1.0


@pytest.mark.anyio
async def test_thresholds_without_abort_do_not_stop(client):
    async def body(ctx):
        await asyncio.sleep(0.01)

    executor, _ = make_executor(
        definition(body, [(0.2, 1)]),
        client,
        abort_thresholds=[Threshold("http_req_failed", "rate<0.1")],
    )
    stats = await executor.run()
    assert not stats.aborted_by_threshold


@pytest.mark.anyio
async def test_iteration_exception_is_counted_and_vu_continues(client):
    async def body(ctx):
        await asyncio.sleep(0.01)
        if ctx.iteration % 2 == 0:
            raise RuntimeError("boom")

    executor, registry = make_executor(definition(body, [(0.2, 1)]), client)
    stats = await executor.run()

    errors = registry.counter("iteration_errors").count
    assert errors >= 1
    assert stats.iterations > errors
    assert stats.iterations == registry.counter("iterations").count


@pytest.mark.anyio
async def test_converge_spawns_instead_of_reviving(client):
    release = asyncio.Event()

    async def body(ctx):
        await release.wait()

    executor, registry = make_executor(definition(body, [(1, 3)]), client)
    executor._converge(3)
    executor._converge(1)
    assert executor.live_vus == 1
    assert executor.running_vus == 3

    executor._converge(2)
    live_ids = {vu.vu_id for vu in executor._vus if vu.live}
    assert live_ids == {1, 4}
    assert registry.gauge("vus").value == 2
    assert registry.gauge("vus_max").value == 4

    release.set()
    executor._converge(0)
    await executor._drain()
    assert executor.live_vus == 0


@pytest.mark.anyio
async def test_seeded_vus_are_reproducible(client):
    draws = {}

    async def body(ctx):
        draws.setdefault(ctx.vu_id, ctx.rng.random())
        await asyncio.sleep(0.01)

    executor, _ = make_executor(definition(body, Schedule.constant(2, 0.1)), client, seed=11)
    await executor.run()
    first = dict(draws)
    draws.clear()

    executor, _ = make_executor(definition(body, Schedule.constant(2, 0.1)), client, seed=11)
    await executor.run()
    assert draws == first
    assert set(first) == {1, 2}


def test_tick_must_be_positive():
    async def body(ctx):
        return None

    with pytest.raises(ValueError):
        RampingVUExecutor(
            definition(body, [(1, 1)]),
            MetricRegistry(),
            httpx.AsyncClient(),
            base_url=BASE_URL,
            tick=0,
        )
