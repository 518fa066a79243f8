"""
Ramping-VU executor: drives virtual users along a stage schedule.

A single control loop on the event loop recomputes the schedule's target every
tick and converges the live VU count to it:

- too few live VUs: spawn new ones (retiring VUs are never revived)
- too many: mark the most recently spawned as retiring; each finishes its
  in-flight iteration, skips its think time and leaves

Stopping (end of schedule, external stop event, or a failed abort_on_fail
threshold) retires every VU and waits for all in-flight iterations to finish.
Nothing is cancelled mid-request.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx

from loadrig.context import VUContext
from loadrig.metrics.registry import (
    ITERATION_DURATION,
    ITERATION_ERRORS,
    ITERATIONS,
    VUS,
    VUS_MAX,
    MetricRegistry,
)
from loadrig.scenario import ScenarioDefinition
from loadrig.thresholds import Threshold, evaluate, failed

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL_SECONDS = 1.0
ABORT_EVAL_INTERVAL_SECONDS = 1.0


@dataclass
class ExecutionStats:
    """
    What happened during one executor run.

    Attributes:
        elapsed_seconds: Wall-clock run time including the final drain.
        vus_spawned: Total VUs started over the run.
        vus_max: Peak number of concurrently running VUs.
        iterations: Completed iterations across all VUs.
        aborted_by_threshold: An abort_on_fail threshold stopped the run.
        interrupted: The external stop event stopped the run.
    """

    elapsed_seconds: float
    vus_spawned: int
    vus_max: int
    iterations: int
    aborted_by_threshold: bool = False
    interrupted: bool = False


class _VirtualUser:
    def __init__(self, vu_id: int, context: VUContext) -> None:
        self.vu_id = vu_id
        self.context = context
        self.retiring = asyncio.Event()
        self.task: Optional["asyncio.Task[None]"] = None

    @property
    def live(self) -> bool:
        return not self.retiring.is_set()

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()


class RampingVUExecutor:
    """
    Runs a scenario's body in a loop per VU, following its stage schedule.

    Example:
        registry = MetricRegistry()
        async with httpx.AsyncClient() as client:
            executor = RampingVUExecutor(definition, registry, client,
                                         base_url="http://localhost:8080")
            stats = await executor.run()
    """

    def __init__(
        self,
        definition: ScenarioDefinition,
        metrics: MetricRegistry,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        tick: float = 0.1,
        seed: Optional[int] = None,
        progress: bool = False,
        abort_thresholds: Optional[Sequence[Threshold]] = None,
    ) -> None:
        if tick <= 0:
            raise ValueError("tick must be > 0")
        self._definition = definition
        self._schedule = definition.schedule
        self._pacing = definition.options.pacing
        self._metrics = metrics
        self._client = client
        self._base_url = base_url
        self._tick = tick
        self._seed = seed
        self._progress = progress
        self._abort_thresholds = [
            t for t in (abort_thresholds or ()) if t.abort_on_fail
        ]

        self._vus: List[_VirtualUser] = []
        self._next_id = 1
        self._peak = 0
        self._iterations = 0

    @property
    def live_vus(self) -> int:
        return sum(1 for vu in self._vus if vu.live)

    @property
    def running_vus(self) -> int:
        """Live plus retiring VUs that have not finished yet."""
        return sum(1 for vu in self._vus if not vu.done)

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> ExecutionStats:
        """
        Drive the schedule to completion, then drain all VUs.

        Args:
            stop_event: Set it to stop early; in-flight iterations still finish.
        """
        loop = asyncio.get_running_loop()
        start = loop.time()
        total = self._schedule.total_duration
        aborted = False
        interrupted = False
        last_progress = 0.0
        last_abort_eval = 0.0

        logger.info(
            "Starting %s: %s (max %d VUs, %.1fs)",
            self._definition.name,
            self._schedule.describe(),
            self._schedule.max_target,
            total,
        )
        try:
            while True:
                elapsed = loop.time() - start
                if elapsed >= total:
                    break
                if stop_event is not None and stop_event.is_set():
                    interrupted = True
                    logger.info("Stop requested at %.1fs; draining VUs", elapsed)
                    break

                target = self._schedule.target_at(elapsed)
                self._converge(target)

                if (
                    self._abort_thresholds
                    and elapsed - last_abort_eval >= ABORT_EVAL_INTERVAL_SECONDS
                ):
                    last_abort_eval = elapsed
                    if self._should_abort(elapsed):
                        aborted = True
                        break

                if self._progress and elapsed - last_progress >= PROGRESS_INTERVAL_SECONDS:
                    last_progress = elapsed
                    logger.info(
                        "t=%.0fs vus=%d target=%d iterations=%d",
                        elapsed,
                        self.live_vus,
                        target,
                        self._iterations,
                    )

                await self._wait(min(self._tick, total - elapsed), stop_event)
        finally:
            self._converge(0)
            await self._drain()

        elapsed = loop.time() - start
        logger.info(
            "Finished %s in %.1fs: %d iterations, peak %d VUs",
            self._definition.name,
            elapsed,
            self._iterations,
            self._peak,
        )
        return ExecutionStats(
            elapsed_seconds=elapsed,
            vus_spawned=self._next_id - 1,
            vus_max=self._peak,
            iterations=self._iterations,
            aborted_by_threshold=aborted,
            interrupted=interrupted,
        )

    async def _wait(self, seconds: float, stop_event: Optional[asyncio.Event]) -> None:
        if stop_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _converge(self, target: int) -> None:
        self._vus = [vu for vu in self._vus if not vu.done]
        live = [vu for vu in self._vus if vu.live]
        if target > len(live):
            for _ in range(target - len(live)):
                self._spawn()
        elif target < len(live):
            for vu in reversed(live[target:]):
                vu.retiring.set()
                logger.debug("Retiring VU %d", vu.vu_id)

        running = self.running_vus
        self._peak = max(self._peak, running)
        self._metrics.gauge(VUS).set(self.live_vus)
        self._metrics.gauge(VUS_MAX).set(self._peak)

    def _spawn(self) -> None:
        vu_id = self._next_id
        self._next_id += 1
        rng = random.Random(self._seed + vu_id) if self._seed is not None else random.Random()
        context = VUContext(
            vu_id=vu_id,
            client=self._client,
            metrics=self._metrics,
            base_url=self._base_url,
            rng=rng,
        )
        vu = _VirtualUser(vu_id, context)
        vu.task = asyncio.ensure_future(self._run_vu(vu))
        self._vus.append(vu)
        logger.debug("Spawned VU %d", vu_id)

    async def _run_vu(self, vu: _VirtualUser) -> None:
        while vu.live:
            await self._iterate(vu)
            if not vu.live:
                break
            delay = self._pacing.delay(vu.context.rng)
            if delay <= 0:
                await asyncio.sleep(0)
                continue
            try:
                await asyncio.wait_for(vu.retiring.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def _iterate(self, vu: _VirtualUser) -> None:
        started = time.perf_counter()
        try:
            await self._definition.body(vu.context)
        except Exception:
            self._metrics.counter(ITERATION_ERRORS).add(1)
            logger.exception("Iteration %d failed on VU %d", vu.context.iteration, vu.vu_id)
        finally:
            vu.context.iteration += 1
        self._iterations += 1
        self._metrics.counter(ITERATIONS).add(1)
        self._metrics.trend(ITERATION_DURATION).add((time.perf_counter() - started) * 1000.0)

    async def _drain(self) -> None:
        tasks = [vu.task for vu in self._vus if vu.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._vus = []
        self._metrics.gauge(VUS).set(0)

    def _should_abort(self, elapsed: float) -> bool:
        results = evaluate(self._abort_thresholds, self._metrics, elapsed)
        failing = failed(results)
        # Metrics without samples yet cannot trigger an abort.
        failing = [r for r in failing if r.computed is not None]
        for result in failing:
            logger.warning("Aborting run: threshold failed: %s", result.describe())
        return bool(failing)
