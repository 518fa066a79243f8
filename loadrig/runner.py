"""
Runner: resolves a scenario by name, makes sure the target is up, executes the
scenario and maps the result to a process exit status.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, List, Optional, Sequence

import httpx

from loadrig.catalog import Catalog, default_catalog
from loadrig.config import Settings, get_settings
from loadrig.exceptions import ConfigurationError, EnvironmentUnavailable, LoadrigError
from loadrig.executor import RampingVUExecutor
from loadrig.metrics.registry import MetricRegistry
from loadrig.scenario import ScenarioDefinition
from loadrig.schedule import DurationLike, Schedule
from loadrig.summary import CheckTally, RunSummary, write_summary
from loadrig.thresholds import Threshold, evaluate, validate_thresholds, verdict

logger = logging.getLogger(__name__)

READY_POLL_SECONDS = 0.5


class ExitCode(IntEnum):
    OK = 0
    THRESHOLDS_FAILED = 99
    CONFIGURATION_ERROR = 104
    ENVIRONMENT_UNAVAILABLE = 105
    INTERRUPTED = 130


@dataclass
class RunOverrides:
    """
    Externally supplied options; each one set here wins over the scenario's
    declared default.

    Attributes:
        base_url: Target base URL.
        vus: Constant VU count (replaces the stages).
        duration: Run length for a constant-VU run.
        stages: Replacement stage list.
        summary_export: Path for the JSON summary.
        no_thresholds: Skip threshold evaluation.
        seed: Seed for the per-VU random generators.
        progress: Log progress once per second.
    """

    base_url: Optional[str] = None
    vus: Optional[int] = None
    duration: Optional[DurationLike] = None
    stages: Optional[Sequence[Any]] = None
    summary_export: Optional[str] = None
    no_thresholds: bool = False
    seed: Optional[int] = None
    progress: bool = False


@dataclass
class _PreparedRun:
    """A definition with overrides applied and its registry ready."""

    definition: ScenarioDefinition
    registry: MetricRegistry
    thresholds: List[Threshold]


@dataclass
class RunOutcome:
    """Exit status plus whatever the run produced."""

    exit_code: ExitCode
    summary: Optional[RunSummary] = None
    error: Optional[LoadrigError] = None


class Runner:
    """
    Test runner.

    Example:
        runner = Runner()
        definition = runner.resolve("basic-load")
        exit_code = runner.run("basic-load", RunOverrides(vus=5, duration="30s"))
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        catalog: Optional[Catalog] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        tick: float = 0.1,
    ) -> None:
        self.settings = settings or get_settings()
        self.catalog = catalog or default_catalog()
        self._transport = transport
        self._tick = tick

    def resolve(self, name: str) -> ScenarioDefinition:
        return self.catalog.resolve(name)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            transport=self._transport,
            limits=httpx.Limits(max_connections=None, max_keepalive_connections=100),
        )

    def base_url(self, overrides: Optional[RunOverrides] = None) -> str:
        if overrides is not None and overrides.base_url:
            return overrides.base_url.rstrip("/")
        return self.settings.base_url

    def apply_overrides(
        self, definition: ScenarioDefinition, overrides: Optional[RunOverrides]
    ) -> ScenarioDefinition:
        """
        Apply stage overrides.

        Precedence: explicit stages, then vus/duration (constant VUs), then
        vus alone (constant VUs over the scenario's own total duration).
        """
        if overrides is None:
            return definition
        if overrides.stages:
            return definition.with_overrides(stages=Schedule(overrides.stages))
        if overrides.duration is not None:
            vus = overrides.vus if overrides.vus is not None else self.settings.default_vus
            return definition.with_overrides(stages=Schedule.constant(vus, overrides.duration))
        if overrides.vus is not None:
            total = definition.schedule.total_duration
            return definition.with_overrides(stages=Schedule.constant(overrides.vus, total))
        return definition

    async def prepare_environment(self, base_url: Optional[str] = None) -> None:
        """
        Make sure the target answers its health check.

        Runs the configured start command once if the target is down, then
        polls until ready_timeout.

        Raises:
            EnvironmentUnavailable: Still not healthy.
        """
        base = (base_url or self.settings.base_url).rstrip("/")
        health_path = self.settings.health_path
        if not health_path.startswith("/"):
            health_path = "/" + health_path
        url = f"{base}{health_path}"

        async with self._client() as client:
            status = await self._probe(client, url)
            if status == 200:
                logger.info("Target ready at %s", base)
                return

            argv = self.settings.start_argv
            if not argv:
                raise EnvironmentUnavailable(
                    f"Target service is not reachable at {url}",
                    base_url=base,
                    status_code=status,
                )

            logger.warning("Target not ready at %s; starting it with: %s", base, " ".join(argv))
            await self._start_target(argv, base)

            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.settings.ready_timeout
            while loop.time() < deadline:
                await asyncio.sleep(READY_POLL_SECONDS)
                status = await self._probe(client, url)
                if status == 200:
                    logger.info("Target ready at %s", base)
                    return

        raise EnvironmentUnavailable(
            f"Target service still unavailable at {url} after "
            f"{self.settings.ready_timeout:g}s",
            base_url=base,
            status_code=status,
        )

    async def _probe(self, client: httpx.AsyncClient, url: str) -> Optional[int]:
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            logger.debug("Health check failed: %s", exc)
            return None
        return response.status_code

    async def _start_target(self, argv: Sequence[str], base_url: str) -> None:
        try:
            process = await asyncio.create_subprocess_exec(*argv)
        except OSError as exc:
            raise EnvironmentUnavailable(
                f"Could not run start command {argv[0]!r}: {exc}",
                base_url=base_url,
                code="start_command_failed",
            ) from exc
        returncode = await process.wait()
        if returncode != 0:
            raise EnvironmentUnavailable(
                f"Start command exited with status {returncode}",
                base_url=base_url,
                code="start_command_failed",
                details={"returncode": returncode},
            )

    def _prepare_definition(
        self, definition: ScenarioDefinition, overrides: RunOverrides
    ) -> _PreparedRun:
        """
        Apply overrides, declare metrics and validate thresholds.

        Raises:
            ConfigurationError: Bad stages or durations, unknown threshold
                metrics, unsupported aggregates.
        """
        definition = self.apply_overrides(definition, overrides)
        logger.debug("Schedule for %s: %s", definition.name, definition.schedule.describe())
        thresholds = [] if overrides.no_thresholds else definition.thresholds

        registry = MetricRegistry()
        for name, kind in definition.metrics.items():
            registry.declare(name, kind)
        validate_thresholds(thresholds, registry)
        return _PreparedRun(definition, registry, thresholds)

    async def execute(
        self,
        definition: ScenarioDefinition,
        overrides: Optional[RunOverrides] = None,
        *,
        stop_event: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        """
        Run a scenario and evaluate its thresholds.

        Configuration problems (bad stages, unknown threshold metrics) raise
        before any VU starts.
        """
        overrides = overrides or RunOverrides()
        prepared = self._prepare_definition(definition, overrides)
        return await self._execute_prepared(prepared, overrides, stop_event)

    async def _execute_prepared(
        self,
        prepared: _PreparedRun,
        overrides: RunOverrides,
        stop_event: Optional[asyncio.Event],
    ) -> RunSummary:
        definition = prepared.definition
        registry = prepared.registry
        thresholds = prepared.thresholds
        started_at = datetime.now(timezone.utc)
        async with self._client() as client:
            executor = RampingVUExecutor(
                definition,
                registry,
                client,
                base_url=self.base_url(overrides),
                tick=self._tick,
                seed=overrides.seed,
                progress=overrides.progress,
                abort_thresholds=thresholds,
            )
            stats = await executor.run(stop_event)
        finished_at = datetime.now(timezone.utc)

        results = evaluate(thresholds, registry, stats.elapsed_seconds)
        summary = RunSummary(
            scenario=definition.name,
            started_at=started_at,
            finished_at=finished_at,
            elapsed_seconds=stats.elapsed_seconds,
            vus_max=stats.vus_max,
            iterations=stats.iterations,
            metrics=registry.snapshot(stats.elapsed_seconds),
            checks={
                name: CheckTally(**tally)
                for name, tally in registry.check_results().items()
            },
            thresholds=results,
            passed=verdict(results),
            aborted=stats.aborted_by_threshold,
            interrupted=stats.interrupted,
        )
        if overrides.summary_export:
            path = write_summary(summary, overrides.summary_export)
            logger.info("Summary written to %s", path)
        return summary

    async def run_async(
        self,
        name: str,
        overrides: Optional[RunOverrides] = None,
        *,
        check_environment: bool = True,
        handle_signals: bool = False,
    ) -> RunOutcome:
        """Resolve, prepare, execute; never raises for loadrig errors."""
        overrides = overrides or RunOverrides()
        try:
            definition = self.resolve(name)
            prepared = self._prepare_definition(definition, overrides)
            if check_environment:
                await self.prepare_environment(self.base_url(overrides))
            stop_event = asyncio.Event()
            if handle_signals:
                _install_stop_handler(stop_event)
            summary = await self._execute_prepared(prepared, overrides, stop_event)
        except ConfigurationError as exc:
            logger.error("Configuration error: %s", exc.message)
            return RunOutcome(ExitCode.CONFIGURATION_ERROR, error=exc)
        except EnvironmentUnavailable as exc:
            logger.error("Environment unavailable: %s", exc.message)
            return RunOutcome(ExitCode.ENVIRONMENT_UNAVAILABLE, error=exc)

        return RunOutcome(exit_code_for(summary), summary=summary)

    def run(
        self,
        name: str,
        overrides: Optional[RunOverrides] = None,
        *,
        check_environment: bool = True,
    ) -> int:
        """Synchronous entry point; returns the process exit status."""
        outcome = asyncio.run(
            self.run_async(name, overrides, check_environment=check_environment)
        )
        return int(outcome.exit_code)


def exit_code_for(summary: RunSummary) -> ExitCode:
    if summary.interrupted:
        return ExitCode.INTERRUPTED
    if not summary.passed:
        for result in summary.failed_thresholds:
            logger.error("Threshold failed: %s", result.describe())
        return ExitCode.THRESHOLDS_FAILED
    return ExitCode.OK


def _install_stop_handler(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread.
            logger.debug("Signal handler for %s not installed", sig)
