"""
MetricRegistry: the process-wide aggregator shared by every virtual user.

Created once per run when the scenario is loaded and passed by reference into
each VU context. Holds the built-in HTTP/iteration metrics plus any custom
metrics the scenario declares.
"""

from __future__ import annotations

import math
import threading
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

from loadrig.exceptions import ConfigurationError
from loadrig.metrics.registers import (
    COUNTER,
    GAUGE,
    RATE,
    REGISTER_KINDS,
    TREND,
    Counter,
    Gauge,
    Rate,
    Trend,
    _Register,
)

if TYPE_CHECKING:
    from loadrig.scenario import RequestOutcome

HTTP_REQS = "http_reqs"
HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"
DATA_RECEIVED = "data_received"
CHECKS = "checks"
ITERATIONS = "iterations"
ITERATION_DURATION = "iteration_duration"
ITERATION_ERRORS = "iteration_errors"
VUS = "vus"
VUS_MAX = "vus_max"

BUILTIN_METRICS: Tuple[Tuple[str, str], ...] = (
    (HTTP_REQS, COUNTER),
    (HTTP_REQ_DURATION, TREND),
    (HTTP_REQ_FAILED, RATE),
    (DATA_RECEIVED, COUNTER),
    (CHECKS, RATE),
    (ITERATIONS, COUNTER),
    (ITERATION_DURATION, TREND),
    (ITERATION_ERRORS, COUNTER),
    (VUS, GAUGE),
    (VUS_MAX, GAUGE),
)


class _CheckTally:
    """Thread-safe pass/fail tally for one named check."""

    def __init__(self) -> None:
        self._passes = 0
        self._fails = 0
        self._lock = threading.Lock()

    def add(self, passed: bool) -> None:
        with self._lock:
            if passed:
                self._passes += 1
            else:
                self._fails += 1

    def get(self) -> Dict[str, int]:
        with self._lock:
            return {"passes": self._passes, "fails": self._fails}


class MetricRegistry:
    """
    Named collection of metric registers for one run.

    Example:
        registry = MetricRegistry()
        errors = registry.declare("errors", "rate")
        errors.add(False)
        registry.get("http_req_duration").add(42.0)
        print(registry.snapshot(elapsed_seconds=10.0))
    """

    def __init__(self) -> None:
        self._registers: Dict[str, _Register] = {}
        self._checks: Dict[str, _CheckTally] = defaultdict(_CheckTally)
        self._lock = threading.Lock()
        for name, kind in BUILTIN_METRICS:
            self.declare(name, kind)

    def declare(self, name: str, kind: str) -> _Register:
        """
        Register a metric, or return the existing one of the same kind.

        Raises:
            ConfigurationError: Unknown kind, or name already used by another kind.
        """
        if kind not in REGISTER_KINDS:
            raise ConfigurationError(
                f"Unknown metric kind '{kind}' for metric '{name}'",
                code="unknown_metric_kind",
                details={"metric": name, "kind": kind, "known": sorted(REGISTER_KINDS)},
            )
        with self._lock:
            existing = self._registers.get(name)
            if existing is not None:
                if existing.kind != kind:
                    raise ConfigurationError(
                        f"Metric '{name}' already declared as {existing.kind}, not {kind}",
                        code="metric_kind_conflict",
                        details={"metric": name, "declared": existing.kind, "requested": kind},
                    )
                return existing
            register = REGISTER_KINDS[kind](name)
            self._registers[name] = register
            return register

    def get(self, name: str) -> _Register:
        with self._lock:
            register = self._registers.get(name)
        if register is None:
            raise ConfigurationError(
                f"Unknown metric '{name}'",
                code="unknown_metric",
                details={"metric": name, "known": self.names()},
            )
        return register

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._registers

    def __iter__(self) -> Iterator[_Register]:
        with self._lock:
            registers = list(self._registers.values())
        return iter(registers)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._registers)

    def counter(self, name: str) -> Counter:
        return self._typed(name, Counter)

    def rate(self, name: str) -> Rate:
        return self._typed(name, Rate)

    def trend(self, name: str) -> Trend:
        return self._typed(name, Trend)

    def gauge(self, name: str) -> Gauge:
        return self._typed(name, Gauge)

    def _typed(self, name: str, cls: type) -> Any:
        register = self.get(name)
        if not isinstance(register, cls):
            raise ConfigurationError(
                f"Metric '{name}' is a {register.kind}, not a {cls.kind}",
                code="metric_kind_conflict",
                details={"metric": name, "declared": register.kind},
            )
        return register

    def record_request(self, outcome: "RequestOutcome") -> None:
        """Feed one request outcome into the built-in HTTP metrics."""
        self.counter(HTTP_REQS).add(1)
        self.trend(HTTP_REQ_DURATION).add(outcome.elapsed_ms)
        self.rate(HTTP_REQ_FAILED).add(outcome.failed)
        if outcome.body_length:
            self.counter(DATA_RECEIVED).add(outcome.body_length)

    def record_check(self, name: str, passed: bool) -> None:
        """Feed one check result into `checks` and its per-name tally."""
        self.rate(CHECKS).add(passed)
        with self._lock:
            tally = self._checks[name]
        tally.add(passed)

    def check_results(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {name: tally.get() for name, tally in self._checks.items()}

    def snapshot(
        self,
        elapsed_seconds: Optional[float] = None,
        *,
        include_empty: bool = False,
    ) -> Dict[str, Dict[str, float]]:
        """
        Get per-metric aggregates.

        Args:
            elapsed_seconds: Run time, used for counter rates.
            include_empty: Also report registers that never received data.

        Returns:
            Dict mapping metric name to its aggregate values.
        """
        out: Dict[str, Dict[str, float]] = {}
        for register in self:
            if register.empty and not include_empty:
                continue
            out[register.name] = register.summary(elapsed_seconds)
        return out


def is_missing(value: Optional[float]) -> bool:
    """True for None or NaN aggregates (no samples)."""
    return value is None or (isinstance(value, float) and math.isnan(value))
