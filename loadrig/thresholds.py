"""
Threshold evaluation: pass/fail conditions over aggregated metrics.

Expressions follow the familiar `<aggregate> <operator> <bound>` form:

    "p(95)<500"     95th percentile strictly below 500
    "rate<0.1"      fewer than 10% true observations
    "avg<=200"      mean at most 200
    "count>100"     more than 100 occurrences

Thresholds are validated against the registry before a run starts and
evaluated once over the final register state (or periodically, for the
ones marked abort_on_fail).
"""

from __future__ import annotations

import logging
import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from loadrig.exceptions import ConfigurationError
from loadrig.metrics.registry import MetricRegistry, is_missing

logger = logging.getLogger(__name__)

_OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

_EXPRESSION = re.compile(
    r"^\s*(?P<agg>avg|min|med|max|count|rate|value|p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*"
    r"(?P<bound>[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*$"
)


@dataclass(frozen=True)
class ThresholdExpression:
    """Parsed form of a threshold expression."""

    aggregate: str
    operator: str
    bound: float
    percentile: Optional[float] = None

    @property
    def label(self) -> str:
        if self.aggregate == "p":
            return f"p({self.percentile:g})"
        return self.aggregate

    def compare(self, value: float) -> bool:
        if is_missing(value):
            return False
        return _OPERATORS[self.operator](value, self.bound)


def parse_expression(text: str) -> ThresholdExpression:
    """
    Parse "p(95)<500"-style text.

    Raises:
        ConfigurationError: Unknown aggregate or operator, or bad bound.
    """
    match = _EXPRESSION.match(text or "")
    if match is None:
        raise ConfigurationError(
            f"Invalid threshold expression: {text!r}",
            code="invalid_threshold",
            details={"expression": text, "operators": sorted(_OPERATORS)},
        )
    pct = match.group("pct")
    percentile = float(pct) if pct is not None else None
    if percentile is not None and not 0 <= percentile <= 100:
        raise ConfigurationError(
            f"Percentile out of range in {text!r}",
            code="invalid_threshold",
            details={"expression": text},
        )
    return ThresholdExpression(
        aggregate="p" if percentile is not None else match.group("agg"),
        operator=match.group("op"),
        bound=float(match.group("bound")),
        percentile=percentile,
    )


@dataclass(frozen=True)
class Threshold:
    """
    A pass/fail condition on one metric.

    Attributes:
        metric: Name of the metric register.
        expression: Condition text, e.g. "p(95)<500".
        abort_on_fail: Stop the run early as soon as the condition fails.
    """

    metric: str
    expression: str
    abort_on_fail: bool = False

    @property
    def parsed(self) -> ThresholdExpression:
        return parse_expression(self.expression)


ThresholdSpec = Union[Threshold, str, Mapping[str, Any]]


def normalize_thresholds(
    thresholds: Union[None, Sequence[Threshold], Mapping[str, Sequence[ThresholdSpec]]],
) -> List[Threshold]:
    """
    Accept either a list of Threshold or the mapping form
    {"http_req_duration": ["p(95)<500", {"threshold": "p(99)<1000", "abort_on_fail": True}]}.
    """
    if not thresholds:
        return []
    if not isinstance(thresholds, Mapping):
        return list(thresholds)
    out: List[Threshold] = []
    for metric, specs in thresholds.items():
        if isinstance(specs, (str, Threshold)) or isinstance(specs, Mapping):
            specs = [specs]
        for spec in specs:
            if isinstance(spec, Threshold):
                out.append(spec)
            elif isinstance(spec, str):
                out.append(Threshold(metric=metric, expression=spec))
            elif isinstance(spec, Mapping) and "threshold" in spec:
                out.append(
                    Threshold(
                        metric=metric,
                        expression=spec["threshold"],
                        abort_on_fail=bool(spec.get("abort_on_fail", False)),
                    )
                )
            else:
                raise ConfigurationError(
                    f"Invalid threshold for '{metric}': {spec!r}",
                    code="invalid_threshold",
                )
    return out


class ThresholdResult(BaseModel):
    """Outcome of one threshold after evaluation."""

    metric: str
    expression: str
    aggregate: str
    operator: str
    bound: float
    computed: Optional[float] = None
    passed: bool
    abort_on_fail: bool = False

    def describe(self) -> str:
        computed = "no data" if self.computed is None else f"{self.computed:.4g}"
        return (
            f"{self.metric}: {self.expression} "
            f"(computed {self.aggregate}={computed}, bound {self.operator} {self.bound:g})"
        )


def validate_thresholds(thresholds: Iterable[Threshold], registry: MetricRegistry) -> None:
    """
    Fail fast on thresholds that can never be evaluated.

    Raises:
        ConfigurationError: Bad expression, unknown metric, or an aggregate
            that the metric's kind does not provide.
    """
    for threshold in thresholds:
        expr = threshold.parsed
        if threshold.metric not in registry:
            raise ConfigurationError(
                f"Threshold references unknown metric '{threshold.metric}'",
                code="unknown_metric",
                details={"metric": threshold.metric, "known": registry.names()},
            )
        register = registry.get(threshold.metric)
        if not register.supports(expr.aggregate):
            raise ConfigurationError(
                f"Metric '{threshold.metric}' is a {register.kind}; "
                f"'{expr.label}' is not available (use one of {', '.join(register.aggregates)})",
                code="unsupported_aggregate",
                details={"metric": threshold.metric, "aggregate": expr.label},
            )


def evaluate(
    thresholds: Iterable[Threshold],
    registry: MetricRegistry,
    elapsed_seconds: Optional[float] = None,
) -> List[ThresholdResult]:
    """
    Compute each threshold's aggregate and compare it against its bound.

    Empty metrics (NaN aggregates) fail their thresholds.
    """
    results: List[ThresholdResult] = []
    for threshold in thresholds:
        expr = threshold.parsed
        register = registry.get(threshold.metric)
        value = register.aggregate(
            expr.aggregate,
            percentile=expr.percentile,
            elapsed_seconds=elapsed_seconds,
        )
        passed = expr.compare(value)
        results.append(
            ThresholdResult(
                metric=threshold.metric,
                expression=threshold.expression,
                aggregate=expr.label,
                operator=expr.operator,
                bound=expr.bound,
                computed=None if is_missing(value) else value,
                passed=passed,
                abort_on_fail=threshold.abort_on_fail,
            )
        )
        if not passed:
            logger.debug("Threshold failed: %s", results[-1].describe())
    return results


def verdict(results: Iterable[ThresholdResult]) -> bool:
    """PASS iff every threshold passed (no thresholds is a PASS)."""
    return all(result.passed for result in results)


def failed(results: Iterable[ThresholdResult]) -> List[ThresholdResult]:
    return [result for result in results if not result.passed]
