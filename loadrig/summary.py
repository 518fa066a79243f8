"""
Run summary: per-metric aggregates plus the threshold verdict.
"""

from __future__ import annotations

import math
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from loadrig.thresholds import ThresholdResult


class CheckTally(BaseModel):
    passes: int = 0
    fails: int = 0

    @property
    def total(self) -> int:
        return self.passes + self.fails


class RunSummary(BaseModel):
    """
    Structured result of one scenario run.

    Attributes:
        scenario: Catalog name of the scenario.
        started_at: When the schedule started.
        finished_at: When the last VU drained.
        elapsed_seconds: Wall-clock run time.
        vus_max: Peak concurrent VUs.
        iterations: Completed iterations.
        metrics: {metric: {aggregate: value}}; missing values are None.
        checks: Per-check pass/fail tallies.
        thresholds: Evaluated thresholds.
        passed: Overall verdict.
        aborted: An abort_on_fail threshold stopped the run early.
        interrupted: The run was stopped externally.
    """

    scenario: str
    started_at: datetime
    finished_at: datetime
    elapsed_seconds: float
    vus_max: int = 0
    iterations: int = 0
    metrics: Dict[str, Dict[str, Optional[Union[int, float]]]] = Field(default_factory=dict)
    checks: Dict[str, CheckTally] = Field(default_factory=dict)
    thresholds: List[ThresholdResult] = Field(default_factory=list)
    passed: bool
    aborted: bool = False
    interrupted: bool = False

    @field_validator("metrics", mode="before")
    @classmethod
    def _nan_to_none(cls, value):
        if not isinstance(value, dict):
            return value
        return {
            metric: {
                key: None if isinstance(v, float) and math.isnan(v) else v
                for key, v in aggregates.items()
            }
            for metric, aggregates in value.items()
        }

    @property
    def failed_thresholds(self) -> List[ThresholdResult]:
        return [result for result in self.thresholds if not result.passed]


def write_summary(summary: RunSummary, path: Union[str, Path]) -> Path:
    """Write the summary as JSON; parent directories are created."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(summary.model_dump_json(indent=2), encoding="utf-8")
    return target


def format_summary(summary: RunSummary) -> str:
    """
    Format a run summary as human-readable text.

    Args:
        summary: RunSummary from a completed run.

    Returns:
        Formatted string suitable for printing.
    """
    lines = []

    lines.append("=" * 60)
    lines.append(f"SCENARIO: {summary.scenario}")
    lines.append("=" * 60)
    lines.append(
        f"Duration: {summary.elapsed_seconds:.1f}s  "
        f"Iterations: {summary.iterations}  Peak VUs: {summary.vus_max}"
    )
    if summary.interrupted:
        lines.append("Run was interrupted before the schedule completed.")
    if summary.aborted:
        lines.append("Run was aborted by a failing threshold.")

    if summary.checks:
        lines.append("")
        lines.append("--- Checks ---")
        for name, tally in sorted(summary.checks.items()):
            pct = tally.passes / tally.total * 100 if tally.total else 0.0
            lines.append(
                f"  {name}: {pct:.1f}% ({tally.passes} passed, {tally.fails} failed)"
            )

    lines.append("")
    lines.append("--- Metrics ---")
    for name in sorted(summary.metrics):
        values = "  ".join(
            f"{key}={_fmt(value)}" for key, value in summary.metrics[name].items()
        )
        lines.append(f"  {name}: {values}")

    if summary.thresholds:
        lines.append("")
        lines.append("--- Thresholds ---")
        for result in summary.thresholds:
            mark = "PASS" if result.passed else "FAIL"
            lines.append(f"  [{mark}] {result.describe()}")

    lines.append("")
    lines.append(f"VERDICT: {'PASS' if summary.passed else 'FAIL'}")
    failures = summary.failed_thresholds
    if failures:
        lines.append(f"{len(failures)} threshold(s) failed:")
        for result in failures:
            lines.append(f"  {result.describe()}")

    return "\n".join(lines)


def _fmt(val: Optional[float], decimals: int = 2) -> str:
    """Format a value, handling None."""
    if val is None:
        return "N/A"
    if float(val).is_integer():
        return str(int(val))
    return f"{val:.{decimals}f}"
