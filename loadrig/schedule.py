"""
Stage schedules: a declarative list of (duration, target) tuples turned into a
VU-count function of elapsed time.

Usage:
    from loadrig.schedule import Schedule

    schedule = Schedule.from_stages([
        {"duration": "30s", "target": 10},
        {"duration": "1m", "target": 10},
        {"duration": "30s", "target": 0},
    ])
    schedule.target_at(15.0)  # -> 5
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Sequence, Tuple, Union

from loadrig.exceptions import ConfigurationError

_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_FULL = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|h|m|s))+")

DurationLike = Union[str, int, float]


def parse_duration(value: DurationLike) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) or unit strings such as "30s", "1m",
    "1m30s", "500ms", "2.5s", "1h".

    Raises:
        ConfigurationError: The value is not a recognized duration.
    """
    if isinstance(value, bool):
        raise ConfigurationError(
            f"Invalid duration: {value!r}", code="invalid_duration"
        )
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        if not _DURATION_FULL.fullmatch(text):
            raise ConfigurationError(
                f"Invalid duration: {value!r} (expected e.g. '30s', '1m30s', '500ms')",
                code="invalid_duration",
                details={"value": value},
            )
        seconds = sum(
            float(number) * _UNITS[unit] for number, unit in _DURATION_PART.findall(text)
        )
    else:
        raise ConfigurationError(
            f"Invalid duration: {value!r}", code="invalid_duration"
        )
    if seconds < 0 or math.isnan(seconds) or math.isinf(seconds):
        raise ConfigurationError(
            f"Invalid duration: {value!r}", code="invalid_duration"
        )
    return seconds


def format_duration(seconds: float) -> str:
    """Render seconds the way stage durations are usually written."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    minutes, rest = divmod(seconds, 60)
    if minutes and rest:
        return f"{int(minutes)}m{rest:g}s"
    if minutes:
        return f"{int(minutes)}m"
    return f"{rest:g}s"


@dataclass(frozen=True)
class Stage:
    """
    One time window of a schedule.

    Attributes:
        duration: Length of the stage in seconds.
        target: VU count reached at the end of the stage.
    """

    duration: float
    target: int

    @classmethod
    def parse(cls, value: Any) -> "Stage":
        """Build a Stage from a Stage, a mapping, or a (duration, target) pair."""
        if isinstance(value, Stage):
            return value
        if isinstance(value, dict):
            if "duration" not in value or "target" not in value:
                raise ConfigurationError(
                    f"Stage needs 'duration' and 'target': {value!r}",
                    code="invalid_stage",
                )
            duration, target = value["duration"], value["target"]
        elif isinstance(value, (tuple, list)) and len(value) == 2:
            duration, target = value
        else:
            raise ConfigurationError(f"Invalid stage: {value!r}", code="invalid_stage")
        if isinstance(target, bool) or not isinstance(target, int) or target < 0:
            raise ConfigurationError(
                f"Stage target must be a non-negative integer, got {target!r}",
                code="invalid_stage_target",
            )
        return cls(duration=parse_duration(duration), target=target)


class Schedule:
    """
    Piecewise-linear VU target over time.

    Stage i covers [t_i, t_i + duration_i) and ramps linearly from the previous
    stage's target (or start_target for the first stage) to its own target.
    Equal consecutive targets are a hold.
    """

    def __init__(self, stages: Iterable[Any], start_target: int = 0) -> None:
        parsed = [Stage.parse(stage) for stage in stages]
        if not parsed:
            raise ConfigurationError(
                "Schedule needs at least one stage", code="empty_schedule"
            )
        for index, stage in enumerate(parsed):
            if stage.duration <= 0:
                raise ConfigurationError(
                    f"Stage {index + 1} has zero duration",
                    code="zero_duration_stage",
                    details={"stage": index + 1},
                )
        if start_target < 0:
            raise ConfigurationError(
                "start_target must be >= 0", code="invalid_stage_target"
            )
        self._stages: Tuple[Stage, ...] = tuple(parsed)
        self._start_target = start_target

        points: List[Tuple[float, int]] = [(0.0, start_target)]
        elapsed = 0.0
        for stage in self._stages:
            elapsed += stage.duration
            points.append((elapsed, stage.target))
        self._points = points

    @classmethod
    def from_stages(cls, stages: Sequence[Any]) -> "Schedule":
        return cls(stages)

    @classmethod
    def constant(cls, vus: int, duration: DurationLike) -> "Schedule":
        """Hold `vus` for `duration` with no ramp."""
        if vus < 0:
            raise ConfigurationError("vus must be >= 0", code="invalid_stage_target")
        return cls([Stage(parse_duration(duration), vus)], start_target=vus)

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return self._stages

    @property
    def start_target(self) -> int:
        return self._start_target

    @property
    def total_duration(self) -> float:
        return self._points[-1][0]

    @property
    def max_target(self) -> int:
        return max(target for _, target in self._points)

    def boundaries(self) -> List[Tuple[float, int]]:
        """Stage endpoints as (elapsed_seconds, target), starting at t=0."""
        return list(self._points)

    def target_at(self, elapsed: float) -> int:
        """
        VU target at `elapsed` seconds, rounded to nearest and clamped to >= 0.
        """
        if elapsed <= 0:
            return self._start_target
        if elapsed >= self.total_duration:
            return self._points[-1][1]
        for (t0, v0), (t1, v1) in zip(self._points, self._points[1:]):
            if t0 <= elapsed < t1:
                exact = v0 + (v1 - v0) * (elapsed - t0) / (t1 - t0)
                return max(0, math.floor(exact + 0.5))
        return self._points[-1][1]

    def describe(self) -> str:
        return ", ".join(
            f"{format_duration(stage.duration)}->{stage.target}" for stage in self._stages
        )

    def __repr__(self) -> str:
        return f"Schedule([{self.describe()}])"
