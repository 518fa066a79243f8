"""
Scenario definitions: request descriptors, pacing, and the immutable unit the
runner selects by name.
"""

from __future__ import annotations

import json as jsonlib
import random
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    TYPE_CHECKING,
)

from loadrig.exceptions import ConfigurationError
from loadrig.metrics.registers import REGISTER_KINDS
from loadrig.schedule import Schedule
from loadrig.thresholds import Threshold, normalize_thresholds

if TYPE_CHECKING:
    from loadrig.context import VUContext


@dataclass(frozen=True)
class RequestOutcome:
    """
    Result of one HTTP call, consumed by checks and metrics then discarded.

    Attributes:
        status: HTTP status code; 0 when the request failed at network level.
        body: Raw response body.
        elapsed_ms: Wall-clock time of the call in milliseconds.
        expected_error: The request was designed to fail (negative test).
        error: Description of the network failure, if any.
    """

    status: int
    body: bytes = b""
    elapsed_ms: float = 0.0
    expected_error: bool = False
    error: Optional[str] = None
    method: str = "GET"
    url: str = ""
    name: Optional[str] = None

    @property
    def body_length(self) -> int:
        return len(self.body)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400

    @property
    def failed(self) -> bool:
        """Whether this outcome counts as an unexpected failure."""
        if self.expected_error:
            return not 400 <= self.status < 600
        return not self.ok

    def json(self) -> Any:
        return jsonlib.loads(self.body)


@dataclass(frozen=True)
class RequestSpec:
    """
    Tagged request descriptor.

    Attributes:
        method: HTTP method.
        path: Path relative to the base URL, or an absolute URL.
        json: JSON body to send, if any.
        headers: Extra request headers.
        expect_error: Request is designed to fail with a 4xx/5xx status.
        weight: Relative weight for weighted_choice.
        name: Label used in logs; defaults to the path.
    """

    method: str
    path: str
    json: Any = None
    headers: Optional[Mapping[str, str]] = None
    expect_error: bool = False
    weight: float = 1.0
    name: Optional[str] = None

    @classmethod
    def get(cls, path: str, **kwargs: Any) -> "RequestSpec":
        return cls("GET", path, **kwargs)

    @classmethod
    def post(cls, path: str, json: Any = None, **kwargs: Any) -> "RequestSpec":
        return cls("POST", path, json=json, **kwargs)

    @property
    def label(self) -> str:
        return self.name or self.path


T = TypeVar("T")


def weighted_choice(items: Sequence[T], rng: random.Random) -> T:
    """
    Pick one item using its `weight` attribute (default 1.0).

    Equal weights give a uniform choice.

    Raises:
        ValueError: No items, or no positive weight.
    """
    if not items:
        raise ValueError("weighted_choice needs at least one item")
    weights = [float(getattr(item, "weight", 1.0)) for item in items]
    if any(w < 0 for w in weights) or sum(weights) <= 0:
        raise ValueError("weights must be non-negative with a positive total")
    return rng.choices(list(items), weights=weights, k=1)[0]


@dataclass(frozen=True)
class Pacing:
    """
    Think time between iterations: `base + rng.random() * spread` seconds.
    """

    base: float = 0.0
    spread: float = 0.0

    def __post_init__(self) -> None:
        if self.base < 0 or self.spread < 0:
            raise ConfigurationError(
                f"Pacing must be non-negative (base={self.base}, spread={self.spread})",
                code="invalid_pacing",
            )

    @classmethod
    def none(cls) -> "Pacing":
        return cls()

    @classmethod
    def fixed(cls, seconds: float) -> "Pacing":
        return cls(base=seconds)

    @classmethod
    def uniform(cls, low: float, high: float) -> "Pacing":
        if high < low:
            raise ConfigurationError(
                f"Pacing range is inverted ({low} > {high})", code="invalid_pacing"
            )
        return cls(base=low, spread=high - low)

    @classmethod
    def jitter(cls, base: float, spread: float) -> "Pacing":
        """Constant plus a uniform random range."""
        return cls(base=base, spread=spread)

    def delay(self, rng: random.Random) -> float:
        if not self.spread:
            return self.base
        return self.base + rng.random() * self.spread


@dataclass(frozen=True)
class Options:
    """
    Declared run options of a scenario.

    Attributes:
        stages: (duration, target) stage list, or a ready Schedule.
        thresholds: Threshold list or {metric: [expression, ...]} mapping.
        pacing: Think time between iterations.
    """

    stages: Sequence[Any]
    thresholds: Any = None
    pacing: Pacing = field(default_factory=Pacing)

    @property
    def schedule(self) -> Schedule:
        if isinstance(self.stages, Schedule):
            return self.stages
        return Schedule(self.stages)

    @property
    def threshold_list(self) -> List[Threshold]:
        return normalize_thresholds(self.thresholds)


ScenarioBody = Callable[["VUContext"], Awaitable[None]]


@dataclass(frozen=True)
class ScenarioDefinition:
    """
    A named scenario: options plus the body each VU runs per iteration.

    Attributes:
        name: Catalog name, e.g. "basic-load".
        description: One-line summary shown by the runner's listing.
        options: Stages, thresholds and pacing.
        body: Coroutine function run once per VU iteration.
        metrics: Custom metrics as {name: kind}, declared at load time.
    """

    name: str
    options: Options
    body: ScenarioBody
    description: str = ""
    metrics: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for metric, kind in self.metrics.items():
            if kind not in REGISTER_KINDS:
                raise ConfigurationError(
                    f"Scenario '{self.name}' declares metric '{metric}' with unknown kind '{kind}'",
                    code="unknown_metric_kind",
                )

    @property
    def schedule(self) -> Schedule:
        return self.options.schedule

    @property
    def thresholds(self) -> List[Threshold]:
        return self.options.threshold_list

    def with_overrides(
        self,
        *,
        stages: Optional[Sequence[Any]] = None,
        thresholds: Any = None,
        pacing: Optional[Pacing] = None,
    ) -> "ScenarioDefinition":
        """Return a copy with some options replaced; the original is untouched."""
        changes: Dict[str, Any] = {}
        if stages is not None:
            changes["stages"] = stages
        if thresholds is not None:
            changes["thresholds"] = thresholds
        if pacing is not None:
            changes["pacing"] = pacing
        return replace(self, options=replace(self.options, **changes))
