"""
Metric registers: typed accumulators for raw observations.

Thread-safe, in-memory. Every update is a single merge under the register's
own lock (sum, true/total count, or sample append), so concurrent writers
never lose updates. Registers are independent of each other.
"""

from __future__ import annotations

import math
import threading
from typing import Dict, List, Optional, Tuple

NAN = float("nan")

COUNTER = "counter"
RATE = "rate"
TREND = "trend"
GAUGE = "gauge"


class _Register:
    """Common surface for all register kinds."""

    kind: str = ""
    aggregates: Tuple[str, ...] = ()

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()

    def supports(self, aggregate: str) -> bool:
        return aggregate in self.aggregates

    def aggregate(
        self,
        aggregate: str,
        *,
        percentile: Optional[float] = None,
        elapsed_seconds: Optional[float] = None,
    ) -> float:
        raise NotImplementedError

    def summary(self, elapsed_seconds: Optional[float] = None) -> Dict[str, float]:
        raise NotImplementedError

    @property
    def empty(self) -> bool:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class Counter(_Register):
    """Monotonically increasing sum of add(n) calls."""

    kind = COUNTER
    aggregates = ("count", "rate")

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._value = 0.0
        self._adds = 0

    def add(self, amount: float = 1) -> None:
        if amount < 0:
            raise ValueError(f"Counter {self.name} cannot decrease (got {amount})")
        with self._lock:
            self._value += amount
            self._adds += 1

    @property
    def count(self) -> float:
        with self._lock:
            return self._value

    @property
    def empty(self) -> bool:
        with self._lock:
            return self._adds == 0

    def aggregate(self, aggregate, *, percentile=None, elapsed_seconds=None):
        if aggregate == "count":
            return self.count
        if aggregate == "rate":
            if not elapsed_seconds:
                return NAN
            return self.count / elapsed_seconds
        raise KeyError(aggregate)

    def summary(self, elapsed_seconds=None):
        return {
            "count": self.count,
            "rate": self.aggregate("rate", elapsed_seconds=elapsed_seconds),
        }


class Rate(_Register):
    """Fraction of add(bool) calls that were true."""

    kind = RATE
    aggregates = ("rate",)

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._trues = 0
        self._total = 0

    def add(self, value: bool) -> None:
        with self._lock:
            self._total += 1
            if value:
                self._trues += 1

    @property
    def passes(self) -> int:
        with self._lock:
            return self._trues

    @property
    def fails(self) -> int:
        with self._lock:
            return self._total - self._trues

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    @property
    def rate(self) -> float:
        """Trues over total; NaN when nothing was recorded."""
        with self._lock:
            if self._total == 0:
                return NAN
            return self._trues / self._total

    @property
    def empty(self) -> bool:
        return self.total == 0

    def aggregate(self, aggregate, *, percentile=None, elapsed_seconds=None):
        if aggregate == "rate":
            return self.rate
        raise KeyError(aggregate)

    def summary(self, elapsed_seconds=None):
        with self._lock:
            trues, total = self._trues, self._total
        return {
            "rate": trues / total if total else NAN,
            "passes": trues,
            "fails": total - trues,
        }


class Trend(_Register):
    """Multiset of numeric samples with percentile and mean queries."""

    kind = TREND
    aggregates = ("avg", "min", "med", "max", "count", "p")

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._samples: List[float] = []
        self._mean = 0.0

    def add(self, value: float) -> None:
        with self._lock:
            self._samples.append(float(value))
            # Running mean stays exact for repeated identical samples.
            self._mean += (float(value) - self._mean) / len(self._samples)

    def _sorted(self) -> List[float]:
        with self._lock:
            return sorted(self._samples)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def empty(self) -> bool:
        return self.count == 0

    @property
    def mean(self) -> float:
        with self._lock:
            if not self._samples:
                return NAN
            return self._mean

    @property
    def min(self) -> float:
        with self._lock:
            return min(self._samples) if self._samples else NAN

    @property
    def max(self) -> float:
        with self._lock:
            return max(self._samples) if self._samples else NAN

    @property
    def median(self) -> float:
        return self.percentile(50)

    def percentile(self, p: float) -> float:
        """
        Percentile with linear interpolation between closest ranks.

        p(0) is the minimum sample and p(100) the maximum.

        Args:
            p: Percentile in [0, 100].

        Returns:
            Interpolated sample value, or NaN for an empty trend.
        """
        if not 0 <= p <= 100:
            raise ValueError(f"percentile must be within [0, 100], got {p}")
        samples = self._sorted()
        if not samples:
            return NAN
        return _interpolate(samples, p)

    def aggregate(self, aggregate, *, percentile=None, elapsed_seconds=None):
        if aggregate == "avg":
            return self.mean
        if aggregate == "min":
            return self.min
        if aggregate == "max":
            return self.max
        if aggregate == "med":
            return self.median
        if aggregate == "count":
            return float(self.count)
        if aggregate == "p":
            if percentile is None:
                raise ValueError("p() requires a percentile")
            return self.percentile(percentile)
        raise KeyError(aggregate)

    def summary(self, elapsed_seconds=None):
        samples = self._sorted()
        if not samples:
            return {
                "avg": NAN,
                "min": NAN,
                "med": NAN,
                "max": NAN,
                "p(90)": NAN,
                "p(95)": NAN,
                "p(99)": NAN,
                "count": 0,
            }
        return {
            "avg": self.mean,
            "min": samples[0],
            "med": _interpolate(samples, 50),
            "max": samples[-1],
            "p(90)": _interpolate(samples, 90),
            "p(95)": _interpolate(samples, 95),
            "p(99)": _interpolate(samples, 99),
            "count": len(samples),
        }


class Gauge(_Register):
    """Last observed value, plus the min and max seen."""

    kind = GAUGE
    aggregates = ("value", "min", "max")

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._value = NAN
        self._min = NAN
        self._max = NAN

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)
            if math.isnan(self._min) or value < self._min:
                self._min = float(value)
            if math.isnan(self._max) or value > self._max:
                self._max = float(value)

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    @property
    def empty(self) -> bool:
        return math.isnan(self.value)

    def aggregate(self, aggregate, *, percentile=None, elapsed_seconds=None):
        with self._lock:
            if aggregate == "value":
                return self._value
            if aggregate == "min":
                return self._min
            if aggregate == "max":
                return self._max
        raise KeyError(aggregate)

    def summary(self, elapsed_seconds=None):
        with self._lock:
            return {"value": self._value, "min": self._min, "max": self._max}


def _interpolate(samples: List[float], p: float) -> float:
    rank = (p / 100.0) * (len(samples) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return samples[int(rank)]
    weight = rank - lower
    return samples[lower] + (samples[upper] - samples[lower]) * weight


REGISTER_KINDS = {
    COUNTER: Counter,
    RATE: Rate,
    TREND: Trend,
    GAUGE: Gauge,
}
