"""
Metric registers and the per-run registry.

Provides:
- Counter, Rate, Trend, Gauge: typed accumulators
- MetricRegistry: built-in HTTP/iteration metrics plus scenario-declared ones

Usage:
    from loadrig.metrics import MetricRegistry

    registry = MetricRegistry()
    registry.declare("errors", "rate").add(False)
    trend = registry.trend("http_req_duration")
    trend.add(48.0)
    print(trend.percentile(95))
"""

from loadrig.metrics.registers import (
    COUNTER,
    GAUGE,
    RATE,
    TREND,
    Counter,
    Gauge,
    Rate,
    Trend,
)
from loadrig.metrics.registry import (
    BUILTIN_METRICS,
    CHECKS,
    HTTP_REQ_DURATION,
    HTTP_REQ_FAILED,
    HTTP_REQS,
    ITERATIONS,
    VUS,
    VUS_MAX,
    MetricRegistry,
)

__all__ = [
    "COUNTER",
    "GAUGE",
    "RATE",
    "TREND",
    "Counter",
    "Gauge",
    "Rate",
    "Trend",
    "MetricRegistry",
    "BUILTIN_METRICS",
    "CHECKS",
    "HTTP_REQ_DURATION",
    "HTTP_REQ_FAILED",
    "HTTP_REQS",
    "ITERATIONS",
    "VUS",
    "VUS_MAX",
]
