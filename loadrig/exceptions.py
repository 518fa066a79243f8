"""
Typed exceptions for loadrig.

Provides structured error handling with:
- LoadrigError: Base exception for all loadrig errors
- ConfigurationError: Malformed schedules, thresholds or scenario names
- ScenarioNotFound: Unknown scenario requested from the catalog
- EnvironmentUnavailable: Target service not reachable before the run
- RequestFailure: Network-level failure of a single request

Threshold violations are not exceptions; they are reported in the run summary.
All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class LoadrigError(Exception):
    """Base exception for all loadrig errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or the summary export."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(LoadrigError):
    """Configuration or validation error.

    Raised before any virtual user starts when:
    - A stage list is empty or contains a zero-duration stage
    - A duration string cannot be parsed
    - A threshold expression is malformed
    - A threshold references an unknown metric or an unsupported aggregate

    Examples:
        ConfigurationError("Stage 2 has zero duration", code="zero_duration_stage")
        ConfigurationError("Unknown metric", details={"metric": "latency"})
    """

    pass


class ScenarioNotFound(ConfigurationError):
    """Requested scenario name is not in the catalog.

    Attributes:
        name: The name that was requested
        known: Sorted list of registered scenario names
    """

    def __init__(self, name: str, known: Iterable[str]) -> None:
        self.name = name
        self.known = sorted(known)
        listing = ", ".join(self.known) or "(none)"
        super().__init__(
            f"Test '{name}' not found. Available tests: {listing}",
            code="scenario_not_found",
            details={"name": name, "known": self.known},
        )


class EnvironmentUnavailable(LoadrigError):
    """Target service is not reachable.

    Raised by the runner's environment preparation when the health endpoint
    does not answer 200, even after the configured start command was run.

    Attributes:
        base_url: Target base URL that was probed
        status_code: Last HTTP status seen, if any
    """

    def __init__(
        self,
        message: str,
        *,
        base_url: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if base_url:
            details["base_url"] = base_url
        if status_code is not None:
            details["status_code"] = status_code

        self.base_url = base_url
        self.status_code = status_code

        super().__init__(message, code=code, details=details)


class RequestFailure(LoadrigError):
    """Network-level failure of one request (connect error, timeout, ...).

    Never propagated out of a virtual user: the request context converts it
    into an outcome with status 0 which feeds the failure metrics.

    Attributes:
        method: HTTP method of the failed request
        url: Target URL of the failed request
    """

    def __init__(
        self,
        message: str,
        *,
        method: Optional[str] = None,
        url: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if method:
            details["method"] = method
        if url:
            details["url"] = url

        self.method = method
        self.url = url

        super().__init__(message, code=code, details=details)


__all__ = [
    "LoadrigError",
    "ConfigurationError",
    "ScenarioNotFound",
    "EnvironmentUnavailable",
    "RequestFailure",
]
