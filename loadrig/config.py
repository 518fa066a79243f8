"""
Runtime configuration from environment variables.

Usage:
    from loadrig.config import get_settings

    settings = get_settings()
    print(settings.base_url, settings.request_timeout)
"""

from functools import lru_cache
from typing import Callable, List, Optional, TypeVar
import os
import shlex

from loadrig.exceptions import ConfigurationError

DEFAULT_BASE_URL = "http://localhost:8080"

T = TypeVar("T", int, float)


def _env_number(name: str, default: str, cast: Callable[[str], T]) -> T:
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r} (expected {cast.__name__})",
            code="invalid_setting",
            details={"variable": name, "value": raw},
        ) from None


class Settings:
    """Harness configuration loaded from environment variables."""

    def __init__(self) -> None:
        # Target service
        self.base_url: str = (
            os.getenv("LOADRIG_BASE_URL") or os.getenv("BASE_URL") or DEFAULT_BASE_URL
        ).rstrip("/")
        self.health_path: str = os.getenv("LOADRIG_HEALTH_PATH", "/health")

        # Environment preparation
        self.start_command: Optional[str] = os.getenv("LOADRIG_START_COMMAND") or None
        self.ready_timeout: float = _env_number("LOADRIG_READY_TIMEOUT", "5", float)

        # Requests
        self.request_timeout: float = _env_number("LOADRIG_REQUEST_TIMEOUT", "10", float)

        # Overrides
        self.default_vus: int = _env_number("LOADRIG_DEFAULT_VUS", "1", int)

        # Logging
        self.log_level: str = os.getenv("LOADRIG_LOG_LEVEL", "INFO").upper()

    @property
    def health_url(self) -> str:
        path = self.health_path if self.health_path.startswith("/") else "/" + self.health_path
        return f"{self.base_url}{path}"

    @property
    def start_argv(self) -> List[str]:
        """Start command split into argv (run without a shell)."""
        return shlex.split(self.start_command) if self.start_command else []


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()
