"""Pytest configuration shared by the loadrig test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path for proper imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from loadrig.config import reset_settings  # noqa: E402


@pytest.fixture
def anyio_backend():
    # The executor is built on asyncio primitives.
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
    """Each test starts from default settings."""
    for name in (
        "LOADRIG_BASE_URL",
        "BASE_URL",
        "LOADRIG_HEALTH_PATH",
        "LOADRIG_START_COMMAND",
        "LOADRIG_READY_TIMEOUT",
        "LOADRIG_REQUEST_TIMEOUT",
        "LOADRIG_DEFAULT_VUS",
        "LOADRIG_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()
