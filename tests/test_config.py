"""Tests for environment-driven settings and the exception types."""

import pytest

from loadrig.config import DEFAULT_BASE_URL, Settings, get_settings, reset_settings
from loadrig.exceptions import (
    ConfigurationError,
    EnvironmentUnavailable,
    LoadrigError,
    RequestFailure,
    ScenarioNotFound,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.health_url == "http://localhost:8080/health"
        assert settings.start_command is None
        assert settings.start_argv == []
        assert settings.ready_timeout == 5.0
        assert settings.request_timeout == 10.0
        assert settings.default_vus == 1
        assert settings.log_level == "INFO"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LOADRIG_BASE_URL", "http://rust-app:8080/")
        monkeypatch.setenv("LOADRIG_HEALTH_PATH", "ready")
        monkeypatch.setenv("LOADRIG_START_COMMAND", "docker compose up -d rust-app")
        monkeypatch.setenv("LOADRIG_LOG_LEVEL", "debug")
        settings = Settings()
        assert settings.base_url == "http://rust-app:8080"
        assert settings.health_url == "http://rust-app:8080/ready"
        assert settings.start_argv == ["docker", "compose", "up", "-d", "rust-app"]
        assert settings.log_level == "DEBUG"

    def test_base_url_fallback(self, monkeypatch):
        monkeypatch.setenv("BASE_URL", "http://fallback.test")
        assert Settings().base_url == "http://fallback.test"
        monkeypatch.setenv("LOADRIG_BASE_URL", "http://primary.test")
        assert Settings().base_url == "http://primary.test"

    def test_cached(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("LOADRIG_DEFAULT_VUS", "9")
        assert get_settings() is first
        reset_settings()
        assert get_settings().default_vus == 9

    @pytest.mark.parametrize(
        "variable,value",
        [
            ("LOADRIG_READY_TIMEOUT", "soon"),
            ("LOADRIG_REQUEST_TIMEOUT", "10s"),
            ("LOADRIG_DEFAULT_VUS", "2.5"),
        ],
    )
    def test_malformed_number_is_configuration_error(self, monkeypatch, variable, value):
        monkeypatch.setenv(variable, value)
        with pytest.raises(ConfigurationError) as exc_info:
            Settings()
        assert exc_info.value.code == "invalid_setting"
        assert exc_info.value.details == {"variable": variable, "value": value}


class TestExceptions:
    def test_hierarchy(self):
        assert issubclass(ConfigurationError, LoadrigError)
        assert issubclass(ScenarioNotFound, ConfigurationError)
        assert issubclass(EnvironmentUnavailable, LoadrigError)
        assert issubclass(RequestFailure, LoadrigError)

    def test_to_dict(self):
        exc = ConfigurationError("bad stage", code="invalid_stage", details={"stage": 2})
        assert exc.to_dict() == {
            "error": "invalid_stage",
            "message": "bad stage",
            "details": {"stage": 2},
        }

    def test_default_code(self):
        assert LoadrigError("x").code == "LoadrigError"

    def test_scenario_not_found_lists_known(self):
        exc = ScenarioNotFound("nope", ["b", "a"])
        assert exc.known == ["a", "b"]
        assert "Available tests: a, b" in exc.message
