"""Environment-driven engine settings."""

import logging

import pytest
from pydantic import ValidationError

from durable_workflow.engine import EngineSettings, configure_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "DURABLE_WORKFLOW_MAX_RECURSION_DEPTH",
        "DURABLE_WORKFLOW_LOOP_MAX",
        "DURABLE_WORKFLOW_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = EngineSettings.from_env()

    assert settings.max_recursion_depth == 50
    assert settings.default_loop_max == 100
    assert settings.log_level == "INFO"


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("DURABLE_WORKFLOW_MAX_RECURSION_DEPTH", "7")
    monkeypatch.setenv("DURABLE_WORKFLOW_LOOP_MAX", "12")
    monkeypatch.setenv("DURABLE_WORKFLOW_LOG_LEVEL", "debug")

    settings = EngineSettings.from_env()

    assert settings.max_recursion_depth == 7
    assert settings.default_loop_max == 12
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("raw", ["lots", "0", "-3", ""])
def test_invalid_integers_fall_back(monkeypatch, raw):
    monkeypatch.setenv("DURABLE_WORKFLOW_LOOP_MAX", raw)

    assert EngineSettings.from_env().default_loop_max == 100


def test_invalid_log_level_falls_back(monkeypatch):
    monkeypatch.setenv("DURABLE_WORKFLOW_LOG_LEVEL", "chatty")

    assert EngineSettings.from_env().log_level == "INFO"


def test_settings_are_frozen():
    settings = EngineSettings()

    with pytest.raises(ValidationError):
        settings.default_loop_max = 5


def test_configure_logging(monkeypatch):
    calls = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.update(kwargs))

    configure_logging(EngineSettings(log_level="WARNING"))

    assert calls["level"] == logging.WARNING
