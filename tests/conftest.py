"""Pytest fixtures for the Titan Sender test suite."""

from __future__ import annotations

import logging

import pytest

from titan_sender.utils.config import Settings
from titan_sender.utils.logging_config import APP_LOGGER_NAME, SERIAL_LOGGER_NAME


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Keep settings and log files out of the real user config directory."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("TITAN_SENDER_CONFIG_DIR", str(config_dir))
    return config_dir


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(str(tmp_path / "settings.json"))


@pytest.fixture()
def reset_app_logging():
    """Drop handlers ``setup_logging`` attached so tests do not share them."""
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    yield app_logger
    for name in (APP_LOGGER_NAME, SERIAL_LOGGER_NAME):
        log = logging.getLogger(name)
        for handler in list(log.handlers):
            log.removeHandler(handler)
            handler.close()
