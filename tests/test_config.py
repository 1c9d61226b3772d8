"""Tests for the JSON settings manager."""

from __future__ import annotations

import json
import os

import pytest

from titan_sender.stream_session import StreamSession
from titan_sender.utils.config import DEFAULT_SETTINGS, Settings, get_settings_path
from titan_sender.utils.exceptions import SettingsLoadError, SettingsValidationError


class TestLoadSave:
    def test_missing_file_uses_defaults(self, settings: Settings) -> None:
        assert settings.load() is False
        assert settings.get("baud_rate") == 115200
        assert settings.get("rx_buffer_safe_capacity") == 100

    def test_round_trip(self, settings: Settings) -> None:
        settings.set("last_port", "/dev/ttyUSB0")
        settings.set("operator", "night shift")
        settings.save()

        reloaded = Settings(settings.filepath)
        assert reloaded.load() is True
        assert reloaded.get("last_port") == "/dev/ttyUSB0"
        assert reloaded.get("operator") == "night shift"
        assert reloaded.get("missing", "fallback") == "fallback"

    def test_second_save_keeps_backup(self, settings: Settings) -> None:
        settings.save()
        settings.set("jog_feed", 2000.0)
        settings.save()
        backup = settings.filepath + ".backup"
        assert os.path.exists(backup)
        with open(backup, encoding="utf-8") as f:
            assert json.load(f)["jog_feed"] == DEFAULT_SETTINGS["jog_feed"]
        assert not os.path.exists(settings.filepath + ".tmp")

    def test_new_default_keys_are_merged(self, settings: Settings) -> None:
        with open(settings.filepath, "w", encoding="utf-8") as f:
            json.dump({"baud_rate": 250000, "custom": 1}, f)
        settings.load()
        assert settings.get("baud_rate") == 250000
        assert settings.get("custom") == 1
        assert settings.get("status_poll_interval") == DEFAULT_SETTINGS["status_poll_interval"]

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    def test_corrupt_file(self, settings: Settings, content) -> None:
        with open(settings.filepath, "w", encoding="utf-8") as f:
            f.write(content)
        with pytest.raises(SettingsLoadError):
            settings.load()

    def test_out_of_range_file_is_rejected(self, settings: Settings) -> None:
        with open(settings.filepath, "w", encoding="utf-8") as f:
            json.dump({"rx_buffer_safe_capacity": 200, "last_port": "COM7"}, f)
        with pytest.raises(SettingsValidationError):
            settings.load()
        assert settings.get("rx_buffer_safe_capacity") == 100
        assert settings.get("last_port") == ""


class TestValidate:
    def test_defaults_are_valid(self, settings: Settings) -> None:
        assert settings.validate()

    @pytest.mark.parametrize(
        "key,value",
        [
            ("baud_rate", 1234),
            ("status_poll_interval", 0),
            ("status_query_failure_limit", 0),
            ("rx_buffer_safe_capacity", 128),
            ("default_wcs", 6),
        ],
    )
    def test_invalid_values(self, settings: Settings, key, value) -> None:
        settings.set(key, value)
        with pytest.raises(SettingsValidationError):
            settings.validate()


class TestSettingsPath:
    def test_env_override(self, isolated_config_dir) -> None:
        path = get_settings_path()
        assert path == os.path.join(str(isolated_config_dir), "settings.json")
        assert os.path.isdir(str(isolated_config_dir))


class TestSessionDefaults:
    def test_session_reads_engine_settings(self, settings: Settings) -> None:
        settings.set("rx_buffer_safe_capacity", 80)
        settings.set("stop_grace_delay", 0.5)
        settings.set("jog_feed", 750.0)
        session = StreamSession(settings=settings, poll_status=False)
        assert session._budget.safe_capacity == 80
        assert session._stop_grace_delay == 0.5
        assert session._jog_feed == 750.0

    def test_explicit_arguments_win(self, settings: Settings) -> None:
        settings.set("rx_buffer_safe_capacity", 80)
        session = StreamSession(settings=settings, poll_status=False, safe_capacity=60)
        assert session._budget.safe_capacity == 60
