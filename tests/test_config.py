"""Tests for configuration loading and rebuilding."""

from datetime import UTC, datetime, time

import pytest

from chatbridge.core.config import (
    BridgeConfig,
    WorkingHoursConfig,
    build_sdk_init_data,
    check_unexpanded_vars,
    load_config,
    replace_config,
)
from chatbridge.core.errors import ValidationError

BASIC_YAML = """
app_id: ${TEST_CHAT_APP_ID}
server: https://chat.example.com
room: 3
lang: en
transcript:
  download: true
  format: pdf
working_hours:
  timezone: Europe/Madrid
  start: "08:30"
  end: "17:00"
"""


class TestLoadConfig:
    """Tests for YAML loading."""

    def test_load_with_env_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_CHAT_APP_ID", "app-42")
        path = tmp_path / "chatbridge.yaml"
        path.write_text(BASIC_YAML)

        config = load_config(path)

        assert config.app_id == "app-42"
        assert config.room() == 3
        assert config.lang() == "en"
        assert config.source() == "3"
        assert config.transcript_download is True
        assert config.transcript.model_dump() == {"download": True, "format": "pdf"}
        assert config.working_hours.start == time(8, 30)

    def test_unresolved_env_var(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_CHAT_APP_ID", raising=False)
        path = tmp_path / "chatbridge.yaml"
        path.write_text(BASIC_YAML)

        with pytest.raises(ValidationError, match="TEST_CHAT_APP_ID"):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValidationError, match="expected mapping"):
            load_config(path)

    def test_check_unexpanded_vars_nested(self):
        with pytest.raises(ValidationError, match="DEEP_VAR"):
            check_unexpanded_vars({"outer": [{"inner": "${DEEP_VAR}"}]}, source="test.yaml")


class TestBridgeConfig:
    """Tests for validation rules and defaults."""

    def test_defaults(self):
        config = BridgeConfig(app_id="app", region="eu", room=1)

        assert config.port == 8000
        assert config.sdk_version == "1"
        assert config.lang() == ""
        assert config.import_bot_history is False
        assert config.transcript_download is False

    def test_region_or_server_required(self):
        with pytest.raises(Exception, match="region"):
            BridgeConfig(app_id="app", room=1)

    def test_room_required(self):
        with pytest.raises(Exception):
            BridgeConfig(app_id="app", region="eu")

    def test_callable_settings_are_kept(self):
        config = BridgeConfig(app_id="app", region="eu", room=lambda: "vip")

        assert config.room() == "vip"

    def test_config_is_immutable(self):
        config = BridgeConfig(app_id="app", region="eu", room=1)

        with pytest.raises(Exception):
            config.app_id = "other"

    def test_survey_needs_id_or_url(self):
        with pytest.raises(Exception, match="id"):
            BridgeConfig(app_id="app", region="eu", room=1, surveys={})


class TestReplaceConfig:
    """Tests for rebuild-and-replace updates."""

    def test_replace_builds_new_instance(self):
        config = BridgeConfig(app_id="app", region="eu", room=1)

        updated = replace_config(config, room=lambda: 9, import_bot_history=True)

        assert updated.room() == 9
        assert updated.import_bot_history is True
        assert config.room() == 1
        assert updated.region == "eu"

    def test_replace_validates(self):
        config = BridgeConfig(app_id="app", region="eu", room=1)

        with pytest.raises(ValidationError, match="Invalid or missing configuration value"):
            replace_config(config, app_id="")


class TestSdkInitData:
    def test_region_wins_over_server(self):
        config = BridgeConfig(app_id="app", region="eu", server="https://x", room=1)

        assert build_sdk_init_data(config) == {
            "appId": "app",
            "setCookieOnDomain": False,
            "port": 8000,
            "region": "eu",
        }

    def test_server_only(self):
        config = BridgeConfig(app_id="app", server="https://x", room=1, port=443)

        data = build_sdk_init_data(config)

        assert data["server"] == "https://x"
        assert data["port"] == 443
        assert "region" not in data


class TestWorkingHours:
    """Tests for the working hours window."""

    def test_open_on_weekday_during_hours(self):
        hours = WorkingHoursConfig(timezone="UTC")

        assert hours.is_open(datetime(2026, 10, 14, 10, 0, tzinfo=UTC)) is True

    def test_closed_after_hours(self):
        hours = WorkingHoursConfig(timezone="UTC")

        assert hours.is_open(datetime(2026, 10, 14, 18, 0, tzinfo=UTC)) is False

    def test_closed_on_weekend(self):
        hours = WorkingHoursConfig(timezone="UTC")

        assert hours.is_open(datetime(2026, 10, 17, 10, 0, tzinfo=UTC)) is False

    def test_timezone_is_applied(self):
        hours = WorkingHoursConfig(timezone="America/New_York")

        # 13:00 UTC is 09:00 in New York (EDT)
        assert hours.is_open(datetime(2026, 10, 14, 13, 0, tzinfo=UTC)) is True
        assert hours.is_open(datetime(2026, 10, 14, 12, 0, tzinfo=UTC)) is False

    def test_invalid_timezone(self):
        with pytest.raises(Exception, match="Invalid timezone"):
            WorkingHoursConfig(timezone="Mars/Olympus")
