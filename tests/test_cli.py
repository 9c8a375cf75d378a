"""Tests for the chatbridge command line."""

from unittest.mock import AsyncMock, patch

import pytest
import yaml

from chatbridge.bridge.availability import AvailabilityResult
from chatbridge.cli import main, run
from chatbridge.core.errors import ValidationError

CONFIG_YAML = """
app_id: app-1
server: https://chat.example.com
room: 7
logging:
  directory: {log_dir}
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "chatbridge.yaml"
    path.write_text(CONFIG_YAML.format(log_dir=tmp_path / "logs"))
    return path


class TestCommands:
    """Tests for the validate and check subcommands."""

    @pytest.mark.asyncio
    async def test_validate(self, config_path, capsys):
        code = await main(["validate", "--config", str(config_path)])

        assert code == 0
        assert "application app-1 on server https://chat.example.com" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_check_available(self, config_path, capsys):
        with patch(
            "chatbridge.cli.AvailabilityProbe.check",
            new=AsyncMock(return_value=AvailabilityResult(agents_available=True)),
        ):
            code = await main(["check", "-c", str(config_path)])

        assert code == 0
        assert "room 7" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_check_unavailable(self, config_path, capsys):
        with patch(
            "chatbridge.cli.AvailabilityProbe.check",
            new=AsyncMock(return_value=AvailabilityResult(agents_available=False, reason="out-of-hours")),
        ):
            code = await main(["check", "-c", str(config_path)])

        assert code == 1
        assert "out-of-hours" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_no_command_prints_help(self, capsys):
        assert await main([]) == 2


class TestRunErrorHandling:
    """Tests for clean error reporting in the run() entry point."""

    def test_keyboard_interrupt_exits_cleanly(self):
        with patch("chatbridge.cli.asyncio.run", side_effect=KeyboardInterrupt):
            run()

    def test_file_not_found(self, capsys):
        with patch("chatbridge.cli.asyncio.run", side_effect=FileNotFoundError("Config file not found: x.yaml")):
            with pytest.raises(SystemExit) as exc_info:
                run()
        assert exc_info.value.code == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_yaml_error(self, capsys):
        with patch("chatbridge.cli.asyncio.run", side_effect=yaml.YAMLError("bad yaml")):
            with pytest.raises(SystemExit) as exc_info:
                run()
        assert exc_info.value.code == 1
        assert "Invalid YAML" in capsys.readouterr().err

    def test_configuration_error(self, capsys):
        with patch("chatbridge.cli.asyncio.run", side_effect=ValidationError("Unresolved ${MISSING_KEY}")):
            with pytest.raises(SystemExit) as exc_info:
                run()
        assert exc_info.value.code == 1
        assert "MISSING_KEY" in capsys.readouterr().err

    def test_exit_code_is_propagated(self):
        with patch("chatbridge.cli.asyncio.run", return_value=1):
            with pytest.raises(SystemExit) as exc_info:
                run()
        assert exc_info.value.code == 1
