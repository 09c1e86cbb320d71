"""Unit tests for command-line parsing with config file defaults."""

import pytest

from deckpilot.app import master


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    path = tmp_path / "config.txt"
    monkeypatch.setattr(master, "CONFIG_PATH", path)
    return path


class TestParseArgs:

    def test_builtin_defaults(self, config_path):
        args = master.parse_args([])
        assert args.api_enabled is True
        assert args.api_host == "127.0.0.1"
        assert args.api_port == 8090
        assert args.log_level == "info"
        assert args.api_debug is False

    def test_config_file_defaults(self, config_path, tmp_path):
        config_path.write_text(
            f"api_port = 9100\napi_enabled = false\nlog_level = debug\nstate_file = {tmp_path / 's.json'}\n",
            encoding="utf-8",
        )
        args = master.parse_args([])
        assert args.api_port == 9100
        assert args.api_enabled is False
        assert args.log_level == "debug"
        assert args.state_file == tmp_path / "s.json"

    def test_flags_override_config(self, config_path):
        config_path.write_text("api_enabled = false\n", encoding="utf-8")
        args = master.parse_args(["--api", "--api-port", "9200", "--no-console", "--status-interval", "1.5"])
        assert args.api_enabled is True
        assert args.api_port == 9200
        assert args.console_output is False
        assert args.status_interval == 1.5


class TestRun:

    def test_package_exports_master_run(self):
        import deckpilot
        assert deckpilot.run is master.run

    def test_interrupt_returns_exit_code(self, monkeypatch):
        async def interrupted(argv=None):
            raise KeyboardInterrupt

        monkeypatch.setattr(master, "main", interrupted)
        assert master.run([]) == 130

    def test_clean_exit_returns_zero(self, monkeypatch):
        seen = []

        async def finished(argv=None):
            seen.append(argv)

        monkeypatch.setattr(master, "main", finished)
        assert master.run(["--no-api"]) == 0
        assert seen == [["--no-api"]]
