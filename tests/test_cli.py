"""Tests for the dockterm CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from dockterm import cli
from dockterm.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DOCKTERM_LOG_FILE", str(tmp_path / "logs" / "dockterm.log"))


class TestCheck:
    def test_reachable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def ping(self: object) -> bool:
            return True

        monkeypatch.setattr(cli.DockerRuntime, "ping", ping)
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 0
        assert "Docker Engine reachable" in result.output

    def test_unreachable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def ping(self: object) -> bool:
            return False

        monkeypatch.setattr(cli.DockerRuntime, "ping", ping)
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 1


class TestRun:
    def test_requires_a_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli.HostTerminal, "is_interactive", lambda self: False)
        result = runner.invoke(app, ["run", "--image", "alpine"])
        assert result.exit_code == 1


class TestSetupLogging:
    def test_creates_log_directory(self, tmp_path: Path) -> None:
        log_file = tmp_path / "nested" / "dir" / "dockterm.log"
        cli.setup_logging(False, str(log_file))
        assert log_file.parent.is_dir()
