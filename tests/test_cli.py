"""Tests for the agentdeck CLI with the terminal manager replaced."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from agentdeck import cli
from agentdeck.terminal.base import Manager, Session
from agentdeck.terminal.errors import SessionCreateError
from agentdeck.terminal.keys import Backend

runner = CliRunner()


class FakeManager(Manager):
    backend = Backend.TMUX

    def __init__(self, available: bool = True) -> None:
        super().__init__()
        self.available = available
        self.names: list[str] = []
        self.created: list[tuple] = []
        self.killed: list[str] = []
        self.create_error: Exception | None = None

    def create_session(self, name, work_dir, cmd=None, args=None) -> Session:
        if self.create_error is not None:
            raise self.create_error
        self.created.append((name, work_dir, cmd, args))
        self.names.append(name)
        return None  # type: ignore[return-value]

    def get_session(self, name: str) -> Session | None:
        return None

    def has_session(self, name: str) -> bool:
        return name in self.names

    def list_sessions(self, prefix: str = "") -> list[str]:
        return [n for n in self.names if n.startswith(prefix)]

    def kill_session(self, name: str) -> None:
        self.killed.append(name)
        self.names.remove(name)

    def set_history_limit(self, name: str, lines: int) -> None:
        pass

    def query_pane_size(self, name: str) -> tuple[int, int, bool]:
        return 0, 0, False

    def get_pane_id(self, name: str) -> str:
        return ""

    def is_available(self) -> bool:
        return self.available

    def install_instructions(self) -> str:
        return "brew install tmux"


@pytest.fixture
def manager(monkeypatch: pytest.MonkeyPatch) -> FakeManager:
    mgr = FakeManager()
    monkeypatch.setattr(cli, "new_manager", lambda config, wire=None: mgr)
    return mgr


class TestList:
    def test_lists_sorted(self, manager: FakeManager) -> None:
        manager.names = ["deck-2", "other", "deck-1"]
        result = runner.invoke(cli.app, ["ls"])
        assert result.exit_code == 0
        assert result.output.split() == ["deck-1", "deck-2", "other"]

    def test_prefix_filter(self, manager: FakeManager) -> None:
        manager.names = ["deck-2", "other", "deck-1"]
        result = runner.invoke(cli.app, ["ls", "--prefix", "deck-"])
        assert result.output.split() == ["deck-1", "deck-2"]

    def test_backend_missing(self, manager: FakeManager) -> None:
        manager.available = False
        result = runner.invoke(cli.app, ["ls"])
        assert result.exit_code == 1
        assert "brew install tmux" in result.output

    def test_pty_backend_refused(self, manager: FakeManager) -> None:
        manager.backend = Backend.PTY
        result = runner.invoke(cli.app, ["ls"])
        assert result.exit_code == 1
        assert "dash" in result.output


class TestNew:
    def test_new_with_command(self, manager: FakeManager, tmp_path) -> None:
        result = runner.invoke(
            cli.app,
            ["new", "deck-9", "--cwd", str(tmp_path), "--", "claude", "--resume"],
        )
        assert result.exit_code == 0, result.output
        assert manager.created == [("deck-9", str(tmp_path), "claude", ["--resume"])]
        assert "deck-9" in result.output

    def test_new_shell(self, manager: FakeManager, tmp_path) -> None:
        result = runner.invoke(cli.app, ["new", "deck-1", "--cwd", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert manager.created == [("deck-1", str(tmp_path), None, None)]

    def test_new_existing(self, manager: FakeManager) -> None:
        manager.names = ["deck-1"]
        result = runner.invoke(cli.app, ["new", "deck-1"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_new_failure(self, manager: FakeManager) -> None:
        manager.create_error = SessionCreateError("tmux new-session deck-1: boom")
        result = runner.invoke(cli.app, ["new", "deck-1"])
        assert result.exit_code == 1
        assert "boom" in result.output


class TestKill:
    def test_kill(self, manager: FakeManager) -> None:
        manager.names = ["deck-1"]
        result = runner.invoke(cli.app, ["kill", "deck-1"])
        assert result.exit_code == 0
        assert manager.killed == ["deck-1"]

    def test_kill_missing(self, manager: FakeManager) -> None:
        result = runner.invoke(cli.app, ["kill", "nope"])
        assert result.exit_code == 1
        assert "no such session" in result.output


class TestDoctor:
    def test_ok(self, manager: FakeManager) -> None:
        result = runner.invoke(cli.app, ["doctor"])
        assert result.exit_code == 0
        assert "Backend: tmux" in result.output
        assert "Status: OK" in result.output

    def test_unavailable(self, manager: FakeManager) -> None:
        manager.available = False
        result = runner.invoke(cli.app, ["doctor"])
        assert result.exit_code == 1
        assert "brew install tmux" in result.output
