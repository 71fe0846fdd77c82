"""tmux backend — every operation is a short-lived ``tmux`` invocation."""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import sys
from typing import TYPE_CHECKING

from agentdeck.terminal.base import CursorInfo, Manager, Session
from agentdeck.terminal.errors import (
    SessionCreateError,
    SessionDeadError,
    TerminalError,
    is_dead_session_message,
)
from agentdeck.terminal.keys import (
    BRACKETED_PASTE_END,
    BRACKETED_PASTE_START,
    Backend,
    sgr_mouse,
    translate_key,
)

if TYPE_CHECKING:
    from agentdeck.wire import Wire

logger = logging.getLogger(__name__)

TMUX = "tmux"
CURSOR_FORMAT = "#{cursor_x},#{cursor_y},#{cursor_flag},#{pane_height},#{pane_width}"
PANE_SIZE_FORMAT = "#{pane_width},#{pane_height}"


def run_tmux(*args: str, input: str | None = None) -> subprocess.CompletedProcess[str]:
    """Run a tmux command and return the completed process (never raises on exit code)."""
    try:
        return subprocess.run(
            [TMUX, *args],
            input=input,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise TerminalError(f"tmux {args[0] if args else ''}: {e}") from e


def check_tmux(*args: str, input: str | None = None) -> str:
    """Run a tmux command, returning stdout or raising on failure.

    Raises:
        SessionDeadError: tmux reported that the target does not exist.
        TerminalError: Any other failure.
    """
    result = run_tmux(*args, input=input)
    if result.returncode != 0:
        err = (result.stderr or "").strip()
        message = f"tmux {args[0]} failed ({result.returncode}): {err}"
        if is_dead_session_message(err):
            raise SessionDeadError(message)
        raise TerminalError(message)
    return result.stdout


def _parse_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


def parse_cursor_line(line: str) -> CursorInfo:
    """Parse a ``cursor_x,cursor_y,cursor_flag,pane_height,pane_width`` status line.

    A missing visibility flag means the cursor is visible. Fewer than two
    fields is a failed query.
    """
    parts = line.strip().split(",")
    if len(parts) < 2:
        return CursorInfo()
    col = _parse_int(parts[0])
    row = _parse_int(parts[1])
    visible = len(parts) < 3 or parts[2].strip() != "0"
    pane_height = _parse_int(parts[3]) if len(parts) >= 4 else 0
    pane_width = _parse_int(parts[4]) if len(parts) >= 5 else 0
    return CursorInfo(row, col, pane_height, pane_width, visible, True)


class TmuxSession(Session):
    """A tmux session addressed by name."""

    backend = Backend.TMUX

    def __init__(self, name: str) -> None:
        self._name = name

    @property
    def id(self) -> str:
        return self._name

    def send_key(self, name: str) -> None:
        token = translate_key(name, Backend.TMUX)
        if not token:
            return
        check_tmux("send-keys", "-t", self._name, token)

    def send_literal(self, text: str) -> None:
        if not text:
            return
        # tmux treats a bare ";" as a command separator, so send raw bytes instead
        if ";" in text:
            hex_bytes = [f"{b:02x}" for b in text.encode("utf-8")]
            check_tmux("send-keys", "-t", self._name, "-H", *hex_bytes)
            return
        check_tmux("send-keys", "-l", "-t", self._name, text)

    def send_paste(self, text: str) -> None:
        check_tmux("load-buffer", "-", input=text)
        check_tmux("paste-buffer", "-t", self._name)

    def send_bracketed_paste(self, text: str) -> None:
        self.send_literal(BRACKETED_PASTE_START)
        self.send_literal(text)
        self.send_literal(BRACKETED_PASTE_END)

    def send_sgr_mouse(self, button: int, col: int, row: int, release: bool) -> None:
        if col <= 0 or row <= 0:
            return
        self.send_literal(sgr_mouse(button, col, row, release))

    def capture_output(self, scrollback: int) -> str:
        args = ["capture-pane", "-p", "-e", "-t", self._name]
        if scrollback > 0:
            args += ["-S", f"-{scrollback}"]
        return check_tmux(*args)

    def query_cursor(self) -> CursorInfo:
        result = run_tmux("display-message", "-t", self._name, "-p", CURSOR_FORMAT)
        if result.returncode != 0:
            return CursorInfo()
        return parse_cursor_line(result.stdout)

    def resize(self, width: int, height: int) -> None:
        if width <= 0 and height <= 0:
            return
        run_tmux("set-option", "-t", self._name, "window-size", "manual")

        size_args: list[str] = []
        if width > 0:
            size_args += ["-x", str(width)]
        if height > 0:
            size_args += ["-y", str(height)]

        result = run_tmux("resize-window", "-t", self._name, *size_args)
        if result.returncode == 0:
            return
        # Some layouts refuse to resize a single window; resize the pane instead
        logger.debug(
            "resize-window failed for %s (%s), falling back to resize-pane",
            self._name,
            result.stderr.strip(),
        )
        check_tmux("resize-pane", "-t", self._name, *size_args)

    def is_alive(self) -> bool:
        try:
            return run_tmux("has-session", "-t", self._name).returncode == 0
        except TerminalError:
            return False

    def kill(self) -> None:
        check_tmux("kill-session", "-t", self._name)


class TmuxManager(Manager):
    """Manages tmux sessions.

    The registry caches ``TmuxSession`` handles; tmux itself is the source
    of truth, so sessions created outside this process are adopted on
    lookup.
    """

    backend = Backend.TMUX

    def __init__(self, history_limit: int = 0, wire: Wire | None = None) -> None:
        super().__init__()
        self._history_limit = history_limit
        self._wire = wire

    def is_available(self) -> bool:
        return shutil.which(TMUX) is not None

    def install_instructions(self) -> str:
        if sys.platform == "darwin":
            return "brew install tmux"
        if sys.platform.startswith("linux"):
            return "sudo apt install tmux  # or: sudo dnf install tmux"
        return "Install tmux from your package manager"

    def create_session(
        self,
        name: str,
        work_dir: str,
        cmd: str | None = None,
        args: list[str] | None = None,
    ) -> Session:
        tmux_args = ["new-session", "-d", "-s", name, "-c", work_dir]
        if cmd:
            tmux_args.append(shlex.join([cmd, *(args or [])]))
        try:
            check_tmux(*tmux_args)
        except TerminalError as e:
            raise SessionCreateError(f"tmux new-session {name}: {e}") from e

        session = TmuxSession(name)
        self._sessions.put(name, session)
        if self._history_limit > 0:
            try:
                self.set_history_limit(name, self._history_limit)
            except TerminalError as e:
                logger.debug("Could not set history limit for %s: %s", name, e)

        logger.info("tmux session %s created in %s", name, work_dir)
        if self._wire:
            self._wire.send_session_created(name, self.backend.value)
        return session

    def get_session(self, name: str) -> Session | None:
        session = self._sessions.get(name)
        if session is not None:
            if session.is_alive():
                return session
            self._sessions.discard(name, session)
            return None
        # Adopt a session created outside this process
        if run_tmux("has-session", "-t", name).returncode == 0:
            session = TmuxSession(name)
            self._sessions.put(name, session)
            return session
        return None

    def has_session(self, name: str) -> bool:
        return run_tmux("has-session", "-t", name).returncode == 0

    def list_sessions(self, prefix: str = "") -> list[str]:
        try:
            result = run_tmux("list-sessions", "-F", "#{session_name}")
        except TerminalError:
            return []
        if result.returncode != 0:
            # No server running means no sessions
            return []
        names = []
        for line in result.stdout.strip().splitlines():
            line = line.strip()
            if line and line.startswith(prefix):
                names.append(line)
        return names

    def kill_session(self, name: str) -> None:
        self._sessions.pop(name)
        try:
            check_tmux("kill-session", "-t", name)
        except SessionDeadError:
            logger.debug("tmux session %s already gone", name)
        logger.info("tmux session %s killed", name)
        if self._wire:
            self._wire.send_session_killed(name)

    def cleanup(self) -> None:
        for name in list(self._sessions):
            try:
                self.kill_session(name)
            except TerminalError as e:
                logger.warning("Error killing tmux session %s: %s", name, e)

    def set_history_limit(self, name: str, lines: int) -> None:
        check_tmux("set-option", "-t", name, "history-limit", str(lines))

    def get_pane_id(self, name: str) -> str:
        result = run_tmux("list-panes", "-t", name, "-F", "#{pane_id}")
        if result.returncode != 0:
            return ""
        lines = result.stdout.strip().splitlines()
        return lines[0].strip() if lines else ""

    def query_pane_size(self, name: str) -> tuple[int, int, bool]:
        if not name:
            return 0, 0, False
        result = run_tmux("display-message", "-t", name, "-p", PANE_SIZE_FORMAT)
        if result.returncode != 0:
            return 0, 0, False
        parts = result.stdout.strip().split(",")
        if len(parts) < 2:
            return 0, 0, False
        return _parse_int(parts[0]), _parse_int(parts[1]), True

    def attach_command(self, name: str) -> list[str] | None:
        return [TMUX, "attach-session", "-t", name]
