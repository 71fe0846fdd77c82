"""Direct pseudo-terminal backend — sessions that own their pty.

Used where no terminal multiplexer is available (Windows/ConPTY). Each
session owns a child process attached to a pty plus a daemon thread that
drains the pty into an ``OutputBuffer``; a pty nobody reads from fills up and
stalls the child.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys
import threading
from typing import TYPE_CHECKING, Callable

from agentdeck.terminal.ansi import visible_width
from agentdeck.terminal.base import CursorInfo, Manager, Session
from agentdeck.terminal.buffer import OutputBuffer
from agentdeck.terminal.errors import (
    SessionCreateError,
    SessionDeadError,
    SessionNotFoundError,
    TerminalError,
)
from agentdeck.terminal.keys import Backend, bracketed_paste, sgr_mouse, translate_key

if TYPE_CHECKING:
    from agentdeck.wire import Wire

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
DEFAULT_COLS = 80
DEFAULT_ROWS = 25
DEFAULT_HISTORY_LIMIT = 10_000


class _PosixPty:
    """stdlib ``pty`` + ``subprocess.Popen`` in its own process group."""

    def __init__(
        self, argv: list[str], cwd: str, env: dict[str, str], cols: int, rows: int
    ) -> None:
        import pty

        master_fd, slave_fd = pty.openpty()
        self._fd = master_fd
        self._cols, self._rows = cols, rows
        self._set_winsize(slave_fd, cols, rows)
        try:
            # Popen rather than os.fork: forking inside an event loop process
            # can deadlock on macOS.
            self._proc = subprocess.Popen(
                argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                env=env,
                cwd=cwd,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)
        self.pid = self._proc.pid
        self._pgid = os.getpgid(self.pid)

    @staticmethod
    def _set_winsize(fd: int, cols: int, rows: int) -> None:
        import fcntl
        import struct
        import termios

        fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))

    def read(self, size: int) -> bytes:
        try:
            return os.read(self._fd, size)
        except OSError:
            # EIO once every slave fd is closed
            return b""

    def write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self._fd, view)
            view = view[written:]

    def resize(self, cols: int, rows: int) -> None:
        self._set_winsize(self._fd, cols, rows)
        self._cols, self._rows = cols, rows

    def size(self) -> tuple[int, int]:
        return self._cols, self._rows

    def exit_code(self) -> int | None:
        return self._proc.poll()

    def terminate(self) -> None:
        try:
            os.killpg(self._pgid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        try:
            self._proc.wait(timeout=2)
        except subprocess.TimeoutExpired:
            logger.warning("pid %d did not exit after SIGKILL", self.pid)

    def close(self) -> None:
        try:
            os.close(self._fd)
        except OSError:
            pass


class _ConPty:
    """ConPTY through pywinpty's ``PtyProcess``."""

    def __init__(
        self, argv: list[str], cwd: str, env: dict[str, str], cols: int, rows: int
    ) -> None:
        from winpty import PtyProcess

        self._proc = PtyProcess.spawn(argv, cwd=cwd, env=env, dimensions=(rows, cols))
        self._cols, self._rows = cols, rows
        self.pid = self._proc.pid

    def read(self, size: int) -> bytes:
        try:
            data = self._proc.read(size)
        except EOFError:
            return b""
        return data.encode("utf-8") if isinstance(data, str) else data

    def write(self, data: bytes) -> None:
        self._proc.write(data.decode("utf-8", errors="replace"))

    def resize(self, cols: int, rows: int) -> None:
        self._proc.setwinsize(rows, cols)
        self._cols, self._rows = cols, rows

    def size(self) -> tuple[int, int]:
        return self._cols, self._rows

    def exit_code(self) -> int | None:
        if self._proc.isalive():
            return None
        return self._proc.exitstatus if self._proc.exitstatus is not None else -1

    def terminate(self) -> None:
        self._proc.terminate(force=True)

    def close(self) -> None:
        self._proc.close(force=True)


def open_pty(argv: list[str], cwd: str, cols: int, rows: int) -> _PosixPty | _ConPty:
    """Spawn ``argv`` on a new pty with the inherited environment."""
    env = dict(os.environ)
    env.setdefault("TERM", "xterm-256color")
    if sys.platform == "win32":
        return _ConPty(argv, cwd, env, cols, rows)
    return _PosixPty(argv, cwd, env, cols, rows)


def default_shell() -> str:
    if sys.platform == "win32":
        return shutil.which("pwsh.exe") or "powershell.exe"
    return os.environ.get("SHELL") or "/bin/sh"


class PtySession(Session):
    """A child process on a pty owned by this process.

    Cursor position is an estimate tracked from the output stream (current
    line, visible length of its tail); there is no VT state machine behind
    it.
    """

    backend = Backend.PTY

    def __init__(
        self,
        name: str,
        handle: _PosixPty | _ConPty,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        on_exit: Callable[[PtySession, int | None], None] | None = None,
    ) -> None:
        self._name = name
        self._handle = handle
        self.buffer = OutputBuffer(capacity=history_limit)
        self._on_exit = on_exit
        self._lock = threading.Lock()
        self._closed = False
        self._killed = False
        self._lines_seen = 0
        self._cursor_col = 0
        self._reader = threading.Thread(
            target=self._read_loop, name=f"pty-reader-{name}", daemon=True
        )

    def start(self) -> None:
        """Start draining the pty."""
        self._reader.start()

    @property
    def id(self) -> str:
        return self._name

    @property
    def history_limit(self) -> int:
        return self.buffer.capacity

    @history_limit.setter
    def history_limit(self, lines: int) -> None:
        self.buffer.capacity = lines

    def _read_loop(self) -> None:
        try:
            while not self._is_closed():
                data = self._handle.read(READ_CHUNK)
                if not data:
                    break
                self.buffer.write(data)
                self._track_cursor(data.decode("utf-8", errors="replace"))
        except Exception as e:
            logger.debug("pty reader %s ended: %s", self._name, e)
        finally:
            with self._lock:
                was_closed = self._closed
                self._closed = True
            if not was_closed:
                exit_code = self._handle.exit_code()
                logger.info("pty session %s exited (code=%s)", self._name, exit_code)
                if self._on_exit:
                    try:
                        self._on_exit(self, exit_code)
                    except Exception:
                        logger.exception("Error in on_exit callback for %s", self._name)

    def _track_cursor(self, text: str) -> None:
        newlines = text.count("\n")
        tail = text.rsplit("\n", 1)[-1]
        if "\r" in tail:
            tail = tail.rsplit("\r", 1)[-1]
            width = visible_width(tail)
        elif newlines:
            width = visible_width(tail)
        else:
            width = None
        with self._lock:
            self._lines_seen += newlines
            if width is None:
                self._cursor_col += visible_width(tail)
            else:
                self._cursor_col = width

    def _is_closed(self) -> bool:
        with self._lock:
            return self._closed

    def _write(self, data: str) -> None:
        if not data:
            return
        if self._is_closed():
            raise SessionDeadError(f"pty session {self._name} is closed")
        try:
            self._handle.write(data.encode("utf-8"))
        except OSError as e:
            raise TerminalError(f"pty write to {self._name}: {e}") from e

    def send_key(self, name: str) -> None:
        self._write(translate_key(name, Backend.PTY))

    def send_literal(self, text: str) -> None:
        self._write(text)

    def send_paste(self, text: str) -> None:
        self._write(text)

    def send_bracketed_paste(self, text: str) -> None:
        self._write(bracketed_paste(text))

    def send_sgr_mouse(self, button: int, col: int, row: int, release: bool) -> None:
        if col <= 0 or row <= 0:
            return
        self._write(sgr_mouse(button, col, row, release))

    def capture_output(self, scrollback: int) -> str:
        if not self.is_alive():
            raise SessionDeadError(f"pty session {self._name} has exited")
        lines = self.buffer.lines()
        if scrollback > 0 and len(lines) > scrollback:
            lines = lines[-scrollback:]
        return "\n".join(lines)

    def query_cursor(self) -> CursorInfo:
        cols, rows = self._handle.size()
        with self._lock:
            # Off by one once output fills the pane and ends in a newline,
            # since the capture drops that trailing empty line
            row = min(self._lines_seen, max(rows - 1, 0))
            col = self._cursor_col
        return CursorInfo(row, col, rows, cols, True, True)

    def size(self) -> tuple[int, int]:
        return self._handle.size()

    def resize(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            return
        if self._is_closed():
            raise SessionDeadError(f"pty session {self._name} is closed")
        self._handle.resize(width, height)

    def is_alive(self) -> bool:
        if self._is_closed():
            return False
        return self._handle.exit_code() is None

    def exit_code(self) -> int | None:
        return self._handle.exit_code()

    def kill(self) -> None:
        with self._lock:
            if self._killed:
                return
            self._killed = True
            self._closed = True
        try:
            self._handle.terminate()
        finally:
            self._handle.close()
        logger.info("Killed pty session %s", self._name)


class PtyManager(Manager):
    """Registry of in-process pty sessions."""

    backend = Backend.PTY

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        shell: str | None = None,
        cols: int = DEFAULT_COLS,
        rows: int = DEFAULT_ROWS,
        wire: Wire | None = None,
    ) -> None:
        super().__init__()
        self._history_limit = history_limit
        self._shell = shell
        self._cols = cols
        self._rows = rows
        self._wire = wire

    def is_available(self) -> bool:
        return True

    def install_instructions(self) -> str:
        return "ConPTY requires Windows 10 version 1809 or later."

    def create_session(
        self,
        name: str,
        work_dir: str,
        cmd: str | None = None,
        args: list[str] | None = None,
    ) -> Session:
        argv = [cmd or self._shell or default_shell(), *(args or [])]
        try:
            handle = open_pty(argv, work_dir, self._cols, self._rows)
        except (OSError, ImportError) as e:
            raise SessionCreateError(f"spawn {argv[0]}: {e}") from e

        on_exit = None
        if self._wire:
            wire = self._wire

            def on_exit(s: PtySession, exit_code: int | None) -> None:
                wire.send_session_exit(s.id, exit_code, "\n".join(s.buffer.tail(3)))

        session = PtySession(name, handle, self._history_limit, on_exit=on_exit)
        previous = self._sessions.pop(name)
        if previous is not None:
            logger.warning("Replacing existing pty session %s", name)
            previous.kill()
        self._sessions.put(name, session)
        session.start()

        logger.info("pty session %s started: pid=%d cmd=%s", name, handle.pid, argv)
        if self._wire:
            self._wire.send_session_created(name, self.backend.value)
        return session

    def get_session(self, name: str) -> Session | None:
        session = self._sessions.get(name)
        if session is None:
            return None
        if session.is_alive():
            return session
        self._sessions.discard(name, session)
        return None

    def list_sessions(self, prefix: str = "") -> list[str]:
        return [
            name
            for name, session in self._sessions.items()
            if name.startswith(prefix) and session.is_alive()
        ]

    def kill_session(self, name: str) -> None:
        session = self._sessions.pop(name)
        if session is None:
            return
        session.kill()
        if self._wire:
            self._wire.send_session_killed(name)

    def _lookup(self, name: str) -> PtySession:
        session = self._sessions.get(name)
        if not isinstance(session, PtySession):
            raise SessionNotFoundError(f"session {name} not found")
        return session

    def set_history_limit(self, name: str, lines: int) -> None:
        self._lookup(name).history_limit = lines

    def get_pane_id(self, name: str) -> str:
        return name if self.get_session(name) is not None else ""

    def query_pane_size(self, name: str) -> tuple[int, int, bool]:
        try:
            session = self._lookup(name)
        except SessionNotFoundError:
            return 0, 0, False
        width, height = session.size()
        return width, height, True
