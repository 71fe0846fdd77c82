"""Session and Manager interfaces shared by every terminal backend."""

from __future__ import annotations

import abc
import threading
from typing import Iterator, NamedTuple

from agentdeck.terminal.keys import Backend


class CursorInfo(NamedTuple):
    """Cursor position (0-indexed) and pane size reported by a backend."""

    row: int = 0
    col: int = 0
    pane_height: int = 0
    pane_width: int = 0
    visible: bool = False
    ok: bool = False


class Session(abc.ABC):
    """A live terminal session (shell or agent).

    Every operation may block on I/O or on spawning a helper process, so
    callers in the UI must run them on a worker thread.
    """

    backend: Backend

    @property
    @abc.abstractmethod
    def id(self) -> str:
        """Unique session name."""

    @abc.abstractmethod
    def send_key(self, name: str) -> None:
        """Send a named key such as ``Enter``, ``C-c`` or ``Up``."""

    @abc.abstractmethod
    def send_literal(self, text: str) -> None:
        """Send text without interpreting key names."""

    @abc.abstractmethod
    def send_paste(self, text: str) -> None:
        """Paste text through the backend's paste mechanism."""

    @abc.abstractmethod
    def send_bracketed_paste(self, text: str) -> None:
        """Send text wrapped in bracketed-paste markers."""

    @abc.abstractmethod
    def send_sgr_mouse(self, button: int, col: int, row: int, release: bool) -> None:
        """Send an SGR mouse event.

        Args:
            button: 0=left, 1=middle, 2=right.
            col: 1-indexed column. Non-positive values are ignored.
            row: 1-indexed row. Non-positive values are ignored.
            release: Send the release variant instead of the press.
        """

    @abc.abstractmethod
    def capture_output(self, scrollback: int) -> str:
        """Capture screen content (ANSI preserved) plus ``scrollback`` lines."""

    @abc.abstractmethod
    def query_cursor(self) -> CursorInfo:
        """Return the cursor position and pane size; ``ok`` is False on failure."""

    @abc.abstractmethod
    def resize(self, width: int, height: int) -> None:
        """Resize the session to ``width`` columns by ``height`` rows."""

    @abc.abstractmethod
    def is_alive(self) -> bool:
        """Whether the session's process is still running."""

    @abc.abstractmethod
    def kill(self) -> None:
        """Terminate the session."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id!r}>"


class SessionRegistry:
    """Lock-guarded name -> Session mapping owned by a Manager."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Session | None:
        with self._lock:
            return self._sessions.get(name)

    def put(self, name: str, session: Session) -> None:
        with self._lock:
            self._sessions[name] = session

    def pop(self, name: str) -> Session | None:
        with self._lock:
            return self._sessions.pop(name, None)

    def discard(self, name: str, session: Session) -> None:
        """Remove ``name`` only if it still maps to ``session``."""
        with self._lock:
            if self._sessions.get(name) is session:
                del self._sessions[name]

    def items(self) -> list[tuple[str, Session]]:
        with self._lock:
            return list(self._sessions.items())

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._sessions

    def __iter__(self) -> Iterator[str]:
        return iter([name for name, _ in self.items()])

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class Manager(abc.ABC):
    """Creates, tracks and destroys sessions for one backend.

    Exactly one manager is active per process; see ``new_manager()``.
    """

    backend: Backend

    def __init__(self) -> None:
        self._sessions = SessionRegistry()

    @abc.abstractmethod
    def create_session(
        self,
        name: str,
        work_dir: str,
        cmd: str | None = None,
        args: list[str] | None = None,
    ) -> Session:
        """Spawn a session running ``cmd args`` (default shell when ``cmd`` is empty).

        Raises:
            SessionCreateError: The backend failed to spawn the session.
        """

    @abc.abstractmethod
    def get_session(self, name: str) -> Session | None:
        """Return a live session by name, or None."""

    def has_session(self, name: str) -> bool:
        return self.get_session(name) is not None

    @abc.abstractmethod
    def list_sessions(self, prefix: str = "") -> list[str]:
        """Names of live sessions starting with ``prefix``."""

    @abc.abstractmethod
    def kill_session(self, name: str) -> None:
        """Terminate and unregister a session."""

    @abc.abstractmethod
    def set_history_limit(self, name: str, lines: int) -> None:
        """Set the scrollback size of a session."""

    @abc.abstractmethod
    def query_pane_size(self, name: str) -> tuple[int, int, bool]:
        """Return ``(width, height, ok)`` for a session's pane."""

    @abc.abstractmethod
    def get_pane_id(self, name: str) -> str:
        """Opaque sub-target id; "" when the session is unknown."""

    @abc.abstractmethod
    def is_available(self) -> bool:
        """Whether the backend can run on this host."""

    @abc.abstractmethod
    def install_instructions(self) -> str:
        """Human-readable instructions for installing the backend."""

    def attach_command(self, name: str) -> list[str] | None:
        """Command line that attaches the real terminal to ``name``, if supported."""
        return None

    def cleanup(self) -> None:
        """Kill every registered session. Called on shutdown."""
        for name in list(self._sessions):
            self.kill_session(name)
