"""Main Textual application for the agentdeck dashboard."""

from __future__ import annotations

import logging
import subprocess
from typing import TYPE_CHECKING

from rich.markup import escape

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.timer import Timer
from textual.widgets import Footer, Header, Label, ListItem, ListView, Static

from agentdeck.terminal import Backend, TerminalError
from agentdeck.tty import TerminalView
from agentdeck.wire import EventType, Wire, WireEvent

if TYPE_CHECKING:
    from agentdeck.config import DeckConfig
    from agentdeck.terminal import Manager

logger = logging.getLogger(__name__)


class TUILogHandler(logging.Handler):
    """Logging handler that keeps the last log message for the status bar.

    Writing to stderr would corrupt the Textual display, so records are
    stored and the status bar is refreshed on the app's loop.
    """

    def __init__(self, app: DeckApp) -> None:
        super().__init__()
        self._app = app
        self.last_message: str = ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.last_message = self.format(record)
            try:
                self._app.call_from_thread(self._app._update_status)
            except RuntimeError:
                # Already on the app thread
                self._app._update_status()
        except Exception:
            pass  # never let logging crash the TUI


class DeckApp(App):
    """agentdeck: monitor and drive agent sessions."""

    TITLE = "agentdeck"
    CSS = """
    #main-layout {
        layout: horizontal;
        height: 1fr;
    }

    #sidebar {
        width: 1fr;
        min-width: 24;
        max-width: 40;
        border: solid $secondary;
    }

    #terminal {
        width: 3fr;
        border: solid $primary;
    }

    #terminal:focus {
        border: solid $accent;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
    }
    """

    BINDINGS = [
        Binding("n", "new_session", "New session"),
        Binding("x", "kill_session", "Kill"),
        Binding("r", "refresh_sessions", "Refresh"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, manager: Manager, config: DeckConfig, wire: Wire) -> None:
        super().__init__()
        self.manager = manager
        self.config = config
        self.wire = wire
        self._log_handler: TUILogHandler | None = None
        self._refresh_timer: Timer | None = None
        self._last_event = ""
        self._session_names: list[str] = []

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-layout"):
            with Vertical(id="sidebar"):
                yield ListView(id="session-list")
            yield TerminalView(self.config.interactive, id="terminal")
        yield Static(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = f"{self.manager.backend.value} | {self.config.work_dir}"
        self._install_log_handler()

        if not self.manager.is_available():
            self._last_event = (
                f"{self.manager.backend.value} not found: "
                f"{self.manager.install_instructions()}"
            )

        self._update_status()
        self._listen_wire()
        self.action_refresh_sessions()
        self._refresh_timer = self.set_interval(2.0, self.action_refresh_sessions)

    def on_unmount(self) -> None:
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
        # tmux sessions outlive the dashboard; owned ptys do not
        if self.manager.backend == Backend.PTY:
            self.manager.cleanup()

    def _install_log_handler(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        self._log_handler = TUILogHandler(self)
        self._log_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(self._log_handler)

    # --- Status bar ---

    def _update_status(self) -> None:
        try:
            status = self.query_one("#status-bar", Static)
            terminal = self.query_one("#terminal", TerminalView)
        except Exception:
            return
        parts = [f"Sessions: {len(self._session_names)}"]
        if terminal.is_active:
            parts.append(f"[bold]attached {escape(terminal.model.target)}[/bold]")
            parts.append(
                f"{self.config.interactive.exit_key} or Esc Esc to detach"
            )
        if self._last_event:
            parts.append(escape(self._last_event))
        if self._log_handler and self._log_handler.last_message:
            last_log = self._log_handler.last_message
            if len(last_log) > 80:
                last_log = last_log[:77] + "..."
            parts.append(f"[dim]{escape(last_log)}[/dim]")
        status.update(" | ".join(parts))

    # --- Session list ---

    @work(thread=True, exclusive=True, group="session-list")
    def action_refresh_sessions(self) -> None:
        names = self.manager.list_sessions(self.config.terminal.session_prefix)
        self.call_from_thread(self._show_sessions, sorted(names))

    async def _show_sessions(self, names: list[str]) -> None:
        if names == self._session_names:
            return
        self._session_names = names
        list_view = self.query_one("#session-list", ListView)
        index = list_view.index
        await list_view.clear()
        await list_view.extend(ListItem(Label(name), name=name) for name in names)
        if names:
            list_view.index = min(index or 0, len(names) - 1)
        self._update_status()

    def _highlighted_session(self) -> str | None:
        item = self.query_one("#session-list", ListView).highlighted_child
        return item.name if item is not None else None

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        name = event.item.name
        if not name:
            return
        self._attach(name)

    @work(thread=True, group="session-ops")
    def _attach(self, name: str) -> None:
        session = self.manager.get_session(name)
        if session is None:
            self.call_from_thread(self._set_event, f"{name} is not running")
            return
        pane_id = self.manager.get_pane_id(name)
        self.call_from_thread(self._enter, session, pane_id)

    def _enter(self, session, pane_id: str) -> None:
        self.query_one("#terminal", TerminalView).enter(session, pane_id)
        self._update_status()

    def _set_event(self, message: str) -> None:
        self._last_event = message
        self._update_status()

    @work(thread=True, group="session-ops")
    def action_new_session(self) -> None:
        prefix = self.config.terminal.session_prefix
        existing = set(self.manager.list_sessions(prefix))
        n = 1
        while f"{prefix}{n}" in existing:
            n += 1
        name = f"{prefix}{n}"
        try:
            self.manager.create_session(name, self.config.work_dir)
        except TerminalError as e:
            logger.warning("Could not create %s: %s", name, e)
            self.call_from_thread(self._set_event, f"create failed: {e}")
            return
        self.call_from_thread(self.action_refresh_sessions)

    @work(thread=True, group="session-ops")
    def action_kill_session(self) -> None:
        name = self.call_from_thread(self._highlighted_session)
        if not name:
            return
        try:
            self.manager.kill_session(name)
        except TerminalError as e:
            logger.warning("Could not kill %s: %s", name, e)
        self.call_from_thread(self.action_refresh_sessions)

    # --- Interactive mode ---

    def on_terminal_view_exited(self, event: TerminalView.Exited) -> None:
        self.query_one("#session-list", ListView).focus()
        self._set_event(f"detached from {event.session_id}")
        self.action_refresh_sessions()

    def on_terminal_view_attach_requested(
        self, event: TerminalView.AttachRequested
    ) -> None:
        command = self.manager.attach_command(event.session_id)
        if command is None:
            self._set_event("full attach is not supported by this backend")
            return
        with self.suspend():
            subprocess.run(command, check=False)
        self.query_one("#session-list", ListView).focus()
        self.action_refresh_sessions()

    # --- Wire event loop ---

    @work(exclusive=True, group="wire")
    async def _listen_wire(self) -> None:
        queue = self.wire.subscribe()
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                self._handle_event(event)
        finally:
            self.wire.unsubscribe(queue)

    def _handle_event(self, event: WireEvent) -> None:
        data = event.data
        if event.type == EventType.SESSION_CREATED:
            self._set_event(f"created {data.get('name', '?')}")
        elif event.type == EventType.SESSION_KILLED:
            self._set_event(f"killed {data.get('name', '?')}")
        elif event.type == EventType.SESSION_EXIT:
            code = data.get("exit_code")
            code_str = str(code) if code is not None else "?"
            self._set_event(f"{data.get('name', '?')} exited (code={code_str})")
            self.action_refresh_sessions()
        elif event.type == EventType.ERROR:
            self._set_event(f"error: {data.get('error', 'unknown')}")
        elif event.type == EventType.STATUS:
            self._set_event(data.get("message", ""))
