"""Interactive mode — drive a terminal session from inside the dashboard.

``InteractiveModel`` is the state machine behind the attached terminal view.
It owns no threads and no timers: everything that waits or blocks goes
through a ``Dispatcher`` supplied by the host widget, which runs blocking
session calls on worker threads and delivers their results back on the UI
loop.

Polls are tagged with a generation number. Scheduling a poll bumps the
generation, and a tick or capture result carrying an older generation is
dropped, so a superseded poll can never overwrite fresher state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Protocol, TypeVar

import pyperclip
from rich.text import Text

from agentdeck.config import InteractiveConfig
from agentdeck.terminal.ansi import (
    detect_bracketed_paste_mode,
    detect_mouse_reporting_mode,
    looks_like_mouse_fragment,
    strip_ansi,
)
from agentdeck.terminal.base import CursorInfo, Session
from agentdeck.terminal.buffer import OutputBuffer
from agentdeck.terminal.errors import is_session_dead_error
from agentdeck.terminal.keys import KeySpec, key_from_event
from agentdeck.tty.render import cursor_view_row, render_with_cursor

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOUBLE_ESCAPE_DELAY = 0.15  # second Escape within this window exits
KEYSTROKE_DEBOUNCE = 0.02  # output usually trails a keystroke by a few ms
RESIZE_DEBOUNCE = 0.5
ESCAPE_BRACKET_WINDOW = 0.005
MOUSE_BRACKET_WINDOW = 0.010

POLL_ACTIVE = 0.05
POLL_RECENT = 0.2
POLL_IDLE = 0.5
ACTIVE_WINDOW = 2.0
RECENT_WINDOW = 10.0

MOUSE_LEFT = 1  # Textual button numbering


def polling_interval(last_key_time: float, now: float) -> float:
    """Pick the next poll delay from how recently the user typed."""
    idle = now - last_key_time
    if idle < ACTIVE_WINDOW:
        return POLL_ACTIVE
    if idle < RECENT_WINDOW:
        return POLL_RECENT
    return POLL_IDLE


class Dispatcher(Protocol):
    """What the model needs from its UI host."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Call ``callback`` on the UI loop after ``delay`` seconds (0 = next turn)."""

    def run_blocking(
        self, func: Callable[[], T], callback: Callable[[T], None]
    ) -> None:
        """Run ``func`` off the UI loop, then ``callback(result)`` on it."""

    def invalidate(self) -> None:
        """Request a re-render."""


class Clipboard(Protocol):
    def copy(self, text: str) -> None: ...

    def paste(self) -> str: ...


@dataclass
class CaptureResult:
    """Outcome of one poll, delivered back on the UI loop."""

    generation: int
    target: str
    output: str = ""
    cursor: CursorInfo = field(default_factory=CursorInfo)
    error: Exception | None = None


@dataclass
class InteractiveState:
    """Everything interactive mode knows; rebuilt on every ``enter``."""

    session: Session
    target_session: str
    output: OutputBuffer
    target_pane: str = ""
    active: bool = True
    last_key_time: float = 0.0

    escape_pressed: bool = False
    escape_time: float = 0.0
    escape_timer_pending: bool = False

    last_mouse_event_time: float | None = None

    cursor_row: int = 0
    cursor_col: int = 0
    cursor_visible: bool = True
    pane_height: int = 0
    pane_width: int = 0

    bracketed_paste_enabled: bool = False
    mouse_reporting_enabled: bool = False

    poll_generation: int = 0
    last_resize_at: float | None = None


class InteractiveModel:
    """State machine for interactive mode (Inactive <-> Active)."""

    def __init__(
        self,
        config: InteractiveConfig,
        dispatcher: Dispatcher,
        on_exit: Callable[[], None] | None = None,
        on_attach: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        clipboard: Clipboard | Any = pyperclip,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self.on_exit = on_exit
        self.on_attach = on_attach
        self.clock = clock
        self.clipboard = clipboard
        self.state: InteractiveState | None = None
        # View size, set by the host
        self.width = 0
        self.height = 0

    # --- Lifecycle ---

    @property
    def is_active(self) -> bool:
        return self.state is not None and self.state.active

    @property
    def target(self) -> str:
        """Current target: session id, else pane id, else session name."""
        st = self.state
        if st is None or not st.active:
            return ""
        if st.session is not None:
            return st.session.id
        return st.target_pane or st.target_session

    def enter(self, session: Session, pane_id: str = "") -> None:
        """Start interactive mode on ``session`` and poll immediately."""
        st = InteractiveState(
            session=session,
            target_session=session.id,
            target_pane=pane_id,
            output=OutputBuffer(capacity=self.config.scrollback_lines),
            last_key_time=self.clock(),
        )
        self.state = st
        logger.info("Entering interactive mode for %s", session.id)

        if self.width > 0 and self.height > 0:
            self._resize(st, self.width, self.height, poll_after=False)

        self.schedule_poll(0)

    def exit(self) -> None:
        """Leave interactive mode; outstanding polls become no-ops."""
        if self.state is not None:
            self.state.active = False
            logger.info("Leaving interactive mode for %s", self.state.target_session)
        self.state = None
        self.dispatcher.invalidate()

    def _finish(self, callback: Callable[[], None] | None) -> None:
        self.exit()
        if callback is not None:
            callback()

    def _current(self, st: InteractiveState) -> bool:
        return self.state is st and st.active

    # --- Keyboard ---

    def handle_key(self, key: str, character: str | None = None) -> None:
        """Handle a key event (Textual key name plus the character, if any)."""
        st = self.state
        if st is None or not st.active:
            return
        now = self.clock()

        if key == self.config.exit_key:
            self._finish(self.on_exit)
            return
        if key == self.config.attach_key:
            self._finish(self.on_attach)
            return

        if key == "escape":
            if st.escape_pressed:
                st.escape_pressed = False
                st.escape_timer_pending = False
                self._finish(self.on_exit)
                return
            st.escape_pressed = True
            st.escape_time = now
            if not st.escape_timer_pending:
                st.escape_timer_pending = True
                self.dispatcher.schedule(
                    DOUBLE_ESCAPE_DELAY, partial(self._on_escape_timer, st)
                )
            return

        text = character or ""
        if looks_like_mouse_fragment(text):
            st.escape_pressed = False
            return

        # The second byte of a split CSI sequence arrives as a bare "["
        if text == "[":
            esc_gate = st.escape_pressed and now - st.escape_time < ESCAPE_BRACKET_WINDOW
            mouse_gate = (
                st.last_mouse_event_time is not None
                and now - st.last_mouse_event_time < MOUSE_BRACKET_WINDOW
            )
            if esc_gate or mouse_gate:
                st.escape_pressed = False
                return

        pending_escape = st.escape_pressed
        st.escape_pressed = False

        if key == self.config.copy_key:
            if pending_escape:
                self._send_keys(st, [KeySpec("Escape")])
            self._copy_view(st)
            return

        st.last_key_time = now

        if key == self.config.paste_key:
            self._paste_clipboard(st, pending_escape)
            self.schedule_poll(KEYSTROKE_DEBOUNCE)
            return

        spec = key_from_event(key, character)
        if spec is None:
            if pending_escape:
                self._send_keys(st, [KeySpec("Escape")])
                self.schedule_poll(KEYSTROKE_DEBOUNCE)
            return

        keys = [KeySpec("Escape"), spec] if pending_escape else [spec]
        self._send_keys(st, keys)
        self.schedule_poll(KEYSTROKE_DEBOUNCE)

    def handle_paste(self, text: str) -> None:
        """Forward pasted text, bracketed if the program asked for it."""
        st = self.state
        if st is None or not st.active or not text:
            return
        pending_escape = st.escape_pressed
        st.escape_pressed = False
        st.last_key_time = self.clock()

        session = st.session
        bracketed = st.bracketed_paste_enabled

        def send() -> None:
            if pending_escape:
                session.send_key("Escape")
            if bracketed:
                session.send_bracketed_paste(text)
            else:
                session.send_paste(text)

        self._send(st, send)
        self.schedule_poll(KEYSTROKE_DEBOUNCE)

    def _on_escape_timer(self, st: InteractiveState) -> None:
        if not self._current(st):
            return
        st.escape_timer_pending = False
        if not st.escape_pressed:
            return
        # Single Escape: it was meant for the program
        st.escape_pressed = False
        st.last_key_time = self.clock()
        self._send_keys(st, [KeySpec("Escape")])
        self.schedule_poll(0)

    # --- Mouse ---

    def handle_mouse(self, x: int, y: int, button: int, action: str = "press") -> None:
        """Handle a mouse event at 0-indexed view coordinates.

        Only left presses are forwarded, as an SGR press plus release, and
        only while the program has mouse reporting enabled.
        """
        st = self.state
        if st is None or not st.active:
            return
        st.last_mouse_event_time = self.clock()

        if not st.mouse_reporting_enabled:
            return
        if action != "press" or button != MOUSE_LEFT:
            return

        col, row = x + 1, y + 1
        session = st.session

        def click() -> None:
            session.send_sgr_mouse(0, col, row, False)
            session.send_sgr_mouse(0, col, row, True)

        self._send(st, click)

    # --- Sending ---

    def _send_keys(self, st: InteractiveState, keys: list[KeySpec]) -> None:
        session = st.session

        def send() -> None:
            for spec in keys:
                if spec.literal:
                    session.send_literal(spec.name)
                else:
                    session.send_key(spec.name)

        self._send(st, send)

    def _send(self, st: InteractiveState, func: Callable[[], None]) -> None:
        """Run a send off-loop; a failure on a dead session ends interactive mode."""
        session = st.session

        def guarded() -> bool:
            try:
                func()
            except Exception as e:
                if not session.is_alive():
                    return True
                logger.debug("Dropped input for %s: %s", session.id, e)
            return False

        def done(dead: bool) -> None:
            if dead and self._current(st):
                logger.info("Session %s died while sending input", session.id)
                self._finish(self.on_exit)

        self.dispatcher.run_blocking(guarded, done)

    def _paste_clipboard(self, st: InteractiveState, pending_escape: bool) -> None:
        session = st.session
        bracketed = st.bracketed_paste_enabled
        clipboard = self.clipboard

        def paste() -> None:
            text = clipboard.paste()
            if pending_escape:
                session.send_key("Escape")
            if not text:
                return
            if bracketed:
                session.send_bracketed_paste(text)
            else:
                session.send_paste(text)

        self._send(st, paste)

    def _copy_view(self, st: InteractiveState) -> None:
        text = strip_ansi(st.output.string())
        clipboard = self.clipboard

        def copy() -> None:
            try:
                clipboard.copy(text)
            except Exception as e:
                logger.warning("Copy to clipboard failed: %s", e)

        self.dispatcher.run_blocking(copy, lambda _: None)

    # --- Polling ---

    def schedule_poll(self, delay: float) -> None:
        """Schedule the next poll, superseding any pending one."""
        st = self.state
        if st is None or not st.active:
            return
        st.poll_generation += 1
        self.dispatcher.schedule(
            delay, partial(self._on_poll_tick, st, st.poll_generation)
        )

    def _on_poll_tick(self, st: InteractiveState, generation: int) -> None:
        if not self._current(st) or generation != st.poll_generation:
            return
        capture = partial(
            self._capture, st.session, generation, self.config.scrollback_lines
        )
        self.dispatcher.run_blocking(capture, partial(self._on_capture_result, st))

    @staticmethod
    def _capture(session: Session, generation: int, scrollback: int) -> CaptureResult:
        # Runs on a worker thread
        try:
            output = session.capture_output(scrollback)
        except Exception as e:
            return CaptureResult(generation, session.id, error=e)
        try:
            cursor = session.query_cursor()
        except Exception as e:
            logger.debug("Cursor query failed for %s: %s", session.id, e)
            cursor = CursorInfo()
        return CaptureResult(generation, session.id, output=output, cursor=cursor)

    def _on_capture_result(self, st: InteractiveState, result: CaptureResult) -> None:
        if not self._current(st) or result.generation != st.poll_generation:
            return

        if result.error is not None:
            if is_session_dead_error(result.error):
                logger.info("Session %s ended: %s", result.target, result.error)
                self._finish(self.on_exit)
                return
            logger.debug("Capture failed for %s: %s", result.target, result.error)
            self.schedule_poll(POLL_IDLE)
            return

        changed = st.output.update(result.output)

        cursor = result.cursor
        if cursor.ok:
            st.cursor_row = cursor.row
            st.cursor_col = cursor.col
            st.cursor_visible = cursor.visible
            st.pane_height = cursor.pane_height
            st.pane_width = cursor.pane_width

        if changed:
            st.bracketed_paste_enabled = detect_bracketed_paste_mode(result.output)
            st.mouse_reporting_enabled = detect_mouse_reporting_mode(result.output)

        self.dispatcher.invalidate()
        self.schedule_poll(polling_interval(st.last_key_time, self.clock()))

    # --- Resize ---

    def set_dimensions(self, width: int, height: int) -> None:
        """Record a new view size; resizes the session at most every 500ms."""
        if width == self.width and height == self.height:
            return
        self.width, self.height = width, height

        st = self.state
        if st is None or not st.active:
            return
        now = self.clock()
        if st.last_resize_at is not None and now - st.last_resize_at < RESIZE_DEBOUNCE:
            return
        st.last_resize_at = now
        self._resize(st, width, height, poll_after=True)

    def resize_and_poll_immediate(self, width: int, height: int) -> None:
        """Resize without debouncing and poll at once at a fresh generation."""
        if width == self.width and height == self.height:
            return
        self.width, self.height = width, height

        st = self.state
        if st is None or not st.active:
            return
        st.last_resize_at = self.clock()
        self._resize(st, width, height, poll_after=True)
        self.schedule_poll(0)

    def _resize(
        self, st: InteractiveState, width: int, height: int, poll_after: bool
    ) -> None:
        session = st.session

        def resize() -> None:
            try:
                session.resize(width, height)
            except Exception as e:
                logger.debug("Resize of %s failed: %s", session.id, e)

        def done(_: None) -> None:
            if poll_after and self._current(st):
                self.schedule_poll(0)

        self.dispatcher.run_blocking(resize, done)

    # --- Rendering ---

    def view(self) -> Text:
        """Render the captured output with the cursor overlaid."""
        st = self.state
        if st is None or not st.active:
            return Text()
        lines = st.output.lines()
        total = len(lines)
        if self.height > 0 and total > self.height:
            lines = lines[-self.height :]
        row = cursor_view_row(total, self.height, st.cursor_row, st.pane_height)
        return render_with_cursor(lines, row, st.cursor_col, st.cursor_visible)
