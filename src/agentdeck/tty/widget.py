"""Textual widget hosting interactive mode."""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable, TypeVar

from rich.text import Text
from textual import events
from textual.message import Message
from textual.widget import Widget

from agentdeck.config import InteractiveConfig
from agentdeck.terminal.base import Session
from agentdeck.tty.model import InteractiveModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TerminalView(Widget, can_focus=True):
    """Live view of a terminal session that forwards input while active.

    Implements the model's ``Dispatcher``: timers run on Textual's loop and
    blocking session calls run in thread workers whose results come back
    through ``call_from_thread``.
    """

    DEFAULT_CSS = """
    TerminalView {
        height: 1fr;
        width: 1fr;
        overflow: hidden;
    }
    """

    class Exited(Message):
        """Interactive mode ended (exit key, double Escape, or session death)."""

        def __init__(self, session_id: str) -> None:
            super().__init__()
            self.session_id = session_id

    class AttachRequested(Message):
        """The user asked to attach the real terminal to the session."""

        def __init__(self, session_id: str) -> None:
            super().__init__()
            self.session_id = session_id

    def __init__(
        self,
        config: InteractiveConfig | None = None,
        clipboard: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        model_kwargs: dict[str, Any] = {}
        if clipboard is not None:
            model_kwargs["clipboard"] = clipboard
        self.model = InteractiveModel(
            config or InteractiveConfig(),
            dispatcher=self,
            on_exit=self._on_model_exit,
            on_attach=self._on_model_attach,
            **model_kwargs,
        )
        self._session_id = ""

    # --- Dispatcher ---

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        if delay <= 0:
            self.call_later(callback)
        else:
            self.set_timer(delay, callback)

    def run_blocking(
        self, func: Callable[[], T], callback: Callable[[T], None]
    ) -> None:
        self.run_worker(
            partial(self._blocking, func, callback),
            thread=True,
            group="terminal-io",
            exit_on_error=False,
        )

    def _blocking(self, func: Callable[[], T], callback: Callable[[T], None]) -> None:
        result = func()
        try:
            self.app.call_from_thread(callback, result)
        except RuntimeError as e:
            # App shutting down
            logger.debug("Dropped terminal result: %s", e)

    def invalidate(self) -> None:
        self.refresh()

    # --- Lifecycle ---

    @property
    def is_active(self) -> bool:
        return self.model.is_active

    def enter(self, session: Session, pane_id: str = "") -> None:
        """Attach the view to ``session`` and start forwarding input."""
        self._session_id = session.id
        self.model.set_dimensions(self.size.width, self.size.height)
        self.model.enter(session, pane_id)
        self.focus()

    def exit(self) -> None:
        self.model.exit()

    def _on_model_exit(self) -> None:
        self.post_message(self.Exited(self._session_id))

    def _on_model_attach(self) -> None:
        self.post_message(self.AttachRequested(self._session_id))

    def render(self) -> Text:
        if not self.model.is_active:
            return Text("Not attached", style="dim")
        return self.model.view()

    # --- Events ---

    def check_consume_key(self, key: str, character: str | None = None) -> bool:
        # While attached every key belongs to the session, not to app bindings
        return self.model.is_active

    def on_key(self, event: events.Key) -> None:
        if not self.model.is_active:
            return
        event.stop()
        event.prevent_default()
        self.model.handle_key(event.key, event.character)

    def on_paste(self, event: events.Paste) -> None:
        if not self.model.is_active:
            return
        event.stop()
        self.model.handle_paste(event.text)

    def _forward_mouse(self, event: events.MouseEvent, action: str) -> None:
        offset = event.get_content_offset(self)
        if offset is None:
            # On the border or padding
            return
        self.model.handle_mouse(offset.x, offset.y, event.button, action)

    def on_mouse_down(self, event: events.MouseDown) -> None:
        self._forward_mouse(event, "press")

    def on_mouse_up(self, event: events.MouseUp) -> None:
        self._forward_mouse(event, "release")

    def on_mouse_move(self, event: events.MouseMove) -> None:
        self._forward_mouse(event, "motion")

    def on_resize(self, event: events.Resize) -> None:
        self.model.resize_and_poll_immediate(event.size.width, event.size.height)
