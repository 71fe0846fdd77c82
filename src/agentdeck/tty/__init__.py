"""Interactive mode: type into a live session from the dashboard."""

from agentdeck.tty.model import (
    CaptureResult,
    Dispatcher,
    InteractiveModel,
    InteractiveState,
    polling_interval,
)
from agentdeck.tty.render import render_with_cursor
from agentdeck.tty.widget import TerminalView

__all__ = [
    "CaptureResult",
    "Dispatcher",
    "InteractiveModel",
    "InteractiveState",
    "TerminalView",
    "polling_interval",
    "render_with_cursor",
]
