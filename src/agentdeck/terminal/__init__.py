"""Cross-platform terminal sessions.

Two backends share the ``Session``/``Manager`` interfaces: tmux on Unix
(every operation is a ``tmux`` invocation) and a directly owned pty on
Windows (ConPTY, drained by a background thread). ``new_manager()`` picks
one at startup.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from agentdeck.terminal.base import CursorInfo, Manager, Session, SessionRegistry
from agentdeck.terminal.buffer import OutputBuffer
from agentdeck.terminal.errors import (
    SessionCreateError,
    SessionDeadError,
    SessionNotFoundError,
    TerminalError,
    is_session_dead_error,
)
from agentdeck.terminal.keys import Backend, KeySpec, key_from_event, translate_key
from agentdeck.terminal.pty import PtyManager, PtySession
from agentdeck.terminal.tmux import TmuxManager, TmuxSession

if TYPE_CHECKING:
    from agentdeck.config import TerminalConfig
    from agentdeck.wire import Wire

__all__ = [
    "Backend",
    "CursorInfo",
    "KeySpec",
    "Manager",
    "OutputBuffer",
    "PtyManager",
    "PtySession",
    "Session",
    "SessionCreateError",
    "SessionDeadError",
    "SessionNotFoundError",
    "SessionRegistry",
    "TerminalError",
    "TmuxManager",
    "TmuxSession",
    "is_session_dead_error",
    "key_from_event",
    "new_manager",
    "translate_key",
]


def new_manager(
    config: TerminalConfig | None = None,
    wire: Wire | None = None,
    platform: str | None = None,
) -> Manager:
    """Return the terminal manager for this host: ConPTY on Windows, tmux elsewhere."""
    from agentdeck.config import TerminalConfig

    config = config or TerminalConfig()
    platform = platform or sys.platform
    if platform == "win32":
        return PtyManager(
            history_limit=config.history_limit,
            shell=config.default_shell,
            cols=config.cols,
            rows=config.rows,
            wire=wire,
        )
    return TmuxManager(history_limit=config.history_limit, wire=wire)
