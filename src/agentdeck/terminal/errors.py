"""Terminal backend errors."""

from __future__ import annotations

import re

# stderr fragments tmux prints when the target no longer exists
_DEAD_SESSION_PATTERNS = re.compile(
    r"can't find session|can't find pane|can't find window|"
    r"no server running|session not found|no such session",
    re.IGNORECASE,
)


class TerminalError(Exception):
    """Base class for terminal backend failures."""


class SessionCreateError(TerminalError):
    """Spawning a session failed. Nothing was registered."""


class SessionDeadError(TerminalError):
    """The session's process or multiplexer target is gone."""


class SessionNotFoundError(TerminalError):
    """No session is registered under the requested name."""


def is_dead_session_message(message: str) -> bool:
    """Check whether a backend error message reports a vanished session."""
    return bool(_DEAD_SESSION_PATTERNS.search(message or ""))


def is_session_dead_error(exc: BaseException | None) -> bool:
    """Classify an exception as session-terminated (vs. transient)."""
    if exc is None:
        return False
    if isinstance(exc, SessionDeadError):
        return True
    return is_dead_session_message(str(exc))
