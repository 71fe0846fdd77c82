"""Tests for agentdeck.terminal.ansi and agentdeck.terminal.errors."""

from __future__ import annotations

import pytest

from agentdeck.terminal.ansi import (
    detect_bracketed_paste_mode,
    detect_mouse_reporting_mode,
    looks_like_mouse_fragment,
    strip_ansi,
    visible_width,
)
from agentdeck.terminal.errors import (
    SessionDeadError,
    TerminalError,
    is_dead_session_message,
    is_session_dead_error,
)


class TestStripAnsi:
    def test_plain_text_unchanged(self) -> None:
        assert strip_ansi("hello") == "hello"

    def test_sgr_colors(self) -> None:
        assert strip_ansi("\x1b[1;31mred\x1b[0m") == "red"

    def test_private_modes(self) -> None:
        assert strip_ansi("\x1b[?2004hprompt$ ") == "prompt$ "

    def test_osc_title(self) -> None:
        assert strip_ansi("\x1b]0;title\x07text") == "text"
        assert strip_ansi("\x1b]2;title\x1b\\text") == "text"

    def test_charset_designation(self) -> None:
        assert strip_ansi("\x1b(Bok") == "ok"

    def test_visible_width(self) -> None:
        assert visible_width("\x1b[32mabc\x1b[0m") == 3


class TestModeDetection:
    def test_bracketed_paste_off_by_default(self) -> None:
        assert detect_bracketed_paste_mode("plain output") is False

    def test_bracketed_paste_enabled(self) -> None:
        assert detect_bracketed_paste_mode("x\x1b[?2004hy") is True

    def test_bracketed_paste_last_toggle_wins(self) -> None:
        assert detect_bracketed_paste_mode("\x1b[?2004h...\x1b[?2004l") is False
        assert detect_bracketed_paste_mode("\x1b[?2004l...\x1b[?2004h") is True

    @pytest.mark.parametrize("mode", ["1000", "1002", "1003", "1006"])
    def test_mouse_modes(self, mode: str) -> None:
        assert detect_mouse_reporting_mode(f"\x1b[?{mode}h") is True

    def test_mouse_disabled_after_enable(self) -> None:
        assert detect_mouse_reporting_mode("\x1b[?1000h\x1b[?1000l") is False

    def test_unrelated_mode_ignored(self) -> None:
        assert detect_mouse_reporting_mode("\x1b[?25h") is False


class TestMouseFragments:
    @pytest.mark.parametrize(
        "text",
        ["\x1b[<0;11;5M", "[<0;11;5m", "<35;10;4M", "0;11;5M", "11;5M", ";11;5m"],
    )
    def test_fragments(self, text: str) -> None:
        assert looks_like_mouse_fragment(text) is True

    @pytest.mark.parametrize("text", ["", "a", "[", "hello", "M"])
    def test_not_fragments(self, text: str) -> None:
        assert looks_like_mouse_fragment(text) is False


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class TestDeadSessionErrors:
    @pytest.mark.parametrize(
        "message",
        [
            "can't find session: deck-1",
            "can't find pane: %3",
            "no server running on /tmp/tmux-1000/default",
            "Session not found",
        ],
    )
    def test_dead_messages(self, message: str) -> None:
        assert is_dead_session_message(message) is True

    def test_transient_message(self) -> None:
        assert is_dead_session_message("resource temporarily unavailable") is False

    def test_session_dead_error_type(self) -> None:
        assert is_session_dead_error(SessionDeadError("gone")) is True

    def test_terminal_error_with_dead_message(self) -> None:
        assert is_session_dead_error(TerminalError("can't find session: x")) is True

    def test_other_errors(self) -> None:
        assert is_session_dead_error(TerminalError("timeout")) is False
        assert is_session_dead_error(None) is False

    def test_hierarchy(self) -> None:
        assert issubclass(SessionDeadError, TerminalError)
