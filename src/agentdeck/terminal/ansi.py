"""Recognition of the few terminal sequences we care about.

This is not a terminal emulator: it strips escape sequences for width
calculations and looks for the private-mode toggles that tell us whether the
program inside a session wants bracketed paste or mouse reports.
"""

from __future__ import annotations

import re

_ANSI_RE = re.compile(
    r"\x1b\[[0-9;?<>=!]*[ -/]*[@-~]"  # CSI
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"  # OSC
    r"|\x1b[PX^_][^\x1b]*\x1b\\"  # DCS / SOS / PM / APC
    r"|\x1b[()*+][0-9A-Za-z]"  # charset designation
    r"|\x1b[@-Z\\-_=>78]"  # two-byte escapes
)

_BRACKETED_PASTE_RE = re.compile(r"\x1b\[\?2004([hl])")
# 1000 normal, 1002 button-event, 1003 any-event, 1006 SGR encoding
_MOUSE_MODE_RE = re.compile(r"\x1b\[\?(?:1000|1002|1003|1006)([hl])")

# Pieces of "ESC[<b;c;rM" that the UI input layer may deliver as plain keys
_MOUSE_FRAGMENT_RE = re.compile(
    r"^(?:\x1b)?\[?<\d+(?:;\d*){0,2}[Mm]?$"
    r"|^\d+;\d+;\d+[Mm]?$"
    r"|^;?\d+;\d+[Mm]$"
)


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from text."""
    return _ANSI_RE.sub("", text)


def visible_width(text: str) -> int:
    """Column count of ``text`` once escape sequences are removed."""
    return len(strip_ansi(text))


def _last_toggle(pattern: re.Pattern[str], output: str) -> bool:
    state = False
    for match in pattern.finditer(output):
        state = match.group(1) == "h"
    return state


def detect_bracketed_paste_mode(output: str) -> bool:
    """True if the last bracketed-paste toggle in ``output`` enables it."""
    return _last_toggle(_BRACKETED_PASTE_RE, output)


def detect_mouse_reporting_mode(output: str) -> bool:
    """True if the last mouse-reporting toggle in ``output`` enables it."""
    return _last_toggle(_MOUSE_MODE_RE, output)


def looks_like_mouse_fragment(text: str) -> bool:
    """Check whether key input is a split-off piece of an SGR mouse sequence."""
    if not text:
        return False
    return bool(_MOUSE_FRAGMENT_RE.match(text))
