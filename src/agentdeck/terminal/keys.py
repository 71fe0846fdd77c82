"""Key translation — abstract key names to backend tokens or VT bytes.

Keys are named the way tmux's ``send-keys`` names them (``Enter``,
``Escape``, ``Up``, ``C-c``, ``F5``), with a few friendlier aliases
(``Backspace``, ``Delete``, ``PageUp``). The tmux backend accepts names, so
translation there is a normalization step; a raw pty needs the literal
escape sequence a terminal would have produced.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

BRACKETED_PASTE_START = "\x1b[200~"
BRACKETED_PASTE_END = "\x1b[201~"


class Backend(enum.StrEnum):
    """Session backend kinds."""

    TMUX = "tmux"
    PTY = "pty"


@dataclass(frozen=True)
class KeySpec:
    """A key ready to send: a key name, or literal text when ``literal``."""

    name: str
    literal: bool = False


_TMUX_ALIASES: dict[str, str] = {
    "Backspace": "BSpace",
    "BSpace": "BSpace",
    "Delete": "DC",
    "DC": "DC",
    "Insert": "IC",
    "IC": "IC",
    "PageUp": "PPage",
    "PgUp": "PPage",
    "PPage": "PPage",
    "PageDown": "NPage",
    "PgDn": "NPage",
    "NPage": "NPage",
}

_FUNCTION_KEYS: dict[str, str] = {
    "F1": "\x1bOP",
    "F2": "\x1bOQ",
    "F3": "\x1bOR",
    "F4": "\x1bOS",
    "F5": "\x1b[15~",
    "F6": "\x1b[17~",
    "F7": "\x1b[18~",
    "F8": "\x1b[19~",
    "F9": "\x1b[20~",
    "F10": "\x1b[21~",
    "F11": "\x1b[23~",
    "F12": "\x1b[24~",
}

_VT_SEQUENCES: dict[str, str] = {
    "Enter": "\r",
    "Escape": "\x1b",
    "Tab": "\t",
    "BTab": "\x1b[Z",
    "Backspace": "\x7f",
    "BSpace": "\x7f",
    "Space": " ",
    "Up": "\x1b[A",
    "Down": "\x1b[B",
    "Right": "\x1b[C",
    "Left": "\x1b[D",
    "Home": "\x1b[H",
    "End": "\x1b[F",
    "Delete": "\x1b[3~",
    "DC": "\x1b[3~",
    "Insert": "\x1b[2~",
    "IC": "\x1b[2~",
    "PageUp": "\x1b[5~",
    "PgUp": "\x1b[5~",
    "PPage": "\x1b[5~",
    "PageDown": "\x1b[6~",
    "PgDn": "\x1b[6~",
    "NPage": "\x1b[6~",
    **_FUNCTION_KEYS,
}

# Names tmux accepts verbatim
_TMUX_NAMED = frozenset(
    {
        "Enter",
        "Escape",
        "Tab",
        "BTab",
        "Space",
        "Up",
        "Down",
        "Left",
        "Right",
        "Home",
        "End",
        *_FUNCTION_KEYS,
    }
)

_CTRL_SYMBOLS: dict[str, str] = {
    "@": "\x00",
    "Space": "\x00",
    "[": "\x1b",
    "\\": "\x1c",
    "]": "\x1d",
    "^": "\x1e",
    "_": "\x1f",
    "?": "\x7f",
}

_COMBO_RE = re.compile(r"^(?P<mod>[CM])-(?P<rest>.+)$")


def _ctrl_byte(rest: str) -> str:
    if len(rest) == 1 and rest.isascii() and rest.isalpha():
        return chr(ord(rest.lower()) - ord("a") + 1)
    return _CTRL_SYMBOLS.get(rest, "")


def _tmux_token(name: str) -> str:
    if name in _TMUX_ALIASES:
        return _TMUX_ALIASES[name]
    if name in _TMUX_NAMED:
        return name
    match = _COMBO_RE.match(name)
    if match:
        rest = match.group("rest")
        if match.group("mod") == "C":
            return name if _ctrl_byte(rest) else ""
        if len(rest) == 1 or _tmux_token(rest):
            return name
        return ""
    if len(name) == 1:
        return name
    return ""


def _vt_sequence(name: str) -> str:
    if name in _VT_SEQUENCES:
        return _VT_SEQUENCES[name]
    match = _COMBO_RE.match(name)
    if match:
        rest = match.group("rest")
        if match.group("mod") == "C":
            return _ctrl_byte(rest)
        inner = rest if len(rest) == 1 else _VT_SEQUENCES.get(rest, "")
        return "\x1b" + inner if inner else ""
    if len(name) == 1:
        return name
    return ""


def translate_key(name: str, backend: Backend) -> str:
    """Translate an abstract key name for ``backend``.

    Returns a tmux key token for ``Backend.TMUX`` and the raw VT byte
    sequence for ``Backend.PTY``. Unknown single characters pass through
    unchanged; unknown multi-character names return ``""`` (nothing to send).
    """
    if backend == Backend.TMUX:
        return _tmux_token(name)
    return _vt_sequence(name)


# Textual key names -> abstract key names
_TEXTUAL_KEYS: dict[str, str] = {
    "enter": "Enter",
    "escape": "Escape",
    "tab": "Tab",
    "shift+tab": "BTab",
    "backspace": "Backspace",
    "delete": "Delete",
    "insert": "Insert",
    "home": "Home",
    "end": "End",
    "pageup": "PageUp",
    "pagedown": "PageDown",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    "ctrl+at": "C-@",
    "ctrl+space": "C-Space",
    "ctrl+backslash": "C-\\",
    "ctrl+left_square_bracket": "C-[",
    "ctrl+right_square_bracket": "C-]",
    "ctrl+circumflex_accent": "C-^",
    "ctrl+underscore": "C-_",
}

_TEXTUAL_FN_RE = re.compile(r"^f(?P<n>[1-9]|1[0-2])$")
_TEXTUAL_CTRL_RE = re.compile(r"^ctrl\+(?P<ch>[a-z])$")
_TEXTUAL_ALT_RE = re.compile(r"^alt\+(?P<rest>.+)$")


def key_from_event(key: str, character: str | None = None) -> KeySpec | None:
    """Map a Textual key event to a sendable ``KeySpec``.

    Named keys map to abstract key names (sent with ``send_key``);
    printable characters are sent literally. Returns None when the key has
    no terminal equivalent.
    """
    if key in _TEXTUAL_KEYS:
        return KeySpec(_TEXTUAL_KEYS[key])
    match = _TEXTUAL_FN_RE.match(key)
    if match:
        return KeySpec(f"F{match.group('n')}")
    match = _TEXTUAL_CTRL_RE.match(key)
    if match:
        return KeySpec(f"C-{match.group('ch')}")
    match = _TEXTUAL_ALT_RE.match(key)
    if match:
        rest = match.group("rest")
        inner = key_from_event(rest, character if len(rest) > 1 else rest)
        if inner is None:
            return None
        return KeySpec(f"M-{inner.name}")
    if character and character.isprintable():
        return KeySpec(character, literal=True)
    return None


def bracketed_paste(text: str) -> str:
    """Wrap text in bracketed-paste markers."""
    return f"{BRACKETED_PASTE_START}{text}{BRACKETED_PASTE_END}"


def sgr_mouse(button: int, col: int, row: int, release: bool = False) -> str:
    """Build an SGR (1006) mouse event. ``col`` and ``row`` are 1-indexed."""
    suffix = "m" if release else "M"
    return f"\x1b[<{button};{col};{row}{suffix}"
