"""Rendering captured output with a cursor overlay."""

from __future__ import annotations

from rich.text import Text

CURSOR_STYLE = "reverse"


def cursor_view_row(
    total_lines: int, view_height: int, row: int, pane_height: int
) -> int:
    """Map a pane-relative cursor row onto the rendered viewport.

    The capture holds scrollback followed by the visible pane, so the cursor
    sits at ``row`` within the last ``pane_height`` lines; the viewport shows
    the last ``view_height`` lines. When both windows are filled this reduces
    to ``row - (pane_height - view_height)``.
    """
    if pane_height <= 0:
        pane_height = total_lines
    absolute = max(total_lines - pane_height, 0) + row
    if view_height <= 0:
        return absolute
    start = max(total_lines - view_height, 0)
    return absolute - start


def render_with_cursor(
    lines: list[str], row: int, col: int, visible: bool = True
) -> Text:
    """Render ANSI ``lines`` with the cell at (``row``, ``col``) highlighted.

    Out-of-range positions draw no cursor. A cursor one line past the end
    (the shell just printed a newline) gets an empty line to sit on.
    """
    texts = [Text.from_ansi(line) for line in lines]
    if visible and row >= 0 and col >= 0 and row <= len(texts):
        if row == len(texts):
            texts.append(Text())
        line = texts[row]
        if col >= len(line.plain):
            line.append(" " * (col - len(line.plain) + 1))
        line.stylize(CURSOR_STYLE, col, col + 1)
    return Text("\n").join(texts)
