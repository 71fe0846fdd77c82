"""Bounded output buffer for terminal sessions."""

from __future__ import annotations

import threading

MAX_BUFFER_BYTES = 1 << 20  # 1 MiB of raw output
DEFAULT_CAPACITY = 600


def split_lines(text: str) -> list[str]:
    """Split captured output into lines.

    ``\\r\\n`` is normalized to ``\\n`` and a single trailing newline does
    not produce a trailing empty line. Empty input yields no lines.
    """
    if not text:
        return []
    text = text.replace("\r\n", "\n")
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n")


class OutputBuffer:
    """Thread-safe accumulator of raw terminal output.

    Raw bytes are kept in a single ``bytearray`` capped at ``max_bytes``;
    once the cap is exceeded the oldest data is dropped up to the next line
    boundary. The line view is derived lazily: writes only mark the cache
    dirty, and the next ``lines()`` call re-splits and keeps the most recent
    ``capacity`` lines.

    A pty reader thread writes while the UI samples, so every access goes
    through one lock.
    """

    def __init__(
        self, capacity: int = DEFAULT_CAPACITY, max_bytes: int = MAX_BUFFER_BYTES
    ) -> None:
        self._capacity = max(1, capacity)
        self._max_bytes = max_bytes
        self._raw = bytearray()
        self._lines: list[str] = []
        self._dirty = False
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @capacity.setter
    def capacity(self, value: int) -> None:
        with self._lock:
            self._capacity = max(1, value)
            self._dirty = True

    def write(self, data: str | bytes) -> None:
        """Append output and invalidate the line cache."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not data:
            return
        with self._lock:
            self._raw.extend(data)
            self._trim()
            self._dirty = True

    def update(self, capture: str) -> bool:
        """Replace the content with a fresh capture snapshot.

        Returns:
            True if the snapshot differs from the previous content.
        """
        data = capture.encode("utf-8")
        if len(data) > self._max_bytes:
            data = data[len(data) - self._max_bytes :]
        with self._lock:
            if data == self._raw:
                return False
            self._raw = bytearray(data)
            self._dirty = True
            return True

    def _trim(self) -> None:
        # Caller holds the lock.
        excess = len(self._raw) - self._max_bytes
        if excess <= 0:
            return
        newline = self._raw.find(b"\n", excess)
        cut = newline + 1 if newline != -1 else excess
        del self._raw[:cut]

    def _rebuild(self) -> None:
        # Caller holds the lock.
        if not self._dirty:
            return
        lines = split_lines(self._raw.decode("utf-8", errors="replace"))
        if len(lines) > self._capacity:
            lines = lines[-self._capacity :]
        self._lines = lines
        self._dirty = False

    def lines(self) -> list[str]:
        """Return the retained lines, oldest first."""
        with self._lock:
            self._rebuild()
            return list(self._lines)

    def tail(self, n: int) -> list[str]:
        """Return the last ``n`` retained lines."""
        lines = self.lines()
        return lines[-n:] if n > 0 else []

    def string(self) -> str:
        return "\n".join(self.lines())

    def __str__(self) -> str:
        return self.string()

    @property
    def byte_size(self) -> int:
        with self._lock:
            return len(self._raw)

    def clear(self) -> None:
        with self._lock:
            self._raw.clear()
            self._lines = []
            self._dirty = False

    def __len__(self) -> int:
        with self._lock:
            self._rebuild()
            return len(self._lines)
