"""Wire — session lifecycle events from managers to UI subscribers.

Managers publish when sessions are created, killed, or exit on their own;
the dashboard subscribes and renders. Publishing is safe from any thread
(pty reader threads report exits), delivery always happens on the
subscriber's event loop.
"""

from __future__ import annotations

import asyncio
import enum
import threading
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    SESSION_CREATED = "session_created"
    SESSION_KILLED = "session_killed"
    SESSION_EXIT = "session_exit"
    STATUS = "status"
    ERROR = "error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Thread-safe broadcast bus: managers -> UI subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[
            tuple[asyncio.Queue[WireEvent | None], asyncio.AbstractEventLoop]
        ] = []
        self._lock = threading.Lock()
        self._closed: bool = False

    def _deliver(self, item: WireEvent | None) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for q, loop in subscribers:
            if loop.is_closed():
                continue
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                q.put_nowait(item)
            else:
                loop.call_soon_threadsafe(q.put_nowait, item)

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        self._deliver(event)

    def send_status(self, message: str) -> None:
        self.send(WireEvent(type=EventType.STATUS, data={"message": message}))

    def send_error(self, error: str) -> None:
        self.send(WireEvent(type=EventType.ERROR, data={"error": error}))

    def send_session_created(self, name: str, backend: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SESSION_CREATED,
                data={"name": name, "backend": backend},
            )
        )

    def send_session_killed(self, name: str) -> None:
        self.send(WireEvent(type=EventType.SESSION_KILLED, data={"name": name}))

    def send_session_exit(
        self,
        name: str,
        exit_code: int | None,
        last_output: str = "",
    ) -> None:
        """Notify subscribers that a session's process exited on its own."""
        self.send(
            WireEvent(
                type=EventType.SESSION_EXIT,
                data={
                    "name": name,
                    "exit_code": exit_code,
                    "last_output": last_output[:500],
                },
            )
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe from a running event loop. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        with self._lock:
            self._subscribers.append((q, asyncio.get_running_loop()))
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        with self._lock:
            self._subscribers = [
                (sub, loop) for sub, loop in self._subscribers if sub is not q
            ]

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        self._deliver(None)
