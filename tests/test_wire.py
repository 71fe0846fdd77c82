"""Tests for agentdeck.wire (Wire, WireEvent, EventType)."""

from __future__ import annotations

import asyncio
import threading

import pytest

from agentdeck.wire import EventType, Wire, WireEvent


# ---------------------------------------------------------------------------
# EventType / WireEvent
# ---------------------------------------------------------------------------


class TestEventType:
    def test_all_variants_exist(self) -> None:
        expected = {
            "SESSION_CREATED",
            "SESSION_KILLED",
            "SESSION_EXIT",
            "STATUS",
            "ERROR",
        }
        assert {e.name for e in EventType} == expected

    def test_values_are_lowercase(self) -> None:
        for e in EventType:
            assert e.value == e.name.lower()


class TestWireEvent:
    def test_defaults(self) -> None:
        event = WireEvent(type=EventType.STATUS)
        assert event.data == {}


# ---------------------------------------------------------------------------
# Wire — basic send/subscribe
# ---------------------------------------------------------------------------


class TestWire:
    async def test_send_to_subscriber(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send(WireEvent(type=EventType.STATUS, data={"message": "hi"}))
        event = q.get_nowait()
        assert event is not None
        assert event.data["message"] == "hi"

    async def test_send_to_multiple_subscribers(self) -> None:
        wire = Wire()
        q1 = wire.subscribe()
        q2 = wire.subscribe()
        wire.send_status("ok")
        e1 = q1.get_nowait()
        e2 = q2.get_nowait()
        assert e1 is not None and e2 is not None
        assert e1.type == e2.type == EventType.STATUS

    async def test_unsubscribe(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.unsubscribe(q)
        wire.send_status("dropped")
        assert q.empty()

    async def test_unsubscribe_nonexistent_is_safe(self) -> None:
        wire = Wire()
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        wire.unsubscribe(q)

    def test_subscribe_requires_running_loop(self) -> None:
        with pytest.raises(RuntimeError):
            Wire().subscribe()

    def test_send_without_subscribers(self) -> None:
        Wire().send_status("nobody listening")


class TestWireThreads:
    async def test_send_from_worker_thread(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        thread = threading.Thread(target=wire.send_session_exit, args=("deck-1", 0, "bye"))
        thread.start()
        event = await asyncio.wait_for(q.get(), timeout=2)
        thread.join()
        assert event is not None
        assert event.type == EventType.SESSION_EXIT
        assert event.data["name"] == "deck-1"

    async def test_order_preserved_across_thread(self) -> None:
        wire = Wire()
        q = wire.subscribe()

        def burst() -> None:
            for i in range(20):
                wire.send_status(str(i))

        thread = threading.Thread(target=burst)
        thread.start()
        received = [await asyncio.wait_for(q.get(), timeout=2) for _ in range(20)]
        thread.join()
        assert [e.data["message"] for e in received] == [str(i) for i in range(20)]


# ---------------------------------------------------------------------------
# Wire — closed-state guard
# ---------------------------------------------------------------------------


class TestWireClosedGuard:
    async def test_close_sends_none_sentinel(self) -> None:
        wire = Wire()
        q1 = wire.subscribe()
        q2 = wire.subscribe()
        wire.close()
        assert q1.get_nowait() is None
        assert q2.get_nowait() is None

    async def test_send_after_close_is_dropped(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.close()
        q.get_nowait()
        wire.send_error("too late")
        assert q.empty()


# ---------------------------------------------------------------------------
# Wire — convenience methods
# ---------------------------------------------------------------------------


class TestWireConvenience:
    async def test_send_error(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_error("something failed")
        event = q.get_nowait()
        assert event is not None
        assert event.type == EventType.ERROR
        assert event.data["error"] == "something failed"

    async def test_session_created(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_session_created("deck-1", "tmux")
        event = q.get_nowait()
        assert event is not None
        assert event.data == {"name": "deck-1", "backend": "tmux"}

    async def test_session_killed(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_session_killed("deck-1")
        event = q.get_nowait()
        assert event is not None
        assert event.type == EventType.SESSION_KILLED

    async def test_session_exit_truncates_output(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_session_exit("deck-1", 1, "x" * 1000)
        event = q.get_nowait()
        assert event is not None
        assert event.data["exit_code"] == 1
        assert len(event.data["last_output"]) == 500
