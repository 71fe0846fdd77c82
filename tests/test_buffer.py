"""Tests for agentdeck.terminal.buffer.OutputBuffer."""

from __future__ import annotations

import threading

from agentdeck.terminal.buffer import OutputBuffer, split_lines


class TestSplitLines:
    def test_empty(self) -> None:
        assert split_lines("") == []

    def test_single_line(self) -> None:
        assert split_lines("hello") == ["hello"]

    def test_crlf_normalized(self) -> None:
        assert split_lines("a\r\nb\r\nc") == ["a", "b", "c"]

    def test_trailing_newline_dropped(self) -> None:
        assert split_lines("a\nb\n") == ["a", "b"]

    def test_only_one_trailing_newline_dropped(self) -> None:
        assert split_lines("a\n\n") == ["a", ""]


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert buf.lines() == []
        assert len(buf) == 0
        assert buf.string() == ""
        assert buf.byte_size == 0

    def test_write_str(self) -> None:
        buf = OutputBuffer()
        buf.write("line1\nline2\n")
        assert buf.lines() == ["line1", "line2"]

    def test_write_bytes(self) -> None:
        buf = OutputBuffer()
        buf.write(b"one\r\ntwo")
        assert buf.lines() == ["one", "two"]

    def test_partial_lines_join(self) -> None:
        buf = OutputBuffer()
        buf.write("hel")
        buf.write("lo\nwor")
        buf.write("ld")
        assert buf.lines() == ["hello", "world"]

    def test_string_and_str(self) -> None:
        buf = OutputBuffer()
        buf.write("a\nb\nc")
        assert buf.string() == "a\nb\nc"
        assert str(buf) == "a\nb\nc"

    def test_tail(self) -> None:
        buf = OutputBuffer()
        buf.write("1\n2\n3\n4")
        assert buf.tail(2) == ["3", "4"]
        assert buf.tail(0) == []
        assert buf.tail(10) == ["1", "2", "3", "4"]

    def test_clear(self) -> None:
        buf = OutputBuffer()
        buf.write("data\n")
        buf.clear()
        assert buf.lines() == []
        assert buf.byte_size == 0

    def test_invalid_utf8_replaced(self) -> None:
        buf = OutputBuffer()
        buf.write(b"ok\xff\n")
        assert buf.lines() == ["ok�"]


# ---------------------------------------------------------------------------
# Capacity and byte ceiling
# ---------------------------------------------------------------------------


class TestOutputBufferCapacity:
    def test_keeps_most_recent_lines(self) -> None:
        buf = OutputBuffer(capacity=3)
        buf.write("".join(f"line {i}\n" for i in range(10)))
        assert buf.lines() == ["line 7", "line 8", "line 9"]

    def test_under_capacity_keeps_everything(self) -> None:
        buf = OutputBuffer(capacity=5)
        buf.write("a\nb")
        assert buf.lines() == ["a", "b"]

    def test_capacity_setter_reapplies(self) -> None:
        buf = OutputBuffer(capacity=10)
        buf.write("1\n2\n3\n4\n5")
        buf.capacity = 2
        assert buf.capacity == 2
        assert buf.lines() == ["4", "5"]

    def test_capacity_floor_is_one(self) -> None:
        buf = OutputBuffer(capacity=0)
        assert buf.capacity == 1

    def test_byte_ceiling_trims_at_line_boundary(self) -> None:
        buf = OutputBuffer(max_bytes=10)
        buf.write("aaaa\nbbbb\ncccc\n")
        assert buf.lines() == ["cccc"]
        assert buf.byte_size == 5

    def test_byte_ceiling_hard_cut_without_newline(self) -> None:
        buf = OutputBuffer(max_bytes=4)
        buf.write("abcdefgh")
        assert buf.string() == "efgh"
        assert buf.byte_size == 4


class TestOutputBufferUpdate:
    def test_update_reports_change(self) -> None:
        buf = OutputBuffer()
        assert buf.update("first") is True
        assert buf.update("first") is False
        assert buf.update("second") is True
        assert buf.lines() == ["second"]

    def test_update_replaces_content(self) -> None:
        buf = OutputBuffer()
        buf.write("old\n")
        buf.update("new\ncontent\n")
        assert buf.lines() == ["new", "content"]

    def test_update_respects_capacity(self) -> None:
        buf = OutputBuffer(capacity=2)
        buf.update("a\nb\nc")
        assert buf.lines() == ["b", "c"]


class TestOutputBufferThreads:
    def test_concurrent_writers(self) -> None:
        buf = OutputBuffer(capacity=10_000)

        def writer(tag: str) -> None:
            for i in range(200):
                buf.write(f"{tag}{i}\n")

        threads = [threading.Thread(target=writer, args=(t,)) for t in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = buf.lines()
        assert len(lines) == 800
        assert sorted(lines) == sorted(f"{t}{i}" for t in "abcd" for i in range(200))
