"""Tests for dockterm.pty.buffer.OutputBuffer."""

from __future__ import annotations

import asyncio

import pytest

from dockterm.pty.buffer import OutputBuffer


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert len(buf) == 0
        assert buf.total_chars == 0
        assert buf.read() == ""

    def test_append_concatenates(self) -> None:
        buf = OutputBuffer()
        buf.append("hello ")
        buf.append("world")
        assert buf.read() == "hello world"
        assert buf.size == 11
        assert buf.total_chars == 11

    def test_empty_append_is_ignored(self) -> None:
        buf = OutputBuffer()
        buf.append("")
        assert buf.total_chars == 0

    def test_keep_must_be_below_max(self) -> None:
        with pytest.raises(ValueError):
            OutputBuffer(max_chars=100, keep_chars=100)


class TestOutputBufferTruncation:
    def test_exactly_at_max_is_not_truncated(self) -> None:
        buf = OutputBuffer()
        buf.append("a" * 9_999)
        buf.append("b")
        assert len(buf) == 10_000
        assert buf.truncations == 0

    def test_overflow_keeps_last_keep_chars_then_appends(self) -> None:
        buf = OutputBuffer()
        buf.append("a" * 9_999)
        buf.append("xy")
        assert len(buf) == 5_002
        assert buf.read() == "a" * 5_000 + "xy"
        assert buf.truncations == 1

    def test_small_limits(self) -> None:
        buf = OutputBuffer(max_chars=10, keep_chars=4)
        buf.append("0123456789")
        buf.append("AB")
        assert buf.read() == "6789AB"

    def test_oversized_chunk_keeps_its_tail(self) -> None:
        buf = OutputBuffer(max_chars=10, keep_chars=4)
        buf.append("abc")
        buf.append("0123456789XYZ")
        assert buf.read() == "3456789XYZ"
        assert len(buf) == 10

    def test_never_exceeds_max(self) -> None:
        buf = OutputBuffer()
        for i in range(200):
            buf.append(f"line {i} " * 20 + "\r\n")
            assert len(buf) <= 10_000
        assert buf.read().endswith("line 199 \r\n")

    def test_total_chars_counts_dropped_text(self) -> None:
        buf = OutputBuffer(max_chars=10, keep_chars=4)
        buf.append("0123456789")
        buf.append("AB")
        assert buf.total_chars == 12


class TestOutputBufferRead:
    def test_read_tail(self) -> None:
        buf = OutputBuffer()
        buf.append("0123456789")
        assert buf.read_tail(3) == "789"

    def test_read_tail_more_than_available(self) -> None:
        buf = OutputBuffer()
        buf.append("ab")
        assert buf.read_tail(10) == "ab"

    def test_read_tail_zero(self) -> None:
        buf = OutputBuffer()
        buf.append("ab")
        assert buf.read_tail(0) == ""


class TestOutputBufferClear:
    def test_clear_keeps_counters(self) -> None:
        buf = OutputBuffer(max_chars=10, keep_chars=4)
        buf.append("0123456789")
        buf.append("AB")
        buf.clear()
        assert buf.read() == ""
        assert buf.total_chars == 12
        assert buf.truncations == 1

    def test_reset_zeroes_counters(self) -> None:
        buf = OutputBuffer()
        buf.append("hello")
        buf.reset()
        assert buf.read() == ""
        assert buf.total_chars == 0
        assert buf.truncations == 0


class TestOutputBufferWaiting:
    async def test_wait_for_data_wakes_on_append(self) -> None:
        buf = OutputBuffer()
        buf.attach_loop()
        asyncio.get_running_loop().call_soon(buf.append, "x")
        assert await buf.wait_for_data(timeout=1.0) is True

    async def test_wait_for_data_timeout(self) -> None:
        buf = OutputBuffer()
        buf.attach_loop()
        assert await buf.wait_for_data(timeout=0.01) is False

    async def test_wait_for_text(self) -> None:
        buf = OutputBuffer()
        buf.attach_loop()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, buf.append, "root@")
        loop.call_later(0.02, buf.append, "abc:/# ")
        assert await buf.wait_for_text("# ", timeout=1.0) is True

    async def test_wait_for_text_timeout(self) -> None:
        buf = OutputBuffer()
        buf.attach_loop()
        buf.append("nothing here")
        assert await buf.wait_for_text("never", timeout=0.05) is False
