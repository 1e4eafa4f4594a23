"""Tests for dockterm.pty.terminal.HostTerminal."""

from __future__ import annotations

import asyncio
import io
import os
import termios

import pytest

from dockterm.pty.terminal import HostTerminal


@pytest.fixture
def pty_pair():
    """A pseudo-terminal opened as file objects: (master fd, slave file)."""
    master, slave = os.openpty()
    slave_file = os.fdopen(slave, "rb", buffering=0)
    yield master, slave_file
    slave_file.close()
    os.close(master)


class TestOutput:
    def test_write_str_and_bytes(self) -> None:
        out = io.BytesIO()
        term = HostTerminal(stdin=io.BytesIO(), stdout=out)
        term.write("héllo ")
        term.write(b"world")
        assert out.getvalue() == "héllo world".encode()

    def test_not_interactive_without_fileno(self) -> None:
        term = HostTerminal(stdin=io.BytesIO(), stdout=io.BytesIO())
        assert term.is_interactive() is False

    def test_size_falls_back(self) -> None:
        term = HostTerminal(stdin=io.BytesIO(), stdout=io.BytesIO())
        assert term.size() == (24, 80)


class TestRawMode:
    def test_enter_and_restore(self, pty_pair) -> None:
        _, slave = pty_pair
        term = HostTerminal(stdin=slave, stdout=slave)
        assert term.is_interactive()
        before = termios.tcgetattr(slave.fileno())

        term.enter_raw()
        assert term.is_raw
        assert not termios.tcgetattr(slave.fileno())[3] & termios.ECHO

        term.restore()
        term.restore()
        assert not term.is_raw
        assert termios.tcgetattr(slave.fileno())[3] == before[3]

    def test_restore_without_raw_is_noop(self, pty_pair) -> None:
        _, slave = pty_pair
        term = HostTerminal(stdin=slave, stdout=slave)
        term.restore()
        assert not term.is_raw


class TestKeyboard:
    async def test_start_reading_delivers_bytes(self) -> None:
        r, w = os.pipe()
        with os.fdopen(r, "rb", buffering=0) as stdin:
            term = HostTerminal(stdin=stdin, stdout=io.BytesIO())
            received: asyncio.Queue[bytes] = asyncio.Queue()
            term.start_reading(received.put_nowait)
            try:
                os.write(w, b"ls\r")
                assert await asyncio.wait_for(received.get(), timeout=1.0) == b"ls\r"
            finally:
                term.stop_reading()
                os.close(w)

    async def test_stop_reading(self) -> None:
        r, w = os.pipe()
        with os.fdopen(r, "rb", buffering=0) as stdin:
            term = HostTerminal(stdin=stdin, stdout=io.BytesIO())
            received: list[bytes] = []
            term.start_reading(received.append)
            term.stop_reading()
            os.write(w, b"x")
            await asyncio.sleep(0.02)
            assert received == []
            os.close(w)
