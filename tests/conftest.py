"""Shared fakes: host terminal, duplex stream and container runtime."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from dockterm.config import SessionConfig

PROMPT = b"root@c0ffee:/# "


class FakeTerminal:
    """In-memory stand-in for ``HostTerminal``."""

    def __init__(self, rows: int = 24, cols: int = 80) -> None:
        self.rows = rows
        self.cols = cols
        self.output: list[str] = []
        self.raw_writes: list[bytes] = []
        self.raw = False
        self.restore_count = 0
        self.on_keys: Callable[[bytes], None] | None = None

    def is_interactive(self) -> bool:
        return True

    def size(self) -> tuple[int, int]:
        return self.rows, self.cols

    def write(self, data: str | bytes) -> None:
        if isinstance(data, bytes):
            self.raw_writes.append(data)
            data = data.decode("utf-8", errors="replace")
        self.output.append(data)

    @property
    def text(self) -> str:
        return "".join(self.output)

    @property
    def is_raw(self) -> bool:
        return self.raw

    def enter_raw(self) -> None:
        self.raw = True

    def restore(self) -> None:
        self.raw = False
        self.restore_count += 1
        self.on_keys = None

    def start_reading(self, on_keys: Callable[[bytes], None]) -> None:
        self.on_keys = on_keys

    def stop_reading(self) -> None:
        self.on_keys = None


class FakeStream:
    """Duplex stream fed by the test.

    ``responses`` maps an exact input write to the output the "shell"
    produces for it.
    """

    def __init__(self, responses: dict[bytes, bytes] | None = None) -> None:
        self._queue: asyncio.Queue[bytes | Exception] = asyncio.Queue()
        self.responses = dict(responses or {})
        self.written: list[bytes] = []
        self.ended = False
        self.closed = False
        self.end_calls = 0

    def feed(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._queue.put_nowait(data)

    def fail(self, error: Exception) -> None:
        self._queue.put_nowait(error)

    async def read(self) -> bytes:
        item = await self._queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    def write(self, data: bytes) -> None:
        self.written.append(data)
        if data in self.responses:
            self.feed(self.responses[data])

    def end(self) -> None:
        self.end_calls += 1
        if not self.ended:
            self.ended = True
            self._queue.put_nowait(b"")

    def close(self) -> None:
        self.closed = True


class FakeRuntime:
    """Records every runtime call; ``fail_on`` makes a call raise."""

    def __init__(self, responses: dict[bytes, bytes] | None = None) -> None:
        self.available = True
        self.calls: list[str] = []
        self.fail_on: dict[str, Exception] = {}
        self.greeting: list[bytes] = []
        self.responses = {b"\n": PROMPT} if responses is None else responses
        self.streams: list[FakeStream] = []
        self.created: list[str] = []
        self.stopped: list[str] = []
        self.removed: list[str] = []
        self.pull_gate: asyncio.Event | None = None
        self.on_attach: Callable[[], None] | None = None

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    async def ping(self) -> bool:
        self.calls.append("ping")
        return self.available

    async def pull(self, image: str) -> None:
        self._record("pull")
        if self.pull_gate is not None:
            await self.pull_gate.wait()

    async def create(self, image: str, command: list[str]) -> str:
        self._record("create")
        name = f"container-{len(self.created) + 1}"
        self.created.append(name)
        return name

    async def start(self, container: str) -> None:
        self._record("start")

    async def attach(self, container: str) -> FakeStream:
        self._record("attach")
        stream = FakeStream(self.responses)
        if self.on_attach is not None:
            self.on_attach()
        for chunk in self.greeting:
            stream.feed(chunk)
        self.streams.append(stream)
        return stream

    async def stop(self, container: str) -> None:
        self._record("stop")
        self.stopped.append(container)

    async def remove(self, container: str) -> None:
        self._record("remove")
        self.removed.append(container)

    def describe(self, container: str) -> str:
        return container


@pytest.fixture
def terminal() -> FakeTerminal:
    return FakeTerminal()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def fast_config() -> SessionConfig:
    return SessionConfig(
        ready_timeout=1.0,
        nudge_delay=0,
        settle_delay=0,
        setup_step_delay=0,
        status_clear_delay=0.01,
    )
