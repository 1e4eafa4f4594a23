"""Bounded output buffer for the container terminal stream."""

from __future__ import annotations

import asyncio

MAX_CHARS = 10_000
KEEP_CHARS = 5_000


class OutputBuffer:
    """Append-only accumulator of decoded terminal text.

    Holds at most ``max_chars`` characters. When an append would push the
    content past that ceiling, everything but the most recent
    ``keep_chars`` characters is dropped first and the chunk is appended
    to the remainder. A single chunk larger than the ceiling keeps only
    its tail.

    Only the session's stream consumer appends, so no lock is taken. An
    ``asyncio.Event`` is set on every append so readers can ``await``
    fresh output instead of polling; call ``attach_loop()`` from the
    asyncio thread to enable it.
    """

    def __init__(self, max_chars: int = MAX_CHARS, keep_chars: int = KEEP_CHARS) -> None:
        if keep_chars >= max_chars:
            raise ValueError("keep_chars must be smaller than max_chars")
        self.max_chars = max_chars
        self.keep_chars = keep_chars
        self._text = ""
        self._total_chars = 0  # Total characters ever appended
        self._truncations = 0
        self._data_event: asyncio.Event | None = None

    def attach_loop(self) -> None:
        """Enable ``wait_for_data()``. Must be called from the asyncio thread."""
        self._data_event = asyncio.Event()

    def append(self, text: str) -> None:
        if not text:
            return
        if len(self._text) + len(text) > self.max_chars:
            self._text = self._text[-self.keep_chars :]
            self._truncations += 1
        self._text += text
        if len(self._text) > self.max_chars:
            self._text = self._text[-self.max_chars :]
        self._total_chars += len(text)
        if self._data_event is not None:
            self._data_event.set()

    async def wait_for_data(self, timeout: float | None = None) -> bool:
        """Wait until new text is appended (or timeout).

        Returns True if data arrived, False on timeout.
        Resets the event so the next call blocks again.
        """
        if self._data_event is None:
            await asyncio.sleep(0.05)
            return True
        try:
            await asyncio.wait_for(self._data_event.wait(), timeout=timeout)
            self._data_event.clear()
            return True
        except asyncio.TimeoutError:
            return False

    async def wait_for_text(self, needle: str, timeout: float) -> bool:
        """Wait until ``needle`` appears in the buffer. False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while needle not in self._text:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await self.wait_for_data(timeout=min(remaining, 0.5))
        return True

    def read(self) -> str:
        """The current buffer contents."""
        return self._text

    def read_tail(self, n: int = 500) -> str:
        """The last ``n`` characters."""
        return self._text[-n:] if n > 0 else ""

    @property
    def size(self) -> int:
        return len(self._text)

    @property
    def total_chars(self) -> int:
        """Total number of characters ever appended."""
        return self._total_chars

    @property
    def truncations(self) -> int:
        return self._truncations

    def clear(self) -> None:
        """Empty the buffer. Counters are kept; use ``reset()`` to zero them."""
        self._text = ""

    def reset(self) -> None:
        self._text = ""
        self._total_chars = 0
        self._truncations = 0

    def __len__(self) -> int:
        return len(self._text)
