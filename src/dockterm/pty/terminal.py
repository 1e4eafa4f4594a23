"""Host terminal adapter — raw mode, geometry, keyboard input.

Wraps the process's own stdin/stdout so the session, status overlay and
input router never touch file descriptors directly. Tests substitute an
in-memory object with the same surface.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import termios
import tty
from typing import Any, BinaryIO, Callable

logger = logging.getLogger(__name__)

DEFAULT_ROWS = 24
DEFAULT_COLS = 80


class HostTerminal:
    """The interactive terminal the user is sitting at."""

    def __init__(
        self,
        stdin: Any = None,
        stdout: Any = None,
    ) -> None:
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._saved_attrs: list[Any] | None = None
        self._reader_loop: asyncio.AbstractEventLoop | None = None

    @property
    def stdin_fd(self) -> int:
        return self._stdin.fileno()

    @property
    def stdout_fd(self) -> int:
        return self._stdout.fileno()

    def is_interactive(self) -> bool:
        """Both input and output must be a TTY."""
        try:
            return os.isatty(self.stdin_fd) and os.isatty(self.stdout_fd)
        except (AttributeError, ValueError, OSError):
            return False

    def size(self) -> tuple[int, int]:
        """Current (rows, columns), re-queried on every call."""
        try:
            cols, rows = os.get_terminal_size(self.stdout_fd)
        except (AttributeError, ValueError, OSError):
            return DEFAULT_ROWS, DEFAULT_COLS
        return rows or DEFAULT_ROWS, cols or DEFAULT_COLS

    def write(self, data: str | bytes) -> None:
        """Write straight to the terminal and flush."""
        out: BinaryIO = getattr(self._stdout, "buffer", self._stdout)
        if isinstance(data, str):
            data = data.encode("utf-8", errors="replace")
        out.write(data)
        out.flush()

    # ------------------------------------------------------------------
    # Raw mode
    # ------------------------------------------------------------------

    @property
    def is_raw(self) -> bool:
        return self._saved_attrs is not None

    def enter_raw(self) -> None:
        """Switch stdin to raw, unbuffered mode (idempotent)."""
        if self._saved_attrs is not None:
            return
        self._saved_attrs = termios.tcgetattr(self.stdin_fd)
        tty.setraw(self.stdin_fd)

    def restore(self) -> None:
        """Leave raw mode and stop reading keys. Safe to call repeatedly."""
        self.stop_reading()
        if self._saved_attrs is None:
            return
        attrs, self._saved_attrs = self._saved_attrs, None
        try:
            termios.tcsetattr(self.stdin_fd, termios.TCSADRAIN, attrs)
        except (termios.error, OSError, ValueError) as e:
            logger.warning("Could not restore terminal attributes: %s", e)

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------

    def start_reading(self, on_keys: Callable[[bytes], None]) -> None:
        """Deliver raw keyboard bytes to ``on_keys`` from the event loop."""
        self.stop_reading()
        loop = asyncio.get_running_loop()
        fd = self.stdin_fd

        def _on_readable() -> None:
            try:
                data = os.read(fd, 1024)
            except OSError as e:
                logger.debug("Keyboard read failed: %s", e)
                return
            if data:
                on_keys(data)

        loop.add_reader(fd, _on_readable)
        self._reader_loop = loop

    def stop_reading(self) -> None:
        if self._reader_loop is None:
            return
        loop, self._reader_loop = self._reader_loop, None
        if not loop.is_closed():
            loop.remove_reader(self.stdin_fd)
