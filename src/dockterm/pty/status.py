"""One-line status banner on the bottom row of the host terminal."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dockterm.pty.terminal import HostTerminal

SAVE_CURSOR = "\x1b[s"
RESTORE_CURSOR = "\x1b[u"
CLEAR_LINE = "\x1b[2K"
STYLE = "\x1b[46m\x1b[30m"  # black on cyan
RESET_STYLE = "\x1b[0m"

_PREFIX = " Status: "


class StatusOverlay:
    """Draws and clears the status banner.

    Writes go to the host terminal only, never through the container
    stream, so banner text can't end up in the output buffer. The row is
    recomputed from the terminal size on every call. Each banner is emitted
    in a single write bracketed by save/restore cursor so a concurrent
    stream echo is less likely to land inside it.
    """

    def __init__(self, terminal: HostTerminal) -> None:
        self._terminal = terminal
        self.current: str | None = None

    def _move_to_bottom(self) -> str:
        rows, _ = self._terminal.size()
        return f"\x1b[{rows};1H"

    def show(self, message: str) -> None:
        _, cols = self._terminal.size()
        room = max(cols - len(_PREFIX) - 1, 0)
        if len(message) > room:
            message = message[: max(room - 3, 0)] + "..."
        self.current = message
        self._terminal.write(
            SAVE_CURSOR
            + self._move_to_bottom()
            + CLEAR_LINE
            + f"{STYLE}{_PREFIX}{message} {RESET_STYLE}"
            + RESTORE_CURSOR
        )

    def clear(self) -> None:
        self.current = None
        self._terminal.write(
            SAVE_CURSOR + self._move_to_bottom() + CLEAR_LINE + RESTORE_CURSOR
        )
