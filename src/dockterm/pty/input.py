"""Host keyboard routing and local command mode.

Raw keyboard bytes arrive here while the host terminal is in raw mode.
In priority order they are: an interrupt (Ctrl+C), the command-mode key,
command-mode editing, or plain passthrough to the container.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dockterm.config import F12_SEQUENCE

if TYPE_CHECKING:
    from dockterm.pty.session import ContainerSession

logger = logging.getLogger(__name__)

INTERRUPT = 3  # Ctrl+C
BACKSPACE_CODES = (127, 8)  # DEL, BS
ENTER_CODES = (13, 10)

COMMAND_PROMPT = "\r\nCommand mode (F12 to activate): "
HELP_TEXT = (
    "Commands: STOP/EXIT/QUIT - Stop container, HELP/? - Show help, "
    "STATUS - Buffer size, CLEAR - Empty buffer. Use F12 to enter command mode."
)
UNKNOWN_TEXT = "Unknown command: {command}. Available: STOP, HELP, STATUS, CLEAR"

STOP_COMMANDS = frozenset({"STOP", "EXIT", "QUIT"})
HELP_COMMANDS = frozenset({"HELP", "?"})


@dataclass
class CommandModeState:
    active: bool = False
    pending: str = ""

    def reset(self) -> None:
        self.active = False
        self.pending = ""


class InputRouter:
    """Classifies keyboard input for one session.

    Command-mode keystrokes are echoed to the host terminal only; they
    never reach the container stream or the output buffer.
    """

    def __init__(self, session: ContainerSession, command_key: str = F12_SEQUENCE) -> None:
        self._session = session
        self.command_key = command_key.encode("utf-8")
        self.state = CommandModeState()

    @property
    def in_command_mode(self) -> bool:
        return self.state.active

    def reset(self) -> None:
        self.state.reset()

    def feed(self, data: bytes) -> None:
        """Handle one read's worth of keyboard bytes."""
        if not data:
            return

        if data[0] == INTERRUPT:
            self.state.reset()
            self._session.interrupt()
            return

        if data == self.command_key:
            self.state.active = True
            self.state.pending = ""
            self._session.echo(COMMAND_PROMPT)
            return

        if self.state.active:
            self._edit(data)
            return

        self._session.send_input(data)

    def _edit(self, data: bytes) -> None:
        first = data[0]

        if first in BACKSPACE_CODES:
            if self.state.pending:
                self.state.pending = self.state.pending[:-1]
                self._session.echo("\b \b")
            else:
                self.state.reset()
                self._session.echo("\r\n")
            return

        if first in ENTER_CODES:
            command = self.state.pending.strip().upper()
            self.state.reset()
            self._session.echo("\r\n")
            self.execute(command)
            return

        if 32 <= first <= 126:
            text = "".join(
                ch for ch in data.decode("ascii", errors="ignore") if 32 <= ord(ch) <= 126
            )
            self.state.pending += text
            self._session.echo(text)

    def execute(self, command: str) -> None:
        """Run a command-mode command (already trimmed and upper-cased)."""
        if not command:
            logger.debug("Command mode cancelled")
            return

        logger.info("Command mode: %s", command)
        if command in STOP_COMMANDS:
            self._session.show_status("Stopping container...")
            self._session.stop()
        elif command in HELP_COMMANDS:
            self._session.show_status(HELP_TEXT)
        elif command == "STATUS":
            self._session.show_status(
                f"Container running. Buffer size: {len(self._session.read_buffer())} chars. "
                "TTY active."
            )
        elif command == "CLEAR":
            self._session.clear_buffer()
            self._session.show_status("Buffer cleared.")
        else:
            self._session.show_status(UNKNOWN_TEXT.format(command=command))
