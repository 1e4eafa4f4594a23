"""Wire protocol — decouples the session from whoever is watching it.

Events flow from the container session to subscribers (the CLI, a
dispatch layer, tests). The session never blocks on a subscriber.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    PHASE = "phase"
    STATUS = "status"
    READY = "ready"
    NOTICE = "notice"
    ERROR = "error"
    SESSION_END = "session_end"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: session -> subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_phase(self, phase: str, previous: str) -> None:
        self.send(WireEvent(type=EventType.PHASE, data={"phase": phase, "previous": previous}))

    def send_status(self, message: str) -> None:
        self.send(WireEvent(type=EventType.STATUS, data={"message": message}))

    def send_ready(self, container: str) -> None:
        self.send(WireEvent(type=EventType.READY, data={"container": container}))

    def send_notice(self, message: str) -> None:
        self.send(WireEvent(type=EventType.NOTICE, data={"message": message}))

    def send_error(self, error: str) -> None:
        self.send(WireEvent(type=EventType.ERROR, data={"error": error}))

    def send_session_end(
        self,
        reason: str,
        requested: bool,
        last_output: str = "",
    ) -> None:
        """Notify subscribers that the container session was torn down."""
        self.send(
            WireEvent(
                type=EventType.SESSION_END,
                data={
                    "reason": reason,
                    "requested": requested,
                    "last_output": last_output[-500:],
                },
            )
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
