"""Container runtime contract consumed by the session."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DuplexStream(Protocol):
    """Bidirectional byte channel to a container's pseudo-terminal."""

    async def read(self) -> bytes:
        """Next chunk of output; ``b""`` once the stream has ended."""
        ...

    def write(self, data: bytes) -> None:
        """Send ``data`` to the container in order, without blocking the caller."""
        ...

    def end(self) -> None:
        """Close the channel. The pending ``read()`` then returns ``b""``."""
        ...

    def close(self) -> None:
        """Release the underlying resources after the stream ended."""
        ...


@runtime_checkable
class ContainerRuntime(Protocol):
    """The operations the session needs from a container engine.

    Implementations raise ``dockterm.errors`` types, never client-library
    exceptions. ``stop`` and ``remove`` treat "already stopped" and
    "removal in progress" as success.
    """

    async def ping(self) -> bool: ...

    async def pull(self, image: str) -> None: ...

    async def create(self, image: str, command: list[str]) -> Any: ...

    async def start(self, container: Any) -> None: ...

    async def attach(self, container: Any) -> DuplexStream: ...

    async def stop(self, container: Any) -> None: ...

    async def remove(self, container: Any) -> None: ...

    def describe(self, container: Any) -> str: ...
