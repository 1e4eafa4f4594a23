"""Session error taxonomy.

Every failure the session reports to a caller is a ``SessionError``.
Runtime adapters translate client-library exceptions into these before
they reach the session state machine.
"""

from __future__ import annotations


RUNTIME_UNAVAILABLE_HELP = (
    "Docker Engine is not running or not accessible.\n"
    "Please ensure Docker Desktop is started and running.\n"
    "  - On Windows: Start Docker Desktop from the Start menu\n"
    "  - On macOS: Start Docker Desktop from Applications\n"
    "  - On Linux: Start the Docker daemon (sudo systemctl start docker)\n"
    "\nOnce Docker is running, try again."
)


class SessionError(Exception):
    """Base class for all session failures."""


class RuntimeUnavailableError(SessionError):
    """The container runtime could not be reached at all."""

    def __init__(self, message: str = RUNTIME_UNAVAILABLE_HELP) -> None:
        super().__init__(message)


class RuntimeOperationError(SessionError):
    """The runtime was reachable but a specific operation failed.

    ``lost_connection`` is set when the runtime went away mid-operation,
    as opposed to rejecting the request.
    """

    operation: str = "operation"

    def __init__(self, message: str, lost_connection: bool = False) -> None:
        super().__init__(message)
        self.lost_connection = lost_connection

    @classmethod
    def connection_lost(cls) -> RuntimeOperationError:
        return cls(
            f"Lost connection to Docker Engine during {cls.operation}.\n"
            "Please ensure Docker Desktop remains running and try again.",
            lost_connection=True,
        )


class ImagePullError(RuntimeOperationError):
    operation = "image pull"


class ContainerCreateError(RuntimeOperationError):
    operation = "container creation"


class ContainerStartError(RuntimeOperationError):
    operation = "container start"


class ContainerRemoveError(RuntimeOperationError):
    operation = "container cleanup"


class AlreadyActiveError(SessionError):
    """spawn() was called while a session is still being managed."""

    def __init__(self) -> None:
        super().__init__(
            "Session is still managing an active container. "
            "End the current session first."
        )


class SessionNotActiveError(SessionError):
    """An operation that needs a live session was called while idle."""


class SpawnCancelledError(SessionError):
    """stop() or an interrupt arrived before spawn() finished."""
