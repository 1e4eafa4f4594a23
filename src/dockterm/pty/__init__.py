"""Container TTY session management.

One interactive container at a time: its hijacked terminal stream is
echoed to the host terminal, kept in a bounded buffer and watched for
shell readiness, while host keystrokes and programmatic input share the
same stream.
"""

from dockterm.pty.buffer import OutputBuffer
from dockterm.pty.input import InputRouter
from dockterm.pty.lifecycle import LifecycleController
from dockterm.pty.readiness import ReadinessLatch, is_runtime_metadata, signals_ready
from dockterm.pty.session import ContainerSession, SessionPhase
from dockterm.pty.status import StatusOverlay
from dockterm.pty.terminal import HostTerminal

__all__ = [
    "ContainerSession",
    "SessionPhase",
    "OutputBuffer",
    "InputRouter",
    "LifecycleController",
    "ReadinessLatch",
    "is_runtime_metadata",
    "signals_ready",
    "StatusOverlay",
    "HostTerminal",
]
