"""Process-level cleanup — termination signals and uncaught failures.

Registered once at process start. Every trigger funnels into a single
cleanup coroutine guarded by ``cleaning_up``: restore the terminal, tear
the container down through the session, then exit the process.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import signal
import sys
import weakref
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from dockterm.pty.session import ContainerSession
    from dockterm.pty.terminal import HostTerminal

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT, signal.SIGHUP)


class LifecycleController:
    """Owns the process's termination hooks for one session.

    Holds the session weakly: it never creates or keeps sessions alive,
    it only asks an existing one to shut down.
    """

    def __init__(
        self,
        session: ContainerSession,
        terminal: HostTerminal,
        exit_fn: Callable[[int], Any] = sys.exit,
    ) -> None:
        self._session_ref = weakref.ref(session)
        self._terminal = terminal
        self._exit = exit_fn
        self.cleaning_up = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._signals: list[signal.Signals] = []
        self._previous_handler: Any = None
        self._task: asyncio.Task | None = None

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register signal, uncaught-failure and exit hooks."""
        loop = loop or asyncio.get_running_loop()
        self._loop = loop
        for sig in TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.trigger, sig.name)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug("Cannot handle %s here: %s", sig.name, e)
            else:
                self._signals.append(sig)
        self._previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._on_loop_exception)
        atexit.register(self._restore_at_exit)

    def uninstall(self) -> None:
        loop, self._loop = self._loop, None
        if loop is not None and not loop.is_closed():
            for sig in self._signals:
                loop.remove_signal_handler(sig)
            loop.set_exception_handler(self._previous_handler)
        self._signals.clear()
        atexit.unregister(self._restore_at_exit)

    def trigger(self, reason: str | None = None) -> asyncio.Task | None:
        """Start cleanup once; repeated triggers return the same task."""
        if self.cleaning_up or self._task is not None:
            return self._task
        loop = self._loop or asyncio.get_running_loop()
        self._task = loop.create_task(self.cleanup(reason))
        return self._task

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        logger.error(
            "Uncaught failure: %s",
            context.get("message", "unknown"),
            exc_info=context.get("exception"),
        )
        self.trigger()

    async def cleanup(self, reason: str | None = None) -> None:
        if self.cleaning_up:
            return
        self.cleaning_up = True

        session = self._session_ref()
        if session is not None:
            session.clear_status()
        if reason:
            logger.info("Received %s - cleaning up", reason)
            self._terminal.write(f"\r\nReceived {reason} - cleaning up...\r\n")

        code = 0
        try:
            self._terminal.restore()
            if session is not None and session.has_container:
                self._terminal.write("Destroying container...\r\n")
                await session.shutdown()
                self._terminal.write("Container destroyed successfully\r\n")
        except Exception:
            logger.exception("Error during cleanup")
            code = 1
        finally:
            self._exit(code)

    def _restore_at_exit(self) -> None:
        # No event loop at interpreter exit, so no container teardown here
        self._terminal.restore()
