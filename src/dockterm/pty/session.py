"""Container session — one interactive, TTY-attached container at a time."""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging
from typing import TYPE_CHECKING, Any

from dockterm.config import SessionConfig
from dockterm.errors import (
    AlreadyActiveError,
    RuntimeOperationError,
    RuntimeUnavailableError,
    SessionError,
    SessionNotActiveError,
    SpawnCancelledError,
)
from dockterm.pty.buffer import OutputBuffer
from dockterm.pty.input import InputRouter
from dockterm.pty.readiness import ReadinessLatch, is_runtime_metadata, signals_ready
from dockterm.pty.status import StatusOverlay

if TYPE_CHECKING:
    from dockterm.pty.terminal import HostTerminal
    from dockterm.runtime.base import ContainerRuntime, DuplexStream
    from dockterm.session.wire import Wire

logger = logging.getLogger(__name__)


class SessionPhase(enum.Enum):
    """Lifecycle states for a container session."""

    IDLE = "idle"
    PULLING = "pulling"
    CREATING = "creating"
    STARTING = "starting"
    ATTACHED = "attached"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"
    STOPPING = "stopping"  # Stream is being ended, teardown pending
    ERROR = "error"  # Failure seen, best-effort cleanup in progress


async def _first_of(*aws: Any) -> None:
    """Wait until any of ``aws`` completes and cancel the rest."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()


class ContainerSession:
    """A managed interactive container with a hijacked TTY stream.

    The session is created once per process and reused: "destroying" it
    means tearing down the container and resetting to ``IDLE``. It owns
    the container handle and the stream handle and only ever holds both
    or neither; during creation the container is kept as a provisional
    handle until the stream is attached.

    Every way a session ends (``stop()``, Ctrl+C, a signal, the stream
    closing or failing) funnels into one teardown task, so the container
    is destroyed exactly once.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        terminal: HostTerminal,
        config: SessionConfig | None = None,
        wire: Wire | None = None,
    ) -> None:
        self.config = config or SessionConfig()
        self._image_name = self.config.image
        self._runtime = runtime
        self._terminal = terminal
        self._wire = wire

        self.status = StatusOverlay(terminal)
        self.buffer = OutputBuffer(self.config.buffer_max_chars, self.config.buffer_keep_chars)
        self.router = InputRouter(self, command_key=self.config.command_key)

        self._phase = SessionPhase.IDLE
        self.should_stop = False
        self._container: Any = None
        self._stream: DuplexStream | None = None
        self._provisional: Any = None  # Created but not yet attached

        self._latch = ReadinessLatch()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._reader_task: asyncio.Task | None = None
        self._nudge_task: asyncio.Task | None = None
        self._teardown_task: asyncio.Task | None = None
        self._clear_timer: asyncio.TimerHandle | None = None
        self._session_over = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def image_name(self) -> str:
        return self._image_name

    @image_name.setter
    def image_name(self, value: str) -> None:
        if self._phase is not SessionPhase.IDLE:
            raise AlreadyActiveError()
        self._image_name = value

    @property
    def container(self) -> Any:
        return self._container

    @property
    def stream(self) -> DuplexStream | None:
        return self._stream

    @property
    def has_container(self) -> bool:
        return self._container is not None or self._provisional is not None

    @property
    def latch(self) -> ReadinessLatch:
        return self._latch

    def is_ready(self) -> bool:
        return self._phase is SessionPhase.READY

    def is_idle(self) -> bool:
        return (
            self._phase is SessionPhase.IDLE
            and self._container is None
            and self._stream is None
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def spawn(self, image: str | None = None) -> None:
        """Pull, create, start and attach a container, then wait for its shell.

        Raises ``AlreadyActiveError`` without touching the running session
        if one is active. Any other failure cleans up, resets the session
        to idle and is raised as a ``SessionError`` so the session can be
        spawned again.
        """
        if self._phase is not SessionPhase.IDLE:
            raise AlreadyActiveError()
        if image:
            self._image_name = image

        self.should_stop = False
        self._idle.clear()
        self._session_over = asyncio.Event()
        self._set_phase(SessionPhase.PULLING)
        try:
            await self._provision()
        except asyncio.CancelledError:
            # The caller gave up on spawn; the session must still end up idle
            self.should_stop = True
            await asyncio.shield(self._abort_spawn(SpawnCancelledError("Container spawn cancelled")))
            raise
        except Exception as e:
            await self._abort_spawn(e)
            if isinstance(e, SessionError):
                raise
            raise SessionError(f"Container spawn failed: {e}") from e

    async def wait_until_ready(self) -> None:
        """Resolve once the shell is ready; immediately if it already is."""
        if self._phase in (SessionPhase.IDLE, SessionPhase.ERROR):
            raise SessionNotActiveError("No container session is active")
        latch = self._latch
        if not latch.fired:
            await _first_of(latch.wait(), self._session_over.wait())
        if not latch.fired:
            raise SessionNotActiveError("Container session ended before it became ready")

    async def wait_until_idle(self) -> None:
        await self._idle.wait()

    def send_input(self, text: str | bytes) -> None:
        """Write raw input to the container. No-op when nothing is attached."""
        if self._stream is None:
            logger.debug("send_input with no attached container, dropped")
            return
        data = text.encode("utf-8") if isinstance(text, str) else text
        try:
            self._stream.write(data)
        except OSError as e:
            logger.warning("Could not write to container stream: %s", e)

    def read_buffer(self) -> str:
        return self.buffer.read()

    def clear_buffer(self) -> None:
        self.buffer.clear()

    def stop(self) -> None:
        """Ask the session to end.

        Only ends the stream; the stream-end handling destroys the
        container. Before the stream exists this just cancels a spawn in
        progress.
        """
        if self._phase is SessionPhase.IDLE:
            logger.debug("stop() while idle, nothing to do")
            return
        self.should_stop = True
        self.show_status("Stop command received - shutting down...")
        self._clear_status_later()
        if self._stream is not None:
            if self._phase is not SessionPhase.ERROR:
                self._set_phase(SessionPhase.STOPPING)
            self._stream.end()

    def interrupt(self) -> None:
        """Ctrl+C from the host keyboard: end the session now."""
        self.clear_status()
        self._notice("^C - Ending container session")
        self._terminal.restore()
        if self._phase is SessionPhase.IDLE:
            return
        self.should_stop = True
        if self._stream is not None:
            self._set_phase(SessionPhase.STOPPING)
            self._stream.end()

    async def shutdown(self) -> None:
        """End the session and wait until the container is gone.

        Used for process-level cleanup. Goes through the same teardown task
        as every other exit path.
        """
        self.should_stop = True
        if self._stream is not None or self._teardown_task is not None:
            if self._stream is not None:
                self._stream.end()
            await self._begin_teardown()
        elif self._provisional is not None:
            container, self._provisional = self._provisional, None
            await self._destroy(container)

    # ------------------------------------------------------------------
    # Status / terminal output
    # ------------------------------------------------------------------

    def show_status(self, message: str) -> None:
        self.status.show(message)
        if self._wire:
            self._wire.send_status(message)

    def clear_status(self) -> None:
        if self._clear_timer is not None:
            self._clear_timer.cancel()
            self._clear_timer = None
        self.status.clear()

    def _clear_status_later(self) -> None:
        if self._clear_timer is not None:
            self._clear_timer.cancel()
        loop = asyncio.get_running_loop()
        self._clear_timer = loop.call_later(self.config.status_clear_delay, self.clear_status)

    def echo(self, text: str) -> None:
        """Write local text to the host terminal, bypassing the output buffer."""
        self._terminal.write(text)

    def _notice(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, "%s", message)
        text = message.replace("\n", "\r\n")
        self._terminal.write(f"\r\n{text}\r\n")
        if self._wire:
            self._wire.send_notice(message)

    def _set_phase(self, phase: SessionPhase) -> None:
        previous, self._phase = self._phase, phase
        if previous is not phase:
            logger.debug("Session phase %s -> %s", previous.value, phase.value)
            if self._wire:
                self._wire.send_phase(phase.value, previous.value)

    # ------------------------------------------------------------------
    # Spawn
    # ------------------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.should_stop:
            raise SpawnCancelledError("Container spawn cancelled")

    async def _provision(self) -> None:
        self.show_status("Checking Docker Engine availability...")
        if not await self._runtime.ping():
            raise RuntimeUnavailableError()
        self._check_cancelled()

        self._notice(f"Pulling image: {self._image_name}")
        self.show_status(f"Pulling image: {self._image_name}...")
        await self._runtime.pull(self._image_name)
        self._check_cancelled()

        self._set_phase(SessionPhase.CREATING)
        self.show_status("Creating container...")
        self._provisional = await self._runtime.create(self._image_name, list(self.config.shell))
        self.show_status("Container created")
        self._check_cancelled()

        self._set_phase(SessionPhase.STARTING)
        self.show_status("Starting container...")
        await self._runtime.start(self._provisional)
        stream = await self._runtime.attach(self._provisional)
        self._container, self._stream, self._provisional = self._provisional, stream, None
        self._check_cancelled()

        self._set_phase(SessionPhase.ATTACHED)
        self.show_status("Container started - TTY session active")
        rows, cols = self._terminal.size()
        self._notice(f"Terminal size: {cols}x{rows}")
        self._notice("Tip: Press F12 to enter command mode, then type HELP or STOP")

        self._decoder.reset()
        self.buffer.attach_loop()
        self._reader_task = asyncio.create_task(self._consume(stream))
        self._terminal.enter_raw()
        self._terminal.start_reading(self.router.feed)

        self._set_phase(SessionPhase.AWAITING_READY)
        latch = self._latch
        latch.arm_fallback(self.config.ready_timeout)
        self._nudge_task = asyncio.create_task(self._nudge())
        await _first_of(latch.wait(), self._session_over.wait())
        if not latch.fired or self._session_over.is_set():
            raise SpawnCancelledError("Container session ended before it became ready")

        self._set_phase(SessionPhase.READY)
        if self._wire:
            self._wire.send_ready(self._runtime.describe(self._container))
        await asyncio.sleep(self.config.settle_delay)
        await self._setup_geometry()

    async def _nudge(self) -> None:
        """Send a bare line feed so the shell prints its prompt."""
        await asyncio.sleep(self.config.nudge_delay)
        if self._stream is not None and not self._latch.fired:
            self.show_status("Getting initial prompt...")
            self.send_input("\n")

    async def _setup_geometry(self) -> None:
        """Tell the shell its size, minus the rows reserved for the status line."""
        rows, cols = self._terminal.size()
        reserved = self.config.reserved_rows
        usable = rows - reserved
        step = self.config.setup_step_delay

        self.show_status("Configuring terminal to reserve status area...")
        for command, pause in (
            (f"export LINES={usable}\r", step),
            (f"export COLUMNS={cols}\r", step),
            (f"tput csr 0 {usable - 1}\r", step * 1.5),
            ("clear\r", step),
            ("tput cup 0 0\r", step),
            ("clear\r", step),
        ):
            if self._stream is None:
                return
            self.send_input(command)
            await asyncio.sleep(pause)

        self.show_status(f"Terminal configured: {usable}x{cols} (reserved {reserved} bottom lines)")

    async def _abort_spawn(self, error: Exception) -> None:
        self.clear_status()
        if isinstance(error, RuntimeUnavailableError) or (
            isinstance(error, RuntimeOperationError) and error.lost_connection
        ):
            self._notice(
                f"Docker Error:\n{error}\nPlease start Docker and try again.", logging.ERROR
            )
        elif isinstance(error, SpawnCancelledError):
            self._notice(str(error), logging.WARNING)
        else:
            logger.error("Container spawn failed", exc_info=error)
            self._notice(f"An error occurred: {error}", logging.ERROR)

        cancelled = isinstance(error, SpawnCancelledError)
        if self._wire and not cancelled:
            self._wire.send_error(str(error))

        if self._phase is SessionPhase.IDLE:
            return  # the stream-end teardown already ran
        if self._stream is not None or self._teardown_task is not None:
            if self._stream is not None:
                self._stream.end()
            await self._begin_teardown(None if cancelled else error)
            return

        self._set_phase(SessionPhase.ERROR)
        self._terminal.restore()
        if self._provisional is not None:
            container, self._provisional = self._provisional, None
            self._notice("Cleaning up partial container...")
            await self._destroy(container)
        self._reset()
        self._notice("Container operation failed. Ready for new operations.")

    # ------------------------------------------------------------------
    # Stream consumption
    # ------------------------------------------------------------------

    async def _consume(self, stream: DuplexStream) -> None:
        """Read the duplex stream until it ends, in arrival order."""
        error: Exception | None = None
        try:
            while True:
                chunk = await stream.read()
                if not chunk:
                    break
                self._handle_chunk(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e
        finally:
            self._session_over.set()
        if self._stream is stream:
            self._begin_teardown(error)

    def _handle_chunk(self, chunk: bytes) -> None:
        # Bytes of an incomplete character are held back by the decoder and
        # echoed together with the chunk that completes them.
        held, _ = self._decoder.getstate()
        text = self._decoder.decode(chunk)
        pending, _ = self._decoder.getstate()
        data = held + chunk
        if pending:
            data = data[: -len(pending)]
        if not text or is_runtime_metadata(text):
            return
        self._terminal.write(data)
        self.buffer.append(text)
        if signals_ready(text):
            self._latch.fire()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _begin_teardown(self, error: Exception | None = None) -> asyncio.Task:
        if self._teardown_task is None:
            self._teardown_task = asyncio.get_running_loop().create_task(self._teardown(error))
        return self._teardown_task

    async def _teardown(self, error: Exception | None) -> None:
        requested = self.should_stop
        self._set_phase(SessionPhase.ERROR if error else SessionPhase.STOPPING)
        self.clear_status()

        if error is not None:
            self._notice(f"Container TTY error: {error}", logging.ERROR)
            if self._wire:
                self._wire.send_error(str(error))
        elif requested:
            self._notice("Container TTY session ended by user command")
        else:
            self._notice("Container TTY session ended unexpectedly", logging.WARNING)

        self._terminal.restore()

        stream = self._stream
        if stream is not None:
            stream.end()
        container = self._container or self._provisional
        if container is not None:
            await self._destroy(container)
        if stream is not None:
            stream.close()

        last_output = self.buffer.read_tail()
        self._reset()
        if error is not None:
            self._notice("Container session ended due to error. Ready for new operations.")
        else:
            self._notice("Container session ended. Ready for new operations.")
        if self._wire:
            reason = str(error) if error else ("stopped" if requested else "ended")
            self._wire.send_session_end(reason, requested, last_output)

    async def _destroy(self, container: Any) -> None:
        """Stop and remove ``container``. Never raises."""
        name = self._runtime.describe(container)
        self.show_status("Destroying container...")
        try:
            if not await self._runtime.ping():
                self.show_status("Docker not available - container may already be cleaned up")
                logger.warning("Docker unavailable, skipped removal of %s", name)
                return
            await self._runtime.stop(container)
            await self._runtime.remove(container)
            self.show_status("Container destroyed")
            logger.info("Container %s destroyed", name)
        except RuntimeOperationError as e:
            if e.lost_connection:
                self.show_status("Docker connection lost during cleanup")
                self._notice(
                    "Warning: Could not connect to Docker for cleanup - "
                    f"container {name} may need manual removal",
                    logging.WARNING,
                )
            else:
                self._notice(f"Error during cleanup: {e}", logging.ERROR)
        except Exception as e:
            logger.exception("Unexpected error destroying container %s", name)
            self._notice(f"Error during cleanup: {e}", logging.ERROR)
        finally:
            self._clear_status_later()

    def _reset(self) -> None:
        """Back to idle, ready for the next spawn."""
        self._latch.cancel_fallback()
        current = asyncio.current_task()
        for task in (self._reader_task, self._nudge_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._reader_task = None
        self._nudge_task = None
        self._container = None
        self._stream = None
        self._provisional = None
        self.buffer.reset()
        self.router.reset()
        self.should_stop = False
        self._latch = ReadinessLatch()
        self._teardown_task = None
        self._session_over.set()
        self._set_phase(SessionPhase.IDLE)
        self._idle.set()
