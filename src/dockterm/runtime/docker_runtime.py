"""Docker Engine runtime — docker SDK calls, off the event loop.

The docker SDK is synchronous, so every call runs in a worker thread via
``asyncio.to_thread``. Client-library failures are translated into the
``dockterm.errors`` taxonomy here so the session never sees them.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any

import docker
import requests
from docker.errors import APIError, DockerException, NotFound
from docker.models.containers import Container
from docker.utils import parse_repository_tag
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dockterm.config import RuntimeConfig
from dockterm.errors import (
    ContainerCreateError,
    ContainerRemoveError,
    ContainerStartError,
    ImagePullError,
    RuntimeOperationError,
)

logger = logging.getLogger(__name__)

ATTACH_PARAMS = {"stdin": 1, "stdout": 1, "stderr": 1, "stream": 1}
READ_SIZE = 4096

# Substrings that mean the engine went away rather than refused the request
_LOST_CONNECTION_MARKERS = (
    "ENOENT",
    "docker_engine",
    "Connection aborted",
    "Connection refused",
    "connection refused",
)

# "Not modified": stop on an already stopped container
_HTTP_NOT_MODIFIED = 304
# "Conflict": removal already in progress
_HTTP_CONFLICT = 409


def is_lost_connection(error: BaseException) -> bool:
    """True if ``error`` means the engine became unreachable."""
    if isinstance(error, requests.exceptions.ConnectionError):
        return True
    message = str(error)
    return any(marker in message for marker in _LOST_CONNECTION_MARKERS)


def _translate(error: Exception, kind: type[RuntimeOperationError]) -> RuntimeOperationError:
    if is_lost_connection(error):
        return kind.connection_lost()
    explanation = getattr(error, "explanation", None) or str(error)
    return kind(f"{kind.operation.capitalize()} failed: {explanation}")


class DockerStream:
    """Hijacked attach socket exposed as a ``DuplexStream``.

    The socket stays blocking and is only touched from worker threads:
    reads go through ``asyncio.to_thread`` and writes are queued to a
    writer task that sends them in order, so a container that stops
    reading its stdin can't stall the event loop.
    """

    def __init__(self, sock: Any) -> None:
        self._io = sock
        # attach_socket returns a SocketIO wrapper on unix sockets
        self._sock: socket.socket = getattr(sock, "_sock", sock)
        self._ended = False
        self._closed = False
        self._outgoing: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._writer: asyncio.Task | None = None

    @property
    def ended(self) -> bool:
        return self._ended

    async def read(self) -> bytes:
        if self._ended:
            return b""
        try:
            return await asyncio.to_thread(self._sock.recv, READ_SIZE)
        except OSError:
            if self._ended:
                return b""
            raise

    def write(self, data: bytes) -> None:
        """Queue ``data`` for the container. Never blocks."""
        if self._ended or not data:
            return
        if self._writer is None:
            self._writer = asyncio.get_running_loop().create_task(self._send_outgoing())
        self._outgoing.put_nowait(data)

    async def drain(self) -> None:
        """Wait until every queued write has been handed to the socket."""
        await self._outgoing.join()

    async def _send_outgoing(self) -> None:
        while True:
            data = await self._outgoing.get()
            try:
                if data is None:
                    return
                await asyncio.to_thread(self._sock.sendall, data)
            except OSError as e:
                if not self._ended:
                    logger.warning("Write to container stream failed: %s", e)
            finally:
                self._outgoing.task_done()

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        if self._writer is not None:
            self._outgoing.put_nowait(None)
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Attach socket shutdown: %s", e)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._ended = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
        try:
            self._io.close()
        except OSError as e:
            logger.debug("Attach socket close: %s", e)


class DockerRuntime:
    """``ContainerRuntime`` backed by the docker SDK."""

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        client: docker.DockerClient | None = None,
    ) -> None:
        self._config = config or RuntimeConfig()
        self._client = client

    def _get_client(self) -> docker.DockerClient:
        if self._client is None:
            if self._config.base_url:
                self._client = docker.DockerClient(
                    base_url=self._config.base_url, timeout=self._config.timeout
                )
            else:
                self._client = docker.from_env(timeout=self._config.timeout)
        return self._client

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def _ping_sync(self) -> bool:
        for attempt in Retrying(
            retry=retry_if_exception_type((DockerException, requests.exceptions.RequestException)),
            stop=stop_after_attempt(self._config.ping_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                try:
                    return bool(self._get_client().ping())
                except (DockerException, requests.exceptions.RequestException):
                    # Rebuild the client next time; the socket may have moved
                    self._client = None
                    raise
        return False

    async def ping(self) -> bool:
        try:
            return await asyncio.to_thread(self._ping_sync)
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.warning("Docker Engine unreachable: %s", e)
            return False

    # ------------------------------------------------------------------
    # Image / container lifecycle
    # ------------------------------------------------------------------

    def _pull_sync(self, image: str) -> None:
        repository, tag = parse_repository_tag(image)
        events = self._get_client().api.pull(
            repository, tag=tag or "latest", stream=True, decode=True
        )
        for event in events:
            if "error" in event:
                raise ImagePullError(f"Image pull failed: {event['error']}")
            logger.debug("pull %s: %s %s", image, event.get("status", ""), event.get("progress", ""))

    async def pull(self, image: str) -> None:
        logger.info("Pulling image %s", image)
        try:
            await asyncio.to_thread(self._pull_sync, image)
        except ImagePullError:
            raise
        except (DockerException, requests.exceptions.RequestException) as e:
            raise _translate(e, ImagePullError) from e
        logger.info("Image %s pulled", image)

    async def create(self, image: str, command: list[str]) -> Container:
        try:
            container = await asyncio.to_thread(
                self._get_client().containers.create,
                image,
                command=command,
                tty=True,
                stdin_open=True,
            )
        except (DockerException, requests.exceptions.RequestException) as e:
            raise _translate(e, ContainerCreateError) from e
        logger.info("Container %s created from %s", container.short_id, image)
        return container

    async def start(self, container: Container) -> None:
        try:
            await asyncio.to_thread(container.start)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise _translate(e, ContainerStartError) from e

    async def attach(self, container: Container) -> DockerStream:
        try:
            sock = await asyncio.to_thread(container.attach_socket, params=ATTACH_PARAMS)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise _translate(e, ContainerStartError) from e
        return DockerStream(sock)

    async def stop(self, container: Container) -> None:
        try:
            await asyncio.to_thread(container.stop)
        except NotFound:
            logger.debug("Container %s already gone", container.short_id)
        except APIError as e:
            if e.status_code != _HTTP_NOT_MODIFIED:
                raise _translate(e, ContainerRemoveError) from e
            logger.debug("Container %s already stopped", container.short_id)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise _translate(e, ContainerRemoveError) from e

    async def remove(self, container: Container) -> None:
        try:
            await asyncio.to_thread(container.remove)
        except NotFound:
            logger.debug("Container %s already removed", container.short_id)
        except APIError as e:
            if e.status_code != _HTTP_CONFLICT:
                raise _translate(e, ContainerRemoveError) from e
            logger.debug("Removal of %s already in progress", container.short_id)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise _translate(e, ContainerRemoveError) from e

    def describe(self, container: Container) -> str:
        return container.short_id
