"""Container runtime adapters."""

from dockterm.runtime.base import ContainerRuntime, DuplexStream
from dockterm.runtime.docker_runtime import DockerRuntime, DockerStream

__all__ = [
    "ContainerRuntime",
    "DuplexStream",
    "DockerRuntime",
    "DockerStream",
]
