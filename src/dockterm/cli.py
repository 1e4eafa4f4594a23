"""CLI entry point for dockterm."""

from __future__ import annotations

import asyncio
import logging
import os

import typer

from dockterm import __version__
from dockterm.config import DocktermConfig
from dockterm.errors import RUNTIME_UNAVAILABLE_HELP, SessionError
from dockterm.pty.lifecycle import LifecycleController
from dockterm.pty.session import ContainerSession
from dockterm.pty.terminal import HostTerminal
from dockterm.runtime.docker_runtime import DockerRuntime

app = typer.Typer(
    name="dockterm",
    help="Interactive TTY session in a throwaway Docker container.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Configure logging.

    While a session is attached the terminal is in raw mode, so records
    go to ``log_file`` when one is given instead of stderr.
    """
    level = logging.DEBUG if verbose else logging.INFO
    kwargs: dict[str, str] = {}
    if log_file:
        path = os.path.expanduser(log_file)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        kwargs["filename"] = path
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        **kwargs,
    )


@app.command()
def run(
    image: str | None = typer.Option(
        None, "--image", "-i", help="Image to run (default: from env/config)."
    ),
    send: list[str] | None = typer.Option(
        None,
        "--send",
        "-s",
        help="Input to type once the shell is ready (Enter is appended). Repeatable.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Spawn a container and attach this terminal to its shell."""
    config = DocktermConfig.load(config_file)
    if image:
        config.session.image = image
    setup_logging(verbose, config.log_file)

    terminal = HostTerminal()
    if not terminal.is_interactive():
        typer.echo("Error: dockterm must be run in an interactive terminal (TTY).", err=True)
        raise typer.Exit(1)

    rows, cols = terminal.size()
    typer.echo(f"dockterm v{__version__}")
    typer.echo(f"Image: {config.session.image}")
    typer.echo(f"Terminal: {cols}x{rows}")
    typer.echo(f"Log file: {config.log_file}")
    typer.echo("---")

    code = asyncio.run(_run_session(config, terminal, send or []))
    raise typer.Exit(code)


async def _run_session(config: DocktermConfig, terminal: HostTerminal, send: list[str]) -> int:
    """Run one session to completion. Returns the process exit code."""
    session = ContainerSession(DockerRuntime(config.runtime), terminal, config.session)
    lifecycle = LifecycleController(session, terminal)
    lifecycle.install()
    try:
        try:
            await session.spawn()
        except SessionError:
            # spawn() already reported the failure and reset the session
            return 1

        for text in send:
            if not text.endswith("\r"):
                text += "\r"
            session.send_input(text)

        await session.wait_until_idle()
        return 0
    finally:
        lifecycle.uninstall()
        terminal.restore()


@app.command()
def check(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Check that the Docker Engine is reachable."""
    config = DocktermConfig.load(config_file)
    setup_logging(False, config.log_file)

    runtime = DockerRuntime(config.runtime)
    if asyncio.run(runtime.ping()):
        typer.echo("Docker Engine reachable")
        return
    typer.echo(RUNTIME_UNAVAILABLE_HELP, err=True)
    raise typer.Exit(1)
