"""CLI entry point for agentdeck."""

from __future__ import annotations

import logging
import os
import shutil
import sys

import typer

from agentdeck.config import DeckConfig
from agentdeck.terminal import (
    Backend,
    Manager,
    SessionNotFoundError,
    TerminalError,
    new_manager,
)

app = typer.Typer(
    name="agentdeck",
    help="A terminal dashboard for monitoring and driving agent sessions.",
    no_args_is_help=True,
)

_VERBOSE = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")
_CONFIG = typer.Option(None, "--config", "-c", help="Config file path.")


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _detached_manager(config: DeckConfig) -> Manager:
    """Manager for one-shot commands.

    Sessions of the pty backend belong to the process that spawned them, so
    they cannot be created or killed from a separate CLI invocation.
    """
    manager = new_manager(config.terminal)
    if manager.backend == Backend.PTY:
        typer.echo(
            "Error: pty sessions live inside the dashboard; use `agentdeck dash`.",
            err=True,
        )
        raise typer.Exit(1)
    if not manager.is_available():
        typer.echo(
            f"Error: {manager.backend.value} not found. "
            f"{manager.install_instructions()}",
            err=True,
        )
        raise typer.Exit(1)
    return manager


@app.command()
def dash(
    work_dir: str | None = typer.Option(
        None, "--cwd", "-C", help="Working directory for new sessions."
    ),
    prefix: str | None = typer.Option(
        None, "--prefix", "-p", help="Only show sessions with this prefix."
    ),
    verbose: bool = _VERBOSE,
    config_file: str | None = _CONFIG,
) -> None:
    """Launch the interactive dashboard."""
    # A stderr StreamHandler would corrupt the Textual display; the app
    # installs its own handler on mount.
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.INFO)
    for h in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(h)

    config = DeckConfig.load(config_file)
    if work_dir:
        config.work_dir = work_dir
    if prefix is not None:
        config.terminal.session_prefix = prefix
    config.work_dir = os.path.abspath(config.work_dir)

    from agentdeck.tui.app import DeckApp
    from agentdeck.wire import Wire

    wire = Wire()
    manager = new_manager(config.terminal, wire=wire)
    try:
        DeckApp(manager, config, wire).run()
    finally:
        wire.close()


@app.command()
def new(
    name: str = typer.Argument(help="Session name."),
    command: list[str] | None = typer.Argument(
        None, help="Command and arguments to run (default: shell)."
    ),
    work_dir: str = typer.Option(".", "--cwd", "-C", help="Working directory."),
    verbose: bool = _VERBOSE,
    config_file: str | None = _CONFIG,
) -> None:
    """Create a detached session."""
    setup_logging(verbose)
    config = DeckConfig.load(config_file)
    manager = _detached_manager(config)

    if manager.has_session(name):
        typer.echo(f"Error: session {name} already exists", err=True)
        raise typer.Exit(1)

    cmd, args = (command[0], command[1:]) if command else (None, None)
    try:
        manager.create_session(name, os.path.abspath(work_dir), cmd, args)
    except TerminalError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(name)


@app.command("ls")
def list_sessions(
    prefix: str = typer.Option("", "--prefix", "-p", help="Name prefix filter."),
    verbose: bool = _VERBOSE,
    config_file: str | None = _CONFIG,
) -> None:
    """List live sessions."""
    setup_logging(verbose)
    config = DeckConfig.load(config_file)
    manager = _detached_manager(config)
    for name in sorted(manager.list_sessions(prefix)):
        typer.echo(name)


@app.command()
def kill(
    name: str = typer.Argument(help="Session name."),
    verbose: bool = _VERBOSE,
    config_file: str | None = _CONFIG,
) -> None:
    """Kill a session."""
    setup_logging(verbose)
    config = DeckConfig.load(config_file)
    manager = _detached_manager(config)
    if not manager.has_session(name):
        typer.echo(f"Error: no such session: {name}", err=True)
        raise typer.Exit(1)
    try:
        manager.kill_session(name)
    except SessionNotFoundError:
        typer.echo(f"Error: no such session: {name}", err=True)
        raise typer.Exit(1)
    except TerminalError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def doctor(
    verbose: bool = _VERBOSE,
    config_file: str | None = _CONFIG,
) -> None:
    """Check that a terminal backend is usable on this host."""
    setup_logging(verbose)
    config = DeckConfig.load(config_file)
    manager = new_manager(config.terminal)

    typer.echo(f"Platform: {sys.platform}")
    typer.echo(f"Backend: {manager.backend.value}")
    if manager.backend == Backend.TMUX:
        typer.echo(f"tmux: {shutil.which('tmux') or 'not found'}")
    typer.echo(f"Session prefix: {config.terminal.session_prefix}")
    typer.echo(f"History limit: {config.terminal.history_limit}")

    if manager.is_available():
        typer.echo("Status: OK")
        return
    typer.echo("Status: unavailable")
    typer.echo(manager.install_instructions())
    raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
