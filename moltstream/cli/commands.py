"""CLI commands for moltstream.

With no subcommand the process runs the stdio bridge the editor spawns;
`identity` and `session` are maintenance commands for humans.
"""

import signal
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from moltstream import __logo__, __version__
from moltstream.cli.shared.logging_utils import configure_stderr, ensure_rotating_log_file
from moltstream.config.loader import load_config
from moltstream.config.schema import Config
from moltstream.utils.exceptions import ConfigError, IdentityError, MoltstreamError

app = typer.Typer(
    name="moltstream",
    help=f"{__logo__} moltstream - editor bridge for gateway chat",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} moltstream v{__version__}")
        raise typer.Exit()


def _load_config_or_exit(config_path: Path | None) -> Config:
    try:
        return load_config(config_path)
    except ConfigError as e:
        err_console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", help="Write DEBUG logs to the log file"),
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
):
    """Run the stdio bridge (default) or a maintenance command."""
    ctx.obj = {"config_path": config}
    if ctx.invoked_subcommand is not None:
        return
    run_bridge(config, verbose=verbose)


def run_bridge(config_path: Path | None, *, verbose: bool = False) -> None:
    """Serve line-delimited requests on stdin until EOF or SIGINT/SIGTERM."""
    from moltstream.bridge.multiplexer import Bridge
    from moltstream.gateway.factory import create_gateway_client
    from moltstream.infra.device_identity import load_device_identity
    from moltstream.session.manager import SessionLogManager

    cfg = _load_config_or_exit(config_path)
    configure_stderr(cfg.logging.stderr_level)
    if cfg.logging.file:
        ensure_rotating_log_file("bridge", cfg.log_dir, level="DEBUG" if verbose else cfg.logging.level)

    try:
        sessions = SessionLogManager(
            cfg.session.directory_path,
            cfg.session.max_size_bytes,
            cfg.session.auto_archive,
        )
        identity = None
        if cfg.gateway.transport == "socket":
            identity = load_device_identity(cfg.identity.file_path)
        client = create_gateway_client(cfg.gateway, identity)
    except MoltstreamError as e:
        logger.error("Startup failed: {}", e.message)
        raise typer.Exit(1)

    bridge = Bridge(client=client, sessions=sessions, gateway_url=cfg.gateway.url)

    def _shutdown(signum, frame):
        logger.info("Received signal {}, closing gateway connection", signum)
        bridge.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    bridge.connect()
    try:
        bridge.run(sys.stdin.buffer)
    finally:
        bridge.close()


@app.command()
def identity(
    ctx: typer.Context,
    init: bool = typer.Option(False, "--init", help="Generate a device identity if none exists"),
):
    """Show the device identity used to sign the gateway handshake."""
    from moltstream.infra.device_identity import (
        generate_device_identity,
        load_device_identity,
        save_device_identity,
    )

    cfg = _load_config_or_exit(ctx.obj["config_path"])
    path = cfg.identity.file_path
    if init:
        if path.exists():
            console.print(f"[yellow]Device identity already exists at {path}[/yellow]")
        else:
            save_device_identity(generate_device_identity(), path)
            console.print(f"[green]✓[/green] Created device identity at {path}")

    try:
        ident = load_device_identity(path)
    except IdentityError as e:
        err_console.print(f"[red]{e.message}[/red]")
        err_console.print("Run [cyan]moltstream identity --init[/cyan] to create one.")
        raise typer.Exit(1)

    console.print(f"{__logo__} Device identity\n")
    console.print(f"File: {path}")
    console.print(f"Device ID: {ident.device_id}")
    console.print(f"Public key: {ident.public_key_base64url}")


@app.command()
def session(ctx: typer.Context):
    """Show the session log location, size and archive count."""
    from moltstream.session.manager import SessionLogManager

    cfg = _load_config_or_exit(ctx.obj["config_path"])
    sessions = SessionLogManager(
        cfg.session.directory_path,
        cfg.session.max_size_bytes,
        cfg.session.auto_archive,
    )
    path = sessions.session_path()
    exists = path.exists()
    console.print(f"{__logo__} moltstream session\n")
    console.print(f"Session log: {path} {'[green]✓[/green]' if exists else '[dim]not created[/dim]'}")
    if exists:
        console.print(f"Session ID: {sessions.session_id() or '[dim]unknown[/dim]'}")
        console.print(f"Size: {sessions.size()} / {cfg.session.max_size_bytes} bytes")
    console.print(f"Auto-archive: {'on' if cfg.session.auto_archive else 'off'}")
    console.print(f"Archived sessions: {len(sessions.archived_sessions())}")
