"""Main CLI implementation using Typer."""

from pathlib import Path
from typing import Optional, Callable, Any

import typer
from rich.console import Console

from berth.cli.commands import (
    list_containers,
    apply_containers,
    stop_container,
    start_container,
    restart_container,
    remove_container,
    show_logs,
    update_record,
    reconcile,
    show_status,
    validate_config,
    agent_status,
    agent_reload,
)
from berth.cli.client import AgentClient, AgentError


# Create Typer app
app = typer.Typer(
    name="berthctl",
    help="Berth - declarative Docker container provisioning",
    add_completion=False,
)

# Console for rich output
console = Console()

SocketOption = typer.Option(None, "--socket", "-s", help="Agent socket path")
HostOption = typer.Option(None, "--host", help="Agent TCP address (host:port)")


def _run_cli_command(handler: Callable[..., Any], socket: Optional[str], host: Optional[str] = None, **kwargs: Any):
    """Helper to run a CLI command with an agent client and error handling."""
    try:
        client = AgentClient(socket_path=socket, host=host)
        handler(client, **kwargs)
    except AgentError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command("list")
def list_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """List tracked containers."""
    _run_cli_command(list_containers, socket=socket, host=host)


@app.command("status")
def status_command(
    container: Optional[str] = typer.Argument(
        None, help="Show status for specific container"
    ),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Show overall or per-container status."""
    _run_cli_command(show_status, socket=socket, host=host, container=container)


@app.command("apply")
def apply_command(
    name: Optional[str] = typer.Argument(None, help="Declared container name to provision"),
    all: bool = typer.Option(False, "--all", help="Provision all declared containers"),
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Container document to provision", exists=True, dir_okay=False
    ),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Create (or replace) container(s) from their declaration."""
    if not name and not all and not file:
        console.print("[red]Error:[/red] Specify container name, --all or --file")
        raise typer.Exit(1)
    _run_cli_command(
        apply_containers, socket=socket, host=host, name=name, all_containers=all, document=file
    )


@app.command("start")
def start_command(
    name: str = typer.Argument(..., help="Container name"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Start a container."""
    _run_cli_command(start_container, socket=socket, host=host, name=name)


@app.command("stop")
def stop_command(
    name: str = typer.Argument(..., help="Container name"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Stop a running container."""
    _run_cli_command(stop_container, socket=socket, host=host, name=name)


@app.command("restart")
def restart_command(
    name: str = typer.Argument(..., help="Container name"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Restart a container."""
    _run_cli_command(restart_container, socket=socket, host=host, name=name)


@app.command("remove")
def remove_command(
    name: str = typer.Argument(..., help="Container name"),
    force: bool = typer.Option(
        False, "--force", help="Remove without confirmation"
    ),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Remove a container and its inventory record."""
    if not force:
        confirm = typer.confirm(f"Remove container {name}?")
        if not confirm:
            raise typer.Abort()
    _run_cli_command(remove_container, socket=socket, host=host, name=name)


@app.command("update")
def update_command(
    name: str = typer.Argument(..., help="Container name"),
    image: Optional[str] = typer.Option(None, "--image", help="New image reference"),
    ports: Optional[str] = typer.Option(None, "--ports", help="New port mapping field"),
    status: Optional[str] = typer.Option(None, "--status", help="New status"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Edit a tracked record without touching the container."""
    fields = {
        key: value
        for key, value in (("image", image), ("ports", ports), ("status", status))
        if value is not None
    }
    if not fields:
        console.print("[red]Error:[/red] Specify --image, --ports or --status")
        raise typer.Exit(1)
    _run_cli_command(update_record, socket=socket, host=host, name=name, fields=fields)


@app.command("logs")
def logs_command(
    name: str = typer.Argument(..., help="Container name"),
    tail: int = typer.Option(100, "--tail", "-n", min=1, help="Number of lines to show"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Show container output."""
    _run_cli_command(show_logs, socket=socket, host=host, name=name, tail=tail)


@app.command("reconcile")
def reconcile_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Sync the inventory with the runtime now."""
    _run_cli_command(reconcile, socket=socket, host=host)


# Config subcommands
config_app = typer.Typer(help="Configuration commands")
app.add_typer(config_app, name="config")


@config_app.command("validate")
def config_validate_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Validate configuration files."""
    _run_cli_command(validate_config, socket=socket, host=host)


# Agent subcommands
agent_app = typer.Typer(help="Agent management commands")
app.add_typer(agent_app, name="agent")


@agent_app.command("status")
def agent_status_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Show agent status."""
    _run_cli_command(agent_status, socket=socket, host=host)


@agent_app.command("reload")
def agent_reload_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Reload agent configuration."""
    _run_cli_command(agent_reload, socket=socket, host=host)


def main():
    """Main entry point for CLI."""
    app()
