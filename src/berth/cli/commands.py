"""Command implementations for CLI."""

from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any

from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn

from berth.cli.client import AgentClient


console = Console()

STATUS_COLORS = {
    "running": "green",
    "created": "cyan",
    "restarting": "yellow",
    "paused": "yellow",
    "stopped": "red",
    "exited": "red",
}


def _run_action(
    client: AgentClient,
    description: str,
    command: str,
    args: Dict[str, Any],
    success_msg: Optional[str] = None,
    quiet: bool = False
) -> Dict[str, Any]:
    """Helper to run an agent command with a progress spinner."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        disable=quiet,
    ) as progress:
        task = progress.add_task(description, total=None)

        response = client.request(command, args)

        progress.update(task, completed=True)

    if success_msg and not quiet:
        console.print(success_msg)

    return response


def _status_markup(status: str) -> str:
    color = STATUS_COLORS.get(status, "magenta")
    return f"[{color}]{status}[/{color}]"


def _print_results(results: Dict[str, Dict[str, Any]], verb: str):
    success_count = sum(1 for r in results.values() if r.get("success"))
    console.print(f"[green]✓[/green] {verb} {success_count}/{len(results)} containers")

    for container, result in results.items():
        if not result.get("success"):
            console.print(f"  [red]✗[/red] {container}: {result.get('error')}")


def render_containers(containers: Dict[str, Dict[str, Any]]):
    """Render container records as a table."""
    table = Table(title="Containers")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Image", style="magenta")
    table.add_column("Ports")
    table.add_column("Runtime ID", style="dim")

    for name, info in sorted(containers.items()):
        table.add_row(
            name,
            _status_markup(info["status"]),
            info["image"],
            info.get("ports") or "-",
            (info.get("runtime_id") or "-")[:12],
        )

    console.print(table)


def list_containers(client: AgentClient):
    """List tracked containers."""
    response = client.request("list", {})
    containers = response.get("containers", {})
    if not containers:
        console.print("No containers tracked")
        return
    render_containers(containers)


def apply_containers(
    client: AgentClient,
    name: Optional[str] = None,
    all_containers: bool = False,
    document: Optional[Path] = None,
    quiet: bool = False,
):
    """Provision one declared container, all of them, or those in a document."""
    if document is not None:
        args = {"document": document.read_text()}
        description = f"Applying {document}..."
    elif all_containers:
        args = {"all": True}
        description = "Applying all containers..."
    else:
        args = {"name": name}
        description = f"Applying container {name}..."

    response = _run_action(client, description, "apply", args, quiet=quiet)

    if quiet:
        return
    if "results" in response:
        _print_results(response["results"], "Applied")
    else:
        runtime_id = (response.get("record", {}).get("runtime_id") or "")[:12]
        console.print(f"[green]✓[/green] Container {name} provisioned ({runtime_id})")


def stop_container(client: AgentClient, name: str, quiet: bool = False):
    """Stop a container."""
    _run_action(
        client,
        description=f"Stopping container {name}...",
        command="stop",
        args={"name": name},
        success_msg=f"[green]✓[/green] Container {name} stopped",
        quiet=quiet
    )


def start_container(client: AgentClient, name: str, quiet: bool = False):
    """Start a container."""
    _run_action(
        client,
        description=f"Starting container {name}...",
        command="start",
        args={"name": name},
        success_msg=f"[green]✓[/green] Container {name} started",
        quiet=quiet
    )


def restart_container(client: AgentClient, name: str):
    """Restart a container."""
    _run_action(
        client,
        description=f"Restarting container {name}...",
        command="restart",
        args={"name": name},
        success_msg=f"[green]✓[/green] Container {name} restarted",
    )


def remove_container(client: AgentClient, name: str):
    """Remove a container."""
    _run_action(
        client,
        description=f"Removing container {name}...",
        command="remove",
        args={"name": name},
        success_msg=f"[green]✓[/green] Container {name} removed"
    )


def update_record(client: AgentClient, name: str, fields: Dict[str, str]):
    """Edit fields of a tracked record."""
    response = _run_action(
        client,
        description=f"Updating record {name}...",
        command="update",
        args={"name": name, "fields": fields},
        success_msg=f"[green]✓[/green] Record {name} updated",
    )
    render_containers({name: response["record"]})


def show_logs(client: AgentClient, name: str, tail: int = 100):
    """Print the last lines of a container's output."""
    response = client.request("logs", {"name": name, "tail": tail})
    console.print(response.get("logs", ""), end="", markup=False, highlight=False)


def reconcile(client: AgentClient):
    """Trigger a reconciliation pass and summarize it."""
    response = _run_action(client, "Reconciling inventory...", "reconcile", {})
    report = response.get("report", {})

    console.print("[green]✓[/green] Reconciliation completed")
    for key in ("created", "updated", "skipped"):
        console.print(f"  {key.capitalize()}: {len(report.get(key, []))}")

    missing = report.get("missing", [])
    if missing:
        console.print(f"  [yellow]Missing from runtime:[/yellow] {', '.join(missing)}")
    for container, error in report.get("failures", {}).items():
        console.print(f"  [red]✗[/red] {container}: {error}")


def show_status(client: AgentClient, container: Optional[str] = None):
    """Show agent or container status."""
    response = client.request("status", {"container": container} if container else {})

    if container:
        info = response["containers"][container]
        console.print(f"[bold]Container: {container}[/bold]")
        console.print(f"  Status: {_status_markup(info['status'])}")
        console.print(f"  Image: {info['image']}")
        console.print(f"  Ports: {info.get('ports') or '-'}")
        console.print(f"  Runtime ID: {info.get('runtime_id') or '-'}")
        console.print(f"  Updated: {info.get('updated_at') or '-'}")
        return

    agent_info = response.get("agent", {})
    containers = response.get("containers", {})

    console.print("[bold]Agent Status[/bold]")
    console.print(f"  Running: {'Yes' if agent_info.get('running') else 'No'}")
    console.print(f"  Declared containers: {agent_info.get('declared', 0)}")

    last_recon = agent_info.get("last_reconciliation")
    if last_recon:
        dt = datetime.fromisoformat(last_recon)
        console.print(f"  Last Reconciliation: {dt.strftime('%Y-%m-%d %H:%M:%S')}")
    else:
        console.print("  Last Reconciliation: Never")

    console.print()

    running = sum(1 for c in containers.values() if c.get("status") == "running")
    console.print(f"[bold]Containers[/bold]: {running}/{len(containers)} running")

    if containers:
        console.print()
        render_containers(containers)


def validate_config(client: AgentClient):
    """Validate configuration."""
    response = _run_action(client, "Validating configuration...", "validate", {})

    if response.get("valid"):
        console.print("[green]✓[/green] Configuration is valid")
        console.print(f"  Containers: {response.get('containers', 0)}")
    else:
        console.print("[red]✗[/red] Configuration is invalid")
        console.print(f"  Error: {response.get('error')}")


def agent_status(client: AgentClient):
    """Show agent status."""
    show_status(client)


def agent_reload(client: AgentClient):
    """Reload agent configuration."""
    response = _run_action(client, "Reloading configuration...", "reload", {})
    console.print(f"[green]✓[/green] Configuration reloaded ({response.get('containers', 0)} containers)")
