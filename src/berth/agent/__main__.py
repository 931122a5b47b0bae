"""Entry point for the berth-agent daemon."""

import asyncio
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from berth.agent.main import run_agent


app = typer.Typer(name="berth-agent", add_completion=False)
console = Console(stderr=True)


@app.command()
def serve(
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", "-c",
        help="Directory holding config.yaml and containers/ (default: $BERTH_CONFIG_DIR or ./configs)",
        file_okay=False,
    ),
):
    """Run the provisioning agent until SIGINT or SIGTERM."""
    if config_dir is not None:
        os.environ["BERTH_CONFIG_DIR"] = str(config_dir)

    try:
        asyncio.run(run_agent())
    except KeyboardInterrupt:
        console.print("Agent shutdown requested")
    except Exception as e:
        console.print(f"[red]Agent error:[/red] {e}")
        raise typer.Exit(1) from e


def main():
    """Run the berth agent."""
    app()


if __name__ == "__main__":
    main()
