"""``potwarden collect``: run the capture and rotation daemon.

Watches pot networks, captures their traffic, and rotates every pot on the
configured interval until interrupted with Ctrl+C.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from potwarden.cli import runtime
from potwarden.core.orchestrator import Warden
from potwarden.errors import PotwardenError

console = Console()


def collect_cmd(
    path: Path = typer.Option(
        ...,
        "--path",
        "-p",
        help="Output root for artifacts and archives.",
    ),
    interval: float = typer.Option(
        1.0,
        "--interval",
        "-i",
        help="Rotation interval in hours.",
    ),
) -> None:
    """Capture pot traffic and rotate pots until interrupted."""
    try:
        config = runtime.load_config(output_root=path, rotation_interval_hours=interval)
    except ValidationError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        raise typer.Exit(code=1)

    runtime.setup_logging(config)

    try:
        warden = Warden(config, backend=runtime.make_backend(config))
    except PotwardenError as exc:
        console.print(f"[bold red]Cannot start:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            "\n".join([
                f"[bold]Output root:[/bold]       {config.output_root}",
                f"[bold]Rotation interval:[/bold] {config.rotation_interval_hours:g}h",
                f"[bold]Pot label:[/bold]         {config.pot_label}",
                "",
                "[dim]Press Ctrl+C to stop.[/dim]",
            ]),
            title="[bold]potwarden[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )

    warden.run_forever()
    console.print("[bold green]Stopped.[/bold green]")
