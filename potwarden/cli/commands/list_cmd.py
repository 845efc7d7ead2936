"""``potwarden list``: show deployed pots and their containers."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from potwarden.cli import runtime
from potwarden.errors import PotwardenError

console = Console()


def list_cmd() -> None:
    """List every pot with its containers."""
    config = runtime.load_config()
    try:
        pots = runtime.make_backend(config).list_pots()
    except PotwardenError as exc:
        console.print(f"[bold red]Cannot list pots:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if not pots:
        console.print("[dim]No pots deployed.[/dim]")
        return

    table = Table(title="Pots")
    table.add_column("Pot", style="cyan")
    table.add_column("Container")
    table.add_column("Image", style="green")
    table.add_column("State")
    table.add_column("Started")

    for pot in pots:
        for container in pot.containers:
            state = (
                f"[green]{container.state}[/green]"
                if container.state == "running"
                else f"[yellow]{container.state}[/yellow]"
            )
            table.add_row(pot.name, container.short_id, container.image, state, container.started_at)

    console.print(table)
