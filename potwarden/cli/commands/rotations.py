"""``potwarden rotations``: list rotations that never reached a clean state.

Reads the markers under ``<path>/.rotations``.  A pot listed here was left
dirty; the Capture column says whether its capture had been stopped.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from potwarden.cli import runtime
from potwarden.core.rotation_tracker import RotationTracker

console = Console()


def rotations_cmd(
    path: Path = typer.Option(
        ...,
        "--path",
        "-p",
        help="Output root the daemon writes to.",
    ),
) -> None:
    """List interrupted or failed rotations."""
    config = runtime.load_config(output_root=path)
    if not config.markers_dir.is_dir():
        console.print("[dim]No interrupted rotations.[/dim]")
        return

    markers = RotationTracker(config.markers_dir).interrupted()
    if not markers:
        console.print("[dim]No interrupted rotations.[/dim]")
        return

    table = Table(title="Interrupted Rotations")
    table.add_column("Pot", style="cyan")
    table.add_column("Container")
    table.add_column("State", style="yellow")
    table.add_column("Capture", justify="center")
    table.add_column("Updated")
    table.add_column("Error", style="red")

    for marker in markers:
        capture = "[red]stopped[/red]" if marker.capture_stopped else "[green]running[/green]"
        table.add_row(
            marker.pot_name,
            marker.container_id[:12],
            marker.state.value,
            capture,
            marker.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
            marker.error or "-",
        )

    console.print(table)
