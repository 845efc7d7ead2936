"""``potwarden remove``: tear down one pot or all of them."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from potwarden.cli import runtime
from potwarden.core.pot_manager import remove_all_pots, remove_pot
from potwarden.errors import PotwardenError

console = Console()


def remove_cmd(
    name: Optional[str] = typer.Option(
        None,
        "--name",
        "-n",
        help="Pot to remove.",
    ),
    all_pots: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Remove every pot.",
    ),
) -> None:
    """Force-remove a pot's containers, then its network."""
    if bool(name) == all_pots:
        console.print("[bold red]Give exactly one of --name or --all.[/bold red]")
        raise typer.Exit(code=1)

    config = runtime.load_config()
    try:
        backend = runtime.make_backend(config)
        if all_pots:
            removed = remove_all_pots(backend)
            console.print(f"[bold green]Removed {len(removed)} pot(s).[/bold green]")
        else:
            count = remove_pot(backend, name)
            console.print(
                f"[bold green]Pot {name} removed[/bold green] ({count} container(s))"
            )
    except PotwardenError as exc:
        console.print(f"[bold red]Remove failed:[/bold red] {exc}")
        raise typer.Exit(code=1)
