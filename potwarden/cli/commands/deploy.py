"""``potwarden deploy``: create a pot from an image."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from potwarden.cli import runtime
from potwarden.core.pot_manager import deploy_pot
from potwarden.errors import PotwardenError

console = Console()


def deploy_cmd(
    name: str = typer.Option(
        ...,
        "--name",
        "-n",
        help="Pot name (also the network name and pot label value).",
    ),
    image: str = typer.Option(
        ...,
        "--image",
        "-i",
        help="Image to run, e.g. cowrie/cowrie:latest.",
    ),
    ports: Optional[list[str]] = typer.Option(
        None,
        "--port",
        "-p",
        help="Published port as HOST:CONTAINER[/proto]; repeatable.",
    ),
    env: Optional[list[str]] = typer.Option(
        None,
        "--env",
        "-e",
        help="Environment variable as KEY=VALUE; repeatable.",
    ),
) -> None:
    """Create the pot network and start a labeled container on it."""
    config = runtime.load_config()
    try:
        container_id = deploy_pot(
            runtime.make_backend(config),
            name,
            image,
            ports=ports or [],
            environment=env or [],
            pot_label=config.pot_label,
        )
    except PotwardenError as exc:
        console.print(f"[bold red]Deploy failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(
        f"[bold green]Pot {name} deployed[/bold green] (container {container_id[:12]})"
    )
