"""Main Typer application: imports and registers all CLI commands.

Entry point: ``potwarden`` (configured via pyproject.toml console_scripts).

Commands: collect, list, deploy, remove, rotations.
"""

from __future__ import annotations

import typer

from potwarden.cli.commands.collect import collect_cmd
from potwarden.cli.commands.deploy import deploy_cmd
from potwarden.cli.commands.list_cmd import list_cmd
from potwarden.cli.commands.remove import remove_cmd
from potwarden.cli.commands.rotations import rotations_cmd

app = typer.Typer(
    name="potwarden",
    help="potwarden: honeypot lifecycle and forensic-capture daemon.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="collect", help="Capture pot traffic and rotate pots on an interval.")(collect_cmd)
app.command(name="list", help="List deployed pots.")(list_cmd)
app.command(name="deploy", help="Deploy a new pot from an image.")(deploy_cmd)
app.command(name="remove", help="Remove one pot or all pots.")(remove_cmd)
app.command(name="rotations", help="List interrupted rotations.")(rotations_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
