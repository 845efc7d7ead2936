"""potwarden CLI: Typer-based command-line interface.

Provides the ``potwarden`` command with subcommands for running the
collection daemon, deploying, listing and removing pots, and inspecting
interrupted rotations.

All output uses Rich for formatted terminal display.
"""
