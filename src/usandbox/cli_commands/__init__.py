"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from usandbox.cli_commands.capabilities import capabilities
    from usandbox.cli_commands.exec import exec_cmd
    from usandbox.cli_commands.fs import fs
    from usandbox.cli_commands.health import health

    cli.add_command(exec_cmd)
    cli.add_command(fs)
    cli.add_command(health)
    cli.add_command(capabilities)
