"""usandbox CLI entrypoint."""

from __future__ import annotations

import logging

import click
from rich.logging import RichHandler

from usandbox import __version__
from usandbox.cli_commands._output import err_console
from usandbox.cli_commands._runtime import CliState


@click.group()
@click.version_option(version=__version__, prog_name="usandbox")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Settings YAML (default: $USANDBOX_CONFIG or ./usandbox.yaml).",
)
@click.option("--provider", "-p", default=None, help="Override the configured provider.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, provider: str | None, verbose: bool) -> None:
    """usandbox — one interface to many sandboxes."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
            force=True,
        )
    ctx.obj = CliState(config_path=config_path, provider=provider, verbose=verbose)


# Register subcommands
from usandbox.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
