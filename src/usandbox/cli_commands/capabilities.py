"""``usandbox capabilities`` — show native/polyfill/unsupported per operation."""

from __future__ import annotations

import sys

import click

from usandbox.cli_commands._output import print_capabilities_table, print_error, print_json
from usandbox.cli_commands._runtime import build_adapter, load_cli_settings
from usandbox.errors import SandboxException


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print the table as JSON.")
@click.pass_context
def capabilities(ctx: click.Context, as_json: bool) -> None:
    """List where each optional operation of the provider comes from.

    No sandbox is created; the table depends only on the adapter class.
    """
    settings = load_cli_settings(ctx)
    try:
        adapter = build_adapter(settings)
    except SandboxException as exc:
        print_error(exc)
        sys.exit(1)

    table = adapter.capabilities()
    if as_json:
        print_json({name: source.value for name, source in sorted(table.entries.items())})
    else:
        print_capabilities_table(adapter.provider, table)
