"""``usandbox health`` — liveness and resource usage."""

from __future__ import annotations

import sys

import click

from usandbox.cli_commands._output import console, print_json, print_metrics_table
from usandbox.cli_commands._runtime import run_in_sandbox


@click.group()
def health() -> None:
    """Check sandbox health."""


@health.command("ping")
@click.pass_context
def ping(ctx: click.Context) -> None:
    """Ping the sandbox; exit status 1 when it does not answer."""
    healthy = run_in_sandbox(ctx, lambda sandbox: sandbox.ping())
    if healthy:
        console.print("[green]healthy[/green]")
    else:
        console.print("[red]unhealthy[/red]")
        sys.exit(1)


@health.command("metrics")
@click.option("--json", "as_json", is_flag=True, help="Print metrics as JSON.")
@click.pass_context
def metrics(ctx: click.Context, as_json: bool) -> None:
    """Show CPU and memory usage."""
    snapshot = run_in_sandbox(ctx, lambda sandbox: sandbox.get_metrics())
    if as_json:
        print_json(snapshot.model_dump())
    else:
        print_metrics_table(snapshot)
