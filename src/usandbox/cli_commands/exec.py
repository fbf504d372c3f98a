"""``usandbox exec`` — run one shell command in the sandbox."""

from __future__ import annotations

import sys

import click

from usandbox.cli_commands._output import console, err_console, print_json
from usandbox.cli_commands._runtime import run_in_sandbox
from usandbox.models import ExecuteOptions


def _parse_env(values: tuple[str, ...]) -> dict[str, str]:
    env: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--env")
        env[key] = value
    return env


@click.command(
    "exec",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--cwd", default=None, help="Working directory for the command.")
@click.option("--timeout-ms", type=click.IntRange(min=1), default=None, help="Abort after this many ms.")
@click.option("--env", "-e", "env", multiple=True, help="Extra environment variable, KEY=VALUE.")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
@click.pass_context
def exec_cmd(
    ctx: click.Context,
    command: tuple[str, ...],
    cwd: str | None,
    timeout_ms: int | None,
    env: tuple[str, ...],
    as_json: bool,
) -> None:
    """Execute COMMAND and exit with its exit code."""
    options = ExecuteOptions(working_directory=cwd, timeout_ms=timeout_ms, env=_parse_env(env))
    script = " ".join(command)

    result = run_in_sandbox(ctx, lambda sandbox: sandbox.execute(script, options))

    if as_json:
        print_json(result.model_dump())
    else:
        if result.stdout:
            console.out(result.stdout, end="", highlight=False)
        if result.stderr:
            err_console.out(result.stderr, end="", highlight=False)
        if result.truncated:
            err_console.print("[yellow]Output was truncated by the provider.[/yellow]")
    if result.exit_code != 0:
        sys.exit(result.exit_code)
