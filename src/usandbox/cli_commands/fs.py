"""``usandbox fs`` — file operations inside the sandbox."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from usandbox.cli_commands._output import (
    console,
    print_directory_table,
    print_error,
    print_json,
    print_search_results,
)
from usandbox.cli_commands._runtime import load_cli_settings, run_in_sandbox
from usandbox.models import FileWriteEntry

if TYPE_CHECKING:
    from usandbox.adapters.base import BaseSandboxAdapter


@click.group()
def fs() -> None:
    """Read, write and search files."""


@fs.command("ls")
@click.argument("path", default=".")
@click.option("--json", "as_json", is_flag=True, help="Print entries as JSON.")
@click.pass_context
def ls(ctx: click.Context, path: str, as_json: bool) -> None:
    """List the entries of directory PATH."""
    entries = run_in_sandbox(ctx, lambda sandbox: sandbox.list_directory(path))
    if as_json:
        print_json([e.model_dump() for e in entries])
    else:
        print_directory_table(path, entries)


@fs.command("cat")
@click.argument("path")
@click.option("--range", "byte_range", default=None, help='Byte range "start-end"; end may be omitted.')
@click.pass_context
def cat(ctx: click.Context, path: str, byte_range: str | None) -> None:
    """Write the contents of PATH to stdout.

    Without --range the file is streamed in windows of ``polyfill.chunk_size``
    bytes.
    """
    if byte_range is None:
        chunk_size = load_cli_settings(ctx).polyfill.chunk_size

        async def _stream(sandbox: BaseSandboxAdapter) -> None:
            async for chunk in sandbox.read_file_stream(path, chunk_size):
                click.echo(chunk, nl=False)

        run_in_sandbox(ctx, _stream)
        return

    (result,) = run_in_sandbox(ctx, lambda sandbox: sandbox.read_files([path], range=byte_range))
    if result.error is not None:
        print_error(result.error)
        sys.exit(1)
    click.echo(result.content, nl=False)


@fs.command("write")
@click.argument("path")
@click.option("--text", default=None, help="Text to write (UTF-8).")
@click.option(
    "--from-file",
    "source",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Local file whose bytes are written.",
)
@click.pass_context
def write(ctx: click.Context, path: str, text: str | None, source: Path | None) -> None:
    """Write PATH from --text or --from-file, creating parent directories."""
    if (text is None) == (source is None):
        raise click.UsageError("Pass exactly one of --text or --from-file.")
    data: str | bytes = text if text is not None else source.read_bytes()  # type: ignore[union-attr]

    (result,) = run_in_sandbox(
        ctx, lambda sandbox: sandbox.write_files([FileWriteEntry(path=path, data=data)])
    )
    if result.error is not None:
        print_error(result.error)
        sys.exit(1)
    console.print(f"[green]Wrote {result.bytes_written} bytes to {path}[/green]", highlight=False)


@fs.command("rm")
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def rm(ctx: click.Context, paths: tuple[str, ...]) -> None:
    """Delete one or more files; exit status 1 if any deletion failed."""
    results = run_in_sandbox(ctx, lambda sandbox: sandbox.delete_files(list(paths)))
    failed = False
    for result in results:
        if result.success:
            console.print(f"[green]deleted[/green] {result.path}", highlight=False)
        else:
            failed = True
            console.print(f"[red]failed[/red]  {result.path}", highlight=False)
            if result.error is not None:
                print_error(result.error)
    if failed:
        sys.exit(1)


@fs.command("find")
@click.argument("pattern")
@click.argument("path", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print matches as JSON.")
@click.pass_context
def find(ctx: click.Context, pattern: str, path: str | None, as_json: bool) -> None:
    """Find entries under PATH whose name matches the glob PATTERN."""
    results = run_in_sandbox(ctx, lambda sandbox: sandbox.search(pattern, path))
    if as_json:
        print_json([r.model_dump() for r in results])
    else:
        print_search_results(results)
