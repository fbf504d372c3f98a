"""Shared CLI output formatters."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.table import Table

from usandbox.adapters.capabilities import Capability, CapabilityTable  # noqa: TC001
from usandbox.errors import SandboxException  # noqa: TC001
from usandbox.models import DirectoryEntry, SandboxMetrics, SearchResult  # noqa: TC001

console = Console()
err_console = Console(stderr=True)

_CAPABILITY_STYLES = {
    Capability.NATIVE: "green",
    Capability.POLYFILL: "yellow",
    Capability.UNSUPPORTED: "red",
}


def print_error(exc: SandboxException) -> None:
    """Print a canonical error record to stderr."""
    err_console.print(f"[red]{type(exc).__name__}:[/red] {exc.message}")
    err_console.print_json(json.dumps(exc.to_dict(), default=str))


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def print_directory_table(path: str, entries: Sequence[DirectoryEntry]) -> None:
    """Pretty-print a directory listing."""
    table = Table(title=path)
    table.add_column("Name", style="cyan")
    table.add_column("Type")

    for entry in entries:
        table.add_row(entry.name, "dir" if entry.is_directory else "file")

    console.print(table)


def print_search_results(results: Sequence[SearchResult]) -> None:
    if not results:
        console.print("[yellow]No matches.[/yellow]")
        return
    for result in results:
        suffix = "" if result.is_file else "/"
        console.print(f"{result.path}{suffix}", highlight=False)


def print_metrics_table(metrics: SandboxMetrics) -> None:
    table = Table(title="Sandbox Metrics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("CPU cores", str(metrics.cpu_count))
    table.add_row("CPU used", f"{metrics.cpu_used_percentage:.1f}%")
    table.add_row("Memory total", f"{metrics.memory_total_mib} MiB")
    table.add_row("Memory used", f"{metrics.memory_used_mib} MiB")

    console.print(table)


def print_capabilities_table(provider: str, table_data: CapabilityTable) -> None:
    """Pretty-print where each optional operation comes from."""
    table = Table(title=f"Capabilities ({provider})")
    table.add_column("Operation", style="cyan")
    table.add_column("Source")

    for name, source in sorted(table_data.entries.items()):
        style = _CAPABILITY_STYLES[source]
        table.add_row(name, f"[{style}]{source.value}[/{style}]")

    console.print(table)
