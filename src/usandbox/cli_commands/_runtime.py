"""Settings and sandbox lifetime for a single CLI invocation."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TypeVar

import click

from usandbox.adapters.base import BaseSandboxAdapter
from usandbox.adapters.factory import create_sandbox
from usandbox.cli_commands._output import err_console, print_error
from usandbox.config import ConfigError, Settings, load_settings
from usandbox.errors import SandboxException
from usandbox.utils.telemetry import configure_telemetry

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SETTINGS_KEY = "usandbox.settings"


@dataclass
class CliState:
    """Global options shared by every subcommand."""

    config_path: str | None = None
    provider: str | None = None
    verbose: bool = False

    def settings(self) -> Settings:
        settings = load_settings(self.config_path)
        if self.provider:
            settings = settings.model_copy(update={"provider": self.provider})
        return settings


def load_cli_settings(ctx: click.Context) -> Settings:
    """Load settings once per invocation or exit with status 1."""
    cached = ctx.meta.get(_SETTINGS_KEY)
    if cached is not None:
        return cached

    state = ctx.find_object(CliState) or CliState()
    try:
        settings = state.settings()
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    if settings.telemetry.enabled:
        provider = None
        try:
            provider = configure_telemetry(
                service_name=settings.telemetry.service_name,
                otlp_endpoint=settings.telemetry.otlp_endpoint,
                console=settings.telemetry.console,
            )
        except ImportError as exc:
            err_console.print(f"[yellow]Telemetry disabled:[/yellow] {exc}")
        if provider is not None:
            ctx.call_on_close(provider.shutdown)
    ctx.meta[_SETTINGS_KEY] = settings
    return settings


def build_adapter(settings: Settings) -> BaseSandboxAdapter:
    return create_sandbox(settings.provider, **settings.adapter_options())


@asynccontextmanager
async def open_sandbox(settings: Settings) -> AsyncIterator[BaseSandboxAdapter]:
    """Create the configured sandbox, wait for it, and close it afterwards."""
    adapter = build_adapter(settings)
    async with adapter:
        await adapter.create(settings.sandbox)
        await adapter.wait_until_ready(settings.ready_timeout_ms)
        logger.debug("sandbox %s (%s) ready", adapter.id, adapter.provider)
        yield adapter


def run_in_sandbox(ctx: click.Context, action: Callable[[BaseSandboxAdapter], Awaitable[T]]) -> T:
    """Run *action* against a fresh sandbox; canonical errors exit with status 1."""
    settings = load_cli_settings(ctx)

    async def _run() -> T:
        async with open_sandbox(settings) as sandbox:
            return await action(sandbox)

    try:
        return asyncio.run(_run())
    except SandboxException as exc:
        print_error(exc)
        sys.exit(1)
