"""MinimalProviderAdapter — the full sandbox surface over a bare shell connection.

For providers that expose nothing but "run this command" (SSH gateways,
custom container runners, ...).  Everything beyond :meth:`execute` comes from
the command polyfill.
"""

from __future__ import annotations

import logging
import math
import re
import shlex
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from usandbox.adapters.base import BaseSandboxAdapter
from usandbox.errors import InvalidArgumentError, SandboxException, SandboxStateError, TimeoutError
from usandbox.models import (
    ExecuteOptions,
    ExecuteResult,
    ImageSpec,
    SandboxConfig,
    SandboxInfo,
    SandboxStatus,
)

logger = logging.getLogger(__name__)

_ENV_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_TIMEOUT_EXIT_CODE = 124


@runtime_checkable
class MinimalProviderConnection(Protocol):
    """A live shell connection to an externally managed sandbox."""

    @property
    def id(self) -> str: ...

    async def execute(self, command: str) -> ExecuteResult: ...

    async def get_status(self) -> SandboxStatus: ...

    async def close(self) -> None: ...


ConnectionFactory = Callable[[], Awaitable[MinimalProviderConnection]]


def build_command(command: str, options: ExecuteOptions | None) -> str:
    """Fold working directory, timeout and environment into *command*.

    The connection has no notion of per-call options, so they become shell
    prefixes: ``export K=V && timeout N sh -c 'cd DIR && COMMAND'``.
    """
    if options is None:
        return command

    final = command
    if options.working_directory:
        final = f"cd {shlex.quote(options.working_directory)} && {final}"
    if options.timeout_ms and options.timeout_ms > 0:
        seconds = math.ceil(options.timeout_ms / 1000)
        final = f"timeout {seconds} sh -c {shlex.quote(final)}"
    if options.env:
        for name in options.env:
            if not _ENV_NAME.fullmatch(name):
                raise InvalidArgumentError(f"Invalid environment variable name: {name!r}", "env", name)
        exports = " ".join(f"{name}={shlex.quote(value)}" for name, value in options.env.items())
        final = f"export {exports} && {final}"
    return final


class MinimalProviderAdapter(BaseSandboxAdapter):
    """Adapter for providers that only offer command execution.

    The sandbox itself is provisioned elsewhere; :meth:`create` obtains a
    connection from *connection_factory*, :meth:`connect` attaches to one
    the caller already holds.
    """

    provider = "minimal"

    def __init__(
        self,
        connection_factory: ConnectionFactory | None = None,
        *,
        polyfill_timeout_ms: int | None = None,
    ) -> None:
        super().__init__(polyfill_timeout_ms=polyfill_timeout_ms)
        self._connection_factory = connection_factory
        self._connection: MinimalProviderConnection | None = None
        self._id = ""
        self._created_at = datetime.now(timezone.utc)

    @property
    def id(self) -> str:
        return self._id

    # ==================== Lifecycle ====================

    async def create(self, config: SandboxConfig) -> None:
        if self._connection_factory is None:
            raise InvalidArgumentError(
                "Connection factory not provided", "connection_factory"
            )
        self._attach(await self._connection_factory())
        self._set_status(SandboxStatus.running())

        if config.entrypoint:
            await self.execute(shlex.join(config.entrypoint))

    async def connect(self, connection: MinimalProviderConnection) -> None:
        """Attach to an existing connection and adopt its reported status."""
        self._attach(connection)
        self._sync_status(await connection.get_status())

    def _attach(self, connection: MinimalProviderConnection) -> None:
        self._connection = connection
        self._id = connection.id
        self._created_at = datetime.now(timezone.utc)
        logger.debug("minimal: attached to sandbox %s", self._id)

    async def start(self) -> None:
        self._set_status(SandboxStatus.running())

    async def stop(self) -> None:
        try:
            await self.execute("exit 0")
        except Exception as exc:
            # The connection may drop as the shell exits.
            logger.debug("minimal: shutdown command failed: %s", exc)
        self._set_status(SandboxStatus.deleted())

    async def delete(self) -> None:
        await self.stop()
        await self.close()

    async def get_info(self) -> SandboxInfo:
        return SandboxInfo(
            id=self._id,
            image=ImageSpec(repository="minimal", tag="latest"),
            status=self.status,
            created_at=self._created_at,
        )

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    # ==================== Command execution ====================

    async def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        if self._connection is None:
            raise SandboxStateError(
                "Not connected to minimal provider", self.status.state, "connected"
            )

        final = build_command(command, options)
        try:
            result = await self._connection.execute(final)
        except SandboxException:
            raise
        except Exception as exc:
            raise self._translate_error(exc, "execute", final) from exc

        if options and options.timeout_ms and result.exit_code == _TIMEOUT_EXIT_CODE:
            raise TimeoutError(
                f"Command timed out after {options.timeout_ms}ms", options.timeout_ms, "execute"
            )
        return result
