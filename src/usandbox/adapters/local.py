"""LocalProviderAdapter — runs sandbox commands on the host with loud warnings.

This is a development/fallback provider that executes every command in a
host ``/bin/sh``.  It is **not** sandboxed and emits prominent warnings every
time it is instantiated or used.  It is also the reference execution
primitive the end-to-end polyfill tests run against.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shlex
import signal
import tempfile
import uuid
import warnings
from datetime import datetime, timezone

from usandbox.adapters.base import BaseSandboxAdapter
from usandbox.errors import CommandExecutionError, TimeoutError
from usandbox.models import (
    ExecuteOptions,
    ExecuteResult,
    ImageSpec,
    SandboxConfig,
    SandboxInfo,
    SandboxStatus,
)

logger = logging.getLogger(__name__)

_WARNING_MSG = (
    "LocalProviderAdapter executes commands directly on the host with NO isolation. "
    "Use DockerProviderAdapter for production workloads."
)


class LocalProviderAdapter(BaseSandboxAdapter):
    """Host-local sandbox (no isolation).

    Each :meth:`execute` writes the command to a temporary script and runs it
    with *shell*, stdin closed, in its own process group so a timeout can
    kill everything it spawned.  Output beyond *max_output_bytes* per stream
    is cut off and reported as truncated.
    """

    provider = "local"

    def __init__(
        self,
        *,
        shell: str = "/bin/sh",
        working_directory: str | None = None,
        env: dict[str, str] | None = None,
        max_output_bytes: int | None = None,
        polyfill_timeout_ms: int | None = None,
    ) -> None:
        super().__init__(polyfill_timeout_ms=polyfill_timeout_ms)
        self._id = f"local-{uuid.uuid4().hex[:12]}"
        self._shell = shell
        self._working_directory = working_directory
        self._env = dict(env or {})
        self._created_at = datetime.now(timezone.utc)
        self.max_output_bytes = max_output_bytes
        warnings.warn(_WARNING_MSG, stacklevel=2)
        logger.warning(_WARNING_MSG)

    @property
    def id(self) -> str:
        return self._id

    # ==================== Lifecycle ====================

    async def create(self, config: SandboxConfig) -> None:
        self._env.update(config.env)
        self._set_status(SandboxStatus.running())
        if config.entrypoint:
            await self.execute(shlex.join(config.entrypoint))

    async def start(self) -> None:
        self._set_status(SandboxStatus.running())

    async def stop(self) -> None:
        self._set_status(SandboxStatus.paused())

    async def delete(self) -> None:
        self._set_status(SandboxStatus.deleted())

    async def get_info(self) -> SandboxInfo:
        return SandboxInfo(
            id=self._id,
            image=ImageSpec(repository="localhost"),
            status=self.status,
            created_at=self._created_at,
        )

    async def close(self) -> None:
        """No-op; nothing to release for host execution."""

    # ==================== Command execution ====================

    async def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        """Run *command* on the host (UNSANDBOXED)."""
        self._require_state("execute", "Running")
        options = options or ExecuteOptions()
        logger.warning(
            "LocalProviderAdapter: executing on host (UNSANDBOXED): %s",
            command.splitlines()[0] if command else "",
        )

        env = {**os.environ, **self._env, **options.env}
        cwd = options.working_directory or self._working_directory

        fd, script = tempfile.mkstemp(prefix="usandbox-", suffix=".sh")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(command)
                fh.write("\n")
            return await self._run_script(script, command, cwd, env, options.timeout_ms)
        finally:
            with contextlib.suppress(OSError):
                os.unlink(script)

    async def _run_script(
        self,
        script: str,
        command: str,
        cwd: str | None,
        env: dict[str, str],
        timeout_ms: int | None,
    ) -> ExecuteResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._shell,
                script,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                start_new_session=True,
            )
        except OSError as exc:
            raise CommandExecutionError(
                f"Failed to run {self._shell}: {exc}", command, cause=exc
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(),
                timeout=timeout_ms / 1000 if timeout_ms else None,
            )
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                os.killpg(proc.pid, signal.SIGKILL)
            await proc.wait()
            raise TimeoutError(
                f"Command timed out after {timeout_ms}ms", timeout_ms or 0, "execute"
            ) from None

        out_text, out_truncated = self._capture(stdout)
        err_text, err_truncated = self._capture(stderr)
        return ExecuteResult(
            stdout=out_text,
            stderr=err_text,
            exit_code=proc.returncode or 0,
            truncated=out_truncated or err_truncated,
        )
