"""DockerProviderAdapter — a long-lived Docker container as a sandbox.

Uses the ``docker`` CLI via subprocess (no docker-py dependency).  Commands
run through ``docker exec``; the script itself travels on stdin into a
temporary file inside the container, so payload size is not bound by the
kernel's argument-length limit.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
import shlex
import uuid
from datetime import datetime, timezone
from typing import Any

from usandbox.adapters.base import BaseSandboxAdapter
from usandbox.errors import (
    CommandExecutionError,
    ConnectionError,
    SandboxException,
    TimeoutError,
)
from usandbox.models import (
    ExecuteOptions,
    ExecuteResult,
    ImageSpec,
    ResourceLimits,
    SandboxConfig,
    SandboxInfo,
    SandboxStatus,
)

logger = logging.getLogger(__name__)

_MANAGED_LABEL = "usandbox.managed=true"
_KEEPALIVE = ("tail", "-f", "/dev/null")
_STDIN_RUNNER = 'f=$(mktemp) && cat > "$f" && sh "$f" </dev/null; rc=$?; rm -f "$f"; exit $rc'
_FRACTION = re.compile(r"(\.\d{6})\d+")
_MIB = 1024 * 1024


def _map_state(state: dict[str, Any]) -> SandboxStatus:
    """Translate ``docker inspect`` ``State`` into a :class:`SandboxStatus`."""
    status = state.get("Status")
    if status == "running":
        return SandboxStatus.paused() if state.get("Paused") else SandboxStatus.running()
    if status in ("paused", "exited"):
        return SandboxStatus.paused()
    if status in ("created", "restarting"):
        return SandboxStatus.creating()
    if status in ("dead", "removing"):
        return SandboxStatus.error(f"container is {status}")
    return SandboxStatus.error("Unknown state")


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    # Docker reports nanoseconds; datetime keeps microseconds.
    normalized = _FRACTION.sub(r"\1", value).replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(normalized)
    except ValueError:
        logger.warning("docker: unparsable timestamp %r", value)
        return datetime.now(timezone.utc)


class DockerProviderAdapter(BaseSandboxAdapter):
    """Sandbox backed by one Docker container.

    :meth:`create` provisions a fresh container (kept alive with an idle
    process unless an entrypoint is given); :meth:`connect` attaches to an
    existing one.  Containers this adapter created are removed on
    :meth:`close` when *remove_on_close* is set.
    """

    provider = "docker"

    def __init__(
        self,
        *,
        container_name: str | None = None,
        docker_binary: str = "docker",
        network_enabled: bool = True,
        workdir: str | None = None,
        remove_on_close: bool = True,
        max_output_bytes: int | None = None,
        polyfill_timeout_ms: int | None = None,
    ) -> None:
        super().__init__(polyfill_timeout_ms=polyfill_timeout_ms)
        self._name = container_name or ""
        self._binary = docker_binary
        self._network_enabled = network_enabled
        self._workdir = workdir
        self._remove_on_close = remove_on_close
        self._owned = False
        self._stopped = False
        self.max_output_bytes = max_output_bytes

    @property
    def id(self) -> str:
        return self._name

    # ==================== Lifecycle ====================

    async def create(self, config: SandboxConfig) -> None:
        """``docker create`` + ``docker start``."""
        if not self._name:
            self._name = f"usandbox-{uuid.uuid4().hex[:12]}"
        self._set_status(SandboxStatus.creating())

        try:
            await self._run_docker(self._build_create_command(config))
            self._owned = True
            await self._run_docker([self._binary, "start", self._name])
        except SandboxException as exc:
            self._set_status(SandboxStatus.error(exc.message))
            raise
        self._set_status(SandboxStatus.running())
        logger.info("docker: container %s running (%s)", self._name, config.image.reference)

    def _build_create_command(self, config: SandboxConfig) -> list[str]:
        """Build the ``docker create`` command with resource limits."""
        cmd: list[str] = [
            self._binary, "create",
            "--name", self._name,
            "--label", _MANAGED_LABEL,
        ]

        limits = config.resource_limits
        if limits is not None:
            if limits.cpu_count:
                cmd.extend(["--cpus", str(limits.cpu_count)])
            if limits.memory_mib:
                cmd.extend(["--memory", f"{limits.memory_mib}m"])

        if not self._network_enabled:
            cmd.extend(["--network", "none"])
        if self._workdir:
            cmd.extend(["--workdir", self._workdir])

        for key, value in config.env.items():
            cmd.extend(["-e", f"{key}={value}"])
        for key, value in config.metadata.items():
            cmd.extend(["--label", f"{key}={value}"])

        if config.entrypoint:
            cmd.extend(["--entrypoint", config.entrypoint[0], config.image.reference])
            cmd.extend(config.entrypoint[1:])
        else:
            cmd.append(config.image.reference)
            cmd.extend(_KEEPALIVE)
        return cmd

    async def connect(self, container_name: str) -> None:
        """Attach to an existing container and adopt its state."""
        self._name = container_name
        self._owned = False
        await self.get_info()

    async def start(self) -> None:
        await self._run_docker([self._binary, "start", self._name])
        self._stopped = False
        self._set_status(SandboxStatus.running())

    async def stop(self) -> None:
        await self._run_docker([self._binary, "stop", self._name])
        self._stopped = True
        self._set_status(SandboxStatus.paused())

    async def pause(self) -> None:
        await self._run_docker([self._binary, "pause", self._name])
        self._set_status(SandboxStatus.paused())

    async def resume(self) -> None:
        """``docker unpause`` a paused container, ``docker start`` a stopped one."""
        action = "start" if self._stopped else "unpause"
        await self._run_docker([self._binary, action, self._name])
        self._stopped = False
        self._set_status(SandboxStatus.running())

    async def delete(self) -> None:
        await self._run_docker([self._binary, "rm", "-f", self._name])
        self._set_status(SandboxStatus.deleted())

    async def get_info(self) -> SandboxInfo:
        """``docker inspect``; refreshes :attr:`status` from the daemon."""
        output = await self._run_docker([self._binary, "inspect", "--type", "container", self._name])
        try:
            data = json.loads(output.text)[0]
        except (ValueError, IndexError, KeyError) as exc:
            raise CommandExecutionError(
                f"Unexpected docker inspect output for {self._name}",
                "inspect",
                stdout=output.text,
                cause=exc,
            ) from exc

        state = data.get("State") or {}
        status = _map_state(state)
        self._stopped = state.get("Status") == "exited"
        self._sync_status(status)

        container_cfg = data.get("Config") or {}
        host_cfg = data.get("HostConfig") or {}
        nano_cpus = host_cfg.get("NanoCpus") or 0
        memory = host_cfg.get("Memory") or 0
        limits = None
        if nano_cpus or memory:
            limits = ResourceLimits(
                cpu_count=max(1, round(nano_cpus / 1e9)) if nano_cpus else None,
                memory_mib=memory // _MIB if memory else None,
            )

        return SandboxInfo(
            id=data.get("Name", self._name).lstrip("/"),
            image=ImageSpec.parse(container_cfg.get("Image") or "unknown"),
            entrypoint=[*(container_cfg.get("Entrypoint") or []), *(container_cfg.get("Cmd") or [])],
            status=status,
            created_at=_parse_timestamp(data.get("Created")),
            resource_limits=limits,
        )

    async def close(self) -> None:
        """Remove the container if this adapter created it."""
        if self._owned and self._remove_on_close and self.status.state != "Deleted":
            await self.delete()

    # ==================== Command execution ====================

    async def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        self._require_state("execute", "Running")
        options = options or ExecuteOptions()

        cmd: list[str] = [self._binary, "exec", "-i"]
        if options.working_directory:
            cmd.extend(["-w", options.working_directory])
        for key, value in options.env.items():
            cmd.extend(["-e", f"{key}={value}"])
        cmd.extend([self._name, "sh", "-c", _STDIN_RUNNER])

        output = await self._run_docker(
            cmd,
            stdin=f"{command}\n".encode(),
            ignore_errors=True,
            timeout_ms=options.timeout_ms,
        )
        stdout, out_truncated = self._capture(output.stdout)
        stderr, err_truncated = self._capture(output.stderr)
        return ExecuteResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=output.returncode,
            truncated=out_truncated or err_truncated,
        )

    @staticmethod
    async def _run_docker(
        cmd: list[str],
        *,
        stdin: bytes | None = None,
        ignore_errors: bool = False,
        timeout_ms: int | None = None,
    ) -> _DockerOutput:
        """Run a docker CLI command and return its output."""
        logger.debug("docker: %s", shlex.join(cmd[:4]))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ConnectionError(f"Failed to run docker: {exc}", cmd[0], cause=exc) from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(input=stdin),
                timeout=timeout_ms / 1000 if timeout_ms else None,
            )
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise TimeoutError(
                f"docker {cmd[1]} timed out after {timeout_ms}ms", timeout_ms or 0, cmd[1]
            ) from None

        output = _DockerOutput(stdout_bytes or b"", stderr_bytes or b"", proc.returncode or 0)
        if output.returncode != 0 and not ignore_errors:
            stderr = output.stderr.decode(errors="replace").strip()
            raise CommandExecutionError(
                f"docker command failed (rc={output.returncode}): {stderr or output.text}",
                shlex.join(cmd),
                exit_code=output.returncode,
                stdout=output.text,
                stderr=stderr,
            )
        return output


class _DockerOutput:
    """Raw output of one docker CLI invocation."""

    __slots__ = ("stdout", "stderr", "returncode")

    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode

    @property
    def text(self) -> str:
        return self.stdout.decode(errors="replace").strip()
