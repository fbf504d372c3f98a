"""HttpSandboxAdapter — sandboxes managed by a REST sandbox server.

The server exposes container lifecycle under ``/v1/containers`` and command
execution plus health under ``/v1/sandbox/{name}``.  The container name is
the sandbox id.  Filesystem, search and metrics come from the command
polyfill; health and pause/resume are native.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field

from usandbox.adapters.base import DEFAULT_READY_TIMEOUT_MS, BaseSandboxAdapter
from usandbox.errors import (
    CommandExecutionError,
    ConnectionError,
    SandboxException,
    SandboxStateError,
)
from usandbox.models import (
    ExecuteOptions,
    ExecuteResult,
    ImageSpec,
    SandboxConfig,
    SandboxInfo,
    SandboxStatus,
)

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class ContainerImage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_name: str = Field(default="unknown", alias="imageName")


class ContainerState(BaseModel):
    state: str = "Unknown"


class ContainerInfo(BaseModel):
    """Container record returned by ``GET /v1/containers/{name}``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    image: ContainerImage = Field(default_factory=ContainerImage)
    status: ContainerState = Field(default_factory=ContainerState)
    created_at: datetime | None = Field(default=None, alias="createdAt")


class ExecRequest(BaseModel):
    command: str
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    timeout_ms: int | None = Field(default=None, serialization_alias="timeoutMs")


class ExecResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stdout: str = ""
    stderr: str = ""
    exit_code: int = Field(default=0, alias="exitCode")
    truncated: bool = False


def map_container_state(state: str) -> SandboxStatus:
    """Map a server container state onto :class:`SandboxStatus`."""
    if state == "Running":
        return SandboxStatus.running()
    if state == "Creating":
        return SandboxStatus.creating()
    if state == "Paused":
        return SandboxStatus.paused()
    if state == "Error":
        return SandboxStatus.error("Container reported an error")
    return SandboxStatus.error("Unknown state")


class HttpSandboxAdapter(BaseSandboxAdapter):
    """Adapter for an HTTP sandbox server.

    Usage::

        async with HttpSandboxAdapter("https://sandbox.example.com", "job-42") as sandbox:
            await sandbox.create(SandboxConfig())
            result = await sandbox.execute("echo hello")
    """

    provider = "http"

    def __init__(
        self,
        base_url: str,
        container_name: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        ready_timeout_ms: int = DEFAULT_READY_TIMEOUT_MS,
        delete_on_close: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        polyfill_timeout_ms: int | None = None,
    ) -> None:
        super().__init__(polyfill_timeout_ms=polyfill_timeout_ms)
        self._base_url = base_url.rstrip("/")
        self._id = container_name
        self._token = token
        self._timeout = timeout
        self._ready_timeout_ms = ready_timeout_ms
        self._delete_on_close = delete_on_close
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def id(self) -> str:
        return self._id

    @property
    def base_url(self) -> str:
        return self._base_url

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        """Send one request; transport failures become :class:`ConnectionError`."""
        try:
            response = await self._http().request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise ConnectionError(f"Failed to {operation}: {exc}", self._base_url, cause=exc) from exc
        return response

    async def _call(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        response = await self._request(method, url, operation, **kwargs)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CommandExecutionError(
                f"Failed to {operation}: HTTP {response.status_code}",
                operation,
                stderr=response.text,
                cause=exc,
            ) from exc
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: type[_ModelT], operation: str, command: str) -> _ModelT:
        """Decode and validate a JSON body; anything else is a failed call."""
        try:
            return model.model_validate(response.json())
        except ValueError as exc:
            raise CommandExecutionError(
                f"Failed to {operation}: malformed response body", command, stderr=response.text, cause=exc
            ) from exc

    # ==================== Lifecycle ====================

    async def _fetch_container(self) -> ContainerInfo | None:
        response = await self._request("GET", f"/v1/containers/{self._id}", "get sandbox info")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CommandExecutionError(
                "Failed to get sandbox info", "get_info", stderr=response.text, cause=exc
            ) from exc
        return self._parse(response, ContainerInfo, "get sandbox info", "get_info")

    async def get_info(self) -> SandboxInfo:
        info = await self._fetch_container()
        if info is None:
            raise SandboxStateError(
                f"Sandbox {self._id} does not exist", self.status.state, "existing"
            )
        status = map_container_state(info.status.state)
        self._sync_status(status)
        return SandboxInfo(
            id=info.name,
            image=ImageSpec.parse(info.image.image_name),
            status=status,
            created_at=info.created_at or datetime.now(timezone.utc),
        )

    async def create(self, config: SandboxConfig) -> None:
        """Create the container unless it already exists, then wait for it.

        The server only takes a container name; image and resources are
        decided server-side.
        """
        existing = await self._fetch_container()
        if existing is not None:
            logger.info("http: reusing existing sandbox %s", self._id)
            self._sync_status(map_container_state(existing.status.state))
            return

        self._set_status(SandboxStatus.creating())
        try:
            await self._call("POST", "/v1/containers", "create sandbox", json={"name": self._id})
            await self.wait_until_ready(self._ready_timeout_ms)
        except SandboxException as exc:
            self._set_status(SandboxStatus.error(exc.message))
            raise
        self._set_status(SandboxStatus.running())

    async def start(self) -> None:
        await self._call("POST", f"/v1/containers/{self._id}/start", "start sandbox")
        self._set_status(SandboxStatus.running())

    async def stop(self) -> None:
        # The server has no stop; a paused container is its stopped state.
        await self._call("POST", f"/v1/containers/{self._id}/pause", "stop sandbox")
        self._set_status(SandboxStatus.paused())

    async def pause(self) -> None:
        await self._call("POST", f"/v1/containers/{self._id}/pause", "pause sandbox")
        self._set_status(SandboxStatus.paused())

    async def resume(self) -> None:
        await self._call("POST", f"/v1/containers/{self._id}/start", "resume sandbox")
        self._set_status(SandboxStatus.running())

    async def delete(self) -> None:
        response = await self._request("DELETE", f"/v1/containers/{self._id}", "delete sandbox")
        if response.status_code != httpx.codes.NOT_FOUND:
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise CommandExecutionError(
                    f"Failed to delete sandbox: HTTP {response.status_code}",
                    "delete",
                    stderr=response.text,
                    cause=exc,
                ) from exc
        self._set_status(SandboxStatus.deleted())

    async def close(self) -> None:
        try:
            if self._delete_on_close and self.status.state != "Deleted":
                await self.delete()
        finally:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    # ==================== Command execution ====================

    async def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        options = options or ExecuteOptions()
        request = ExecRequest(
            command=command,
            cwd=options.working_directory,
            env=options.env,
            timeout_ms=options.timeout_ms,
        )
        try:
            response = await self._call(
                "POST",
                f"/v1/sandbox/{self._id}/exec",
                "execute command",
                json=request.model_dump(by_alias=True, exclude_none=True),
            )
        except CommandExecutionError as exc:
            raise CommandExecutionError(
                f"Command execution failed: {command}", command, stderr=exc.stderr, cause=exc
            ) from exc

        payload = self._parse(response, ExecResponse, "execute command", command)
        return ExecuteResult(
            stdout=payload.stdout,
            stderr=payload.stderr,
            exit_code=payload.exit_code,
            truncated=payload.truncated,
        )

    # ==================== Health ====================

    async def ping(self) -> bool:
        try:
            response = await self._http().get(f"/v1/sandbox/{self._id}/health")
            response.raise_for_status()
            return bool(response.json().get("healthy", False))
        except Exception as exc:
            logger.debug("http: health check for %s failed: %s", self._id, exc)
            return False
