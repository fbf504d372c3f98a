"""Data models shared by adapters, the polyfill engine and the CLI."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from usandbox.errors import SandboxException

SandboxState = Literal["Creating", "Running", "Paused", "Error", "Deleted"]


class SandboxStatus(BaseModel):
    """Lifecycle state of a sandbox; ``reason`` is only set for ``Error``."""

    state: SandboxState
    reason: str | None = None

    @classmethod
    def creating(cls) -> SandboxStatus:
        return cls(state="Creating")

    @classmethod
    def running(cls) -> SandboxStatus:
        return cls(state="Running")

    @classmethod
    def paused(cls) -> SandboxStatus:
        return cls(state="Paused")

    @classmethod
    def error(cls, reason: str) -> SandboxStatus:
        return cls(state="Error", reason=reason)

    @classmethod
    def deleted(cls) -> SandboxStatus:
        return cls(state="Deleted")


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------


class ExecuteOptions(BaseModel):
    """Per-call execution options.  Nothing persists between calls."""

    working_directory: str | None = Field(default=None, description="Effective directory for this call.")
    timeout_ms: int | None = Field(default=None, description="Abort after this many milliseconds.")
    env: dict[str, str] = Field(default_factory=dict, description="Extra environment variables.")
    background: bool = Field(default=False, description="Run detached.")


class ExecuteResult(BaseModel):
    """Captured output of one command."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    truncated: bool = Field(default=False, description="Transport capped the output length.")


class OutputMessage(BaseModel):
    """A chunk of output delivered to a stream handler."""

    text: str
    is_error: bool = False


Handler = Callable[[Any], Any]


@dataclass
class StreamHandlers:
    """Callbacks for streamed execution; each may be sync or async."""

    on_stdout: Handler | None = None
    on_stderr: Handler | None = None
    on_complete: Handler | None = None
    on_error: Handler | None = None


@dataclass
class BackgroundSession:
    """Handle for a detached command."""

    session_id: str
    kill: Callable[[], Awaitable[None]]


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


class _ResultModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class FileReadResult(_ResultModel):
    path: str
    content: bytes = b""
    error: SandboxException | None = None

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class FileWriteEntry(BaseModel):
    """A file to write.

    ``data`` may be ``str`` (UTF-8 encoded), ``bytes``/``bytearray``/
    ``memoryview``, or a sync/async iterable of ``bytes`` chunks.
    """

    path: str
    data: Any


class FileWriteResult(_ResultModel):
    path: str
    bytes_written: int = 0
    error: SandboxException | None = None


class FileDeleteResult(_ResultModel):
    path: str
    success: bool
    error: SandboxException | None = None


class MoveEntry(BaseModel):
    source: str
    destination: str


class MoveResult(_ResultModel):
    source: str
    destination: str
    success: bool
    error: SandboxException | None = None


class ContentReplaceEntry(BaseModel):
    path: str
    old_content: str
    new_content: str


class ContentReplaceResult(_ResultModel):
    path: str
    replacements: int = 0
    error: SandboxException | None = None


class PermissionEntry(BaseModel):
    path: str
    mode: int | None = None
    owner: str | None = None
    group: str | None = None


class DirectoryEntry(BaseModel):
    name: str
    path: str
    is_directory: bool
    is_file: bool


class FileInfo(BaseModel):
    path: str
    size: int
    is_file: bool
    is_directory: bool
    mode: int | None = None
    owner: str | None = None
    group: str | None = None
    modified_at: datetime | None = None


class SearchResult(BaseModel):
    path: str
    is_file: bool


# ---------------------------------------------------------------------------
# Health & metrics
# ---------------------------------------------------------------------------


def _now_ms() -> int:
    return int(time.time() * 1000)


class SandboxMetrics(BaseModel):
    cpu_count: int
    cpu_used_percentage: float = Field(ge=0.0, le=100.0)
    memory_total_mib: int
    memory_used_mib: int
    timestamp: int = Field(default_factory=_now_ms, description="Epoch milliseconds.")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class ImageSpec(BaseModel):
    """Container image reference: ``repository[:tag][@digest]``."""

    repository: str
    tag: str | None = None
    digest: str | None = None

    @property
    def reference(self) -> str:
        ref = self.repository
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@{self.digest}"
        return ref

    @classmethod
    def parse(cls, reference: str) -> ImageSpec:
        """Parse ``repo``, ``repo:tag`` or ``repo@digest``.

        A colon inside the last path segment is a tag separator; a colon
        before the last ``/`` belongs to a registry host.
        """
        repository, _, digest = reference.partition("@")
        tag: str | None = None
        last_slash = repository.rfind("/")
        colon = repository.rfind(":")
        if colon > last_slash:
            repository, tag = repository[:colon], repository[colon + 1 :]
        return cls(repository=repository, tag=tag or None, digest=digest or None)


class ResourceLimits(BaseModel):
    cpu_count: int | None = None
    memory_mib: int | None = None
    disk_gib: int | None = None


class SandboxConfig(BaseModel):
    """Provider-agnostic description of the sandbox to create."""

    image: ImageSpec = Field(default_factory=lambda: ImageSpec(repository="alpine", tag="3"))
    entrypoint: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    timeout: int | None = Field(default=None, description="Sandbox lifetime in seconds.")
    resource_limits: ResourceLimits | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("image", mode="before")
    @classmethod
    def _parse_image(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ImageSpec.parse(value)
        return value


class SandboxInfo(BaseModel):
    id: str
    image: ImageSpec
    entrypoint: list[str] = Field(default_factory=list)
    status: SandboxStatus
    created_at: datetime
    resource_limits: ResourceLimits | None = None
