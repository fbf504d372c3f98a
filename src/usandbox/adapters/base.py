"""BaseSandboxAdapter — uniform lifecycle and capability dispatch.

Concrete adapters implement the lifecycle methods and :meth:`execute`.  Every
other operation is optional: an adapter may override it natively, otherwise
it falls back to the :class:`~usandbox.polyfill.CommandPolyfill` built on top
of ``execute``, and failing that raises
:class:`~usandbox.errors.FeatureNotSupportedError`.  Which of the three
applies is decided once, at construction, in a
:class:`~usandbox.adapters.capabilities.CapabilityTable`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Mapping, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel

from usandbox.adapters.capabilities import Capability, CapabilityTable
from usandbox.errors import (
    CommandExecutionError,
    FeatureNotSupportedError,
    InvalidArgumentError,
    ReadyTimeoutError,
    SandboxException,
    SandboxStateError,
)
from usandbox.models import (
    BackgroundSession,
    ContentReplaceEntry,
    ContentReplaceResult,
    DirectoryEntry,
    ExecuteOptions,
    ExecuteResult,
    FileDeleteResult,
    FileInfo,
    FileReadResult,
    FileWriteEntry,
    FileWriteResult,
    MoveEntry,
    MoveResult,
    OutputMessage,
    PermissionEntry,
    SandboxConfig,
    SandboxInfo,
    SandboxMetrics,
    SandboxState,
    SandboxStatus,
    SearchResult,
    StreamHandlers,
)
from usandbox.polyfill import DEFAULT_CHUNK_SIZE, CommandPolyfill
from usandbox.utils.codec import async_iterable_to_bytes

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)

DEFAULT_READY_TIMEOUT_MS = 120_000
DEFAULT_READY_INTERVAL_MS = 1_000

_TRANSITIONS: dict[SandboxState, frozenset[SandboxState]] = {
    "Creating": frozenset({"Creating", "Running", "Error", "Deleted"}),
    "Running": frozenset({"Running", "Paused", "Error", "Deleted"}),
    "Paused": frozenset({"Paused", "Running", "Deleted"}),
    "Error": frozenset({"Error", "Creating", "Running", "Deleted"}),
    "Deleted": frozenset({"Deleted"}),
}


def _coerce(model: type[_ModelT], value: _ModelT | Mapping[str, Any]) -> _ModelT:
    if isinstance(value, model):
        return value
    return model.model_validate(value)


async def _invoke(handler: Any, argument: Any) -> None:
    outcome = handler(argument)
    if inspect.isawaitable(outcome):
        await outcome


class BaseSandboxAdapter(ABC):
    """Abstract base for all sandbox adapters.

    Subclasses set :attr:`provider`, implement :attr:`id`, the lifecycle
    methods and :meth:`execute`, and override any optional operation they
    support natively.  Pass ``enable_polyfill=False`` for a provider whose
    shell cannot host the command polyfill.
    """

    provider: str = "unknown"
    max_output_bytes: int | None = None
    """Per-stream output cap of the provider's transport; ``None`` if uncapped."""

    def __init__(self, *, enable_polyfill: bool = True, polyfill_timeout_ms: int | None = None) -> None:
        self._status = SandboxStatus.creating()
        self._polyfill: CommandPolyfill | None = (
            CommandPolyfill(self, timeout_ms=polyfill_timeout_ms) if enable_polyfill else None
        )
        self._capabilities = CapabilityTable.build(
            type(self),
            BaseSandboxAdapter,
            polyfill_available=self._polyfill is not None,
        )

    # ==================== Identity & state ====================

    @property
    @abstractmethod
    def id(self) -> str:
        """Sandbox identifier; empty until created or connected."""

    @property
    def status(self) -> SandboxStatus:
        return self._status

    @property
    def polyfill(self) -> CommandPolyfill | None:
        return self._polyfill

    def capabilities(self) -> CapabilityTable:
        return self._capabilities

    def supports(self, operation: str) -> bool:
        return self._capabilities.supports(operation)

    def _set_status(self, status: SandboxStatus) -> None:
        """Apply an adapter-asserted transition, rejecting illegal ones."""
        current = self._status.state
        if status.state not in _TRANSITIONS[current]:
            raise SandboxStateError(
                f"Illegal sandbox transition {current} -> {status.state}",
                current,
                " | ".join(sorted(s for s in _TRANSITIONS if status.state in _TRANSITIONS[s])),
            )
        if status.state != current:
            logger.debug("%s sandbox %s: %s -> %s", self.provider, self.id, current, status.state)
        self._status = status

    def _sync_status(self, status: SandboxStatus) -> None:
        """Record provider-reported state verbatim."""
        self._status = status

    def _require_state(self, operation: str, *states: SandboxState) -> None:
        if self._status.state not in states:
            raise SandboxStateError(
                f"Cannot {operation} while sandbox is {self._status.state}",
                self._status.state,
                " | ".join(states),
            )

    def _unsupported(self, feature: str, message: str) -> FeatureNotSupportedError:
        return FeatureNotSupportedError(message, feature, self.provider)

    def _require_polyfill(self, feature: str, message: str) -> CommandPolyfill:
        if self._polyfill is None or self._capabilities.resolve(feature) is Capability.UNSUPPORTED:
            raise self._unsupported(feature, message)
        return self._polyfill

    def _translate_error(
        self,
        exc: BaseException,
        operation: str,
        command: str | None = None,
    ) -> SandboxException:
        """Map any exception onto the canonical taxonomy."""
        if isinstance(exc, SandboxException):
            return exc
        return CommandExecutionError(f"{operation} failed: {exc}", command or operation, cause=exc)

    def _capture(self, raw: bytes | None) -> tuple[str, bool]:
        """Decode one output stream, applying :attr:`max_output_bytes`."""
        data = raw or b""
        truncated = self.max_output_bytes is not None and len(data) > self.max_output_bytes
        if truncated:
            data = data[: self.max_output_bytes]
        return data.decode("utf-8", errors="replace"), truncated

    async def __aenter__(self) -> BaseSandboxAdapter:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # ==================== Lifecycle ====================

    @abstractmethod
    async def create(self, config: SandboxConfig) -> None: ...

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def delete(self) -> None: ...

    @abstractmethod
    async def get_info(self) -> SandboxInfo: ...

    @abstractmethod
    async def close(self) -> None: ...

    async def pause(self) -> None:
        raise self._unsupported("pause", "Pause not supported by this provider")

    async def resume(self) -> None:
        raise self._unsupported("resume", "Resume not supported by this provider")

    async def renew_expiration(self, additional_seconds: int) -> None:
        raise self._unsupported(
            "renew_expiration", "Sandbox expiration renewal not supported by this provider"
        )

    async def wait_until_ready(
        self,
        timeout_ms: int = DEFAULT_READY_TIMEOUT_MS,
        *,
        interval_ms: int = DEFAULT_READY_INTERVAL_MS,
    ) -> None:
        """Poll :meth:`ping` at a fixed interval until it succeeds.

        Raises:
            ReadyTimeoutError: Once *timeout_ms* of wall-clock time has passed
                without a successful ping.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while True:
            if await self.ping():
                return
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ReadyTimeoutError(self.id, timeout_ms)
            await asyncio.sleep(min(interval_ms / 1000, remaining))

    # ==================== Command execution ====================

    @abstractmethod
    async def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        """Run *command* and capture its output (the execution primitive)."""

    async def execute_stream(
        self,
        command: str,
        handlers: StreamHandlers,
        options: ExecuteOptions | None = None,
    ) -> None:
        """Buffered fallback: one ``execute``, then one callback per channel."""
        try:
            result = await self.execute(command, options)
        except Exception as exc:
            error = self._translate_error(exc, "execute_stream", command)
            if handlers.on_error is not None:
                await _invoke(handlers.on_error, error)
            if error is exc:
                raise
            raise error from exc

        if handlers.on_stdout is not None and result.stdout:
            await _invoke(handlers.on_stdout, OutputMessage(text=result.stdout))
        if handlers.on_stderr is not None and result.stderr:
            await _invoke(handlers.on_stderr, OutputMessage(text=result.stderr, is_error=True))
        if handlers.on_complete is not None:
            await _invoke(handlers.on_complete, result)

    async def execute_background(
        self,
        command: str,
        options: ExecuteOptions | None = None,
    ) -> BackgroundSession:
        raise self._unsupported(
            "execute_background", "Background execution not supported by this provider"
        )

    async def interrupt(self, session_id: str) -> None:
        raise self._unsupported("interrupt", "Command interruption not supported by this provider")

    # ==================== Filesystem ====================

    async def read_files(self, paths: Sequence[str], *, range: str | None = None) -> list[FileReadResult]:
        """Read files, optionally only the byte *range* ``"start-end"`` of each."""
        engine = self._require_polyfill("read_files", "File read not supported by this provider")
        return await engine.read_files(paths, range)

    async def read_file_stream(self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield *path* chunk by chunk, fetching each only when requested.

        Built on this adapter's own :meth:`get_file_info` and ranged
        :meth:`read_files`, so native overrides of either are honoured.  When
        the size cannot be determined the whole file is read at once.
        """
        if not self.supports("read_file_stream"):
            raise self._unsupported("read_file_stream", "File stream read not supported by this provider")
        if chunk_size < 1:
            raise InvalidArgumentError("chunk_size must be positive", "chunk_size", chunk_size)

        size: int | None = None
        if self.supports("get_file_info"):
            try:
                info = await self.get_file_info([path])
            except SandboxException as exc:
                logger.debug("read_file_stream: size lookup for %s failed: %s", path, exc)
            else:
                if path in info:
                    size = info[path].size

        if size is None:
            yield await self._read_one(path)
            return
        for offset in range(0, size, chunk_size):
            yield await self._read_one(path, f"{offset}-{min(offset + chunk_size, size)}")

    async def _read_one(self, path: str, byte_range: str | None = None) -> bytes:
        (result,) = await self.read_files([path], range=byte_range)
        if result.error is not None:
            raise result.error
        return result.content

    async def write_files(
        self,
        entries: Sequence[FileWriteEntry | Mapping[str, Any]],
    ) -> list[FileWriteResult]:
        engine = self._require_polyfill("write_files", "File write not supported by this provider")
        return await engine.write_files([_coerce(FileWriteEntry, e) for e in entries])

    async def write_file_stream(self, path: str, stream: AsyncIterable[bytes]) -> int:
        """Drain *stream* into memory and write it with a single ``write_files`` call."""
        data = await async_iterable_to_bytes(stream)
        (result,) = await self.write_files([FileWriteEntry(path=path, data=data)])
        if result.error is not None:
            raise result.error
        return result.bytes_written

    async def delete_files(self, paths: Sequence[str]) -> list[FileDeleteResult]:
        engine = self._require_polyfill("delete_files", "File delete not supported by this provider")
        return await engine.delete_files(paths)

    async def move_files(self, entries: Sequence[MoveEntry | Mapping[str, Any]]) -> list[MoveResult]:
        engine = self._require_polyfill("move_files", "File move not supported by this provider")
        return await engine.move_files([_coerce(MoveEntry, e) for e in entries])

    async def replace_content(
        self,
        entries: Sequence[ContentReplaceEntry | Mapping[str, Any]],
    ) -> list[ContentReplaceResult]:
        engine = self._require_polyfill(
            "replace_content", "Content replace not supported by this provider"
        )
        return await engine.replace_content([_coerce(ContentReplaceEntry, e) for e in entries])

    # ==================== Directories ====================

    async def create_directories(
        self,
        paths: Sequence[str],
        *,
        mode: int | None = None,
        owner: str | None = None,
        group: str | None = None,
    ) -> None:
        engine = self._require_polyfill(
            "create_directories", "Directory creation not supported by this provider"
        )
        await engine.create_directories(paths, mode=mode, owner=owner, group=group)

    async def delete_directories(
        self,
        paths: Sequence[str],
        *,
        recursive: bool = False,
        force: bool = False,
    ) -> None:
        engine = self._require_polyfill(
            "delete_directories", "Directory deletion not supported by this provider"
        )
        await engine.delete_directories(paths, recursive=recursive, force=force)

    async def list_directory(self, path: str) -> list[DirectoryEntry]:
        engine = self._require_polyfill(
            "list_directory", "Directory listing not supported by this provider"
        )
        return await engine.list_directory(path)

    # ==================== Metadata ====================

    async def get_file_info(self, paths: Sequence[str]) -> dict[str, FileInfo]:
        engine = self._require_polyfill("get_file_info", "File info not supported by this provider")
        return await engine.get_file_info(paths)

    async def set_permissions(self, entries: Sequence[PermissionEntry | Mapping[str, Any]]) -> None:
        engine = self._require_polyfill(
            "set_permissions", "Permission setting not supported by this provider"
        )
        await engine.set_permissions([_coerce(PermissionEntry, e) for e in entries])

    # ==================== Search ====================

    async def search(self, pattern: str, path: str | None = None) -> list[SearchResult]:
        engine = self._require_polyfill("search", "File search not supported by this provider")
        return await engine.search(pattern, path)

    # ==================== Health ====================

    async def ping(self) -> bool:
        """Health check; never raises, any failure is ``False``."""
        if self._polyfill is None:
            return False
        return await self._polyfill.ping()

    async def get_metrics(self) -> SandboxMetrics:
        engine = self._require_polyfill("get_metrics", "Metrics not supported by this provider")
        return await engine.get_metrics()
