"""CommandPolyfill — filesystem, search, health and metrics over ``execute``.

The engine synthesizes shell commands (see :mod:`usandbox.polyfill.commands`),
runs them through the owning adapter's execution primitive and parses their
output (see :mod:`usandbox.polyfill.parsers`).  It keeps no state besides a
non-owning reference to that adapter, so it can be re-created at will.

Batch operations issue one command per item, strictly sequentially, and
report a result per item in input order; a failing item never aborts the
rest of the batch.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from usandbox.errors import CommandExecutionError, InvalidArgumentError, SandboxException
from usandbox.models import (
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
    PermissionEntry,
    SandboxMetrics,
    SearchResult,
)
from usandbox.polyfill import commands, parsers
from usandbox.utils.codec import base64_to_bytes, bytes_to_text, payload_to_bytes, text_to_bytes
from usandbox.utils.telemetry import ATTR_EXIT_CODE, ATTR_TRUNCATED, get_tracer, operation_span

if TYPE_CHECKING:
    from usandbox.executor import ExecutionPrimitive

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
_RANGE_RE = re.compile(r"([0-9]+)-([0-9]*)")


def parse_range(value: str) -> tuple[int, int | None]:
    """Parse a ``"start-end"`` byte range; ``end`` may be omitted.

    Raises:
        InvalidArgumentError: If either bound is not a non-negative integer
            or ``start >= end``.
    """
    match = _RANGE_RE.fullmatch(value.strip())
    if match is None:
        raise InvalidArgumentError(f"Invalid range: {value!r}", "range", value)
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else None
    if end is not None and start >= end:
        raise InvalidArgumentError(
            f"Invalid range: start ({start}) must be less than end ({end})", "range", value
        )
    return start, end


class CommandPolyfill:
    """Implements the optional adapter capabilities using only ``execute``."""

    def __init__(self, executor: ExecutionPrimitive, *, timeout_ms: int | None = None) -> None:
        self._executor = executor
        self._timeout_ms = timeout_ms

    @property
    def timeout_ms(self) -> int | None:
        return self._timeout_ms

    # ------------------------------------------------------------------
    # Command plumbing
    # ------------------------------------------------------------------

    async def _run(self, command: str, operation: str, *, check: bool = True) -> ExecuteResult:
        """Execute *command*; with *check*, a non-zero exit code raises."""
        options = ExecuteOptions(timeout_ms=self._timeout_ms)
        logger.debug("polyfill %s: %s", operation, command.splitlines()[0] if command else "")

        with operation_span(
            _tracer,
            "usandbox.polyfill.command",
            provider=self._executor.provider,
            sandbox_id=self._executor.id,
            operation=operation,
        ) as span:
            try:
                result = await self._executor.execute(command, options)
            except SandboxException:
                raise
            except Exception as exc:
                raise CommandExecutionError(
                    f"{operation} failed: {exc}", command, cause=exc
                ) from exc
            span.set_attribute(ATTR_EXIT_CODE, result.exit_code)
            span.set_attribute(ATTR_TRUNCATED, result.truncated)

        if check and result.exit_code != 0:
            detail = result.stderr.strip() or result.stdout.strip() or f"exit code {result.exit_code}"
            raise CommandExecutionError(
                f"{operation} failed: {detail}",
                command,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    async def _run_for_data(self, command: str, operation: str) -> ExecuteResult:
        result = await self._run(command, operation)
        if result.truncated:
            raise CommandExecutionError(
                f"{operation} failed: output was truncated by the provider",
                command,
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result

    @staticmethod
    def _decode(result: ExecuteResult, command: str, operation: str) -> bytes:
        try:
            return base64_to_bytes(result.stdout)
        except ValueError as exc:
            raise CommandExecutionError(
                f"{operation} failed: {exc}",
                command,
                exit_code=result.exit_code,
                stderr=result.stderr,
                cause=exc,
            ) from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_file(self, path: str) -> bytes:
        command = commands.read_file(path)
        result = await self._run_for_data(command, "read_file")
        return self._decode(result, command, "read_file")

    async def read_file_range(self, path: str, start: int, end: int | None = None) -> bytes:
        if start < 0 or (end is not None and start >= end):
            raise InvalidArgumentError(f"Invalid range: {start}-{end}", "range", (start, end))
        command = commands.read_file_range(path, start, end)
        result = await self._run_for_data(command, "read_file_range")
        content = self._decode(result, command, "read_file_range")
        if end is not None and len(content) > end - start:
            raise CommandExecutionError(
                f"read_file_range failed: expected at most {end - start} bytes, got {len(content)}",
                command,
                exit_code=result.exit_code,
            )
        return content

    async def read_files(self, paths: Sequence[str], range: str | None = None) -> list[FileReadResult]:
        """Read each path (optionally a byte *range* of it).

        The range is validated once, before any command is issued.
        """
        bounds = parse_range(range) if range is not None else None
        results: list[FileReadResult] = []
        for path in paths:
            try:
                if bounds is None:
                    content = await self.read_file(path)
                else:
                    content = await self.read_file_range(path, *bounds)
                results.append(FileReadResult(path=path, content=content))
            except SandboxException as exc:
                logger.debug("read_files: %s failed: %s", path, exc)
                results.append(FileReadResult(path=path, error=exc))
        return results

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write_file(self, path: str, data: bytes) -> int:
        """Write *data* to *path*, creating parent directories; return bytes written."""
        command = commands.write_file(path, data)
        result = await self._run(command, "write_file")
        written = parsers.parse_size(result.stdout)
        if written is None:
            raise CommandExecutionError(
                "write_file failed: could not determine written size",
                command,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        if written != len(data):
            raise CommandExecutionError(
                f"write_file failed: wrote {written} bytes, expected {len(data)}",
                command,
                exit_code=result.exit_code,
            )
        return written

    async def write_text_file(self, path: str, text: str) -> int:
        return await self.write_file(path, text_to_bytes(text))

    async def write_payload(self, path: str, data: Any) -> int:
        """Write any supported payload; streams are drained into one buffer first."""
        try:
            payload = await payload_to_bytes(data)
        except TypeError as exc:
            raise InvalidArgumentError(str(exc), "data", type(data).__name__) from exc
        return await self.write_file(path, payload)

    async def write_files(self, entries: Sequence[FileWriteEntry]) -> list[FileWriteResult]:
        results: list[FileWriteResult] = []
        for entry in entries:
            try:
                written = await self.write_payload(entry.path, entry.data)
                results.append(FileWriteResult(path=entry.path, bytes_written=written))
            except SandboxException as exc:
                logger.debug("write_files: %s failed: %s", entry.path, exc)
                results.append(FileWriteResult(path=entry.path, error=exc))
        return results

    # ------------------------------------------------------------------
    # Delete / move / replace
    # ------------------------------------------------------------------

    async def delete_files(self, paths: Sequence[str]) -> list[FileDeleteResult]:
        results: list[FileDeleteResult] = []
        for path in paths:
            try:
                await self._run(commands.delete_file(path), "delete_file")
                results.append(FileDeleteResult(path=path, success=True))
            except SandboxException as exc:
                results.append(FileDeleteResult(path=path, success=False, error=exc))
        return results

    async def move_files(self, entries: Sequence[MoveEntry]) -> list[MoveResult]:
        results: list[MoveResult] = []
        for entry in entries:
            try:
                await self._run(commands.move_file(entry.source, entry.destination), "move_file")
                results.append(
                    MoveResult(source=entry.source, destination=entry.destination, success=True)
                )
            except SandboxException as exc:
                results.append(
                    MoveResult(
                        source=entry.source,
                        destination=entry.destination,
                        success=False,
                        error=exc,
                    )
                )
        return results

    async def replace_content(self, entries: Sequence[ContentReplaceEntry]) -> list[ContentReplaceResult]:
        """Read, substitute every literal occurrence in memory, rewrite.

        Files without an occurrence are left untouched.
        """
        results: list[ContentReplaceResult] = []
        for entry in entries:
            try:
                if not entry.old_content:
                    raise InvalidArgumentError("old_content must not be empty", "old_content", "")
                text = bytes_to_text(await self.read_file(entry.path))
                count = text.count(entry.old_content)
                if count:
                    await self.write_text_file(
                        entry.path, text.replace(entry.old_content, entry.new_content)
                    )
                results.append(ContentReplaceResult(path=entry.path, replacements=count))
            except SandboxException as exc:
                results.append(ContentReplaceResult(path=entry.path, error=exc))
        return results

    # ------------------------------------------------------------------
    # Directories & metadata
    # ------------------------------------------------------------------

    async def create_directories(
        self,
        paths: Sequence[str],
        *,
        mode: int | None = None,
        owner: str | None = None,
        group: str | None = None,
    ) -> None:
        for path in paths:
            await self._run(commands.create_directory(path, mode), "create_directory")
            if owner or group:
                await self._run(commands.change_owner(path, owner, group), "create_directory")

    async def delete_directories(
        self,
        paths: Sequence[str],
        *,
        recursive: bool = False,
        force: bool = False,
    ) -> None:
        for path in paths:
            await self._run(
                commands.delete_directory(path, recursive=recursive, force=force),
                "delete_directory",
            )

    async def list_directory(self, path: str) -> list[DirectoryEntry]:
        result = await self._run(commands.list_directory(path), "list_directory", check=False)
        if result.exit_code != 0:
            logger.debug("list_directory %s exited %s: %s", path, result.exit_code, result.stderr.strip())
        return parsers.parse_directory_listing(result.stdout, path)

    async def get_file_info(self, paths: Sequence[str]) -> dict[str, FileInfo]:
        """Stat each path; paths that do not exist are absent from the result."""
        info: dict[str, FileInfo] = {}
        for path in paths:
            result = await self._run(commands.stat_file(path), "get_file_info", check=False)
            if result.exit_code == commands.MISSING_EXIT_CODE:
                continue
            parsed = parsers.parse_stat(result.stdout, path) if result.exit_code == 0 else None
            if parsed is None:
                parsed = await self._file_info_fallback(path)
            if parsed is not None:
                info[path] = parsed
        return info

    async def _file_info_fallback(self, path: str) -> FileInfo | None:
        result = await self._run(commands.file_size(path), "get_file_info", check=False)
        size = parsers.parse_size(result.stdout) if result.exit_code == 0 else None
        if size is None:
            return None
        return FileInfo(path=path, size=size, is_file=True, is_directory=False)

    async def set_permissions(self, entries: Sequence[PermissionEntry]) -> None:
        for entry in entries:
            if entry.mode is not None:
                await self._run(commands.change_mode(entry.path, entry.mode), "set_permissions")
            if entry.owner or entry.group:
                await self._run(
                    commands.change_owner(entry.path, entry.owner, entry.group),
                    "set_permissions",
                )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, pattern: str, path: str | None = None) -> list[SearchResult]:
        root = path or "."
        result = await self._run(commands.search(pattern, root), "search", check=False)
        return parsers.parse_search_results(result.stdout, pattern, root)

    # ------------------------------------------------------------------
    # Health & metrics
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        try:
            result = await self._run(commands.ping(), "ping", check=False)
        except Exception as exc:
            logger.debug("ping failed: %s", exc)
            return False
        return result.exit_code == 0 and result.stdout.strip() == commands.PING_TOKEN

    async def get_metrics(self) -> SandboxMetrics:
        cpu_result = await self._run(commands.cpu_count(), "get_metrics")
        cpu_count = parsers.parse_cpu_count(cpu_result.stdout)
        if cpu_count is None:
            raise CommandExecutionError(
                "get_metrics failed: could not parse CPU count",
                commands.cpu_count(),
                exit_code=cpu_result.exit_code,
                stdout=cpu_result.stdout,
            )

        mem_result = await self._run(commands.memory_info(), "get_metrics")
        memory = parsers.parse_meminfo(mem_result.stdout)
        if memory is None:
            raise CommandExecutionError(
                "get_metrics failed: could not parse memory information",
                commands.memory_info(),
                exit_code=mem_result.exit_code,
                stdout=mem_result.stdout,
            )

        load_result = await self._run(commands.load_average(), "get_metrics", check=False)
        load = parsers.parse_load_average(load_result.stdout) if load_result.exit_code == 0 else None

        total_mib, used_mib = memory
        return SandboxMetrics(
            cpu_count=cpu_count,
            cpu_used_percentage=parsers.cpu_percentage(load, cpu_count),
            memory_total_mib=total_mib,
            memory_used_mib=used_mib,
        )
