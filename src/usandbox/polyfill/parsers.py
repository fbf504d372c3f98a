"""Tolerant, line-oriented parsers for polyfill command output.

The remote toolset is not guaranteed, so parsers never raise on odd input:
unparsable lines are skipped and unusable output yields an empty result
(or ``None`` for scalar values).
"""

from __future__ import annotations

import fnmatch
import logging
import posixpath
from datetime import datetime, timezone

from usandbox.models import DirectoryEntry, FileInfo, SearchResult

logger = logging.getLogger(__name__)


def join_path(directory: str, name: str) -> str:
    if directory.endswith("/"):
        return f"{directory}{name}"
    return f"{directory}/{name}"


def parse_directory_listing(output: str, directory: str) -> list[DirectoryEntry]:
    """Parse ``ls -1Ap`` output: one name per line, directories end with ``/``."""
    entries: list[DirectoryEntry] = []
    for raw in output.splitlines():
        line = raw.rstrip("\r")
        if not line or line in ("./", "../"):
            continue
        is_directory = line.endswith("/")
        name = line.rstrip("/") if is_directory else line
        if not name:
            continue
        entries.append(
            DirectoryEntry(
                name=name,
                path=join_path(directory, name),
                is_directory=is_directory,
                is_file=not is_directory,
            )
        )
    return entries


def parse_stat(output: str, path: str) -> FileInfo | None:
    """Parse one line of ``stat -c '%s|%F|%a|%U|%G|%Y'`` output."""
    line = output.strip().splitlines()[0] if output.strip() else ""
    parts = line.split("|")
    if len(parts) != 6:
        return None
    size_text, file_type, mode_text, owner, group, mtime_text = parts
    try:
        size = int(size_text)
    except ValueError:
        return None

    is_directory = file_type == "directory"
    mode = _parse_int(mode_text, base=8)
    mtime = _parse_int(mtime_text)
    return FileInfo(
        path=path,
        size=size,
        is_file="regular" in file_type,
        is_directory=is_directory,
        mode=mode,
        owner=owner or None,
        group=group or None,
        modified_at=datetime.fromtimestamp(mtime, tz=timezone.utc) if mtime is not None else None,
    )


def parse_size(output: str) -> int | None:
    """Parse a bare byte count such as ``wc -c`` prints."""
    text = output.strip()
    if not text:
        return None
    return _parse_int(text.split()[0])


def parse_search_results(output: str, pattern: str, root: str) -> list[SearchResult]:
    """Parse ``d <path>`` / ``f <path>`` lines, keeping only true matches.

    A result is kept only when its basename matches *pattern* (shell
    wildcard semantics) and its path lies under *root*.  Lines without a
    type prefix are treated as files.
    """
    results: list[SearchResult] = []
    seen: set[str] = set()
    for raw in output.splitlines():
        line = raw.rstrip("\r")
        if not line:
            continue
        kind, sep, rest = line.partition(" ")
        if sep and kind in ("d", "f"):
            path, is_file = rest, kind == "f"
        else:
            path, is_file = line, True
        if not path or path in seen:
            continue
        if not fnmatch.fnmatchcase(posixpath.basename(path.rstrip("/")), pattern):
            continue
        if not is_under(path, root):
            continue
        seen.add(path)
        results.append(SearchResult(path=path, is_file=is_file))
    return results


def is_under(path: str, root: str) -> bool:
    if root in ("", "."):
        return not path.startswith("/") or path.startswith("./")
    normalized_root = root.rstrip("/") or "/"
    if normalized_root == "/":
        return path.startswith("/")
    return path == normalized_root or path.startswith(normalized_root + "/")


def parse_cpu_count(output: str) -> int | None:
    count = parse_size(output)
    if count is None or count < 1:
        return None
    return count


def parse_meminfo(output: str) -> tuple[int, int] | None:
    """Return ``(total_mib, used_mib)`` from ``/proc/meminfo`` text.

    Used memory is ``MemTotal - MemAvailable``, falling back to
    ``MemFree`` on kernels that do not report ``MemAvailable``.
    """
    values: dict[str, int] = {}
    for line in output.splitlines():
        key, sep, rest = line.partition(":")
        if not sep:
            continue
        number = _parse_int(rest.strip().split()[0]) if rest.strip() else None
        if number is not None:
            values[key.strip()] = number

    total_kb = values.get("MemTotal")
    if total_kb is None:
        return None
    available_kb = values.get("MemAvailable", values.get("MemFree"))
    if available_kb is None:
        return None
    total_mib = total_kb // 1024
    used_mib = max(total_kb - available_kb, 0) // 1024
    return total_mib, used_mib


def parse_load_average(output: str) -> float | None:
    """Return the 1-minute load average from ``/proc/loadavg`` text."""
    fields = output.split()
    if not fields:
        return None
    try:
        return float(fields[0])
    except ValueError:
        return None


def cpu_percentage(load: float | None, cpu_count: int) -> float:
    """Approximate CPU utilization as 1-minute load per core, clamped to 0-100."""
    if load is None or cpu_count < 1:
        return 0.0
    return round(min(max(load / cpu_count * 100.0, 0.0), 100.0), 2)


def _parse_int(text: str, base: int = 10) -> int | None:
    try:
        return int(text.strip(), base)
    except ValueError:
        logger.debug("Ignoring unparsable integer %r", text)
        return None
