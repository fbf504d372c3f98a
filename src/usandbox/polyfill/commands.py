"""Shell command builders for the polyfill engine.

Every value interpolated into a command goes through :func:`quote`
(``shlex.quote``: single-quote wrapping with embedded quotes substituted).
Binary payloads never appear as raw bytes: they travel as base64 text inside
a heredoc whose delimiter cannot occur in the base64 alphabet.

Commands target POSIX ``sh`` with GNU coreutils or BusyBox.
"""

from __future__ import annotations

import posixpath
import shlex

from usandbox.utils.codec import bytes_to_base64, wrap_base64

PING_TOKEN = "PING"
HEREDOC_DELIMITER = "__USANDBOX_EOF__"
STAT_FORMAT = "%s|%F|%a|%U|%G|%Y"
MISSING_EXIT_CODE = 44
"""Exit status of :func:`stat_file` when the path does not exist."""


def quote(value: str) -> str:
    return shlex.quote(value)


def parent_directory(path: str) -> str:
    """Return the parent of *path*, or ``""`` for bare names and ``/``."""
    parent = posixpath.dirname(path.rstrip("/"))
    if parent in ("", "/", "."):
        return ""
    return parent


def _with_parent(path: str, command: str) -> str:
    parent = parent_directory(path)
    if not parent:
        return command
    return f"mkdir -p -- {quote(parent)} && {command}"


def read_file(path: str) -> str:
    return f"base64 {quote(path)}"


def read_file_range(path: str, start: int, end: int | None = None) -> str:
    """Extract ``[start, end)`` (or ``[start, EOF)``) without reading the rest."""
    q = quote(path)
    extract = f"tail -c +{start + 1} {q}"
    if end is not None:
        extract += f" | head -c {end - start}"
    return f"test -r {q} && {extract} | base64"


def write_file(path: str, data: bytes) -> str:
    """Decode a base64 heredoc into *path* and echo the resulting byte count."""
    q = quote(path)
    body = "\n".join(wrap_base64(bytes_to_base64(data)))
    command = f"base64 -d > {q} <<'{HEREDOC_DELIMITER}' && wc -c < {q}"
    script = _with_parent(path, command)
    if body:
        return f"{script}\n{body}\n{HEREDOC_DELIMITER}"
    return f"{script}\n{HEREDOC_DELIMITER}"


def delete_file(path: str) -> str:
    return f"rm -- {quote(path)}"


def move_file(source: str, destination: str) -> str:
    return _with_parent(destination, f"mv -- {quote(source)} {quote(destination)}")


def create_directory(path: str, mode: int | None = None) -> str:
    mode_flag = f" -m {mode:o}" if mode is not None else ""
    return f"mkdir -p{mode_flag} -- {quote(path)}"


def delete_directory(path: str, *, recursive: bool = False, force: bool = False) -> str:
    q = quote(path)
    if recursive:
        return f"rm -{'rf' if force else 'r'} -- {q}"
    if force:
        return f"[ ! -e {q} ] || rmdir -- {q}"
    return f"rmdir -- {q}"


def change_mode(path: str, mode: int) -> str:
    return f"chmod {mode:o} -- {quote(path)}"


def change_owner(path: str, owner: str | None, group: str | None) -> str:
    """``chown`` for an owner (optionally with group), ``chgrp`` for a group only."""
    if owner:
        spec = f"{owner}:{group}" if group else owner
        return f"chown {quote(spec)} -- {quote(path)}"
    if group:
        return f"chgrp {quote(group)} -- {quote(path)}"
    raise ValueError("change_owner requires an owner or a group")


def list_directory(path: str) -> str:
    return f"ls -1Ap -- {quote(path)}"


def stat_file(path: str) -> str:
    """``stat`` *path*, exiting with :data:`MISSING_EXIT_CODE` when it does not exist.

    Existence is decided by ``test`` rather than by parsing ``stat`` error
    text, which varies with the locale.
    """
    q = quote(path)
    return (
        f"if [ -e {q} ] || [ -L {q} ]; then stat -c {quote(STAT_FORMAT)} -- {q}; "
        f"else exit {MISSING_EXIT_CODE}; fi"
    )


def file_size(path: str) -> str:
    return f"wc -c < {quote(path)}"


def search(pattern: str, root: str) -> str:
    """Find entries named *pattern* under *root*, one ``d <path>``/``f <path>`` per line."""
    q_root = quote(root)
    q_pat = quote(pattern)
    return (
        f"find {q_root} -name {q_pat} -type d -exec printf 'd %s\\n' {{}} + 2>/dev/null; "
        f"find {q_root} -name {q_pat} ! -type d -exec printf 'f %s\\n' {{}} + 2>/dev/null"
    )


def ping() -> str:
    return f"echo {PING_TOKEN}"


def cpu_count() -> str:
    return "nproc 2>/dev/null || grep -c ^processor /proc/cpuinfo"


def memory_info() -> str:
    return "cat /proc/meminfo"


def load_average() -> str:
    return "cat /proc/loadavg"
