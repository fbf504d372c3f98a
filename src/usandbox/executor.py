"""ExecutionPrimitive protocol — the one operation every provider must supply."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from usandbox.models import ExecuteOptions, ExecuteResult


@runtime_checkable
class ExecutionPrimitive(Protocol):
    """Runs one shell command in a sandbox and captures its output.

    Implementations must not rely on working directory or environment
    persisting between calls; callers pass both explicitly through
    :class:`~usandbox.models.ExecuteOptions`.
    """

    @property
    def id(self) -> str:
        """Identifier of the sandbox the command runs in."""
        ...

    @property
    def provider(self) -> str:
        """Short provider name (``"docker"``, ``"local"``, ...)."""
        ...

    async def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        """Run *command* and return its captured output."""
        ...
