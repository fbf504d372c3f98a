"""Canonical error taxonomy for sandbox adapters.

Every error raised across the adapter boundary is a :class:`SandboxException`
subclass.  Provider-native exceptions are wrapped, never passed through; the
original is kept as ``cause`` (and as ``__cause__``) so the full causal chain
survives both tracebacks and :meth:`SandboxException.to_dict` serialization.
"""

from __future__ import annotations

from typing import Any


class SandboxException(Exception):
    """Base error for every sandbox adapter failure."""

    code: str = "INTERNAL_UNKNOWN_ERROR"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def context(self) -> dict[str, Any]:
        """Structured fields specific to this error kind."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize into ``{kind, code, message, context, cause}``."""
        return {
            "kind": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "cause": _serialize_cause(self.cause),
        }


def _serialize_cause(cause: BaseException | None) -> dict[str, Any] | None:
    if cause is None:
        return None
    if isinstance(cause, SandboxException):
        return cause.to_dict()
    inner = cause.__cause__ or cause.__context__
    return {
        "kind": type(cause).__name__,
        "message": str(cause),
        "cause": _serialize_cause(inner),
    }


class ConnectionError(SandboxException):
    """The sandbox backend could not be reached."""

    code = "CONNECTION_ERROR"

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        *,
        cause: BaseException | None = None,
    ) -> None:
        self.endpoint = endpoint
        super().__init__(message, cause=cause)

    @property
    def context(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint}


class CommandExecutionError(SandboxException):
    """A command, or the provider call carrying it, failed."""

    code = "COMMAND_FAILED"

    def __init__(
        self,
        message: str,
        command: str,
        *,
        exit_code: int | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message, cause=cause)

    def combined_output(self) -> str:
        """Join the captured stdout and stderr, skipping empty streams."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    @property
    def context(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


class TimeoutError(SandboxException):
    """An operation did not finish within its time budget."""

    code = "TIMEOUT"

    def __init__(
        self,
        message: str,
        timeout_ms: int,
        operation: str,
        *,
        cause: BaseException | None = None,
    ) -> None:
        self.timeout_ms = timeout_ms
        self.operation = operation
        super().__init__(message, cause=cause)

    @property
    def context(self) -> dict[str, Any]:
        return {"operation": self.operation, "timeout_ms": self.timeout_ms}


class ReadyTimeoutError(TimeoutError):
    """The sandbox never answered a health check within the wait budget."""

    code = "READY_TIMEOUT"

    def __init__(self, sandbox_id: str, timeout_ms: int) -> None:
        self.sandbox_id = sandbox_id
        super().__init__(
            f"Sandbox {sandbox_id} did not become ready within {timeout_ms}ms",
            timeout_ms,
            "wait_until_ready",
        )

    @property
    def context(self) -> dict[str, Any]:
        return {**super().context, "sandbox_id": self.sandbox_id}


class FeatureNotSupportedError(SandboxException):
    """The provider neither implements nor can polyfill a capability."""

    code = "FEATURE_NOT_SUPPORTED"

    def __init__(self, message: str, feature: str, provider: str) -> None:
        self.feature = feature
        self.provider = provider
        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        return {"feature": self.feature, "provider": self.provider}


class SandboxStateError(SandboxException):
    """An operation was invoked in a lifecycle state that forbids it."""

    code = "INVALID_STATE"

    def __init__(self, message: str, current_state: str, expected_state: str) -> None:
        self.current_state = current_state
        self.expected_state = expected_state
        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        return {"current_state": self.current_state, "expected_state": self.expected_state}


class InvalidArgumentError(SandboxException):
    """A caller-supplied argument failed validation before any command ran."""

    code = "INVALID_ARGUMENT"

    def __init__(self, message: str, argument: str, value: Any = None) -> None:
        self.argument = argument
        self.value = value
        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        return {"argument": self.argument, "value": self.value}
