"""Tests for the canonical error taxonomy."""

from __future__ import annotations

import builtins

from usandbox.errors import (
    CommandExecutionError,
    ConnectionError,
    FeatureNotSupportedError,
    InvalidArgumentError,
    ReadyTimeoutError,
    SandboxException,
    SandboxStateError,
    TimeoutError,
)


class TestCodes:
    def test_each_kind_has_its_code(self) -> None:
        assert SandboxException("x").code == "INTERNAL_UNKNOWN_ERROR"
        assert ConnectionError("x").code == "CONNECTION_ERROR"
        assert CommandExecutionError("x", "ls").code == "COMMAND_FAILED"
        assert TimeoutError("x", 10, "op").code == "TIMEOUT"
        assert ReadyTimeoutError("s", 10).code == "READY_TIMEOUT"
        assert FeatureNotSupportedError("x", "pause", "p").code == "FEATURE_NOT_SUPPORTED"
        assert SandboxStateError("x", "Paused", "Running").code == "INVALID_STATE"
        assert InvalidArgumentError("x", "range").code == "INVALID_ARGUMENT"

    def test_all_are_sandbox_exceptions(self) -> None:
        assert issubclass(ReadyTimeoutError, TimeoutError)
        assert issubclass(TimeoutError, SandboxException)
        assert not issubclass(ConnectionError, builtins.ConnectionError)


class TestCommandExecutionError:
    def test_context(self) -> None:
        err = CommandExecutionError("failed", "ls /x", exit_code=2, stdout="", stderr="no such dir")
        assert err.context == {
            "command": "ls /x",
            "exit_code": 2,
            "stdout": "",
            "stderr": "no such dir",
        }

    def test_combined_output_skips_empty_streams(self) -> None:
        assert CommandExecutionError("f", "c", stdout="out", stderr="err").combined_output() == "out\nerr"
        assert CommandExecutionError("f", "c", stderr="err").combined_output() == "err"
        assert CommandExecutionError("f", "c").combined_output() == ""


class TestReadyTimeoutError:
    def test_message_and_context(self) -> None:
        err = ReadyTimeoutError("sbx-1", 5000)
        assert str(err) == "Sandbox sbx-1 did not become ready within 5000ms"
        assert err.operation == "wait_until_ready"
        assert err.context == {"operation": "wait_until_ready", "timeout_ms": 5000, "sandbox_id": "sbx-1"}


class TestCauseChain:
    def test_cause_sets_dunder_cause(self) -> None:
        root = OSError("disk full")
        err = CommandExecutionError("write failed", "cat > f", cause=root)
        assert err.cause is root
        assert err.__cause__ is root

    def test_to_dict_serializes_nested_chain(self) -> None:
        root = ValueError("bad byte")
        middle = CommandExecutionError("decode failed", "base64 f", cause=root)
        top = ConnectionError("lost", "http://h", cause=middle)

        data = top.to_dict()
        assert data["kind"] == "ConnectionError"
        assert data["code"] == "CONNECTION_ERROR"
        assert data["message"] == "lost"
        assert data["context"] == {"endpoint": "http://h"}
        assert data["cause"]["kind"] == "CommandExecutionError"
        assert data["cause"]["context"]["command"] == "base64 f"
        assert data["cause"]["cause"] == {"kind": "ValueError", "message": "bad byte", "cause": None}

    def test_foreign_cause_follows_its_own_chain(self) -> None:
        try:
            try:
                raise KeyError("inner")
            except KeyError as inner:
                raise RuntimeError("outer") from inner
        except RuntimeError as outer:
            err = SandboxException("wrapped", cause=outer)

        cause = err.to_dict()["cause"]
        assert cause["kind"] == "RuntimeError"
        assert cause["cause"]["kind"] == "KeyError"

    def test_no_cause(self) -> None:
        assert FeatureNotSupportedError("nope", "pause", "minimal").to_dict()["cause"] is None
