"""Tests for ``usandbox exec``."""

from __future__ import annotations

import json
from unittest.mock import patch

from click.testing import CliRunner

from tests.fakes import FakeAdapter, fail, ok
from usandbox.cli import main
from usandbox.errors import ConnectionError
from usandbox.models import ExecuteResult


def _responder(command: str) -> ExecuteResult:
    if command == "echo PING":
        return ok("PING\n")
    if command == "false":
        return fail("", exit_code=3)
    return ok(f"ran: {command}\n")


class TestExecCommand:
    def test_prints_stdout(self) -> None:
        adapter = FakeAdapter(_responder)
        with patch("usandbox.cli_commands._runtime.create_sandbox", return_value=adapter) as factory:
            result = CliRunner().invoke(main, ["-p", "docker", "exec", "ls", "-la"])

        assert result.exit_code == 0, result.output
        assert "ran: ls -la" in result.output
        assert factory.call_args.args[0] == "docker"
        assert adapter.closed

    def test_passes_options(self) -> None:
        adapter = FakeAdapter(_responder)
        with patch("usandbox.cli_commands._runtime.create_sandbox", return_value=adapter):
            result = CliRunner().invoke(
                main,
                ["exec", "--cwd", "/work", "--timeout-ms", "500", "-e", "A=1", "-e", "B=x=y", "env"],
            )

        assert result.exit_code == 0, result.output
        options = adapter.executor.options[-1]
        assert adapter.executor.commands[-1] == "env"
        assert options is not None
        assert options.working_directory == "/work"
        assert options.timeout_ms == 500
        assert options.env == {"A": "1", "B": "x=y"}

    def test_bad_env(self) -> None:
        result = CliRunner().invoke(main, ["exec", "-e", "NOVALUE", "env"])
        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_exit_code_propagates(self) -> None:
        with patch("usandbox.cli_commands._runtime.create_sandbox", return_value=FakeAdapter(_responder)):
            result = CliRunner().invoke(main, ["exec", "false"])
        assert result.exit_code == 3

    def test_json(self) -> None:
        with patch("usandbox.cli_commands._runtime.create_sandbox", return_value=FakeAdapter(_responder)):
            result = CliRunner().invoke(main, ["exec", "--json", "whoami"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["stdout"] == "ran: whoami\n"
        assert data["exit_code"] == 0

    def test_canonical_error_exits_1(self) -> None:
        adapter = FakeAdapter(_responder)
        adapter.executor.queue(ok("PING\n"), ConnectionError("backend unreachable", "http://x"))
        with patch("usandbox.cli_commands._runtime.create_sandbox", return_value=adapter):
            result = CliRunner().invoke(main, ["exec", "ls"])
        assert result.exit_code == 1
        assert "backend unreachable" in result.output
        assert "CONNECTION_ERROR" in result.output
        assert adapter.closed

    def test_ready_timeout(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        cfg = tmp_path / "usandbox.yaml"
        cfg.write_text("ready_timeout_ms: 20\n")
        adapter = FakeAdapter(lambda command: fail("down"))
        with patch("usandbox.cli_commands._runtime.create_sandbox", return_value=adapter):
            result = CliRunner().invoke(main, ["-c", str(cfg), "exec", "ls"])
        assert result.exit_code == 1
        assert "did not become ready" in result.output


class TestGlobalOptions:
    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "usandbox" in result.output

    def test_config_error(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        cfg = tmp_path / "usandbox.yaml"
        cfg.write_text("ready_timeout_ms: -5\n")
        result = CliRunner().invoke(main, ["-c", str(cfg), "exec", "ls"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_unknown_provider(self) -> None:
        result = CliRunner().invoke(main, ["-p", "nope", "exec", "ls"])
        assert result.exit_code == 1
        assert "Unknown provider" in result.output

    def test_options_reach_factory(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        cfg = tmp_path / "usandbox.yaml"
        cfg.write_text("provider: http\noptions:\n  base_url: http://s\n  container_name: j\npolyfill:\n  timeout_ms: 900\n")
        with patch(
            "usandbox.cli_commands._runtime.create_sandbox", return_value=FakeAdapter(_responder)
        ) as factory:
            result = CliRunner().invoke(main, ["-c", str(cfg), "exec", "true"])
        assert result.exit_code == 0, result.output
        factory.assert_called_once_with(
            "http", base_url="http://s", container_name="j", polyfill_timeout_ms=900
        )
