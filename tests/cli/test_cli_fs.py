"""Tests for ``usandbox fs`` against the host-local provider."""

from __future__ import annotations

import json
import shutil
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from usandbox.cli import main

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = [
    pytest.mark.skipif(shutil.which("base64") is None, reason="base64 utility not available"),
    pytest.mark.filterwarnings("ignore:LocalProviderAdapter executes commands:UserWarning"),
]


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def config(tmp_path: Path, workdir: Path) -> Path:
    cfg = tmp_path / "usandbox.yaml"
    cfg.write_text(f"provider: local\noptions:\n  working_directory: {workdir}\n")
    return cfg


def invoke(config: Path, *args: str):  # type: ignore[no-untyped-def]
    return CliRunner().invoke(main, ["-c", str(config), "fs", *args])


class TestFsCommands:
    def test_write_then_cat(self, config: Path, workdir: Path) -> None:
        result = invoke(config, "write", "notes/hello.txt", "--text", "hello world")
        assert result.exit_code == 0, result.output
        assert "Wrote 11 bytes" in result.output
        assert (workdir / "notes" / "hello.txt").read_text() == "hello world"

        result = invoke(config, "cat", "notes/hello.txt")
        assert result.exit_code == 0, result.output
        assert result.output == "hello world"

    def test_cat_range(self, config: Path, workdir: Path) -> None:
        (workdir / "digits.txt").write_text("0123456789")
        result = invoke(config, "cat", "digits.txt", "--range", "2-5")
        assert result.exit_code == 0, result.output
        assert result.output == "234"

    def test_cat_missing_file(self, config: Path) -> None:
        result = invoke(config, "cat", "absent.txt")
        assert result.exit_code == 1
        assert "COMMAND_FAILED" in result.output

    def test_write_from_file(self, config: Path, workdir: Path, tmp_path: Path) -> None:
        source = tmp_path / "blob.bin"
        source.write_bytes(bytes(range(256)))
        result = invoke(config, "write", "blob.bin", "--from-file", str(source))
        assert result.exit_code == 0, result.output
        assert (workdir / "blob.bin").read_bytes() == bytes(range(256))

    def test_write_requires_one_source(self, config: Path) -> None:
        result = invoke(config, "write", "x.txt")
        assert result.exit_code == 2
        assert "exactly one" in result.output

    def test_ls_json(self, config: Path, workdir: Path) -> None:
        (workdir / "a.txt").write_text("a")
        (workdir / "sub").mkdir()
        result = invoke(config, "ls", "--json")
        assert result.exit_code == 0, result.output
        entries = {e["name"]: e for e in json.loads(result.output)}
        assert entries["a.txt"]["is_file"] is True
        assert entries["sub"]["is_directory"] is True

    def test_rm(self, config: Path, workdir: Path) -> None:
        (workdir / "gone.txt").write_text("x")
        result = invoke(config, "rm", "gone.txt")
        assert result.exit_code == 0, result.output
        assert not (workdir / "gone.txt").exists()

        result = invoke(config, "rm", "gone.txt")
        assert result.exit_code == 1
        assert "failed" in result.output

    def test_find(self, config: Path, workdir: Path) -> None:
        (workdir / "src").mkdir()
        (workdir / "src" / "main.py").write_text("")
        (workdir / "README.md").write_text("")
        result = invoke(config, "find", "*.py", "--json")
        assert result.exit_code == 0, result.output
        assert [r["path"] for r in json.loads(result.output)] == ["./src/main.py"]

    def test_find_no_matches(self, config: Path) -> None:
        result = invoke(config, "find", "*.nothing")
        assert result.exit_code == 0, result.output
        assert "No matches." in result.output

    def test_cat_streams_in_configured_chunks(self, tmp_path: Path, workdir: Path) -> None:
        cfg = tmp_path / "chunked.yaml"
        cfg.write_text(
            f"provider: local\noptions:\n  working_directory: {workdir}\npolyfill:\n  chunk_size: 4\n"
        )
        (workdir / "digits.txt").write_text("0123456789")
        result = invoke(cfg, "cat", "digits.txt")
        assert result.exit_code == 0, result.output
        assert result.output == "0123456789"
