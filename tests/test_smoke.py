"""Smoke test to verify the project scaffolding works."""

from __future__ import annotations


def test_import() -> None:
    import usandbox

    assert usandbox.__version__ == "0.1.0"


def test_cli_entrypoint() -> None:
    from usandbox.cli import main

    assert callable(main)


def test_adapter_imports() -> None:
    from usandbox.adapters import (
        BaseSandboxAdapter,
        DockerProviderAdapter,
        HttpSandboxAdapter,
        LocalProviderAdapter,
        MinimalProviderAdapter,
    )

    for adapter_cls in (DockerProviderAdapter, HttpSandboxAdapter, LocalProviderAdapter, MinimalProviderAdapter):
        assert issubclass(adapter_cls, BaseSandboxAdapter)


def test_lazy_import_from_usandbox() -> None:
    import usandbox

    assert usandbox.create_sandbox is not None
    assert "local" in usandbox.available_providers()
