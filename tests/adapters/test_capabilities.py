"""Tests for the capability table."""

from __future__ import annotations

from tests.fakes import FakeAdapter, NativeAdapter
from usandbox.adapters.base import BaseSandboxAdapter
from usandbox.adapters.capabilities import (
    NATIVE_ONLY_OPERATIONS,
    OPTIONAL_OPERATIONS,
    POLYFILLABLE_OPERATIONS,
    Capability,
    CapabilityTable,
)


class TestBuild:
    def test_polyfill_adapter(self) -> None:
        table = CapabilityTable.build(FakeAdapter, BaseSandboxAdapter, polyfill_available=True)
        assert set(table.entries) == set(OPTIONAL_OPERATIONS)
        for name in POLYFILLABLE_OPERATIONS:
            assert table.resolve(name) is Capability.POLYFILL
        for name in NATIVE_ONLY_OPERATIONS:
            assert table.resolve(name) is Capability.UNSUPPORTED
        assert table.resolve("execute_stream") is Capability.POLYFILL
        assert table.resolve("read_file_stream") is Capability.POLYFILL

    def test_overrides_are_native(self) -> None:
        table = CapabilityTable.build(NativeAdapter, BaseSandboxAdapter, polyfill_available=True)
        assert table.resolve("pause") is Capability.NATIVE
        assert table.resolve("resume") is Capability.NATIVE
        assert table.resolve("ping") is Capability.NATIVE
        assert table.resolve("read_files") is Capability.NATIVE
        assert table.resolve("write_files") is Capability.POLYFILL

    def test_without_polyfill(self) -> None:
        table = CapabilityTable.build(NativeAdapter, BaseSandboxAdapter, polyfill_available=False)
        assert table.resolve("read_files") is Capability.NATIVE
        assert table.resolve("write_files") is Capability.UNSUPPORTED
        assert table.resolve("execute_stream") is Capability.POLYFILL

    def test_stream_follows_read_files(self) -> None:
        native = CapabilityTable.build(NativeAdapter, BaseSandboxAdapter, polyfill_available=False)
        assert native.resolve("read_file_stream") is Capability.POLYFILL
        bare = CapabilityTable.build(FakeAdapter, BaseSandboxAdapter, polyfill_available=False)
        assert bare.resolve("read_file_stream") is Capability.UNSUPPORTED

    def test_unknown_operation_is_unsupported(self) -> None:
        table = CapabilityTable.build(FakeAdapter, BaseSandboxAdapter, polyfill_available=True)
        assert table.resolve("teleport") is Capability.UNSUPPORTED
        assert not table.supports("teleport")

    def test_by_source(self) -> None:
        table = CapabilityTable.build(NativeAdapter, BaseSandboxAdapter, polyfill_available=True)
        assert table.by_source(Capability.NATIVE) == ["pause", "ping", "read_files", "resume"]
