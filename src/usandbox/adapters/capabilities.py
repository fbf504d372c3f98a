"""Capability table — per-adapter map of optional operations to their source.

Built once when an adapter is constructed.  Each optional operation resolves
to one of three sources, in this order of preference:

1. ``NATIVE`` — the concrete adapter overrides the operation.
2. ``POLYFILL`` — the command polyfill provides it, or the base adapter
   builds it from ``execute`` (buffered streaming) or from another optional
   operation (chunked reads over ``read_files``).
3. ``UNSUPPORTED`` — calling it raises
   :class:`~usandbox.errors.FeatureNotSupportedError`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

POLYFILLABLE_OPERATIONS: tuple[str, ...] = (
    "read_files",
    "write_files",
    "delete_files",
    "move_files",
    "replace_content",
    "list_directory",
    "get_file_info",
    "create_directories",
    "delete_directories",
    "set_permissions",
    "search",
    "ping",
    "get_metrics",
)
"""Operations the command polyfill can synthesize."""

BUFFERED_OPERATIONS: tuple[str, ...] = ("execute_stream",)
"""Operations that degrade to a buffered ``execute`` and so are always available."""

DERIVED_OPERATIONS: dict[str, str] = {"read_file_stream": "read_files"}
"""Operations built on another optional operation; available whenever it is."""

NATIVE_ONLY_OPERATIONS: tuple[str, ...] = (
    "pause",
    "resume",
    "renew_expiration",
    "execute_background",
    "interrupt",
)
"""Operations with no generic shell polyfill."""

OPTIONAL_OPERATIONS: tuple[str, ...] = (
    *POLYFILLABLE_OPERATIONS,
    *BUFFERED_OPERATIONS,
    *DERIVED_OPERATIONS,
    *NATIVE_ONLY_OPERATIONS,
)


class Capability(str, Enum):
    NATIVE = "native"
    POLYFILL = "polyfill"
    UNSUPPORTED = "unsupported"


class CapabilityTable(BaseModel):
    """Resolved capability source for every optional operation."""

    entries: dict[str, Capability]

    @classmethod
    def build(cls, adapter_cls: type, base_cls: type, *, polyfill_available: bool) -> CapabilityTable:
        """Classify each optional operation of *adapter_cls*.

        An operation counts as native when *adapter_cls* defines it anywhere
        below *base_cls* in its MRO.
        """
        entries: dict[str, Capability] = {}
        for name in OPTIONAL_OPERATIONS:
            if getattr(adapter_cls, name, None) is not getattr(base_cls, name, None):
                entries[name] = Capability.NATIVE
            elif name in BUFFERED_OPERATIONS:
                entries[name] = Capability.POLYFILL
            elif name in DERIVED_OPERATIONS:
                continue
            elif name in POLYFILLABLE_OPERATIONS and polyfill_available:
                entries[name] = Capability.POLYFILL
            else:
                entries[name] = Capability.UNSUPPORTED
        for name, source in DERIVED_OPERATIONS.items():
            if name in entries:
                continue
            supported = entries[source] is not Capability.UNSUPPORTED
            entries[name] = Capability.POLYFILL if supported else Capability.UNSUPPORTED
        return cls(entries=entries)

    def resolve(self, operation: str) -> Capability:
        """Return the source of *operation*; unknown names are unsupported."""
        return self.entries.get(operation, Capability.UNSUPPORTED)

    def supports(self, operation: str) -> bool:
        return self.resolve(operation) is not Capability.UNSUPPORTED

    def by_source(self, source: Capability) -> list[str]:
        return sorted(name for name, cap in self.entries.items() if cap is source)
