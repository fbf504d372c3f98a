"""usandbox — one asynchronous interface to heterogeneous sandboxes."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from usandbox.adapters.base import BaseSandboxAdapter as BaseSandboxAdapter
    from usandbox.adapters.factory import available_providers as available_providers
    from usandbox.adapters.factory import create_sandbox as create_sandbox

_LAZY_EXPORTS = {
    "BaseSandboxAdapter": "usandbox.adapters.base",
    "create_sandbox": "usandbox.adapters.factory",
    "available_providers": "usandbox.adapters.factory",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'usandbox' has no attribute {name!r}")
