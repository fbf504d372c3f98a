"""Provider factory — build an adapter from a provider name and options."""

from __future__ import annotations

from typing import Any

from usandbox.adapters.base import BaseSandboxAdapter
from usandbox.adapters.docker import DockerProviderAdapter
from usandbox.adapters.http import HttpSandboxAdapter
from usandbox.adapters.local import LocalProviderAdapter
from usandbox.adapters.minimal import MinimalProviderAdapter
from usandbox.errors import InvalidArgumentError

_PROVIDERS: dict[str, type[BaseSandboxAdapter]] = {
    MinimalProviderAdapter.provider: MinimalProviderAdapter,
    LocalProviderAdapter.provider: LocalProviderAdapter,
    DockerProviderAdapter.provider: DockerProviderAdapter,
    HttpSandboxAdapter.provider: HttpSandboxAdapter,
}


def available_providers() -> list[str]:
    return sorted(_PROVIDERS)


def create_sandbox(provider: str, **options: Any) -> BaseSandboxAdapter:
    """Instantiate the adapter registered as *provider*.

    Raises:
        InvalidArgumentError: If *provider* is unknown or rejects *options*.
    """
    try:
        adapter_cls = _PROVIDERS[provider]
    except KeyError:
        raise InvalidArgumentError(
            f"Unknown provider: {provider} (available: {', '.join(available_providers())})",
            "provider",
            provider,
        ) from None

    try:
        return adapter_cls(**options)
    except TypeError as exc:
        raise InvalidArgumentError(
            f"Invalid options for provider {provider}: {exc}", "options", sorted(options)
        ) from exc
