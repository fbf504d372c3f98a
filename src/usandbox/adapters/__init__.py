"""Sandbox adapters: the base contract, its capability table and the providers."""

from usandbox.adapters.base import BaseSandboxAdapter
from usandbox.adapters.capabilities import Capability, CapabilityTable
from usandbox.adapters.docker import DockerProviderAdapter
from usandbox.adapters.factory import available_providers, create_sandbox
from usandbox.adapters.http import HttpSandboxAdapter
from usandbox.adapters.local import LocalProviderAdapter
from usandbox.adapters.minimal import MinimalProviderAdapter, MinimalProviderConnection

__all__ = [
    "BaseSandboxAdapter",
    "Capability",
    "CapabilityTable",
    "DockerProviderAdapter",
    "HttpSandboxAdapter",
    "LocalProviderAdapter",
    "MinimalProviderAdapter",
    "MinimalProviderConnection",
    "available_providers",
    "create_sandbox",
]
