"""Configuration loading for the ``usandbox`` CLI and library users.

A settings file is YAML::

    provider: docker
    options:
      network_enabled: false
    sandbox:
      image: python:3.12-slim
      env:
        TOKEN: ${MY_TOKEN}
    polyfill:
      timeout_ms: 30000
    telemetry:
      enabled: true
      otlp_endpoint: http://localhost:4317
      console: false
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from usandbox.adapters.base import DEFAULT_READY_TIMEOUT_MS
from usandbox.models import SandboxConfig
from usandbox.polyfill import DEFAULT_CHUNK_SIZE

DEFAULT_CONFIG_FILE = "usandbox.yaml"
CONFIG_ENV_VAR = "USANDBOX_CONFIG"


class ConfigError(Exception):
    """Raised when a settings file fails parsing or validation."""


class PolyfillSettings(BaseModel):
    timeout_ms: int | None = Field(default=None, gt=0, description="Timeout applied to every polyfill command.")
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0, description="Window size for streamed reads.")


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    service_name: str = "usandbox"
    otlp_endpoint: str | None = None
    console: bool = Field(default=False, description="Also write finished spans to stderr as JSON.")


class Settings(BaseModel):
    """Top-level settings parsed from YAML."""

    provider: str = "local"
    options: dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the adapter.")
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    polyfill: PolyfillSettings = Field(default_factory=PolyfillSettings)
    ready_timeout_ms: int = Field(default=DEFAULT_READY_TIMEOUT_MS, gt=0)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    def adapter_options(self) -> dict[str, Any]:
        """Adapter keyword arguments, including the polyfill timeout."""
        options = dict(self.options)
        if self.polyfill.timeout_ms is not None:
            options.setdefault("polyfill_timeout_ms", self.polyfill.timeout_ms)
        return options


def resolve_config_path(path: str | Path | None = None) -> Path | None:
    """Pick the settings file: *path*, then ``$USANDBOX_CONFIG``, then ``./usandbox.yaml``."""
    if path is not None:
        return Path(path)
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def load_settings(path: str | Path | None = None) -> Settings:
    """Read YAML, interpolate env vars, and validate.

    Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
    using :func:`os.path.expandvars` before YAML parsing.  Without any
    settings file the defaults are returned.

    Raises:
        ConfigError: On unreadable files, YAML parse errors or schema
            validation failures.
    """
    resolved = resolve_config_path(path)
    if resolved is None:
        return Settings()

    try:
        raw = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {resolved}: {exc}") from exc

    expanded = os.path.expandvars(raw)

    try:
        data: Any = yaml.safe_load(expanded)
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error: {exc}") from exc

    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError("Settings YAML must be a mapping")

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
