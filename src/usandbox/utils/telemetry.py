"""Tracing for sandbox operations.

Adapters and the polyfill engine record spans through the OpenTelemetry API
only; until :func:`configure_telemetry` installs an SDK tracer provider those
spans are no-ops, so library users pay nothing for them.

Every polyfilled shell command becomes one ``usandbox.polyfill.command`` span
carrying the provider, the sandbox id, the operation name and, once the
command returns, its exit code and truncation flag::

    with operation_span(_tracer, "usandbox.polyfill.command",
                        provider="docker", sandbox_id="c1", operation="read_file") as span:
        ...
        span.set_attribute(ATTR_EXIT_CODE, 0)

Exporting needs the ``otel`` extra (``pip install usandbox[otel]``).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, TYPE_CHECKING

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]

logger = logging.getLogger(__name__)

ATTR_PROVIDER = "usandbox.provider"
ATTR_SANDBOX_ID = "usandbox.sandbox.id"
ATTR_OPERATION = "usandbox.operation"
ATTR_EXIT_CODE = "usandbox.exit_code"
ATTR_TRUNCATED = "usandbox.truncated"

_INSTRUMENTATION_NAME = "usandbox"
_INSTALL_HINT = "Install it with: pip install usandbox[otel]"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Tracer for *name*; a no-op until :func:`configure_telemetry` runs."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


@contextmanager
def operation_span(
    tracer: trace.Tracer,
    name: str,
    *,
    provider: str,
    sandbox_id: str,
    operation: str,
) -> Iterator[trace.Span]:
    """Open a span pre-populated with the adapter attributes."""
    with tracer.start_as_current_span(name) as span:
        span.set_attribute(ATTR_PROVIDER, provider)
        span.set_attribute(ATTR_SANDBOX_ID, sandbox_id)
        span.set_attribute(ATTR_OPERATION, operation)
        yield span


def configure_telemetry(
    *,
    service_name: str = _INSTRUMENTATION_NAME,
    otlp_endpoint: str | None = None,
    console: bool = False,
    console_stream: IO[str] | None = None,
) -> TracerProvider | None:
    """Install a tracer provider exporting sandbox spans.

    Spans go to the OTLP/gRPC collector at *otlp_endpoint* and, with
    *console*, as JSON to *console_stream* (stderr by default; stdout
    carries command and file output).  Call ``shutdown()`` on the returned
    provider before exiting so batched spans are flushed.

    Returns ``None`` without installing anything when no exporter is
    requested.

    Raises:
        ImportError: If the SDK, or the OTLP exporter when an endpoint is
            given, is not installed.
    """
    if otlp_endpoint is None and not console:
        logger.warning("telemetry enabled without an exporter; set otlp_endpoint or console")
        return None

    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        raise ImportError(f"opentelemetry-sdk is required for tracing. {_INSTALL_HINT}") from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if otlp_endpoint is not None:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
                OTLPSpanExporter,
            )
        except ImportError as exc:
            raise ImportError(
                f"opentelemetry-exporter-otlp is required for OTLP export. {_INSTALL_HINT}"
            ) from exc
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    if console:
        exporter = ConsoleSpanExporter(out=console_stream or sys.stderr)
        provider.add_span_processor(SimpleSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    logger.debug("telemetry: exporting spans as %s (otlp=%s, console=%s)", service_name, otlp_endpoint, console)
    return provider
