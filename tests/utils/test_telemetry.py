"""Tests for OpenTelemetry tracing helpers."""

from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry import trace

from usandbox.utils.telemetry import (
    _INSTRUMENTATION_NAME,
    ATTR_EXIT_CODE,
    ATTR_OPERATION,
    ATTR_PROVIDER,
    ATTR_SANDBOX_ID,
    configure_telemetry,
    get_tracer,
    operation_span,
)


class TestGetTracer:
    def test_returns_tracer(self) -> None:
        tracer = get_tracer("test.module")
        assert isinstance(tracer, trace.Tracer)

    def test_default_name(self) -> None:
        assert _INSTRUMENTATION_NAME == "usandbox"
        assert isinstance(get_tracer(), trace.Tracer)


class TestOperationSpan:
    def test_sets_adapter_attributes(self) -> None:
        span = MagicMock()
        tracer = MagicMock()
        tracer.start_as_current_span.return_value.__enter__.return_value = span

        with operation_span(
            tracer, "usandbox.polyfill.command", provider="docker", sandbox_id="c1", operation="ping"
        ) as active:
            active.set_attribute(ATTR_EXIT_CODE, 0)

        tracer.start_as_current_span.assert_called_once_with("usandbox.polyfill.command")
        span.set_attribute.assert_any_call(ATTR_PROVIDER, "docker")
        span.set_attribute.assert_any_call(ATTR_SANDBOX_ID, "c1")
        span.set_attribute.assert_any_call(ATTR_OPERATION, "ping")
        span.set_attribute.assert_any_call(ATTR_EXIT_CODE, 0)

    def test_noop_without_sdk(self) -> None:
        """Without SDK configured, spans accept attributes silently."""
        with operation_span(
            get_tracer("test.noop"), "test", provider="local", sandbox_id="x", operation="read_file"
        ) as span:
            span.set_attribute("key", "value")


class TestConfigureTelemetry:
    def test_without_exporter_installs_nothing(self, caplog: pytest.LogCaptureFixture) -> None:
        with patch.object(trace, "set_tracer_provider") as set_provider, caplog.at_level("WARNING"):
            assert configure_telemetry() is None
        set_provider.assert_not_called()
        assert "without an exporter" in caplog.text

    def test_raises_without_sdk(self) -> None:
        with patch.dict("sys.modules", {"opentelemetry.sdk.resources": None}):
            with pytest.raises(ImportError, match="usandbox\\[otel\\]"):
                configure_telemetry(console=True)

    def test_otlp_raises_without_exporter(self) -> None:
        pytest.importorskip("opentelemetry.sdk.trace")
        with patch.dict(
            "sys.modules",
            {"opentelemetry.exporter.otlp.proto.grpc.trace_exporter": None},
        ):
            with pytest.raises(ImportError, match="opentelemetry-exporter-otlp"):
                configure_telemetry(otlp_endpoint="http://localhost:4317")

    def test_console_spans_stay_off_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        pytest.importorskip("opentelemetry.sdk.trace")
        with patch.object(trace, "set_tracer_provider") as set_provider:
            provider = configure_telemetry(service_name="usandbox-test", console=True)
        assert provider is not None
        set_provider.assert_called_once_with(provider)

        with operation_span(
            provider.get_tracer("test"), "usandbox.polyfill.command",
            provider="local", sandbox_id="s1", operation="ping",
        ):
            pass
        provider.shutdown()

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "usandbox.polyfill.command" in captured.err
        assert "usandbox-test" in captured.err

    def test_console_stream_override(self) -> None:
        pytest.importorskip("opentelemetry.sdk.trace")
        stream = io.StringIO()
        with patch.object(trace, "set_tracer_provider"):
            provider = configure_telemetry(console=True, console_stream=stream)
        assert provider is not None
        with provider.get_tracer("test").start_as_current_span("usandbox.test.span"):
            pass
        provider.shutdown()
        assert "usandbox.test.span" in stream.getvalue()


class TestAttributeConstants:
    def test_constants_are_namespaced(self) -> None:
        for name in (ATTR_PROVIDER, ATTR_SANDBOX_ID, ATTR_OPERATION, ATTR_EXIT_CODE):
            assert name.startswith("usandbox.")
