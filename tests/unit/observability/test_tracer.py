"""
Unit tests for tracer protocol and implementations.

Tests for:
- Tracer Protocol (runtime_checkable)
- NullTracer class
- OpenTelemetryTracer class
- MockTracer class
- create_tracer() factory function
"""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind

from livequery.observability import (
    ATTR_DATABASE,
    ATTR_ERROR_TYPE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)


class TestTracerProtocol:
    """Tests for Tracer protocol."""

    def test_null_tracer_implements_protocol(self):
        assert isinstance(NullTracer(), Tracer)

    def test_otel_tracer_implements_protocol(self):
        assert isinstance(OpenTelemetryTracer(__name__), Tracer)

    def test_mock_tracer_implements_protocol(self):
        assert isinstance(MockTracer(), Tracer)


class TestNullTracer:
    """Tests for NullTracer."""

    def test_span_yields_none(self):
        tracer = NullTracer()
        with tracer.span("operation", {"key": "value"}) as span:
            assert span is None

    def test_span_with_kind_yields_none(self):
        with NullTracer().span_with_kind("operation", SpanKindEnum.CLIENT) as span:
            assert span is None

    def test_disabled(self):
        assert NullTracer().enabled is False


class TestOpenTelemetryTracer:
    """Tests for OpenTelemetryTracer."""

    def test_enabled(self):
        assert OpenTelemetryTracer(__name__).enabled is True

    def test_span_kind_is_mapped(self):
        """Spans are exported with the OpenTelemetry kind."""
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))

        tracer = OpenTelemetryTracer(__name__)
        tracer._tracer = provider.get_tracer(__name__)

        with tracer.span_with_kind("livequery.listen", SpanKindEnum.CLIENT, {ATTR_DATABASE: "db"}):
            pass

        (span,) = exporter.get_finished_spans()
        assert span.name == "livequery.listen"
        assert span.kind == SpanKind.CLIENT
        assert span.attributes[ATTR_DATABASE] == "db"

    def test_error_type_is_recorded(self):
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))

        tracer = OpenTelemetryTracer(__name__)
        tracer._tracer = provider.get_tracer(__name__)

        with pytest.raises(ConnectionError):
            with tracer.span("livequery.listen"):
                raise ConnectionError("reset")

        (span,) = exporter.get_finished_spans()
        assert span.kind == SpanKind.INTERNAL
        assert span.attributes[ATTR_ERROR_TYPE] == "ConnectionError"


class TestMockTracer:
    """Tests for MockTracer."""

    def test_records_spans(self):
        tracer = MockTracer()
        with tracer.span("first", {"a": 1}):
            pass
        with tracer.span_with_kind("second", SpanKindEnum.CONSUMER):
            pass

        assert tracer.spans == [("first", {"a": 1}), ("second", None)]
        assert tracer.span_names == ["first", "second"]
        assert tracer.kinds == [SpanKindEnum.INTERNAL, SpanKindEnum.CONSUMER]

    def test_clear(self):
        tracer = MockTracer()
        with tracer.span("first"):
            pass
        tracer.clear()
        assert tracer.spans == []


class TestCreateTracer:
    """Tests for create_tracer() factory."""

    def test_enabled_returns_otel_tracer(self):
        assert isinstance(create_tracer(__name__, enable_tracing=True), OpenTelemetryTracer)

    def test_disabled_returns_null_tracer(self):
        assert isinstance(create_tracer(__name__, enable_tracing=False), NullTracer)
