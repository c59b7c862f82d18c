"""
Tracing for subscriptions and transports.

Components take a ``Tracer`` at construction and open spans through it:

- ``NullTracer`` when tracing is switched off
- ``OpenTelemetryTracer`` for real spans (non-recording unless an SDK is
  configured by the application)
- ``MockTracer`` to assert on spans in tests

Streaming calls (run query, listen) are traced as CLIENT spans that stay
open for the lifetime of the stream.

Example:
    >>> from livequery.observability import SpanKindEnum, create_tracer
    >>>
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span_with_kind("livequery.listen", SpanKindEnum.CLIENT):
    ...     async for response in transport.listen(requests):
    ...         ...
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from opentelemetry import trace
from opentelemetry.trace import Span
from opentelemetry.trace import SpanKind as OtelSpanKind

from livequery.observability.attributes import ATTR_ERROR_TYPE

Attributes = dict[str, Any]


class SpanKindEnum(Enum):
    """
    Kinds of spans opened by livequery.

    Values:
        INTERNAL: Local work (checkpoints, store bookkeeping)
        CLIENT: A call to the database (run query, listen)
        CONSUMER: Handling of a message received on a stream
    """

    INTERNAL = "internal"
    CLIENT = "client"
    CONSUMER = "consumer"

    def to_otel(self) -> OtelSpanKind:
        return OtelSpanKind[self.name]


@runtime_checkable
class Tracer(Protocol):
    """Opens spans around subscription and transport work."""

    @property
    def enabled(self) -> bool:
        """False when spans are discarded."""
        ...

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open an INTERNAL span for the duration of the ``with`` block."""
        ...

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span of the given kind.

        Args:
            name: Span name, e.g. ``livequery.run_query``
            kind: CLIENT for database calls
            attributes: Initial span attributes

        Returns:
            Context manager yielding the span, or None when not tracing
        """
        ...


class NullTracer:
    """Tracer that opens no spans."""

    @property
    def enabled(self) -> bool:
        return False

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[None]:
        return contextlib.nullcontext()

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[None]:
        return contextlib.nullcontext()


class OpenTelemetryTracer:
    """
    Tracer backed by the OpenTelemetry API.

    Spans are made current, so spans opened by the transport nest under the
    subscription's call span. An exception leaving a span is recorded by
    OpenTelemetry and its class name is set as ``error.type``.

    Args:
        tracer_name: Instrumentation scope name (typically __name__)
    """

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    @property
    def enabled(self) -> bool:
        return True

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
    ) -> Iterator[Span]:
        with self._tracer.start_as_current_span(
            name,
            kind=kind.to_otel(),
            attributes=attributes or {},
        ) as span:
            try:
                yield span
            except Exception as e:
                span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                raise


class MockTracer:
    """
    Tracer recording the spans it was asked to open.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span_with_kind("livequery.listen", SpanKindEnum.CLIENT, {"k": "v"}):
        ...     pass
        >>> tracer.spans
        [('livequery.listen', {'k': 'v'})]
        >>> tracer.kinds
        [<SpanKindEnum.CLIENT: 'client'>]
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, Attributes | None]] = []
        self.kinds: list[SpanKindEnum] = []

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[None]:
        self.spans.append((name, attributes))
        self.kinds.append(kind)
        return contextlib.nullcontext()

    def clear(self) -> None:
        self.spans.clear()
        self.kinds.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Create the tracer for a component.

    Example:
        >>> self._tracer = tracer or create_tracer(__name__, enable_tracing)
    """
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
]
