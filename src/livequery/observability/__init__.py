"""
Observability utilities for livequery.

Tracing helpers and standard attribute definitions shared by all
components. Tracing goes through the OpenTelemetry API; without an SDK
configured spans are non-recording and cheap.

Example:
    >>> from livequery.observability import create_tracer
    >>>
    >>> class MyTransport:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from livequery.observability.attributes import (
    ATTR_DATABASE,
    ATTR_DB_SYSTEM,
    ATTR_DOCUMENT_COUNT,
    ATTR_ERROR_TYPE,
    ATTR_PARENT,
    ATTR_RESUMED,
    ATTR_RETRY_COUNT,
    ATTR_RPC_METHOD,
    ATTR_STREAM_PHASE,
    ATTR_SUBSCRIPTION_NAME,
)
from livequery.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer (composition-based API)
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
    # Attributes
    "ATTR_DB_SYSTEM",
    "ATTR_RPC_METHOD",
    "ATTR_DATABASE",
    "ATTR_PARENT",
    "ATTR_SUBSCRIPTION_NAME",
    "ATTR_STREAM_PHASE",
    "ATTR_RESUMED",
    "ATTR_RETRY_COUNT",
    "ATTR_DOCUMENT_COUNT",
    "ATTR_ERROR_TYPE",
]
