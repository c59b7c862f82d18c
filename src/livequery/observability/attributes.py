"""
Standard span and metric attributes for livequery.

Attribute constants used across components for consistent span naming and
metric labeling. They follow OpenTelemetry semantic conventions where
applicable.

Example:
    >>> from livequery.observability.attributes import ATTR_DATABASE, ATTR_PARENT
    >>>
    >>> with tracer.span(
    ...     "livequery.run_query",
    ...     {ATTR_DATABASE: database, ATTR_PARENT: parent},
    ... ):
    ...     pass
"""

# =============================================================================
# RPC / Database Attributes (OTEL semantic)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier ('firestore')."""

ATTR_RPC_METHOD = "rpc.method"
"""Name of the streaming RPC ('RunQuery', 'Listen')."""

ATTR_DATABASE = "livequery.database"
"""Resource name of the database (projects/{p}/databases/{d})."""

ATTR_PARENT = "livequery.parent"
"""Parent resource of the query target."""

# =============================================================================
# Subscription Attributes
# =============================================================================

ATTR_SUBSCRIPTION_NAME = "livequery.subscription.name"
"""Name of the collection subscription."""

ATTR_STREAM_PHASE = "livequery.stream.phase"
"""Current phase of the subscription stream (starting, listening, ...)."""

ATTR_RESUMED = "livequery.stream.resumed"
"""Whether a listen stream was opened with a resume cursor (boolean)."""

ATTR_RETRY_COUNT = "livequery.retry.count"
"""Number of backoff waits since the last reset (integer)."""

# =============================================================================
# Result Attributes
# =============================================================================

ATTR_DOCUMENT_COUNT = "livequery.document.count"
"""Number of documents involved in an operation (integer)."""

ATTR_ERROR_TYPE = "error.type"
"""Exception class name of an error."""


__all__ = [
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
