"""
livequery - Live, cached views of document database queries.

This library provides:
- Collection subscriptions: a bulk fetch followed by a resumable listen stream
- Change events per document, with completeness checkpoints
- Exponential backoff with a bounded retry budget
- Conversion between wire values and Python values (pydantic models)
- OpenTelemetry tracing and metrics
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("livequery")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from livequery.converters import (
    document_to_dict,
    fields_converter,
    identity_converter,
    to_canonical,
    to_id,
    to_milliseconds,
    to_native,
    to_number,
)
from livequery.exceptions import (
    ConversionError,
    LiveQueryError,
    ProtocolError,
    SubscriptionError,
    SubscriptionStateError,
    UnhandledValueTypeError,
    UnsupportedResponseError,
)
from livequery.protocol import (
    CollectionSelector,
    Document,
    FieldReference,
    ListenRequest,
    ListenResponse,
    Projection,
    QueryTarget,
    RunQueryRequest,
    RunQueryResponse,
    StructuredQuery,
    Target,
    TargetChangeType,
)
from livequery.repository import Repository
from livequery.subscriptions import (
    CollectionSubscription,
    DocumentAdded,
    DocumentDeleted,
    DocumentUpdated,
    ExponentialBackoff,
    RetryConfig,
    RetryError,
    SubscriptionConfig,
    SubscriptionEvent,
    SubscriptionFailed,
    SubscriptionWarning,
    Synchronized,
    UsageCounters,
)
from livequery.transport import CLOUD_RESOURCE_HEADER, Transport
from livequery.values import GeoPoint, Timestamp, Value

__all__ = [
    "__version__",
    # Repository and subscriptions
    "Repository",
    "CollectionSubscription",
    "SubscriptionConfig",
    "SubscriptionEvent",
    "DocumentAdded",
    "DocumentUpdated",
    "DocumentDeleted",
    "Synchronized",
    "SubscriptionWarning",
    "SubscriptionFailed",
    "UsageCounters",
    # Retry
    "RetryConfig",
    "ExponentialBackoff",
    "RetryError",
    # Transport and protocol
    "Transport",
    "CLOUD_RESOURCE_HEADER",
    "Document",
    "FieldReference",
    "Projection",
    "CollectionSelector",
    "StructuredQuery",
    "QueryTarget",
    "RunQueryRequest",
    "RunQueryResponse",
    "Target",
    "ListenRequest",
    "ListenResponse",
    "TargetChangeType",
    # Values and conversion
    "Value",
    "Timestamp",
    "GeoPoint",
    "to_canonical",
    "to_native",
    "to_number",
    "to_id",
    "to_milliseconds",
    "document_to_dict",
    "fields_converter",
    "identity_converter",
    # Exceptions
    "LiveQueryError",
    "SubscriptionError",
    "SubscriptionStateError",
    "ProtocolError",
    "UnsupportedResponseError",
    "ConversionError",
    "UnhandledValueTypeError",
]
