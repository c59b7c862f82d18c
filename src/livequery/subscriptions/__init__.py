"""
Live collection subscriptions for livequery.

This module provides subscriptions that fill a local cache with a bulk
query, then keep it current through a resumable listen stream.

Example:
    >>> from livequery.subscriptions import CollectionSubscription, SubscriptionConfig
    >>>
    >>> subscription = CollectionSubscription(
    ...     transport, "my-project", "(default)", query_target, converter,
    ...     config=SubscriptionConfig(name="orders", max_retries=5),
    ... )
    >>> subscription.on("document_added", print)
    >>> await subscription.synchronize()

Classes:
    CollectionSubscription: Subscription engine
    SubscriptionConfig: Configuration for subscriptions
    StreamPhase: Enum for stream lifecycle phases
    EngineState: Cached documents and resumption cursor
    UsageCounters: Read-and-reset usage counters
    SubscriptionStatistics: Cumulative protocol counters
    CollectionMetrics: OpenTelemetry instruments

Events:
    SubscriptionEvent: Names of the events listeners can register for
    DocumentAdded, DocumentUpdated, DocumentDeleted, Synchronized,
    SubscriptionWarning, SubscriptionFailed: Event payloads

Retry:
    RetryConfig: Backoff configuration
    ExponentialBackoff: Single-waiter backoff controller
    RetryError: Raised when the retry budget is exhausted
    BackoffInProgressError: Raised on concurrent waits
"""

from livequery.subscriptions.collection import CollectionSubscription
from livequery.subscriptions.config import (
    MAXIMUM_LISTENER_COUNT,
    TARGET_ID,
    SubscriptionConfig,
)
from livequery.subscriptions.events import (
    DocumentAdded,
    DocumentDeleted,
    DocumentUpdated,
    Listener,
    SubscriptionEvent,
    SubscriptionFailed,
    SubscriptionWarning,
    Synchronized,
)
from livequery.subscriptions.metrics import CollectionMetrics, MetricSnapshot
from livequery.subscriptions.retry import (
    BackoffInProgressError,
    ExponentialBackoff,
    RetryConfig,
    RetryError,
)
from livequery.subscriptions.state import (
    EngineState,
    StreamPhase,
    SubscriptionStatistics,
    UsageCounters,
    is_valid_transition,
)

__all__ = [
    # Engine
    "CollectionSubscription",
    # Configuration
    "SubscriptionConfig",
    "TARGET_ID",
    "MAXIMUM_LISTENER_COUNT",
    # Events
    "SubscriptionEvent",
    "DocumentAdded",
    "DocumentUpdated",
    "DocumentDeleted",
    "Synchronized",
    "SubscriptionWarning",
    "SubscriptionFailed",
    "Listener",
    # State
    "StreamPhase",
    "EngineState",
    "UsageCounters",
    "SubscriptionStatistics",
    "is_valid_transition",
    # Metrics
    "CollectionMetrics",
    "MetricSnapshot",
    # Retry
    "RetryConfig",
    "ExponentialBackoff",
    "RetryError",
    "BackoffInProgressError",
]
