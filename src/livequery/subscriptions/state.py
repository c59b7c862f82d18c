"""
State owned by a collection subscription.

This module provides:
- StreamPhase: Enum of the stream lifecycle phases
- UsageCounters: Immutable read of the usage metrics
- UsageMetrics: Read-and-reset usage counters
- SubscriptionStatistics: Cumulative protocol counters
- EngineState: Resumption cursor, cached documents and counters

Phases:
    INACTIVE -> STARTING
    STARTING -> BULK_FETCHING | LISTENING | INACTIVE | FAILED
    BULK_FETCHING -> STARTING | INACTIVE | FAILED
    LISTENING -> STARTING | INACTIVE | FAILED
    FAILED -> INACTIVE
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from livequery.protocol import TargetChangeType
from livequery.values import Timestamp

T = TypeVar("T")


class StreamPhase(Enum):
    """
    Lifecycle phase of the subscription stream.

    STARTING is the pending state: a start was requested and the backoff is
    elapsing, but no stream has been opened yet.
    """

    INACTIVE = "inactive"
    """No listeners, no stream."""

    STARTING = "starting"
    """Awaiting the backoff before opening a stream."""

    BULK_FETCHING = "bulk_fetching"
    """Running the one-shot initial query."""

    LISTENING = "listening"
    """Receiving changes on a resumable listen stream."""

    FAILED = "failed"
    """Stopped after a terminal error; waits for all listeners to leave."""


VALID_TRANSITIONS: dict[StreamPhase, set[StreamPhase]] = {
    StreamPhase.INACTIVE: {StreamPhase.STARTING},
    StreamPhase.STARTING: {
        StreamPhase.BULK_FETCHING,
        StreamPhase.LISTENING,
        StreamPhase.INACTIVE,
        StreamPhase.FAILED,
    },
    StreamPhase.BULK_FETCHING: {
        StreamPhase.STARTING,
        StreamPhase.INACTIVE,
        StreamPhase.FAILED,
    },
    StreamPhase.LISTENING: {
        StreamPhase.STARTING,
        StreamPhase.INACTIVE,
        StreamPhase.FAILED,
    },
    StreamPhase.FAILED: {StreamPhase.INACTIVE},
}


def is_valid_transition(from_phase: StreamPhase, to_phase: StreamPhase) -> bool:
    """
    Check if a phase transition is valid.

    Args:
        from_phase: Current phase
        to_phase: Target phase

    Returns:
        True if transition is allowed, False otherwise
    """
    return to_phase in VALID_TRANSITIONS.get(from_phase, set())


@dataclass(frozen=True)
class UsageCounters:
    """
    Usage counters since the previous read.

    Attributes:
        changed: Documents received as changed
        filtered: Documents the server confirmed unchanged without resending
        removed: Documents removed from the result set
    """

    changed: int = 0
    filtered: int = 0
    removed: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for serialization."""
        return {
            "changed": self.changed,
            "filtered": self.filtered,
            "removed": self.removed,
        }


@dataclass
class UsageMetrics:
    """
    Usage counters with read-and-reset semantics.

    ``touched`` holds the ids seen since the last existence filter; the
    filter uses it to count documents the server did not need to resend.
    """

    changed: int = 0
    filtered: int = 0
    removed: int = 0
    touched: set[str] = field(default_factory=set)

    def read_and_reset(self) -> UsageCounters:
        """Return the counters and zero them."""
        counters = UsageCounters(
            changed=self.changed,
            filtered=self.filtered,
            removed=self.removed,
        )
        self.changed = 0
        self.filtered = 0
        self.removed = 0
        return counters


def _response_totals() -> dict[str, int]:
    return {
        "document_change": 0,
        "document_delete": 0,
        "document_remove": 0,
        "filter": 0,
        "target_change": 0,
    }


def _target_change_totals() -> dict[str, int]:
    return {change_type.value: 0 for change_type in TargetChangeType}


@dataclass
class SubscriptionStatistics:
    """
    Cumulative diagnostic counters. Never reset.

    Attributes:
        active_listeners: Listeners currently registered
        listen_responses: Listen responses received, per kind
        target_changes: Target changes received, per subtype
        run_query_responses: Documents received from bulk fetches
        stream_restarts: Streams restarted after errors or resyncs
    """

    active_listeners: int = 0
    listen_responses: dict[str, int] = field(default_factory=_response_totals)
    target_changes: dict[str, int] = field(default_factory=_target_change_totals)
    run_query_responses: int = 0
    stream_restarts: int = 0

    def snapshot(self) -> "SubscriptionStatistics":
        """Independent copy of the current counters."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "active_listeners": self.active_listeners,
            "listen": {
                "total_responses": dict(self.listen_responses),
                "target_changes": dict(self.target_changes),
            },
            "run_query": {"total_responses": self.run_query_responses},
            "stream_restarts": self.stream_restarts,
        }


@dataclass
class EngineState(Generic[T]):
    """
    Everything a subscription knows about its target.

    ``target_data`` is rebuilt from server responses since the last
    checkpoint; ``emitted_data`` holds what consumers were last told. They
    are reconciled at each completeness checkpoint.

    Attributes:
        initialized: The first bulk fetch completed
        synchronized: The cache matched the server at the last checkpoint
        resume_token: Opaque cursor for resuming listen streams
        read_time: Consistency point of the latest response
        last_synchronization_time: Read time of the last checkpoint
        target_data: Server-confirmed documents
        emitted_data: Documents last delivered to consumers
        usage: Read-and-reset usage metrics
        statistics: Cumulative protocol counters
    """

    initialized: bool = False
    synchronized: bool = False
    resume_token: bytes | None = None
    read_time: Timestamp | None = None
    last_synchronization_time: Timestamp | None = None
    target_data: dict[str, T] = field(default_factory=dict)
    emitted_data: dict[str, T] = field(default_factory=dict)
    usage: UsageMetrics = field(default_factory=UsageMetrics)
    statistics: SubscriptionStatistics = field(default_factory=SubscriptionStatistics)

    def clear_cursor(self) -> None:
        """Forget the resumption cursor."""
        self.resume_token = None
        self.read_time = None

    def reset(self) -> None:
        """Clear cached documents, the cursor and the synchronized flag."""
        self.target_data.clear()
        self.emitted_data.clear()
        self.synchronized = False
        self.clear_cursor()


__all__ = [
    "StreamPhase",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "UsageCounters",
    "UsageMetrics",
    "SubscriptionStatistics",
    "EngineState",
]
