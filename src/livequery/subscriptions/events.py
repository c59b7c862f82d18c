"""
Events emitted by collection subscriptions.

This module provides:
- SubscriptionEvent: Names of the events consumers can listen to
- DocumentAdded / DocumentUpdated / DocumentDeleted: Document payloads
- Synchronized: Completeness checkpoint marker
- SubscriptionWarning / SubscriptionFailed: Error payloads
- Listener: Type alias for listener callables
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class SubscriptionEvent(str, Enum):
    """
    Events a collection subscription emits.

    Registering a listener for any of them activates the subscription.
    """

    DOCUMENT_ADDED = "document_added"
    """A document entered the cache."""

    DOCUMENT_UPDATED = "document_updated"
    """A cached document changed (after conversion)."""

    DOCUMENT_DELETED = "document_deleted"
    """A cached document no longer matches the query."""

    SYNCHRONIZED = "synchronized"
    """The cache matches the server as of the last read time."""

    WARNING = "warning"
    """A recoverable error occurred; the subscription retries."""

    ERROR = "error"
    """The subscription cannot recover."""


@dataclass(frozen=True)
class DocumentAdded(Generic[T]):
    id: str
    data: T


@dataclass(frozen=True)
class DocumentUpdated(Generic[T]):
    id: str
    before: T
    after: T


@dataclass(frozen=True)
class DocumentDeleted:
    id: str


@dataclass(frozen=True)
class Synchronized:
    pass


@dataclass(frozen=True)
class SubscriptionWarning:
    error: BaseException


@dataclass(frozen=True)
class SubscriptionFailed:
    error: BaseException


EVENT_PAYLOADS: dict[SubscriptionEvent, type] = {
    SubscriptionEvent.DOCUMENT_ADDED: DocumentAdded,
    SubscriptionEvent.DOCUMENT_UPDATED: DocumentUpdated,
    SubscriptionEvent.DOCUMENT_DELETED: DocumentDeleted,
    SubscriptionEvent.SYNCHRONIZED: Synchronized,
    SubscriptionEvent.WARNING: SubscriptionWarning,
    SubscriptionEvent.ERROR: SubscriptionFailed,
}

Listener = Callable[[Any], Any]
"""Synchronous callable receiving an event payload."""


def event_for(payload: object) -> SubscriptionEvent:
    """Name of the event carrying ``payload``."""
    for event, payload_type in EVENT_PAYLOADS.items():
        if isinstance(payload, payload_type):
            return event
    raise ValueError(f"Not an event payload: {payload!r}")


def parse_event(event: "SubscriptionEvent | str") -> SubscriptionEvent:
    """
    Resolve an event name.

    Raises:
        ValueError: If the name is not a known subscription event
    """
    try:
        return SubscriptionEvent(event)
    except ValueError:
        valid = [member.value for member in SubscriptionEvent]
        raise ValueError(f"Unknown subscription event {event!r}. Valid events: {valid}") from None


__all__ = [
    "SubscriptionEvent",
    "DocumentAdded",
    "DocumentUpdated",
    "DocumentDeleted",
    "Synchronized",
    "SubscriptionWarning",
    "SubscriptionFailed",
    "EVENT_PAYLOADS",
    "Listener",
    "event_for",
    "parse_event",
]
