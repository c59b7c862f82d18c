"""Library exceptions for the livequery package."""

from typing import Any


class LiveQueryError(Exception):
    """Base exception for livequery library."""

    pass


class SubscriptionError(LiveQueryError):
    """Raised when a collection subscription cannot proceed."""

    pass


class SubscriptionStateError(SubscriptionError):
    """Raised when a subscription is asked for an invalid phase transition."""

    pass


class ProtocolError(LiveQueryError):
    """
    Raised when a server response violates the streaming protocol.

    Protocol errors are defects, not transient faults: the subscription
    reports them as terminal and does not retry.
    """

    pass


class UnsupportedResponseError(ProtocolError):
    """Raised when a stream delivers a message kind the engine does not know."""

    def __init__(self, response: Any) -> None:
        self.response = response
        super().__init__(f"Undefined response type: {type(response).__name__}.")


class ConversionError(LiveQueryError):
    """Raised when a value cannot be converted between representations."""

    pass


class UnhandledValueTypeError(ConversionError):
    """Raised when a value union member is not handled by a converter."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(f"Unhandled value union member: {value!r}.")


__all__ = [
    "LiveQueryError",
    "SubscriptionError",
    "SubscriptionStateError",
    "ProtocolError",
    "UnsupportedResponseError",
    "ConversionError",
    "UnhandledValueTypeError",
]
