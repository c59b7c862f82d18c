"""
Test utilities for livequery.

Components:
    InMemoryFirestore: In-process transport with writes and fault injection
    WriteBatch: Atomic batch of writes against InMemoryFirestore
    TransportCall: Recorded transport call

Example:
    >>> from livequery.testing import InMemoryFirestore
    >>>
    >>> store = InMemoryFirestore()
    >>> await store.set("orders/1", {"total": 10})
    >>> repository = Repository(store, store.project_id)

Note:
    This module is intended for test code only.
"""

from livequery.testing.memory import InMemoryFirestore, TransportCall, WriteBatch

__all__ = [
    "InMemoryFirestore",
    "WriteBatch",
    "TransportCall",
]
