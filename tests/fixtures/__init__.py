"""
Shared test fixtures for the livequery library.

This module provides reusable test helpers including:
- Query builders (orders_query)
- Wire documents built from Python values (make_document, document_name)
- A listener recording subscription events (EventRecorder)
- Polling helper for asynchronous conditions (wait_for)

Usage:
    from tests.fixtures import EventRecorder, make_document, wait_for
"""

from tests.fixtures.documents import (
    DATABASE,
    DOCUMENTS_ROOT,
    PROJECT_ID,
    document_name,
    make_document,
    orders_query,
)
from tests.fixtures.listeners import EventRecorder, wait_for, wait_until_listening

__all__ = [
    "PROJECT_ID",
    "DATABASE",
    "DOCUMENTS_ROOT",
    "document_name",
    "make_document",
    "orders_query",
    "EventRecorder",
    "wait_for",
    "wait_until_listening",
]
