"""
Transport boundary for collection subscriptions.

Subscriptions consume a streaming RPC client shaped like the Firestore v1
async API: a server-streaming ``run_query`` call and a bidirectional
``listen`` call. Connection management, TLS and authentication belong to the
transport and are not handled here.

Example:
    >>> class MyTransport:
    ...     def run_query(self, request, *, metadata=()):
    ...         return self._stub.RunQuery(request, metadata=metadata)
    ...
    ...     def listen(self, requests, *, metadata=()):
    ...         return self._stub.Listen(requests, metadata=metadata)
"""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from livequery.protocol import ListenRequest, ListenResponse, RunQueryRequest, RunQueryResponse
from livequery.types import Metadata

CLOUD_RESOURCE_HEADER = "google-cloud-resource-prefix"
"""Routing header identifying the database a call is made against."""

DEFAULT_DATABASE_ID = "(default)"


@runtime_checkable
class Transport(Protocol):
    """
    Protocol for document database streaming clients.

    Both calls return async iterators of responses. Exceptions raised while
    opening or iterating a stream are treated as transient transport faults.
    """

    def run_query(
        self,
        request: RunQueryRequest,
        *,
        metadata: Metadata = (),
    ) -> AsyncIterator[RunQueryResponse]:
        """
        Run a one-shot query.

        Args:
            request: Parent path and structured query
            metadata: Call metadata (routing header)

        Returns:
            Responses terminated by the end of iteration
        """
        ...

    def listen(
        self,
        requests: AsyncIterator[ListenRequest],
        *,
        metadata: Metadata = (),
    ) -> AsyncIterator[ListenResponse]:
        """
        Open a persistent listen stream.

        The request iterator stays open for the lifetime of the stream; its
        exhaustion half-closes the call.

        Args:
            requests: Requests written to the stream
            metadata: Call metadata (routing header)

        Returns:
            Listen responses, until the stream fails or is closed
        """
        ...


def database_path(project_id: str, database_id: str = DEFAULT_DATABASE_ID) -> str:
    """Resource name of a database, e.g. ``projects/p/databases/(default)``."""
    return f"projects/{project_id}/databases/{database_id}"


def routing_metadata(database: str) -> tuple[tuple[str, str], ...]:
    """Call metadata routing a request to ``database``."""
    return ((CLOUD_RESOURCE_HEADER, database),)


async def close_transport(transport: object) -> None:
    """Close a transport if it exposes ``close()`` (sync or async)."""
    close = getattr(transport, "close", None)
    if close is None:
        return
    result = close()
    if hasattr(result, "__await__"):
        await result


__all__ = [
    "CLOUD_RESOURCE_HEADER",
    "DEFAULT_DATABASE_ID",
    "Transport",
    "database_path",
    "routing_metadata",
    "close_transport",
]
