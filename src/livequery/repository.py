"""
Entry point tying a transport to a database.

A ``Repository`` knows which project and database it talks to and creates
collection subscriptions against them.

Example:
    >>> from livequery import Repository, StructuredQuery, fields_converter
    >>>
    >>> async with Repository(transport, project_id="my-project") as repository:
    ...     orders = repository.collection_subscription(
    ...         StructuredQuery.model_validate({"from": [{"collectionId": "orders"}]}),
    ...         fields_converter,
    ...     )
    ...     await orders.synchronize()
"""

import logging
from types import TracebackType
from typing import Any, TypeVar

from livequery.firestore import FirestoreTransport
from livequery.observability import Tracer
from livequery.protocol import QueryTarget, StructuredQuery
from livequery.subscriptions.collection import CollectionSubscription
from livequery.subscriptions.config import SubscriptionConfig
from livequery.transport import DEFAULT_DATABASE_ID, Transport, close_transport, database_path
from livequery.types import Converter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repository:
    """
    Factory for subscriptions against one database.

    Closing the repository closes every subscription it created and then the
    transport, when the transport supports it.

    Attributes:
        project_id: Project the database belongs to
        database_id: Database identifier
    """

    def __init__(
        self,
        transport: Transport,
        project_id: str,
        database_id: str = DEFAULT_DATABASE_ID,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        enable_metrics: bool = True,
    ) -> None:
        self._transport = transport
        self.project_id = project_id
        self.database_id = database_id
        self._tracer = tracer
        self._enable_tracing = enable_tracing
        self._enable_metrics = enable_metrics
        self._subscriptions: list[CollectionSubscription[object]] = []

    @classmethod
    def connect(
        cls,
        project_id: str,
        database_id: str = DEFAULT_DATABASE_ID,
        *,
        credentials: Any = None,
        client_options: Any = None,
        **kwargs: Any,
    ) -> "Repository":
        """
        Create a repository talking to Firestore through ``FirestoreAsyncClient``.

        Args:
            project_id: Project the database belongs to
            database_id: Database identifier
            credentials: Google credentials (application default if None)
            client_options: Client options, e.g. ``{"api_endpoint": "localhost:8080"}``
            **kwargs: Passed to the constructor (tracer, enable_tracing, ...)

        Raises:
            FirestoreNotAvailableError: If google-cloud-firestore is not installed
        """
        transport = FirestoreTransport(credentials=credentials, client_options=client_options)
        return cls(transport, project_id, database_id, **kwargs)

    @property
    def database(self) -> str:
        return database_path(self.project_id, self.database_id)

    def make_default_parent(self, suffix: str = "documents") -> str:
        """
        Parent resource for top-level collections.

        Example:
            >>> Repository(transport, "p").make_default_parent()
            'projects/p/databases/(default)/documents'
        """
        return f"{self.database}/{suffix}"

    def collection_subscription(
        self,
        query: QueryTarget | StructuredQuery,
        converter: Converter[T],
        config: SubscriptionConfig | None = None,
    ) -> CollectionSubscription[T]:
        """
        Create a subscription for a query.

        A bare ``StructuredQuery`` is targeted at the default parent.

        Args:
            query: Query target, or structured query under the default parent
            converter: Maps documents to values, None rejects a document
            config: Subscription configuration (uses defaults if None)

        Returns:
            An inactive subscription; registering a listener activates it
        """
        if isinstance(query, StructuredQuery):
            query = QueryTarget(parent=self.make_default_parent(), structured_query=query)

        subscription: CollectionSubscription[T] = CollectionSubscription(
            self._transport,
            project_id=self.project_id,
            database_id=self.database_id,
            query_target=query,
            converter=converter,
            config=config,
            tracer=self._tracer,
            enable_tracing=self._enable_tracing,
            enable_metrics=self._enable_metrics,
        )
        self._subscriptions.append(subscription)  # type: ignore[arg-type]

        logger.debug(
            "Created collection subscription",
            extra={"subscription": subscription.name, "database": self.database},
        )
        return subscription

    @property
    def subscriptions(self) -> list[CollectionSubscription[object]]:
        return list(self._subscriptions)

    async def close(self) -> None:
        """Close all subscriptions, then the transport."""
        for subscription in self._subscriptions:
            await subscription.close()
        self._subscriptions.clear()

        await close_transport(self._transport)
        logger.info("Repository closed", extra={"database": self.database})

    async def __aenter__(self) -> "Repository":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["Repository"]
