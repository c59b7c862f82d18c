"""
Shared pytest fixtures for the livequery tests.

This module provides:
- Database fixtures (store, populated_store)
- Query fixtures (query_target, parent)
- Subscription fixtures (subscription_factory, fast_config)
- Observability fixtures (mock_tracer, metric_reader, meter_provider)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from livequery.converters import fields_converter
from livequery.observability import MockTracer
from livequery.protocol import QueryTarget
from livequery.subscriptions import CollectionSubscription, SubscriptionConfig
from livequery.testing import InMemoryFirestore
from livequery.types import Converter
from tests.fixtures import PROJECT_ID, orders_query

# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryFirestore:
    """Provide an empty in-memory database."""
    return InMemoryFirestore(project_id=PROJECT_ID)


@pytest_asyncio.fixture
async def populated_store(store: InMemoryFirestore) -> InMemoryFirestore:
    """Provide a database holding three orders."""
    batch = store.batch()
    batch.set("orders/1", {"item": "apple", "quantity": 1})
    batch.set("orders/2", {"item": "pear", "quantity": 2})
    batch.set("orders/3", {"item": "plum", "quantity": 3})
    await batch.commit()
    return store


@pytest.fixture
def parent(store: InMemoryFirestore) -> str:
    return store.documents_root


@pytest.fixture
def query_target(parent: str) -> QueryTarget:
    """Query target for all orders."""
    return QueryTarget(parent=parent, structured_query=orders_query())


# =============================================================================
# Subscription Fixtures
# =============================================================================


@pytest.fixture
def fast_config() -> SubscriptionConfig:
    """Subscription config with millisecond retry delays."""
    return SubscriptionConfig(
        name="orders",
        max_retries=5,
        initial_retry_delay=0.001,
        max_retry_delay=0.005,
    )


@pytest_asyncio.fixture
async def subscription_factory(
    store: InMemoryFirestore,
    query_target: QueryTarget,
    fast_config: SubscriptionConfig,
) -> AsyncGenerator[Callable[..., CollectionSubscription[Any]], None]:
    """
    Factory for subscriptions against the ``store`` fixture.

    Every subscription created is closed after the test.
    """
    created: list[CollectionSubscription[Any]] = []

    def factory(
        converter: Converter[Any] = fields_converter,
        target: QueryTarget | None = None,
        config: SubscriptionConfig | None = None,
        **kwargs: Any,
    ) -> CollectionSubscription[Any]:
        subscription = CollectionSubscription(
            store,
            project_id=store.project_id,
            database_id=store.database_id,
            query_target=target or query_target,
            converter=converter,
            config=config or fast_config,
            enable_tracing=False,
            **kwargs,
        )
        created.append(subscription)
        return subscription

    yield factory

    for subscription in created:
        await subscription.close()


# =============================================================================
# Observability Fixtures
# =============================================================================


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    """Provide an InMemoryMetricReader for inspecting collected metrics."""
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(metric_reader: InMemoryMetricReader) -> Any:
    """
    Provide a MeterProvider reporting to ``metric_reader``.

    Not installed globally: the global provider can only be set once.
    """
    provider = MeterProvider(metric_readers=[metric_reader])
    yield provider
    provider.shutdown()
