"""
Basic Usage Example

This example demonstrates the fundamental concepts of live queries:
- Creating a repository over a transport
- Subscribing to a collection query
- Waiting for synchronization and reading the cache
- Receiving change events as documents are written

Run with: python -m examples.basic_usage
"""

import asyncio

from livequery import (
    DocumentAdded,
    DocumentDeleted,
    DocumentUpdated,
    Repository,
    StructuredQuery,
    SubscriptionConfig,
    SubscriptionEvent,
    fields_converter,
)
from livequery.testing import InMemoryFirestore

# =============================================================================
# Step 1: Define Listeners
# =============================================================================
# Listeners are plain callables receiving one event payload.


def on_added(event: DocumentAdded) -> None:
    print(f"   + {event.id}: {event.data}")


def on_updated(event: DocumentUpdated) -> None:
    print(f"   ~ {event.id}: {event.before} -> {event.after}")


def on_deleted(event: DocumentDeleted) -> None:
    print(f"   - {event.id}")


# =============================================================================
# Step 2: Run the Example
# =============================================================================


async def main() -> None:
    print("=" * 60)
    print("livequery Basic Usage Example")
    print("=" * 60)

    # In-memory database speaking the streaming protocol
    store = InMemoryFirestore(project_id="example-project")
    await store.set("cities/berlin", {"name": "Berlin", "population": 3_850_000})
    await store.set("cities/paris", {"name": "Paris", "population": 2_100_000})

    async with Repository(store, project_id="example-project") as repository:
        query = StructuredQuery.model_validate({"from": [{"collectionId": "cities"}]})
        cities = repository.collection_subscription(
            query,
            fields_converter,
            SubscriptionConfig(name="cities"),
        )

        print("\n1. Subscribing (the first listener opens the stream)")
        cities.on(SubscriptionEvent.DOCUMENT_ADDED, on_added)
        cities.on(SubscriptionEvent.DOCUMENT_UPDATED, on_updated)
        cities.on(SubscriptionEvent.DOCUMENT_DELETED, on_deleted)

        await cities.synchronize()
        print(f"   Synchronized with {len(cities.data())} documents")
        print(f"   Usage: {cities.metrics().to_dict()}")

        print("\n2. Writing documents")
        await store.set("cities/rome", {"name": "Rome", "population": 2_760_000})
        await store.set("cities/paris", {"name": "Paris", "population": 2_110_000})
        await store.delete("cities/berlin")

        # Changes arrive over the listen stream
        while "berlin" in cities.data() or "rome" not in cities.data():
            await asyncio.sleep(0.01)

        print("\n3. Current cache:")
        for city_id, city in sorted(cities.data().items()):
            print(f"   {city_id}: {city['name']} ({city['population']:,})")

        print("\n4. Statistics:")
        statistics = cities.statistics()
        print(f"   Bulk fetch responses: {statistics.run_query_responses}")
        print(f"   Listen responses: {statistics.listen_responses}")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
