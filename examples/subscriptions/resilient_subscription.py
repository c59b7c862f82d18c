"""
Resilient Subscription Example - Faults, Backoff and Recovery

This example demonstrates:
- Warning events for transient stream faults
- Resumption from the stored cursor after a broken stream
- Retry exhaustion and the error event
- Recovering a failed subscription by removing its listeners

Run with: python -m examples.subscriptions.resilient_subscription
"""

import asyncio
import logging

from livequery import (
    Repository,
    StructuredQuery,
    SubscriptionConfig,
    SubscriptionEvent,
    SubscriptionFailed,
    SubscriptionWarning,
    fields_converter,
)
from livequery.subscriptions import StreamPhase
from livequery.testing import InMemoryFirestore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def on_warning(event: SubscriptionWarning) -> None:
    print(f"   warning: {type(event.error).__name__}: {event.error}")


def on_error(event: SubscriptionFailed) -> None:
    print(f"   error: {type(event.error).__name__}: {event.error}")


async def main() -> None:
    print("=" * 60)
    print("Resilient Subscription Example")
    print("=" * 60)

    store = InMemoryFirestore(project_id="example-project")
    await store.set("sensors/a", {"reading": 1.5})
    await store.set("sensors/b", {"reading": 2.25})

    config = SubscriptionConfig(
        name="sensors",
        max_retries=3,
        initial_retry_delay=0.05,
        max_retry_delay=0.2,
    )
    query = StructuredQuery.model_validate({"from": [{"collectionId": "sensors"}]})

    async with Repository(store, project_id="example-project") as repository:
        sensors = repository.collection_subscription(query, fields_converter, config)
        sensors.on(SubscriptionEvent.WARNING, on_warning)
        sensors.on(SubscriptionEvent.ERROR, on_error)

        print("\n1. Initial fetch with one failed attempt")
        store.fail_next_stream()
        await sensors.synchronize()
        print(f"   Synchronized: {dict(sensors.data())}")

        print("\n2. Breaking the listen stream")
        while not sensors.is_synchronized():
            await asyncio.sleep(0.01)
        store.break_listen_streams()
        await store.set("sensors/c", {"reading": 0.75})
        while "c" not in sensors.data():
            await asyncio.sleep(0.01)
        print(f"   Resumed, restarts so far: {sensors.statistics().stream_restarts}")

        print("\n3. Exhausting the retry budget")
        for _ in range(config.max_retries):
            store.fail_next_stream()
        store.break_listen_streams()
        while sensors.phase is not StreamPhase.FAILED:
            await asyncio.sleep(0.01)
        print(f"   Phase: {sensors.phase.value}")

        print("\n4. Recovering by removing every listener")
        sensors.off(SubscriptionEvent.WARNING, on_warning)
        sensors.off(SubscriptionEvent.ERROR, on_error)
        print(f"   Phase: {sensors.phase.value}")

        await sensors.synchronize()
        print(f"   Synchronized again with {len(sensors.data())} documents")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
