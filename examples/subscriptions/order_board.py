"""
Order Board Example - Typed Documents and Filtered Queries

This example demonstrates:
- A converter mapping documents to pydantic models
- Rejecting documents in the converter (treated as deletions)
- A filtered, projected query
- Multiple subscriptions sharing one repository

Run with: python -m examples.subscriptions.order_board
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from livequery import (
    Document,
    QueryTarget,
    Repository,
    StructuredQuery,
    SubscriptionConfig,
    SubscriptionEvent,
    document_to_dict,
)
from livequery.testing import InMemoryFirestore

# =============================================================================
# Configure Logging
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Read Model
# =============================================================================


class Order(BaseModel):
    """An order as shown on the board."""

    customer: str
    status: str
    total: float = 0.0


def to_order(document: Document) -> Order | None:
    """Map a document to an Order; malformed documents are left off the board."""
    try:
        return Order.model_validate(document_to_dict(document))
    except ValidationError:
        logger.warning("Skipping malformed order", extra={"document": document.name})
        return None


def open_orders_query() -> StructuredQuery:
    return StructuredQuery.model_validate(
        {
            "from": [{"collectionId": "orders"}],
            "where": {
                "fieldFilter": {
                    "field": {"fieldPath": "status"},
                    "op": "EQUAL",
                    "value": {"stringValue": "open"},
                }
            },
        }
    )


# =============================================================================
# Run the Example
# =============================================================================


async def seed(store: InMemoryFirestore) -> None:
    batch = store.batch()
    batch.set("orders/1001", {"customer": "alice", "status": "open", "total": 12.5})
    batch.set("orders/1002", {"customer": "bob", "status": "shipped", "total": 40})
    batch.set("orders/1003", {"customer": "carol", "status": "open", "total": 7})
    batch.set("orders/1004", {"status": "open"})
    await batch.commit()


async def main() -> None:
    print("=" * 60)
    print("Order Board Example")
    print("=" * 60)

    store = InMemoryFirestore(project_id="example-project")
    await seed(store)

    async with Repository(store, project_id="example-project") as repository:
        board = repository.collection_subscription(
            open_orders_query(),
            to_order,
            SubscriptionConfig(name="open-orders"),
        )
        customers = repository.collection_subscription(
            QueryTarget(
                parent=repository.make_default_parent(),
                structured_query=StructuredQuery.model_validate(
                    {
                        "from": [{"collectionId": "orders"}],
                        "select": {"fields": [{"fieldPath": "customer"}]},
                    }
                ),
            ),
            document_to_dict,
            SubscriptionConfig(name="customers"),
        )

        changes: list[str] = []

        def record(event: Any) -> None:
            changes.append(f"{type(event).__name__}({event.id})")

        for event in (
            SubscriptionEvent.DOCUMENT_ADDED,
            SubscriptionEvent.DOCUMENT_UPDATED,
            SubscriptionEvent.DOCUMENT_DELETED,
        ):
            board.on(event, record)
        customers.on(SubscriptionEvent.SYNCHRONIZED, lambda event: None)

        await asyncio.gather(board.synchronize(), customers.synchronize())

        print("\n1. Open orders:")
        for order_id, order in sorted(board.data().items()):
            print(f"   {order_id}: {order.customer} ${order.total:.2f}")

        print("\n2. Customers (projected bulk fetch):")
        for order_id, fields in sorted(customers.data().items()):
            print(f"   {order_id}: {fields}")

        print("\n3. Shipping order 1001 and opening 1005")
        changes.clear()
        await store.set("orders/1001", {"customer": "alice", "status": "shipped", "total": 12.5})
        await store.set("orders/1005", {"customer": "dave", "status": "open", "total": 3})

        while len(changes) < 2:
            await asyncio.sleep(0.01)
        print(f"   Events: {changes}")
        print(f"   Open orders now: {sorted(board.data())}")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
