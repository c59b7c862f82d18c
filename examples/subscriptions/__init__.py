"""
Collection Subscription Examples

This package contains working examples of collection subscriptions:

- order_board.py: A live order board built from typed documents
- resilient_subscription.py: Recovery from stream faults and retry exhaustion

Run examples with:
    python -m examples.subscriptions.order_board
    python -m examples.subscriptions.resilient_subscription
"""
