"""
Configuration for collection subscriptions.

This module provides:
- SubscriptionConfig: Configuration for a collection subscription
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from livequery.subscriptions.retry import RetryConfig

# Only one target is ever added to a listen stream
TARGET_ID = 1

# Listener count above which a leak is suspected
MAXIMUM_LISTENER_COUNT = 64_000


@dataclass(frozen=True)
class SubscriptionConfig:
    """
    Configuration for a collection subscription.

    Controls reconnection pacing and listener bookkeeping.

    Attributes:
        name: Name used in logs, spans and metrics (defaults to the parent path)
        target_id: Target identifier used on listen streams
        max_listeners: Listener count above which a warning is logged
        max_retries: Consecutive failed attempts before giving up
        initial_retry_delay: Base delay in seconds after the first retry
        max_retry_delay: Maximum base delay in seconds
        retry_multiplier: Growth factor of the delay between attempts
        retry_jitter: Randomization of delays (0 = none, 1.0 = +/-50%)

    Example:
        >>> config = SubscriptionConfig(
        ...     name="orders",
        ...     max_retries=5,
        ...     initial_retry_delay=0.5,
        ... )
    """

    name: str | None = None
    target_id: int = TARGET_ID
    max_listeners: int = MAXIMUM_LISTENER_COUNT

    # Retry settings
    max_retries: int = 10
    initial_retry_delay: float = 1.0
    max_retry_delay: float = 60.0
    retry_multiplier: float = 1.5
    retry_jitter: float = 1.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.target_id < 1:
            raise ValueError(
                f"target_id must be positive, got {self.target_id}. "
                "Use 1 (default) unless the server reserves it."
            )

        if self.max_listeners < 1:
            raise ValueError(
                f"max_listeners must be positive, got {self.max_listeners}. "
                f"Use a value like {MAXIMUM_LISTENER_COUNT} (default)."
            )

        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}.")

        if self.initial_retry_delay <= 0:
            raise ValueError(
                f"initial_retry_delay must be positive, got {self.initial_retry_delay}."
            )

        if self.max_retry_delay <= 0:
            raise ValueError(f"max_retry_delay must be positive, got {self.max_retry_delay}.")

        if self.max_retry_delay < self.initial_retry_delay:
            raise ValueError(
                f"max_retry_delay ({self.max_retry_delay}) must be >= "
                f"initial_retry_delay ({self.initial_retry_delay})."
            )

        if self.retry_multiplier <= 1.0:
            raise ValueError(f"retry_multiplier must be > 1.0, got {self.retry_multiplier}.")

        if not 0.0 <= self.retry_jitter <= 1.0:
            raise ValueError(f"retry_jitter must be between 0.0 and 1.0, got {self.retry_jitter}.")

    def get_retry_config(self) -> RetryConfig:
        """
        Get retry configuration from subscription config.

        Returns:
            RetryConfig instance with settings from this config
        """
        from livequery.subscriptions.retry import RetryConfig

        return RetryConfig(
            max_retries=self.max_retries,
            initial_delay=self.initial_retry_delay,
            max_delay=self.max_retry_delay,
            multiplier=self.retry_multiplier,
            jitter=self.retry_jitter,
        )


__all__ = [
    "SubscriptionConfig",
    "TARGET_ID",
    "MAXIMUM_LISTENER_COUNT",
]
