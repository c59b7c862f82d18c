"""
Retry pacing for reconnecting subscription streams.

Provides exponential backoff with jitter. The first wait after construction
or ``reset()`` is immediate ("fail fast once, then back off"); each
following wait grows by the multiplier until the retry budget is spent.

This module provides:
- RetryConfig: Configuration for backoff behavior
- RetryError: Exception raised when all retries are exhausted
- BackoffInProgressError: Exception raised for concurrent waits
- calculate_backoff: Apply jitter to a base delay
- next_base_delay: Advance the base delay for the following attempt
- ExponentialBackoff: Stateful backoff controller
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# Midpoint of the values returned by random.random()
RANDOM_MIDPOINT = 0.5


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for backoff behavior.

    Attributes:
        max_retries: Number of waits allowed before retries are exhausted
        initial_delay: Base delay in seconds after the first (immediate) attempt
        max_delay: Maximum base delay in seconds (jitter may exceed it by half)
        multiplier: Factor applied to the base delay after each attempt
        jitter: Randomization of a delay; 0 means none, 1.0 means +/-50%

    Example:
        >>> config = RetryConfig(
        ...     max_retries=10,
        ...     initial_delay=1.0,
        ...     max_delay=60.0,
        ... )
    """

    max_retries: int = 10
    initial_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 1.5
    jitter: float = 1.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_retries < 1:
            raise ValueError(
                f"max_retries must be >= 1, got {self.max_retries}. "
                "The first attempt also consumes a retry."
            )

        if self.initial_delay <= 0:
            raise ValueError(f"initial_delay must be positive, got {self.initial_delay}.")

        if self.max_delay <= 0:
            raise ValueError(f"max_delay must be positive, got {self.max_delay}.")

        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})."
            )

        if self.multiplier <= 1.0:
            raise ValueError(f"multiplier must be > 1.0, got {self.multiplier}.")

        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {self.jitter}.")


class RetryError(Exception):
    """
    Raised when the retry budget is exhausted.

    Attributes:
        message: Error message
        attempts: Number of waits performed before giving up
    """

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class BackoffInProgressError(RuntimeError):
    """Raised when a wait is requested while a previous one has not completed."""

    def __init__(self) -> None:
        super().__init__("A backoff operation is already in progress.")


def calculate_backoff(
    base_delay: float,
    config: RetryConfig,
    rand: float,
) -> float:
    """
    Apply symmetric jitter to a base delay.

    Args:
        base_delay: Current base delay in seconds
        config: Retry configuration
        rand: Uniform random sample in [0, 1)

    Returns:
        Delay in seconds

    Example:
        >>> calculate_backoff(2.0, RetryConfig(), 0.5)  # midpoint, no jitter
        2.0
        >>> calculate_backoff(2.0, RetryConfig(), 0.0)  # -50%
        1.0
    """
    return base_delay + (rand - RANDOM_MIDPOINT) * config.jitter * base_delay


def next_base_delay(base_delay: float, config: RetryConfig) -> float:
    """
    Advance the base delay for the next attempt.

    The result is at least ``initial_delay`` and at most one and a half times
    ``max_delay``.
    """
    return min(
        max(base_delay * config.multiplier, config.initial_delay),
        config.max_delay + config.max_delay * RANDOM_MIDPOINT,
    )


class ExponentialBackoff:
    """
    Backoff controller allowing a single outstanding wait.

    Concurrent waits are a caller error and fail immediately instead of
    queueing. Once ``max_retries`` waits were performed without a reset,
    further waits raise ``RetryError``.

    Attributes:
        config: Retry configuration

    Example:
        >>> backoff = ExponentialBackoff()
        >>> await backoff.wait()  # immediate
        >>> await backoff.wait()  # ~1s
        >>> backoff.reset()
        >>> await backoff.wait()  # immediate again
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        random_source: Callable[[], float] = random.random,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the controller.

        Args:
            config: Retry configuration (uses defaults if None)
            random_source: Uniform random source in [0, 1)
            sleep: Coroutine function used to wait
        """
        self.config = config or RetryConfig()
        self._random = random_source
        self._sleep = sleep
        self._current_base_delay = 0.0
        self._retry_count = 0
        self._waiting = False

    @property
    def retry_count(self) -> int:
        """Number of waits performed since the last reset."""
        return self._retry_count

    @property
    def current_base_delay(self) -> float:
        """Base delay (seconds) that the next wait will use."""
        return self._current_base_delay

    @property
    def is_waiting(self) -> bool:
        """True while a wait is outstanding."""
        return self._waiting

    @property
    def is_exhausted(self) -> bool:
        """True if the next wait would raise RetryError."""
        return self._retry_count >= self.config.max_retries

    async def wait(self) -> float:
        """
        Wait for the current backoff delay, then grow the delay.

        Returns:
            The delay waited, in seconds

        Raises:
            BackoffInProgressError: If a previous wait has not completed
            RetryError: If the retry budget is exhausted
        """
        if self._waiting:
            raise BackoffInProgressError()

        if self.is_exhausted:
            raise RetryError(
                "Exceeded maximum number of retries allowed.",
                attempts=self._retry_count,
            )

        # Schedule with the current base (0 right after a reset)
        delay = calculate_backoff(self._current_base_delay, self.config, self._random())

        self._current_base_delay = next_base_delay(self._current_base_delay, self.config)
        self._retry_count += 1

        if delay > 0:
            logger.debug(
                "Backing off",
                extra={
                    "delay_seconds": delay,
                    "retry_count": self._retry_count,
                    "max_retries": self.config.max_retries,
                },
            )

        self._waiting = True
        try:
            await self._sleep(delay)
        finally:
            self._waiting = False

        return delay

    def reset(self) -> None:
        """
        Reset the delay and the retry count.

        The next wait is immediate; a wait after that uses the initial delay.
        """
        self._current_base_delay = 0.0
        self._retry_count = 0

    def to_dict(self) -> dict[str, Any]:
        """
        Convert controller state to dictionary.

        Returns:
            Dictionary representation of state
        """
        return {
            "current_base_delay": self._current_base_delay,
            "retry_count": self._retry_count,
            "waiting": self._waiting,
        }


__all__ = [
    "RetryConfig",
    "RetryError",
    "BackoffInProgressError",
    "calculate_backoff",
    "next_base_delay",
    "ExponentialBackoff",
    "RANDOM_MIDPOINT",
]
