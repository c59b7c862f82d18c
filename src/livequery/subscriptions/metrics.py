"""
OpenTelemetry metrics for collection subscriptions.

Instruments document traffic, protocol messages, restarts and the stream
phase of each subscription. When metrics are disabled the instruments come
from the OpenTelemetry no-op meter; without an SDK configured, the API's
default meter provider is a no-op as well.

Example:
    >>> from livequery.subscriptions.metrics import CollectionMetrics
    >>>
    >>> metrics = CollectionMetrics("orders")
    >>> metrics.record_documents(changed=3)
    >>> metrics.record_response("documentChange")
    >>> metrics.record_phase("listening")

Metrics Exposed:
    - livequery.documents.changed (Counter): Documents received as changed
    - livequery.documents.removed (Counter): Documents removed from the result set
    - livequery.documents.filtered (Counter): Documents confirmed without resend
    - livequery.responses (Counter): Stream messages received, by type
    - livequery.stream.restarts (Counter): Streams restarted, by reason
    - livequery.synchronizations (Counter): Completeness checkpoints reached
    - livequery.stream.phase (Gauge): Current stream phase (numeric)

All metrics include the 'subscription' attribute for filtering by subscription name.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, MeterProvider, NoOpMeter, Observation


class PhaseValue(IntEnum):
    """Numeric values for stream phases as gauge values."""

    UNKNOWN = 0
    INACTIVE = 1
    STARTING = 2
    BULK_FETCHING = 3
    LISTENING = 4
    FAILED = 5


PHASE_MAPPING: dict[str, int] = {
    "inactive": PhaseValue.INACTIVE,
    "starting": PhaseValue.STARTING,
    "bulk_fetching": PhaseValue.BULK_FETCHING,
    "listening": PhaseValue.LISTENING,
    "failed": PhaseValue.FAILED,
}

METER_NAME = "livequery.subscriptions"


@dataclass
class MetricSnapshot:
    """
    Snapshot of values recorded by a CollectionMetrics instance.

    Useful for testing and debugging to see what values would be
    reported to OpenTelemetry.
    """

    documents_changed: int = 0
    documents_removed: int = 0
    documents_filtered: int = 0
    responses: int = 0
    restarts: int = 0
    synchronizations: int = 0
    current_phase: int = PhaseValue.UNKNOWN
    current_phase_name: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "documents_changed": self.documents_changed,
            "documents_removed": self.documents_removed,
            "documents_filtered": self.documents_filtered,
            "responses": self.responses,
            "restarts": self.restarts,
            "synchronizations": self.synchronizations,
            "current_phase": self.current_phase,
            "current_phase_name": self.current_phase_name,
        }


@dataclass
class CollectionMetrics:
    """
    Container for the metric instruments of one subscription.

    Attributes:
        subscription_name: Name of the subscription for metric labels
        enable_metrics: Whether metrics are enabled (default True)
        meter_provider: Provider to use instead of the global one
    """

    subscription_name: str
    enable_metrics: bool = True
    meter_provider: MeterProvider | None = None

    _meter: Any = field(default=None, init=False, repr=False)
    _changed_counter: Any = field(default=None, init=False, repr=False)
    _removed_counter: Any = field(default=None, init=False, repr=False)
    _filtered_counter: Any = field(default=None, init=False, repr=False)
    _responses_counter: Any = field(default=None, init=False, repr=False)
    _restarts_counter: Any = field(default=None, init=False, repr=False)
    _synchronizations_counter: Any = field(default=None, init=False, repr=False)
    _snapshot: MetricSnapshot = field(default_factory=MetricSnapshot, init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialize metric instruments."""
        if self.enable_metrics:
            self._meter = metrics.get_meter(
                METER_NAME, version="1.0.0", meter_provider=self.meter_provider
            )
        else:
            self._meter = NoOpMeter(METER_NAME)

        self._changed_counter = self._meter.create_counter(
            name="livequery.documents.changed",
            unit="documents",
            description="Documents received as changed",
        )
        self._removed_counter = self._meter.create_counter(
            name="livequery.documents.removed",
            unit="documents",
            description="Documents removed from the result set",
        )
        self._filtered_counter = self._meter.create_counter(
            name="livequery.documents.filtered",
            unit="documents",
            description="Documents confirmed unchanged without being resent",
        )
        self._responses_counter = self._meter.create_counter(
            name="livequery.responses",
            unit="messages",
            description="Stream messages received",
        )
        self._restarts_counter = self._meter.create_counter(
            name="livequery.stream.restarts",
            unit="restarts",
            description="Streams restarted after errors or resynchronizations",
        )
        self._synchronizations_counter = self._meter.create_counter(
            name="livequery.synchronizations",
            unit="checkpoints",
            description="Completeness checkpoints reached",
        )
        self._meter.create_observable_gauge(
            name="livequery.stream.phase",
            callbacks=[self._observe_phase],
            unit="1",
            description="Current stream phase (numeric)",
        )

    def _observe_phase(self, options: CallbackOptions) -> Iterable[Observation]:
        """Callback for the observable phase gauge."""
        yield Observation(
            value=self._snapshot.current_phase,
            attributes={
                "subscription": self.subscription_name,
                "phase_name": self._snapshot.current_phase_name,
            },
        )

    def _attributes(self, **extra: str) -> dict[str, str]:
        return {"subscription": self.subscription_name, **extra}

    def record_documents(self, changed: int = 0, removed: int = 0, filtered: int = 0) -> None:
        """
        Record document traffic.

        Args:
            changed: Documents received as changed
            removed: Documents removed from the result set
            filtered: Documents confirmed without resend (may be negative
                when the server count fell short of the changes seen)
        """
        attrs = self._attributes()
        if changed:
            self._changed_counter.add(changed, attrs)
            self._snapshot.documents_changed += changed
        if removed:
            self._removed_counter.add(removed, attrs)
            self._snapshot.documents_removed += removed
        if filtered > 0:
            self._filtered_counter.add(filtered, attrs)
            self._snapshot.documents_filtered += filtered

    def record_response(self, response_type: str) -> None:
        """Record a received stream message."""
        self._responses_counter.add(1, self._attributes(response_type=response_type))
        self._snapshot.responses += 1

    def record_restart(self, reason: str) -> None:
        """Record a stream restart."""
        self._restarts_counter.add(1, self._attributes(reason=reason))
        self._snapshot.restarts += 1

    def record_synchronized(self) -> None:
        """Record a completeness checkpoint."""
        self._synchronizations_counter.add(1, self._attributes())
        self._snapshot.synchronizations += 1

    def record_phase(self, phase: str) -> None:
        """
        Update the current stream phase reported by the gauge.

        Args:
            phase: Phase name (e.g., "listening", "starting")
        """
        self._snapshot.current_phase_name = phase.lower()
        self._snapshot.current_phase = PHASE_MAPPING.get(
            self._snapshot.current_phase_name, PhaseValue.UNKNOWN
        )

    def get_snapshot(self) -> MetricSnapshot:
        """
        Get a snapshot of recorded values.

        Returns:
            MetricSnapshot with current values
        """
        return MetricSnapshot(**self._snapshot.to_dict())

    @property
    def metrics_enabled(self) -> bool:
        """True if instruments report to the configured meter provider."""
        return self.enable_metrics


__all__ = [
    "PHASE_MAPPING",
    "PhaseValue",
    "METER_NAME",
    "CollectionMetrics",
    "MetricSnapshot",
]
