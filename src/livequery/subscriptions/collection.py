"""
Collection subscription engine.

A ``CollectionSubscription`` keeps a local cache of the documents matching a
query in sync with the server and reports every change to its listeners.

The first activation runs a one-shot bulk query; every later stream is a
resumable listen stream carrying the cursor of the previous one, so only
changes are transferred. Streams are opened only while listeners are
registered: adding the first listener activates the subscription and
removing the last one releases the stream.

Example:
    >>> from livequery import CollectionSubscription, QueryTarget, fields_converter
    >>>
    >>> subscription = CollectionSubscription(
    ...     transport,
    ...     project_id="my-project",
    ...     database_id="(default)",
    ...     query_target=QueryTarget(
    ...         parent="projects/my-project/databases/(default)/documents",
    ...         structured_query={"from": [{"collectionId": "orders"}]},
    ...     ),
    ...     converter=fields_converter,
    ... )
    >>> subscription.on("document_added", lambda event: print(event.id))
    >>> await subscription.synchronize()
    >>> await subscription.close()
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from opentelemetry.metrics import MeterProvider

from livequery.exceptions import (
    ConversionError,
    ProtocolError,
    SubscriptionError,
    SubscriptionStateError,
)
from livequery.observability import (
    ATTR_DATABASE,
    ATTR_DB_SYSTEM,
    ATTR_DOCUMENT_COUNT,
    ATTR_PARENT,
    ATTR_RESUMED,
    ATTR_RETRY_COUNT,
    ATTR_RPC_METHOD,
    ATTR_STREAM_PHASE,
    ATTR_SUBSCRIPTION_NAME,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from livequery.protocol import (
    ListenRequest,
    QueryTarget,
    RunQueryRequest,
    RunQueryResponse,
    Target,
)
from livequery.subscriptions.config import SubscriptionConfig
from livequery.subscriptions.events import (
    Listener,
    SubscriptionEvent,
    SubscriptionFailed,
    SubscriptionWarning,
    Synchronized,
    event_for,
    parse_event,
)
from livequery.subscriptions.metrics import CollectionMetrics
from livequery.subscriptions.reconciliation import (
    Effect,
    Fail,
    Restart,
    apply_listen_response,
    apply_run_query_response,
    complete_bulk_fetch,
)
from livequery.subscriptions.retry import ExponentialBackoff, RetryError
from livequery.subscriptions.state import (
    VALID_TRANSITIONS,
    EngineState,
    StreamPhase,
    SubscriptionStatistics,
    UsageCounters,
    is_valid_transition,
)
from livequery.transport import Transport, database_path, routing_metadata
from livequery.types import Converter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TERMINAL_ERRORS = (RetryError, ProtocolError, ConversionError)


@dataclass
class _Stream:
    """The single stream owned by a subscription at a time."""

    closed: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None
    previous: tuple[asyncio.Task[None], ...] = ()


async def _aclose(iterator: object) -> None:
    close = getattr(iterator, "aclose", None)
    if close is not None:
        await close()


class CollectionSubscription(Generic[T]):
    """
    Live, cached view of the documents matching a query.

    Listeners are synchronous callables receiving event payloads
    (``DocumentAdded``, ``DocumentUpdated``, ``DocumentDeleted``,
    ``Synchronized``, ``SubscriptionWarning``, ``SubscriptionFailed``).
    Registration must happen inside a running event loop, since the first
    listener opens a stream.

    Transport faults are reported as ``warning`` events and retried with
    exponential backoff. Retry exhaustion, protocol violations and converter
    failures are reported as ``error`` events; the subscription then stays
    failed until every listener was removed.

    Attributes:
        name: Name used in logs, spans and metrics
        project_id: Project the database belongs to
        database_id: Database identifier
        query_target: Parent path and query of the subscription
        config: Subscription configuration
    """

    def __init__(
        self,
        transport: Transport,
        project_id: str,
        database_id: str,
        query_target: QueryTarget,
        converter: Converter[T],
        config: SubscriptionConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        enable_metrics: bool = True,
        meter_provider: MeterProvider | None = None,
    ) -> None:
        """
        Initialize the subscription. No stream is opened until a listener
        is registered.

        Args:
            transport: Streaming client for run query and listen calls
            project_id: Project the database belongs to
            database_id: Database identifier, usually ``(default)``
            query_target: Parent path and structured query
            converter: Maps documents to values, None rejects a document
            config: Subscription configuration (uses defaults if None)
            tracer: Optional custom Tracer (creates one if None)
            enable_tracing: Whether to create OpenTelemetry spans
            enable_metrics: Whether to report OpenTelemetry metrics
            meter_provider: Meter provider to use instead of the global one
        """
        self._transport = transport
        self._converter = converter
        self.project_id = project_id
        self.database_id = database_id
        self.query_target = query_target
        self.config = config or SubscriptionConfig()
        self.name = self.config.name or query_target.parent

        self._database = database_path(project_id, database_id)
        self._metadata = routing_metadata(self._database)

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._metrics = CollectionMetrics(
            self.name, enable_metrics=enable_metrics, meter_provider=meter_provider
        )
        self._backoff = ExponentialBackoff(self.config.get_retry_config())

        self._state: EngineState[T] = EngineState()
        self._listeners: dict[SubscriptionEvent, list[Listener]] = {
            event: [] for event in SubscriptionEvent
        }
        self._phase = StreamPhase.INACTIVE
        self._stream: _Stream | None = None
        self._launch_handle: asyncio.Handle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._waiters: set[asyncio.Future[Any]] = set()
        self._failure: BaseException | None = None
        self._metrics.record_phase(self._phase.value)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def on(self, event: SubscriptionEvent | str, listener: Listener) -> None:
        """
        Register a listener. The first listener activates the subscription.

        Raises:
            ValueError: If the event name is unknown
        """
        resolved = parse_event(event)
        listeners = self._listeners[resolved]
        listeners.append(listener)

        if len(listeners) > self.config.max_listeners:
            logger.warning(
                "Possible listener leak detected",
                extra={
                    "subscription": self.name,
                    "event": resolved.value,
                    "listener_count": len(listeners),
                    "max_listeners": self.config.max_listeners,
                },
            )

        self._state.statistics.active_listeners = self.listener_count()
        if self._state.statistics.active_listeners == 1:
            self._start()

    def off(self, event: SubscriptionEvent | str, listener: Listener) -> None:
        """
        Remove a listener. Removing the last listener deactivates the
        subscription. Unknown listeners are ignored.

        Raises:
            ValueError: If the event name is unknown
        """
        listeners = self._listeners[parse_event(event)]
        if listener not in listeners:
            return
        listeners.remove(listener)

        self._state.statistics.active_listeners = self.listener_count()
        if self._state.statistics.active_listeners == 0:
            self._stop()

    def listener_count(self, event: SubscriptionEvent | str | None = None) -> int:
        """Number of listeners for ``event``, or for all events."""
        if event is None:
            return sum(len(listeners) for listeners in self._listeners.values())
        return len(self._listeners[parse_event(event)])

    async def once(self, event: SubscriptionEvent | str) -> Any:
        """
        Wait for the next payload of ``event``.

        The wait holds a listener, so it activates the subscription. An
        ``error`` event ends the wait by raising the terminal error, and a
        subscription that already failed raises its error right away.

        Raises:
            ValueError: If the event name is unknown
            SubscriptionError: If the subscription is closed while waiting
        """
        resolved = parse_event(event)
        if self._failure is not None and resolved is not SubscriptionEvent.ERROR:
            # Nothing is emitted until every listener was removed
            raise self._failure

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._waiters.add(future)

        def resolve(payload: Any) -> None:
            if not future.done():
                future.set_result(payload)

        def reject(payload: SubscriptionFailed) -> None:
            if not future.done():
                future.set_exception(payload.error)

        self.on(resolved, resolve)
        if resolved is not SubscriptionEvent.ERROR:
            self.on(SubscriptionEvent.ERROR, reject)
        try:
            return await future
        finally:
            self._waiters.discard(future)
            if resolved is not SubscriptionEvent.ERROR:
                self.off(SubscriptionEvent.ERROR, reject)
            self.off(resolved, resolve)

    async def synchronize(self) -> None:
        """
        Wait until the cache matches the server.

        Returns immediately when already synchronized. Concurrent callers are
        released by the same checkpoint.

        Raises:
            RetryError: If the subscription gave up reconnecting
            ProtocolError: If the server violated the protocol
            ConversionError: If the converter failed
            SubscriptionError: If the subscription is closed while waiting
        """
        if self._state.synchronized:
            return
        await self.once(SubscriptionEvent.SYNCHRONIZED)

    # -------------------------------------------------------------------------
    # State accessors
    # -------------------------------------------------------------------------

    def data(self) -> MappingProxyType[str, T]:
        """Read-only view of the documents delivered to listeners, by id."""
        return MappingProxyType(self._state.emitted_data)

    def is_active(self) -> bool:
        """True while at least one listener is registered, even when failed."""
        return self.listener_count() > 0

    def is_synchronized(self) -> bool:
        return self._state.synchronized

    def last_synchronized(self) -> datetime | None:
        """Read time of the last completeness checkpoint."""
        if self._state.last_synchronization_time is None:
            return None
        return self._state.last_synchronization_time.to_datetime()

    def metrics(self) -> UsageCounters:
        """Usage counters since the previous call. Resets them."""
        return self._state.usage.read_and_reset()

    def statistics(self) -> SubscriptionStatistics:
        """Snapshot of the cumulative protocol counters."""
        return self._state.statistics.snapshot()

    @property
    def phase(self) -> StreamPhase:
        return self._phase

    @property
    def telemetry(self) -> CollectionMetrics:
        """OpenTelemetry instruments of this subscription."""
        return self._metrics

    def reset(self) -> None:
        """
        Forget cached documents and the resumption cursor.

        Only needed when the server lost the memory of previous streams
        (e.g. an emulator whose data was cleared). Calling it on an active
        subscription has undefined results.
        """
        if self.is_active():
            logger.warning(
                "Resetting an active subscription",
                extra={"subscription": self.name, "phase": self._phase.value},
            )
        self._state.reset()

    async def close(self) -> None:
        """
        Remove every listener and wait for the stream to shut down.

        Pending ``once()`` and ``synchronize()`` calls raise
        ``SubscriptionError``.
        """
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_exception(SubscriptionError("Subscription closed."))
        for listeners in self._listeners.values():
            listeners.clear()
        self._state.statistics.active_listeners = 0
        self._stop()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _transition(self, new_phase: StreamPhase) -> None:
        if not is_valid_transition(self._phase, new_phase):
            valid_targets = VALID_TRANSITIONS.get(self._phase, set())
            raise SubscriptionStateError(
                f"Cannot transition from {self._phase.value} to {new_phase.value}. "
                f"Valid transitions: {[phase.value for phase in valid_targets]}"
            )

        old_phase = self._phase
        self._phase = new_phase
        self._metrics.record_phase(new_phase.value)

        logger.debug(
            "Subscription phase changed",
            extra={
                "subscription": self.name,
                "from_phase": old_phase.value,
                "to_phase": new_phase.value,
            },
        )

    def _start(self) -> None:
        if self._phase is not StreamPhase.INACTIVE:
            return
        self._transition(StreamPhase.STARTING)
        self._launch()

    def _launch(self) -> None:
        """Create the reader task for a new stream (STARTING phase only)."""
        self._launch_handle = None
        if self._phase is not StreamPhase.STARTING or self._stream is not None:
            return

        stream = _Stream(previous=tuple(self._tasks))
        stream.task = asyncio.get_running_loop().create_task(
            self._run(stream), name=f"livequery:{self.name}"
        )
        self._stream = stream
        self._tasks.add(stream.task)
        stream.task.add_done_callback(self._tasks.discard)

    def _release_stream(self) -> None:
        """Close the current stream, if any, and forget per-stream state."""
        if self._launch_handle is not None:
            self._launch_handle.cancel()
            self._launch_handle = None

        stream = self._stream
        self._stream = None
        if stream is not None:
            stream.closed.set()
            if stream.task is not None and stream.task is not asyncio.current_task():
                stream.task.cancel()

        self._state.synchronized = False
        self._state.usage.touched.clear()

    def _stop(self) -> None:
        """Deactivate: release the stream and start over from a fresh backoff."""
        if self._phase is StreamPhase.INACTIVE:
            return

        self._release_stream()
        self._backoff.reset()
        self._failure = None
        self._transition(StreamPhase.INACTIVE)

        logger.info(
            "Subscription deactivated",
            extra={"subscription": self.name, "database": self._database},
        )

    def _reopen(self) -> None:
        """Release the stream and open the next one on the next loop iteration."""
        if self._phase not in (StreamPhase.BULK_FETCHING, StreamPhase.LISTENING):
            return

        self._release_stream()
        self._transition(StreamPhase.STARTING)
        self._launch_handle = asyncio.get_running_loop().call_soon(self._launch)

    def _restart(self, reason: str) -> None:
        if self._phase not in (StreamPhase.BULK_FETCHING, StreamPhase.LISTENING):
            return

        self._state.statistics.stream_restarts += 1
        self._metrics.record_restart(reason)

        logger.info(
            "Restarting subscription stream",
            extra={
                "subscription": self.name,
                "reason": reason,
                "retry_count": self._backoff.retry_count,
            },
        )
        self._reopen()

    def _recover(self, error: Exception) -> None:
        """Report a transient fault and restart with backoff."""
        logger.warning(
            "Subscription stream failed, retrying",
            extra={
                "subscription": self.name,
                "database": self._database,
                "error": str(error),
                "error_type": type(error).__name__,
                "retry_count": self._backoff.retry_count,
            },
        )
        self._emit(SubscriptionWarning(error=error))
        self._restart("transport error")

    def _fail(self, error: BaseException) -> None:
        """Report a terminal error. Listeners must be removed to recover."""
        if self._phase in (StreamPhase.INACTIVE, StreamPhase.FAILED):
            return

        self._release_stream()
        self._failure = error
        self._transition(StreamPhase.FAILED)

        logger.error(
            "Subscription failed",
            extra={
                "subscription": self.name,
                "database": self._database,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
        self._emit(SubscriptionFailed(error=error))

    # -------------------------------------------------------------------------
    # Streams
    # -------------------------------------------------------------------------

    async def _run(self, stream: _Stream) -> None:
        """Reader task body: wait out the backoff, then consume one stream."""
        if stream.previous:
            # The previous call must be closed before the next one opens
            await asyncio.wait(stream.previous)

        try:
            await self._backoff.wait()
        except RetryError as e:
            if self._stream is stream:
                self._fail(e)
            return

        # Stopped while waiting
        if self._stream is not stream or self._phase is not StreamPhase.STARTING:
            return

        try:
            if self._state.initialized:
                await self._listen(stream)
            else:
                await self._bulk_fetch(stream)
        except _TERMINAL_ERRORS as e:
            if self._stream is stream:
                self._fail(e)
        except Exception as e:
            if self._stream is stream:
                self._recover(e)

    def _span_attributes(self, method: str) -> dict[str, Any]:
        return {
            ATTR_DB_SYSTEM: "firestore",
            ATTR_RPC_METHOD: method,
            ATTR_DATABASE: self._database,
            ATTR_PARENT: self.query_target.parent,
            ATTR_SUBSCRIPTION_NAME: self.name,
            ATTR_RETRY_COUNT: self._backoff.retry_count,
        }

    async def _bulk_fetch(self, stream: _Stream) -> None:
        request = RunQueryRequest(
            parent=self.query_target.parent,
            structured_query=self.query_target.structured_query,
        )
        self._transition(StreamPhase.BULK_FETCHING)

        logger.info(
            "Starting bulk fetch",
            extra={"subscription": self.name, "database": self._database},
        )

        with self._tracer.span_with_kind(
            "livequery.run_query",
            SpanKindEnum.CLIENT,
            self._span_attributes("RunQuery"),
        ):
            responses = self._transport.run_query(request, metadata=self._metadata)
            try:
                async for response in responses:
                    if self._stream is not stream:
                        return
                    if not self._reconcile(stream, self._on_run_query_response, response):
                        return

                if self._stream is not stream:
                    return
                effects = complete_bulk_fetch(self._state)
            finally:
                await _aclose(responses)

        if not self._dispatch(stream, effects):
            return

        logger.info(
            "Bulk fetch complete",
            extra={"subscription": self.name, "document_count": len(self._state.target_data)},
        )

        # A completed call counts as progress
        self._backoff.reset()
        self._reopen()

    def _on_run_query_response(self, response: RunQueryResponse) -> list[Effect]:
        return apply_run_query_response(self._state, response, self._converter)

    def _listen_request(self) -> ListenRequest:
        structured_query = self.query_target.structured_query.without_projection()
        return ListenRequest(
            database=self._database,
            add_target=Target(
                query=QueryTarget(
                    parent=self.query_target.parent,
                    structured_query=structured_query,
                ),
                target_id=self.config.target_id,
                resume_token=self._state.resume_token,
                read_time=self._state.read_time,
            ),
        )

    async def _requests(self, stream: _Stream, request: ListenRequest) -> AsyncIterator[ListenRequest]:
        """Write the target, then hold the request side open until the stream closes."""
        yield request
        await stream.closed.wait()

    async def _listen(self, stream: _Stream) -> None:
        request = self._listen_request()
        self._transition(StreamPhase.LISTENING)

        resumed = request.add_target is not None and request.add_target.resume_token is not None
        logger.info(
            "Opening listen stream",
            extra={
                "subscription": self.name,
                "database": self._database,
                "resumed": resumed,
            },
        )

        attributes = self._span_attributes("Listen")
        attributes[ATTR_RESUMED] = resumed

        with self._tracer.span_with_kind("livequery.listen", SpanKindEnum.CLIENT, attributes):
            requests = self._requests(stream, request)
            responses = self._transport.listen(requests, metadata=self._metadata)
            try:
                async for response in responses:
                    if self._stream is not stream:
                        return
                    if not self._reconcile(stream, self._on_listen_response, response):
                        return
            finally:
                # Ends the request iterator, half-closing the call
                stream.closed.set()
                await _aclose(responses)

        if self._stream is stream:
            # The server ended the stream without an error
            self._restart("stream ended")

    def _on_listen_response(self, response: Any) -> list[Effect]:
        self._backoff.reset()
        self._metrics.record_response(getattr(response, "response_type", type(response).__name__))

        logger.debug(
            "Received listen response",
            extra={
                "subscription": self.name,
                "response_type": getattr(response, "response_type", None),
            },
        )
        return apply_listen_response(self._state, response, self._converter)

    # -------------------------------------------------------------------------
    # Effects
    # -------------------------------------------------------------------------

    def _reconcile(
        self,
        stream: _Stream,
        handler: Callable[[Any], list[Effect]],
        response: Any,
    ) -> bool:
        """Apply one message and its effects. False once the stream is gone."""
        usage = self._state.usage
        changed, removed, filtered = usage.changed, usage.removed, usage.filtered

        effects = handler(response)

        self._metrics.record_documents(
            changed=usage.changed - changed,
            removed=usage.removed - removed,
            filtered=usage.filtered - filtered,
        )
        return self._dispatch(stream, effects)

    def _dispatch(self, stream: _Stream, effects: list[Effect]) -> bool:
        for effect in effects:
            if isinstance(effect, Restart):
                self._restart(effect.reason)
                return False
            elif isinstance(effect, Fail):
                self._fail(effect.error)
                return False
            elif isinstance(effect, Synchronized):
                self._metrics.record_synchronized()
                with self._tracer.span(
                    "livequery.synchronized",
                    {
                        ATTR_SUBSCRIPTION_NAME: self.name,
                        ATTR_DATABASE: self._database,
                        ATTR_STREAM_PHASE: self._phase.value,
                        ATTR_DOCUMENT_COUNT: len(self._state.target_data),
                    },
                ):
                    self._emit(effect)
            else:
                self._emit(effect)

            # A listener may have deactivated the subscription
            if self._stream is not stream:
                return False
        return True

    def _emit(self, payload: object) -> None:
        event = event_for(payload)
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
            except Exception:
                logger.exception(
                    "Subscription listener raised",
                    extra={"subscription": self.name, "event": event.value},
                )

    def __repr__(self) -> str:
        return (
            f"CollectionSubscription(name={self.name!r}, phase={self._phase.value}, "
            f"listeners={self.listener_count()}, documents={len(self._state.emitted_data)})"
        )


__all__ = [
    "CollectionSubscription",
]
