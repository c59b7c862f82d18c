"""
Reconciliation of server responses against the cached document set.

Every handler is a transition over an ``EngineState``: it applies one
message to the state and returns the effects the subscription must carry
out, in order. Handlers never touch streams or listeners, which keeps them
testable without a live connection.

A message is either applied completely or rejected before any mutation:
protocol checks and the converter run before the state is changed.

This module provides:
- Restart / Fail: Control effects
- Effect: Union of all effects
- apply_document_change, apply_document_delete, apply_filter,
  apply_target_change, mark_current: Message transitions
- apply_listen_response: Dispatcher for listen stream messages
- apply_run_query_response, complete_bulk_fetch: Bulk fetch transitions
"""

import logging
from dataclasses import dataclass
from typing import Any, TypeVar

from livequery.converters import to_id
from livequery.exceptions import ConversionError, ProtocolError, UnsupportedResponseError
from livequery.protocol import (
    Document,
    DocumentChange,
    DocumentDelete,
    DocumentRemove,
    ExistenceFilter,
    RunQueryResponse,
    TargetChange,
    TargetChangeType,
)
from livequery.subscriptions.events import (
    DocumentAdded,
    DocumentDeleted,
    DocumentUpdated,
    Synchronized,
)
from livequery.subscriptions.state import EngineState
from livequery.types import Converter
from livequery.values import Timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Restart:
    """Tear the stream down and start a new one on the next loop iteration."""

    reason: str


@dataclass(frozen=True)
class Fail:
    """Stop the subscription with a terminal error."""

    error: BaseException


Effect = DocumentAdded[Any] | DocumentUpdated[Any] | DocumentDeleted | Synchronized | Restart | Fail


def _convert(converter: Converter[T], document: Document) -> T | None:
    try:
        return converter(document)
    except Exception as e:
        raise ConversionError(f"Converter failed for document {document.name}: {e}") from e


def apply_document_delete(state: EngineState[T], name: str | None) -> list[Effect]:
    """
    Remove a document from the result set.

    Used for explicit deletes, removals and converter rejections alike.

    Raises:
        ProtocolError: If the message carries no document name
    """
    if not name:
        raise ProtocolError("Document deletion does not have a document.")

    document_id = to_id(name)

    state.usage.touched.add(document_id)
    state.usage.removed += 1

    state.target_data.pop(document_id, None)

    if document_id in state.emitted_data:
        del state.emitted_data[document_id]
        return [DocumentDeleted(id=document_id)]
    return []


def apply_document_change(
    state: EngineState[T],
    document: Document | None,
    converter: Converter[T],
) -> list[Effect]:
    """
    Apply a changed document.

    The converter may reject the document by returning None, in which case
    it is treated as deleted. Otherwise the converted value is compared with
    the one consumers last saw: new ids are added, different values updated
    and equal values produce no event.

    Raises:
        ProtocolError: If the message carries no document or document name
        ConversionError: If the converter raises
    """
    if document is None:
        raise ProtocolError("Document change does not have a document.")
    if not document.name:
        raise ProtocolError("Document change does not have a document name.")

    converted = _convert(converter, document)

    if converted is None:
        return apply_document_delete(state, document.name)

    document_id = to_id(document.name)

    state.usage.touched.add(document_id)
    state.usage.changed += 1

    state.target_data[document_id] = converted

    if document_id not in state.emitted_data:
        state.emitted_data[document_id] = converted
        return [DocumentAdded(id=document_id, data=converted)]

    before = state.emitted_data[document_id]
    if before != converted:
        state.emitted_data[document_id] = converted
        return [DocumentUpdated(id=document_id, before=before, after=converted)]
    return []


def mark_current(state: EngineState[T]) -> list[Effect]:
    """
    Completeness checkpoint.

    Everything received since the last checkpoint is now known to be the
    full result set: cached documents the server did not confirm are
    deleted, then the subscription is synchronized.
    """
    effects: list[Effect] = []

    for document_id in [key for key in state.emitted_data if key not in state.target_data]:
        del state.emitted_data[document_id]
        effects.append(DocumentDeleted(id=document_id))

    state.synchronized = True
    state.last_synchronization_time = state.read_time or Timestamp.now()

    effects.append(Synchronized())
    return effects


def apply_filter(state: EngineState[T], existence_filter: ExistenceFilter) -> list[Effect]:
    """
    Check the server's result-set size against the cache.

    Documents the server counted but did not resend are tallied as
    filtered. A size mismatch means the cache drifted: the cursor and the
    confirmed documents are dropped and the stream restarts from scratch.
    """
    state.usage.filtered += existence_filter.count - len(state.usage.touched)
    state.usage.touched.clear()

    if existence_filter.count != len(state.target_data):
        logger.info(
            "Existence filter mismatch, resynchronizing",
            extra={
                "server_count": existence_filter.count,
                "local_count": len(state.target_data),
            },
        )
        state.clear_cursor()
        state.target_data.clear()
        return [Restart(reason="existence filter mismatch")]
    return []


def apply_target_change(state: EngineState[T], change: TargetChange) -> list[Effect]:
    """
    Apply a target change.

    The read time and resume token are stored for every subtype.
    """
    state.read_time = change.read_time
    state.resume_token = change.resume_token

    change_type = change.target_change_type

    if change_type is TargetChangeType.ADD:
        return []
    elif change_type is TargetChangeType.NO_CHANGE:
        # Only carries an updated resume token
        return []
    elif change_type is TargetChangeType.CURRENT:
        return mark_current(state)
    elif change_type is TargetChangeType.REMOVE:
        # Targets are never removed on request, so this is a server fault
        return [Restart(reason="target removed by server")]
    elif change_type is TargetChangeType.RESET:
        # A new initial state follows, ending with CURRENT
        state.target_data.clear()
        return []
    else:
        return [Fail(error=UnsupportedResponseError(change))]


def apply_listen_response(
    state: EngineState[T],
    response: object,
    converter: Converter[T],
) -> list[Effect]:
    """
    Dispatch a listen stream message and count it in the statistics.

    Unknown message kinds yield a terminal ``Fail`` effect.

    Raises:
        ProtocolError: If a known message is malformed
        ConversionError: If the converter raises
    """
    responses = state.statistics.listen_responses

    if isinstance(response, DocumentChange):
        responses["document_change"] += 1
        return apply_document_change(state, response.document, converter)
    elif isinstance(response, DocumentDelete):
        responses["document_delete"] += 1
        return apply_document_delete(state, response.document)
    elif isinstance(response, DocumentRemove):
        responses["document_remove"] += 1
        return apply_document_delete(state, response.document)
    elif isinstance(response, ExistenceFilter):
        responses["filter"] += 1
        return apply_filter(state, response)
    elif isinstance(response, TargetChange):
        responses["target_change"] += 1
        change_type = response.target_change_type
        if isinstance(change_type, TargetChangeType):
            state.statistics.target_changes[change_type.value] += 1
        return apply_target_change(state, response)
    else:
        return [Fail(error=UnsupportedResponseError(response))]


def apply_run_query_response(
    state: EngineState[T],
    response: RunQueryResponse,
    converter: Converter[T],
) -> list[Effect]:
    """Apply one bulk fetch result, tracking the server read time."""
    if response.read_time is not None:
        state.read_time = response.read_time

    if response.document is None:
        return []

    state.statistics.run_query_responses += 1
    return apply_document_change(state, response.document, converter)


def complete_bulk_fetch(state: EngineState[T]) -> list[Effect]:
    """The bulk fetch ended: the subscription is initialized and current."""
    state.initialized = True
    return mark_current(state)


__all__ = [
    "Restart",
    "Fail",
    "Effect",
    "apply_document_change",
    "apply_document_delete",
    "apply_filter",
    "apply_target_change",
    "mark_current",
    "apply_listen_response",
    "apply_run_query_response",
    "complete_bulk_fetch",
]
