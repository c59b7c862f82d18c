"""
Transport over the Google Cloud Firestore v1 async client.

``FirestoreTransport`` adapts ``FirestoreAsyncClient`` to the ``Transport``
protocol. Requests are converted to proto messages before they are sent and
responses are converted back into the wire models subscriptions consume.

Requires the ``firestore`` extra:

    pip install livequery[firestore]

Example:
    >>> from google.auth.credentials import AnonymousCredentials
    >>> from livequery import Repository
    >>> from livequery.firestore import FirestoreTransport
    >>>
    >>> # Against the emulator
    >>> transport = FirestoreTransport(
    ...     credentials=AnonymousCredentials(),
    ...     client_options={"api_endpoint": "localhost:8080"},
    ... )
    >>> async with Repository(transport, project_id="demo-project") as repository:
    ...     ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

from livequery.exceptions import UnhandledValueTypeError, UnsupportedResponseError
from livequery.protocol import (
    Document,
    DocumentChange,
    DocumentDelete,
    DocumentRemove,
    ExistenceFilter,
    ListenRequest,
    ListenResponse,
    RunQueryRequest,
    RunQueryResponse,
    StructuredQuery,
    Target,
    TargetChange,
    TargetChangeType,
)
from livequery.types import Metadata
from livequery.values import (
    ArrayContents,
    ArrayValue,
    BooleanValue,
    DoubleValue,
    GeoPoint,
    GeoPointValue,
    IntegerValue,
    MapContents,
    MapValue,
    NullValue,
    StringValue,
    Timestamp,
    TimestampValue,
    Value,
)

logger = logging.getLogger(__name__)

# Optional google-cloud-firestore import - fail gracefully if not installed
try:
    from google.cloud.firestore_v1.services.firestore import FirestoreAsyncClient
    from google.cloud.firestore_v1.types import document as document_pb
    from google.cloud.firestore_v1.types import firestore as firestore_pb
    from google.cloud.firestore_v1.types import query as query_pb
    from google.protobuf import timestamp_pb2

    FIRESTORE_AVAILABLE = True
except ImportError:
    FIRESTORE_AVAILABLE = False
    FirestoreAsyncClient = None
    document_pb = None
    firestore_pb = None
    query_pb = None
    timestamp_pb2 = None


class FirestoreNotAvailableError(ImportError):
    """Raised when the google-cloud-firestore package is not installed."""

    def __init__(self) -> None:
        super().__init__(
            "google-cloud-firestore package is not installed. "
            "Install it with: pip install livequery[firestore]"
        )


# =============================================================================
# Requests
# =============================================================================


def timestamp_to_proto(timestamp: Timestamp) -> Any:
    return timestamp_pb2.Timestamp(seconds=timestamp.seconds, nanos=timestamp.nanos)


def query_to_proto(query: StructuredQuery) -> Any:
    """
    Convert a structured query.

    The model dumps to the proto JSON mapping, so clauses carried opaquely
    (``where``, ``order_by``) are parsed by protobuf itself.
    """
    return query_pb.StructuredQuery.from_json(
        query.model_dump_json(by_alias=True, exclude_none=True)
    )


def run_query_request_to_proto(request: RunQueryRequest) -> Any:
    return firestore_pb.RunQueryRequest(
        parent=request.parent,
        structured_query=query_to_proto(request.structured_query),
    )


def target_to_proto(target: Target) -> Any:
    fields: dict[str, Any] = {
        "target_id": target.target_id,
        "query": firestore_pb.Target.QueryTarget(
            parent=target.query.parent,
            structured_query=query_to_proto(target.query.structured_query),
        ),
    }
    # resume_token and read_time are one oneof on the wire
    if target.resume_token is not None:
        fields["resume_token"] = target.resume_token
    elif target.read_time is not None:
        fields["read_time"] = timestamp_to_proto(target.read_time)
    return firestore_pb.Target(**fields)


def listen_request_to_proto(request: ListenRequest) -> Any:
    fields: dict[str, Any] = {"database": request.database}
    if request.add_target is not None:
        fields["add_target"] = target_to_proto(request.add_target)
    if request.remove_target is not None:
        fields["remove_target"] = request.remove_target
    return firestore_pb.ListenRequest(**fields)


# =============================================================================
# Responses
# =============================================================================


def timestamp_from_proto(value: Any) -> Timestamp:
    """Timestamp fields read as ``DatetimeWithNanoseconds``."""
    pb = value.timestamp_pb()
    return Timestamp(seconds=pb.seconds, nanos=pb.nanos)


def _optional_timestamp(message: Any, field: str) -> Timestamp | None:
    if field not in message:
        return None
    return timestamp_from_proto(getattr(message, field))


def value_from_proto(value: Any) -> Value:
    """
    Convert a proto ``Value`` into the wire value union.

    Raises:
        UnhandledValueTypeError: For members without a counterpart
            (``bytes_value``, ``reference_value``)
    """
    kind = document_pb.Value.pb(value).WhichOneof("value_type")

    if kind == "null_value":
        return NullValue()
    if kind == "boolean_value":
        return BooleanValue(boolean_value=value.boolean_value)
    if kind == "integer_value":
        return IntegerValue(integer_value=value.integer_value)
    if kind == "double_value":
        return DoubleValue(double_value=value.double_value)
    if kind == "string_value":
        return StringValue(string_value=value.string_value)
    if kind == "timestamp_value":
        return TimestampValue(timestamp_value=timestamp_from_proto(value.timestamp_value))
    if kind == "geo_point_value":
        point = value.geo_point_value
        return GeoPointValue(geo_point_value=GeoPoint(latitude=point.latitude, longitude=point.longitude))
    if kind == "array_value":
        return ArrayValue(
            array_value=ArrayContents(values=[value_from_proto(item) for item in value.array_value.values])
        )
    if kind == "map_value":
        return MapValue(map_value=MapContents(fields=_fields_from_proto(value.map_value.fields)))
    raise UnhandledValueTypeError(kind)


def _fields_from_proto(fields: Mapping[str, Any]) -> dict[str, Value]:
    return {key: value_from_proto(item) for key, item in fields.items()}


def document_from_proto(document: Any) -> Document:
    return Document(
        name=document.name,
        fields=_fields_from_proto(document.fields),
        create_time=_optional_timestamp(document, "create_time"),
        update_time=_optional_timestamp(document, "update_time"),
    )


def run_query_response_from_proto(response: Any) -> RunQueryResponse:
    return RunQueryResponse(
        document=document_from_proto(response.document) if "document" in response else None,
        read_time=_optional_timestamp(response, "read_time"),
        skipped_results=response.skipped_results,
    )


def listen_response_from_proto(response: Any) -> ListenResponse:
    """
    Convert one message of a listen stream.

    Raises:
        UnsupportedResponseError: If the message carries no known response
    """
    kind = firestore_pb.ListenResponse.pb(response).WhichOneof("response_type")

    if kind == "target_change":
        change = response.target_change
        return TargetChange(
            target_change_type=TargetChangeType(change.target_change_type.name),
            target_ids=list(change.target_ids),
            resume_token=change.resume_token or None,
            read_time=_optional_timestamp(change, "read_time"),
            cause=(
                {"code": change.cause.code, "message": change.cause.message}
                if "cause" in change
                else None
            ),
        )
    if kind == "document_change":
        document_change = response.document_change
        return DocumentChange(
            document=(
                document_from_proto(document_change.document)
                if "document" in document_change
                else None
            ),
            target_ids=list(document_change.target_ids),
            removed_target_ids=list(document_change.removed_target_ids),
        )
    if kind == "document_delete":
        delete = response.document_delete
        return DocumentDelete(
            document=delete.document or None,
            removed_target_ids=list(delete.removed_target_ids),
            read_time=_optional_timestamp(delete, "read_time"),
        )
    if kind == "document_remove":
        remove = response.document_remove
        return DocumentRemove(
            document=remove.document or None,
            removed_target_ids=list(remove.removed_target_ids),
            read_time=_optional_timestamp(remove, "read_time"),
        )
    if kind == "filter":
        return ExistenceFilter(target_id=response.filter.target_id, count=response.filter.count)
    raise UnsupportedResponseError(response)


# =============================================================================
# Transport
# =============================================================================


def _cancel(call: object) -> None:
    cancel = getattr(call, "cancel", None)
    if cancel is not None:
        cancel()


class FirestoreTransport:
    """
    ``Transport`` backed by ``FirestoreAsyncClient``.

    Calls are cancelled when their response iterator is closed, so releasing
    a subscription stream also ends the RPC.

    Args:
        client: Existing async client (creates one if None)
        credentials: Credentials for a new client
        client_options: Options for a new client, e.g. ``{"api_endpoint": ...}``

    Raises:
        FirestoreNotAvailableError: If google-cloud-firestore is not installed
    """

    def __init__(
        self,
        client: Any = None,
        *,
        credentials: Any = None,
        client_options: Any = None,
    ) -> None:
        if not FIRESTORE_AVAILABLE:
            raise FirestoreNotAvailableError()

        self._client = client or FirestoreAsyncClient(
            credentials=credentials,
            client_options=client_options,
        )

    @property
    def client(self) -> Any:
        return self._client

    async def run_query(
        self,
        request: RunQueryRequest,
        *,
        metadata: Metadata = (),
    ) -> AsyncIterator[RunQueryResponse]:
        logger.debug("Calling RunQuery", extra={"parent": request.parent})
        responses = await self._client.run_query(
            request=run_query_request_to_proto(request),
            metadata=tuple(metadata),
        )
        try:
            async for response in responses:
                yield run_query_response_from_proto(response)
        finally:
            _cancel(responses)

    async def listen(
        self,
        requests: AsyncIterator[ListenRequest],
        *,
        metadata: Metadata = (),
    ) -> AsyncIterator[ListenResponse]:
        logger.debug("Calling Listen", extra={"metadata": dict(metadata)})
        responses = await self._client.listen(
            requests=self._listen_requests(requests),
            metadata=tuple(metadata),
        )
        try:
            async for response in responses:
                yield listen_response_from_proto(response)
        finally:
            _cancel(responses)

    async def _listen_requests(self, requests: AsyncIterator[ListenRequest]) -> AsyncIterator[Any]:
        async for request in requests:
            yield listen_request_to_proto(request)

    async def close(self) -> None:
        """Close the client's channel."""
        await self._client.transport.close()


__all__ = [
    "FIRESTORE_AVAILABLE",
    "FirestoreNotAvailableError",
    "FirestoreTransport",
    "query_to_proto",
    "run_query_request_to_proto",
    "target_to_proto",
    "listen_request_to_proto",
    "value_from_proto",
    "document_from_proto",
    "run_query_response_from_proto",
    "listen_response_from_proto",
]
