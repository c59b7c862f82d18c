"""
Unit tests for the Firestore client transport.

Tests for:
- Request conversion to proto messages
- Response and value conversion from proto messages
- FirestoreTransport calls against a mocked FirestoreAsyncClient
"""

from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

firestore_pb = pytest.importorskip("google.cloud.firestore_v1.types.firestore")
query_pb = pytest.importorskip("google.cloud.firestore_v1.types.query")
document_pb = pytest.importorskip("google.cloud.firestore_v1.types.document")
timestamp_pb2 = pytest.importorskip("google.protobuf.timestamp_pb2")
latlng_pb2 = pytest.importorskip("google.type.latlng_pb2")

from livequery import Repository  # noqa: E402
from livequery.exceptions import UnhandledValueTypeError, UnsupportedResponseError  # noqa: E402
from livequery.firestore import (  # noqa: E402
    FirestoreNotAvailableError,
    FirestoreTransport,
    listen_request_to_proto,
    listen_response_from_proto,
    run_query_request_to_proto,
    run_query_response_from_proto,
    value_from_proto,
)
from livequery.protocol import (  # noqa: E402
    DocumentChange,
    DocumentDelete,
    DocumentRemove,
    ExistenceFilter,
    ListenRequest,
    QueryTarget,
    RunQueryRequest,
    Target,
    TargetChange,
    TargetChangeType,
)
from livequery.values import (  # noqa: E402
    BooleanValue,
    DoubleValue,
    GeoPoint,
    IntegerValue,
    NullValue,
    StringValue,
    Timestamp,
)
from tests.fixtures import DATABASE, DOCUMENTS_ROOT, document_name, orders_query  # noqa: E402

CURRENT = firestore_pb.TargetChange.TargetChangeType.CURRENT


def open_orders_query():
    return orders_query(
        select={"fields": [{"fieldPath": "item"}]},
        where={
            "fieldFilter": {
                "field": {"fieldPath": "status"},
                "op": "EQUAL",
                "value": {"stringValue": "open"},
            }
        },
        limit=5,
    )


def listen_request(**target: Any) -> ListenRequest:
    return ListenRequest(
        database=DATABASE,
        add_target=Target(
            query=QueryTarget(parent=DOCUMENTS_ROOT, structured_query=orders_query()),
            target_id=1,
            **target,
        ),
    )


async def stream_of(*messages: Any) -> AsyncIterator[Any]:
    for message in messages:
        yield message


class TestRequestConversion:
    """Tests for requests sent to the client."""

    def test_run_query_request(self):
        request = RunQueryRequest(parent=DOCUMENTS_ROOT, structured_query=open_orders_query())

        message = run_query_request_to_proto(request)

        assert message.parent == DOCUMENTS_ROOT
        query = message.structured_query
        assert [selector.collection_id for selector in query.from_] == ["orders"]
        assert [field.field_path for field in query.select.fields] == ["item"]
        assert query.where.field_filter.field.field_path == "status"
        assert query.where.field_filter.op == query_pb.StructuredQuery.FieldFilter.Operator.EQUAL
        assert query.where.field_filter.value.string_value == "open"
        assert query.limit == 5

    def test_fresh_listen_request(self):
        message = listen_request_to_proto(listen_request())

        assert message.database == DATABASE
        assert message.add_target.target_id == 1
        assert message.add_target.query.parent == DOCUMENTS_ROOT
        assert message.add_target.query.structured_query.from_[0].collection_id == "orders"
        assert "resume_token" not in message.add_target
        assert "read_time" not in message.add_target

    def test_resume_token_is_preferred(self):
        message = listen_request_to_proto(
            listen_request(resume_token=b"\x00\x07", read_time=Timestamp(seconds=3))
        )

        assert message.add_target.resume_token == b"\x00\x07"
        assert "read_time" not in message.add_target

    def test_read_time_without_token(self):
        message = listen_request_to_proto(listen_request(read_time=Timestamp(seconds=3, nanos=9)))

        read_time = message.add_target.read_time.timestamp_pb()
        assert (read_time.seconds, read_time.nanos) == (3, 9)


class TestValueConversion:
    """Tests for proto values."""

    @pytest.mark.parametrize(
        "fields,expected",
        [
            ({"null_value": 0}, NullValue()),
            ({"boolean_value": True}, BooleanValue(boolean_value=True)),
            ({"integer_value": 42}, IntegerValue(integer_value=42)),
            ({"double_value": 0.5}, DoubleValue(double_value=0.5)),
            ({"string_value": "apple"}, StringValue(string_value="apple")),
        ],
    )
    def test_scalars(self, fields, expected):
        assert value_from_proto(document_pb.Value(**fields)) == expected

    def test_timestamp_keeps_nanoseconds(self):
        value = value_from_proto(
            document_pb.Value(timestamp_value=timestamp_pb2.Timestamp(seconds=10, nanos=123_456_789))
        )

        assert value.timestamp_value == Timestamp(seconds=10, nanos=123_456_789)

    def test_geo_point(self):
        value = value_from_proto(
            document_pb.Value(geo_point_value=latlng_pb2.LatLng(latitude=52.5, longitude=13.4))
        )

        assert value.geo_point_value == GeoPoint(latitude=52.5, longitude=13.4)

    def test_containers(self):
        value = value_from_proto(
            document_pb.Value(
                map_value={
                    "fields": {
                        "tags": {"array_value": {"values": [{"string_value": "a"}, {"integer_value": 1}]}},
                    }
                }
            )
        )

        tags = value.map_value.fields["tags"]
        assert [item.value_type for item in tags.array_value.values] == ["stringValue", "integerValue"]

    def test_bytes_are_unhandled(self):
        with pytest.raises(UnhandledValueTypeError):
            value_from_proto(document_pb.Value(bytes_value=b"raw"))


class TestResponseConversion:
    """Tests for responses received from the client."""

    def test_run_query_response(self):
        response = firestore_pb.RunQueryResponse(
            document={
                "name": document_name("orders/1"),
                "fields": {"item": {"string_value": "apple"}},
                "update_time": timestamp_pb2.Timestamp(seconds=4),
            },
            read_time=timestamp_pb2.Timestamp(seconds=5, nanos=6),
        )

        converted = run_query_response_from_proto(response)

        assert converted.document.name == document_name("orders/1")
        assert converted.document.fields["item"].string_value == "apple"
        assert converted.document.update_time == Timestamp(seconds=4)
        assert converted.document.create_time is None
        assert converted.read_time == Timestamp(seconds=5, nanos=6)

    def test_run_query_response_without_document(self):
        converted = run_query_response_from_proto(
            firestore_pb.RunQueryResponse(read_time=timestamp_pb2.Timestamp(seconds=5))
        )

        assert converted.document is None
        assert converted.read_time == Timestamp(seconds=5)

    def test_target_change(self):
        response = firestore_pb.ListenResponse(
            target_change={
                "target_change_type": CURRENT,
                "target_ids": [1],
                "resume_token": b"\x01",
                "read_time": timestamp_pb2.Timestamp(seconds=7),
            }
        )

        assert listen_response_from_proto(response) == TargetChange(
            target_change_type=TargetChangeType.CURRENT,
            target_ids=[1],
            resume_token=b"\x01",
            read_time=Timestamp(seconds=7),
        )

    def test_no_change_without_cursor(self):
        converted = listen_response_from_proto(firestore_pb.ListenResponse(target_change={"target_ids": [1]}))

        assert converted == TargetChange(target_change_type=TargetChangeType.NO_CHANGE, target_ids=[1])

    def test_document_change(self):
        response = firestore_pb.ListenResponse(
            document_change={
                "document": {"name": document_name("orders/2"), "fields": {"quantity": {"integer_value": 3}}},
                "target_ids": [1],
            }
        )

        converted = listen_response_from_proto(response)

        assert isinstance(converted, DocumentChange)
        assert converted.document.fields["quantity"].integer_value == 3
        assert converted.target_ids == [1]

    def test_document_delete_and_remove(self):
        delete = listen_response_from_proto(
            firestore_pb.ListenResponse(document_delete={"document": document_name("orders/3")})
        )
        remove = listen_response_from_proto(
            firestore_pb.ListenResponse(
                document_remove={"document": document_name("orders/3"), "removed_target_ids": [1]}
            )
        )

        assert delete == DocumentDelete(document=document_name("orders/3"))
        assert remove == DocumentRemove(document=document_name("orders/3"), removed_target_ids=[1])

    def test_existence_filter(self):
        converted = listen_response_from_proto(firestore_pb.ListenResponse(filter={"target_id": 1, "count": 3}))

        assert converted == ExistenceFilter(target_id=1, count=3)

    def test_empty_response_is_unsupported(self):
        with pytest.raises(UnsupportedResponseError):
            listen_response_from_proto(firestore_pb.ListenResponse())


class TestFirestoreTransport:
    """Tests for FirestoreTransport against a mocked client."""

    async def test_run_query(self):
        client = MagicMock()
        client.run_query = AsyncMock(
            return_value=stream_of(
                firestore_pb.RunQueryResponse(
                    document={"name": document_name("orders/1")},
                    read_time=timestamp_pb2.Timestamp(seconds=1),
                )
            )
        )
        transport = FirestoreTransport(client)
        metadata = (("google-cloud-resource-prefix", DATABASE),)

        responses = [
            response
            async for response in transport.run_query(
                RunQueryRequest(parent=DOCUMENTS_ROOT, structured_query=orders_query()),
                metadata=metadata,
            )
        ]

        assert [response.document.name for response in responses] == [document_name("orders/1")]
        call = client.run_query.await_args
        assert call.kwargs["request"].parent == DOCUMENTS_ROOT
        assert call.kwargs["metadata"] == metadata

    async def test_listen_converts_both_directions(self):
        sent: list[Any] = []

        async def listen(*, requests, metadata):
            sent.append(await anext(requests))
            return stream_of(
                firestore_pb.ListenResponse(target_change={"target_change_type": CURRENT, "target_ids": [1]}),
                firestore_pb.ListenResponse(filter={"target_id": 1, "count": 0}),
            )

        client = MagicMock()
        client.listen = AsyncMock(side_effect=listen)
        transport = FirestoreTransport(client)

        responses = [response async for response in transport.listen(stream_of(listen_request()))]

        assert [type(response) for response in responses] == [TargetChange, ExistenceFilter]
        (request,) = sent
        assert isinstance(request, firestore_pb.ListenRequest)
        assert request.add_target.target_id == 1

    async def test_closing_responses_cancels_the_call(self):
        call = MagicMock()
        call.__aiter__.return_value = iter(
            [firestore_pb.ListenResponse(filter={"target_id": 1, "count": 0})] * 2
        )
        client = MagicMock()
        client.listen = AsyncMock(return_value=call)
        transport = FirestoreTransport(client)

        responses = transport.listen(stream_of(listen_request()))
        await anext(responses)
        await responses.aclose()

        call.cancel.assert_called_once_with()

    async def test_close(self):
        client = MagicMock()
        client.transport.close = AsyncMock()

        await FirestoreTransport(client).close()

        client.transport.close.assert_awaited_once()

    def test_requires_firestore_package(self):
        with patch("livequery.firestore.FIRESTORE_AVAILABLE", False):
            with pytest.raises(FirestoreNotAvailableError, match="livequery\\[firestore\\]"):
                FirestoreTransport(MagicMock())


class TestRepositoryConnect:
    """Tests for Repository.connect."""

    async def test_connect_builds_firestore_transport(self):
        with patch("livequery.repository.FirestoreTransport") as transport_class:
            transport_class.return_value.close = AsyncMock()
            repository = Repository.connect(
                "demo-project",
                client_options={"api_endpoint": "localhost:8080"},
                enable_tracing=False,
            )

            transport_class.assert_called_once_with(
                credentials=None,
                client_options={"api_endpoint": "localhost:8080"},
            )
            assert repository.database == "projects/demo-project/databases/(default)"

            await repository.close()
            transport_class.return_value.close.assert_awaited_once()
