"""
Unit tests for protocol messages.

Tests for:
- camelCase aliases and the ``from`` keyword
- StructuredQuery.without_projection()
- ListenResponseAdapter discrimination
"""

import pytest
from pydantic import ValidationError

from livequery.protocol import (
    DocumentChange,
    DocumentDelete,
    DocumentRemove,
    ExistenceFilter,
    ListenRequest,
    ListenResponseAdapter,
    QueryTarget,
    RunQueryResponse,
    StructuredQuery,
    Target,
    TargetChange,
    TargetChangeType,
)
from livequery.values import Timestamp
from tests.fixtures import DATABASE, DOCUMENTS_ROOT, orders_query


class TestStructuredQuery:
    """Tests for structured queries."""

    def test_from_alias(self):
        query = StructuredQuery.model_validate({"from": [{"collectionId": "orders", "allDescendants": True}]})

        (selector,) = query.from_
        assert selector.collection_id == "orders"
        assert selector.all_descendants is True

    def test_dumps_with_wire_names(self):
        dumped = orders_query(limit=5).model_dump(by_alias=True, exclude_none=True)
        assert dumped == {"from": [{"collectionId": "orders", "allDescendants": False}], "limit": 5}

    def test_where_is_carried_opaquely(self):
        where = {"fieldFilter": {"field": {"fieldPath": "quantity"}, "op": "GREATER_THAN", "value": {"integerValue": "1"}}}
        assert orders_query(where=where).where == where

    def test_without_projection(self):
        query = orders_query(select={"fields": [{"fieldPath": "item"}]}, limit=3)

        stripped = query.without_projection()

        assert query.select is not None
        assert stripped.select is None
        assert stripped.limit == 3
        assert stripped.from_ == query.from_

    def test_queries_are_frozen(self):
        with pytest.raises(ValidationError):
            orders_query().limit = 1  # type: ignore[misc]


class TestRequests:
    """Tests for requests and responses."""

    def test_listen_request(self):
        request = ListenRequest(
            database=DATABASE,
            add_target=Target(
                query=QueryTarget(parent=DOCUMENTS_ROOT, structured_query=orders_query()),
                target_id=1,
                resume_token=b"\x00\x01",
            ),
        )

        dumped = request.model_dump(by_alias=True, exclude_none=True)

        assert dumped["addTarget"]["targetId"] == 1
        assert dumped["addTarget"]["query"]["structuredQuery"]["from"][0]["collectionId"] == "orders"

    def test_run_query_response_without_document(self):
        response = RunQueryResponse.model_validate({"readTime": "2024-01-01T00:00:00Z"})

        assert response.document is None
        assert response.read_time == Timestamp(seconds=1_704_067_200)


class TestListenResponseAdapter:
    """Tests for the listen response union."""

    @pytest.mark.parametrize(
        ("raw", "expected_type"),
        [
            ({"responseType": "documentChange", "document": {"name": "d"}}, DocumentChange),
            ({"responseType": "documentDelete", "document": "d"}, DocumentDelete),
            ({"responseType": "documentRemove", "document": "d"}, DocumentRemove),
            ({"responseType": "filter", "targetId": 1, "count": 4}, ExistenceFilter),
            ({"response_type": "targetChange", "targetChangeType": "CURRENT"}, TargetChange),
        ],
    )
    def test_discriminates_by_response_type(self, raw, expected_type):
        assert isinstance(ListenResponseAdapter.validate_python(raw), expected_type)

    def test_model_instances_pass_through(self):
        change = TargetChange(target_change_type=TargetChangeType.RESET)
        assert ListenResponseAdapter.validate_python(change) == change

    def test_target_change_fields(self):
        change = ListenResponseAdapter.validate_python(
            {
                "responseType": "targetChange",
                "targetChangeType": "NO_CHANGE",
                "targetIds": [1],
                "readTime": {"seconds": "5"},
            }
        )

        assert change.target_change_type is TargetChangeType.NO_CHANGE
        assert change.target_ids == [1]
        assert change.read_time == Timestamp(seconds=5)

    def test_unknown_response_type_rejected(self):
        with pytest.raises(ValidationError):
            ListenResponseAdapter.validate_python({"responseType": "heartbeat"})

    def test_unknown_target_change_type_rejected(self):
        with pytest.raises(ValidationError):
            ListenResponseAdapter.validate_python({"responseType": "targetChange", "targetChangeType": "MYSTERY"})
