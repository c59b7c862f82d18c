"""
Firestore v1 documents, queries, requests and responses.

Only the parts of the RPC surface used by collection subscriptions are
modeled. Query clauses the client never inspects (``where``, ``order_by``,
cursors) are carried through opaquely: the server plans and validates them.

This module provides:
- Document: A stored document with typed field values
- StructuredQuery, CollectionSelector, Projection, FieldReference
- QueryTarget: Parent path plus structured query
- RunQueryRequest / RunQueryResponse: One-shot query call
- Target, ListenRequest: Persistent listen call requests
- DocumentChange, DocumentDelete, DocumentRemove, ExistenceFilter,
  TargetChange, TargetChangeType: Listen responses
- ListenResponse / ListenResponseAdapter: Discriminated response union
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import Discriminator, Field, Tag, TypeAdapter

from livequery.values import Timestamp, Value, WireModel


class Document(WireModel):
    """
    A Firestore document.

    Attributes:
        name: Fully-qualified resource name,
            ``projects/{p}/databases/{d}/documents/{path}``
        fields: Field values keyed by field name
        create_time: When the document was created
        update_time: When the document was last changed
    """

    name: str
    fields: dict[str, Value] = Field(default_factory=dict)
    create_time: Timestamp | None = None
    update_time: Timestamp | None = None


class FieldReference(WireModel):
    field_path: str


class Projection(WireModel):
    """Field mask applied to query results (the ``select`` clause)."""

    fields: list[FieldReference] = Field(default_factory=list)


class CollectionSelector(WireModel):
    collection_id: str
    all_descendants: bool = False


class StructuredQuery(WireModel):
    """
    A structured query.

    ``select`` is honoured only for the first (bulk) fetch of a subscription.
    """

    select: Projection | None = None
    from_: list[CollectionSelector] = Field(default_factory=list, alias="from")
    where: dict[str, Any] | None = None
    order_by: list[dict[str, Any]] | None = None
    limit: int | None = None

    def without_projection(self) -> StructuredQuery:
        """Copy of this query with the ``select`` clause dropped."""
        return self.model_copy(update={"select": None})


class QueryTarget(WireModel):
    """A target specified by a query: parent resource plus structured query."""

    parent: str
    structured_query: StructuredQuery = Field(default_factory=StructuredQuery)


class RunQueryRequest(WireModel):
    parent: str
    structured_query: StructuredQuery


class RunQueryResponse(WireModel):
    """
    One result of a one-shot query.

    A response may carry only ``read_time`` (e.g. an empty result set).
    """

    document: Document | None = None
    read_time: Timestamp | None = None
    skipped_results: int = 0


class Target(WireModel):
    query: QueryTarget
    target_id: int
    resume_token: bytes | None = None
    read_time: Timestamp | None = None


class ListenRequest(WireModel):
    database: str
    add_target: Target | None = None
    remove_target: int | None = None


class TargetChangeType(str, Enum):
    """Kind of a target change sent on a listen stream."""

    NO_CHANGE = "NO_CHANGE"
    """No change has occurred; used to send an updated resume token."""

    ADD = "ADD"
    """The targets have been added."""

    REMOVE = "REMOVE"
    """The targets have been removed."""

    CURRENT = "CURRENT"
    """The targets reflect all changes committed before they were added."""

    RESET = "RESET"
    """The targets have been reset; a new initial state follows."""


class DocumentChange(WireModel):
    response_type: Literal["documentChange"] = "documentChange"
    document: Document | None = None
    target_ids: list[int] = Field(default_factory=list)
    removed_target_ids: list[int] = Field(default_factory=list)


class DocumentDelete(WireModel):
    response_type: Literal["documentDelete"] = "documentDelete"
    document: str | None = None
    removed_target_ids: list[int] = Field(default_factory=list)
    read_time: Timestamp | None = None


class DocumentRemove(WireModel):
    response_type: Literal["documentRemove"] = "documentRemove"
    document: str | None = None
    removed_target_ids: list[int] = Field(default_factory=list)
    read_time: Timestamp | None = None


class ExistenceFilter(WireModel):
    response_type: Literal["filter"] = "filter"
    target_id: int = 0
    count: int = 0


class TargetChange(WireModel):
    response_type: Literal["targetChange"] = "targetChange"
    target_change_type: TargetChangeType = TargetChangeType.NO_CHANGE
    target_ids: list[int] = Field(default_factory=list)
    resume_token: bytes | None = None
    read_time: Timestamp | None = None
    cause: dict[str, Any] | None = None


def _response_tag(response: Any) -> str | None:
    if isinstance(response, WireModel):
        return getattr(response, "response_type", None)
    if isinstance(response, dict):
        tag = response.get("response_type", response.get("responseType"))
        return None if tag is None else str(tag)
    return None


ListenResponse = Annotated[
    Annotated[DocumentChange, Tag("documentChange")]
    | Annotated[DocumentDelete, Tag("documentDelete")]
    | Annotated[DocumentRemove, Tag("documentRemove")]
    | Annotated[ExistenceFilter, Tag("filter")]
    | Annotated[TargetChange, Tag("targetChange")],
    Discriminator(_response_tag),
]
"""Any message delivered by a listen stream."""

ListenResponseAdapter: TypeAdapter[ListenResponse] = TypeAdapter(ListenResponse)


__all__ = [
    "Document",
    "FieldReference",
    "Projection",
    "CollectionSelector",
    "StructuredQuery",
    "QueryTarget",
    "RunQueryRequest",
    "RunQueryResponse",
    "Target",
    "ListenRequest",
    "TargetChangeType",
    "DocumentChange",
    "DocumentDelete",
    "DocumentRemove",
    "ExistenceFilter",
    "TargetChange",
    "ListenResponse",
    "ListenResponseAdapter",
]
