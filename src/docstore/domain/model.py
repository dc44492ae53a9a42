"""Domain model - documents, service options, outbox events and domain events.

Documents themselves stay plain mappings (the storage engine's native shape);
this module describes the values that travel around them:
- ServiceOptions: immutable per-service configuration
- QueryOptions: per-call switches consumed by the query normalizer
- FindResult: paginated read result
- OutboxEvent: the append-only record written next to each mutation
- DocumentCreated / DocumentUpdated / DocumentRemoved: in-process notifications
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.dataclasses import dataclass as pydantic_dataclass


Document = dict[str, Any]

ID_FIELD = "_id"
CREATED_ON_FIELD = "createdOn"
UPDATED_ON_FIELD = "updatedOn"
DELETED_ON_FIELD = "deletedOn"

OUTBOX_COLLECTION_SUFFIX = "_outbox"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def epoch_seconds() -> int:
    """Document timestamps (createdOn / updatedOn) are whole epoch seconds."""
    return int(utc_now().timestamp())


def epoch_millis() -> int:
    """Outbox timestamps are epoch milliseconds."""
    return int(utc_now().timestamp() * 1000)


@pydantic_dataclass(frozen=True)
class ServiceOptions:
    """Configuration fixed at service construction.

    Attributes:
        add_created_on_field: Stamp ``createdOn`` on create when absent.
        add_updated_on_field: Stamp ``updatedOn`` on every mutation.
        outbox: Write an outbox event in the same transaction as each mutation.
        require_deleted_on: Exclude soft-deleted documents from filtered reads by default.
        schema: Optional pydantic model every entity must validate against before persisting.
        collection_options: Keyword arguments used when resolving the collection handle.
        create_collection_options: Keyword arguments used when creating the collection.
    """

    add_created_on_field: bool = True
    add_updated_on_field: bool = True
    outbox: bool = False
    require_deleted_on: bool = True
    schema: type[BaseModel] | None = None
    collection_options: dict[str, Any] = Field(default_factory=dict)
    create_collection_options: dict[str, Any] = Field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class QueryOptions:
    """Per-call switches that steer query normalization."""

    do_not_add_deleted_on: bool = False
    skip_query_validation: bool = False


@dataclass(slots=True)
class FindResult:
    """Result of ``DocumentService.find``.

    ``count`` and ``pages_count`` are only populated for paginated reads (page > 0).
    """

    results: list[Document]
    count: int | None = None
    pages_count: int | None = None

    @property
    def is_paginated(self) -> bool:
        return self.pages_count is not None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"results": self.results}
        if self.is_paginated:
            payload["count"] = self.count
            payload["pagesCount"] = self.pages_count
        return payload


class OutboxEventType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REMOVE = "remove"


@dataclass(slots=True)
class OutboxEventData:
    """What a service hands the outbox publisher; id and timestamp are stamped on write."""

    type: OutboxEventType
    data: Document
    diff: list[dict[str, Any]] | None = None


@dataclass(slots=True)
class OutboxEvent:
    """Append-only event record stored in a ``<collection>_outbox`` collection."""

    id: str
    type: OutboxEventType
    data: Document
    created_on: int
    diff: list[dict[str, Any]] | None = None

    def to_document(self) -> Document:
        document: Document = {
            ID_FIELD: self.id,
            "type": self.type.value,
            "data": self.data,
            CREATED_ON_FIELD: self.created_on,
        }
        if self.diff is not None:
            document["diff"] = self.diff
        return document

    @classmethod
    def from_document(cls, document: Document) -> OutboxEvent:
        return cls(
            id=document[ID_FIELD],
            type=OutboxEventType(document["type"]),
            data=document["data"],
            created_on=int(document[CREATED_ON_FIELD]),
            diff=document.get("diff"),
        )


# --- In-process domain events ---


@dataclass(slots=True)
class DocumentEvent:
    collection: str
    doc: Document
    occurred_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class DocumentCreated(DocumentEvent):
    pass


@dataclass(slots=True)
class DocumentUpdated(DocumentEvent):
    prev_doc: Document = field(default_factory=dict)
    diff: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class DocumentRemoved(DocumentEvent):
    soft: bool = True
