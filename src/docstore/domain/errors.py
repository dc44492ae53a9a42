"""Error taxonomy raised by document services.

Every error carries a machine-readable ``code`` alongside the human-readable
message so callers can branch on the kind without string matching.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import orjson


def serialize_query(query: Mapping[str, Any] | None) -> str:
    """Render a filter for error messages; non-JSON values fall back to ``str``."""
    try:
        return orjson.dumps(query, default=str, option=orjson.OPT_SORT_KEYS).decode("utf-8")
    except TypeError:
        return repr(query)


class ServiceError(Exception):
    """Base error for document service operations."""

    code = "SERVICE_ERROR"

    def __init__(self, message: str, error: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.error = error

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class NotFoundError(ServiceError):
    """Raised when exactly one document was required but none matched."""

    code = "NOT_FOUND"


class MoreThanOneError(ServiceError):
    """Raised when a bounded-to-one read matched two or more documents."""

    code = "MORE_THAN_ONE"

    def __init__(self, operation: str, query: Mapping[str, Any]) -> None:
        super().__init__(f"{operation}: more than one document returned for query {serialize_query(query)}")
        self.query = query


class InvalidSchemaError(ServiceError):
    """Raised when an entity fails schema validation.

    ``error`` holds the validator's detail payload (pydantic ``errors()``).
    """

    code = "INVALID_SCHEMA"


class InvalidArgumentError(ServiceError):
    """Raised when a callback argument is not callable or a name is unusable."""

    code = "INVALID_ARGUMENT"


class RemoveNotAcknowledgedError(ServiceError):
    """Raised by hard ``remove`` when ``ack_remove`` was not passed."""

    code = "REMOVE_NOT_ACKNOWLEDGED"

    def __init__(self, collection_name: str) -> None:
        super().__init__(
            f"Refusing to hard-delete documents from '{collection_name}'. "
            "Removed documents are gone for good; in most cases use remove_soft(), "
            "which only sets the deletedOn date. "
            "If you are sure, call remove(..., ack_remove=True)."
        )


class CollectionNotInitializedError(ServiceError):
    """Raised when the bound collection could not be resolved after connecting."""

    code = "COLLECTION_NOT_INITIALIZED"
