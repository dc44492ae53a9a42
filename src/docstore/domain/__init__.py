"""Domain layer - documents, options, events and errors, free of driver calls.

Following Cosmic Python Chapter 2 and Chapter 8, this layer contains:
- Value objects: ServiceOptions, QueryOptions, FindResult
- Outbox records: OutboxEvent, OutboxEventData
- Domain events published after committed writes
- The error taxonomy raised by services
"""

from .diff import compute_diff, get_path, path_changed_to, paths_changed
from .errors import (
    CollectionNotInitializedError,
    InvalidArgumentError,
    InvalidSchemaError,
    MoreThanOneError,
    NotFoundError,
    RemoveNotAcknowledgedError,
    ServiceError,
)
from .model import (
    Document,
    DocumentCreated,
    DocumentEvent,
    DocumentRemoved,
    DocumentUpdated,
    FindResult,
    OutboxEvent,
    OutboxEventData,
    OutboxEventType,
    QueryOptions,
    ServiceOptions,
)


__all__ = [
    "CollectionNotInitializedError",
    "Document",
    "DocumentCreated",
    "DocumentEvent",
    "DocumentRemoved",
    "DocumentUpdated",
    "FindResult",
    "InvalidArgumentError",
    "InvalidSchemaError",
    "MoreThanOneError",
    "NotFoundError",
    "OutboxEvent",
    "OutboxEventData",
    "OutboxEventType",
    "QueryOptions",
    "RemoveNotAcknowledgedError",
    "ServiceError",
    "ServiceOptions",
    "compute_diff",
    "get_path",
    "path_changed_to",
    "paths_changed",
]
