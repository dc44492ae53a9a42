"""docstore - soft-delete aware MongoDB document services with a transactional outbox."""

import logging

from docstore.adapters import AbstractDatabase, InMemoryDatabase, MongoDatabase
from docstore.config import Settings, get_settings
from docstore.domain import (
    CollectionNotInitializedError,
    DocumentCreated,
    DocumentRemoved,
    DocumentUpdated,
    FindResult,
    InvalidArgumentError,
    InvalidSchemaError,
    MoreThanOneError,
    NotFoundError,
    OutboxEvent,
    OutboxEventType,
    RemoveNotAcknowledgedError,
    ServiceError,
    ServiceOptions,
)
from docstore.event_bus import EventBus
from docstore.id_generator import generate_id
from docstore.service_layer import DocumentService, QueryNormalizer


# Silent unless the application configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "AbstractDatabase",
    "CollectionNotInitializedError",
    "DocumentCreated",
    "DocumentRemoved",
    "DocumentService",
    "DocumentUpdated",
    "EventBus",
    "FindResult",
    "InMemoryDatabase",
    "InvalidArgumentError",
    "InvalidSchemaError",
    "MongoDatabase",
    "MoreThanOneError",
    "NotFoundError",
    "OutboxEvent",
    "OutboxEventType",
    "QueryNormalizer",
    "RemoveNotAcknowledgedError",
    "ServiceError",
    "ServiceOptions",
    "Settings",
    "generate_id",
    "get_settings",
]
