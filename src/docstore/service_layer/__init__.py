"""Service layer - query normalization, transactions, outbox and document services.

Following Cosmic Python Chapter 4 and 6:
- DocumentService orchestrates each use case
- TransactionCoordinator is the unit of work around a driver session
- OutboxPublisher records events inside that unit of work
"""

from .document_service import AtomicOperations, DocumentService
from .outbox import OutboxPublisher, outbox_collection_name
from .query_normalizer import QueryNormalizer
from .transaction import TRANSACTION_OPTIONS, TransactionCoordinator


__all__ = [
    "TRANSACTION_OPTIONS",
    "AtomicOperations",
    "DocumentService",
    "OutboxPublisher",
    "QueryNormalizer",
    "TransactionCoordinator",
    "outbox_collection_name",
]
