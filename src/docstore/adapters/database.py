"""Storage collaborator contract shared by every backend.

A database owns the connection lifecycle, one ``OutboxPublisher`` and one
``TransactionCoordinator`` shared by all services it creates, and a registry
of custom service methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Callable
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from docstore.domain.errors import InvalidArgumentError
from docstore.domain.model import ServiceOptions
from docstore.event_bus import EventBus
from docstore.service_layer.document_service import DocumentService
from docstore.service_layer.outbox import OutboxPublisher
from docstore.service_layer.transaction import TransactionCoordinator


if TYPE_CHECKING:
    from docstore.service_layer.query_normalizer import QueryNormalizer


logger = logging.getLogger(__name__)

ServiceMethod = Callable[..., Any]


class AbstractDatabase(ABC):
    """Connection-scoped context for document services.

    Emits ``connected``, ``disconnected`` and ``error`` on ``events``.
    """

    def __init__(self) -> None:
        self._connected = asyncio.Event()
        self._service_methods: dict[str, ServiceMethod] = {}
        self.events = EventBus()
        self.outbox = OutboxPublisher(self.get_or_create_collection, self.wait_for_connection)
        self.transactions = TransactionCoordinator(self.get_client)

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    async def wait_for_connection(self) -> None:
        """Suspend until ``connect`` succeeded; safe for any number of concurrent waiters."""
        await self._connected.wait()

    async def _mark_connected(self) -> None:
        self._connected.set()
        await self.events.publish("connected", self)

    async def _mark_disconnected(self, error: BaseException | None = None) -> None:
        self._connected.clear()
        self.outbox.reset()
        await self.events.publish("disconnected", error)

    @abstractmethod
    async def connect(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_client(self) -> Any | None:
        """Client used to start sessions; waits for the connection first."""
        raise NotImplementedError

    @abstractmethod
    async def get_or_create_collection(
        self,
        name: str,
        *,
        create_options: dict[str, Any] | None = None,
        collection_options: dict[str, Any] | None = None,
    ) -> Any | None:
        """Idempotently create ``name`` and return its handle, or None without a database."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> dict[str, Any] | None:
        raise NotImplementedError

    def create_service(
        self,
        collection_name: str,
        options: ServiceOptions | None = None,
        *,
        normalizer: QueryNormalizer | None = None,
        event_bus: EventBus | None = None,
        service_class: type[DocumentService] = DocumentService,
        logger: logging.Logger | None = None,
    ) -> DocumentService:
        """Bind a service to ``collection_name``.

        Args:
            collection_name: Physical collection the service owns
            options: Immutable service configuration (defaults apply when omitted)
            normalizer: Query normalizer; subclass it to enforce mandatory predicates
            event_bus: Shared bus for in-process events; each service owns one by default
            service_class: DocumentService subclass to instantiate
            logger: Replaces the service's module logger

        Returns:
            The service; its collection handle resolves lazily once connected.
        """
        return service_class(
            collection_name,
            options,
            database=self,
            normalizer=normalizer,
            event_bus=event_bus,
            methods=MappingProxyType(self._service_methods),
            logger=logger,
        )

    def set_service_method(self, name: str, handler: ServiceMethod) -> None:
        """Register ``handler`` as ``service.<name>(*args)`` for services of this database.

        The handler receives the service as its first argument. Existing service
        attributes cannot be replaced.
        """
        if not callable(handler):
            raise InvalidArgumentError(f"set_service_method: handler for '{name}' is not callable")
        if not name.isidentifier() or name.startswith("_") or hasattr(DocumentService, name):
            raise InvalidArgumentError(f"set_service_method: '{name}' cannot be used as a service method name")
        self._service_methods[name] = handler
        logger.debug("Registered service method '%s'", name)
