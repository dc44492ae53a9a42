"""Same-transaction event emission into per-collection outbox collections."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Any

from docstore.domain.model import (
    OUTBOX_COLLECTION_SUFFIX,
    OutboxEvent,
    OutboxEventData,
    epoch_millis,
)
from docstore.id_generator import generate_id
from docstore.observability.metrics import OUTBOX_EVENTS
from docstore.observability.tracing import create_span


logger = logging.getLogger(__name__)


def outbox_collection_name(collection_name: str) -> str:
    return f"{collection_name}{OUTBOX_COLLECTION_SUFFIX}"


class OutboxPublisher:
    """Appends immutable events next to the originating write.

    One publisher is shared by every service of a database; companion
    collections are created lazily and cached by source collection name.
    Writes accept the caller's session so they commit or roll back together
    with the document change.
    """

    def __init__(
        self,
        get_or_create_collection: Callable[..., Awaitable[Any]],
        wait_for_connection: Callable[[], Awaitable[None]],
        *,
        id_factory: Callable[[], str] = generate_id,
    ) -> None:
        self._get_or_create_collection = get_or_create_collection
        self._wait_for_connection = wait_for_connection
        self._id_factory = id_factory
        self._collections: dict[str, Any] = {}
        self._lock = asyncio.Lock()

    def reset(self) -> None:
        """Forget resolved handles; they belong to the client that was just closed."""
        self._collections.clear()

    async def get_collection(self, collection_name: str) -> Any | None:
        """Resolve (creating on first use) the outbox collection for ``collection_name``."""
        collection = self._collections.get(collection_name)
        if collection is not None:
            return collection

        async with self._lock:
            collection = self._collections.get(collection_name)
            if collection is None:
                collection = await self._get_or_create_collection(outbox_collection_name(collection_name))
                if collection is not None:
                    self._collections[collection_name] = collection
        return collection

    def _build_event(self, data: OutboxEventData) -> OutboxEvent:
        return OutboxEvent(
            id=self._id_factory(),
            type=data.type,
            data=data.data,
            created_on=epoch_millis(),
            diff=data.diff,
        )

    async def create_event(
        self,
        collection_name: str,
        data: OutboxEventData,
        *,
        session: Any = None,
    ) -> OutboxEvent | None:
        """Insert one event; returns None when the outbox is unavailable."""
        events = await self.create_many_events(collection_name, [data], session=session)
        if events is None:
            return None
        return events[0]

    async def create_many_events(
        self,
        collection_name: str,
        data: list[OutboxEventData],
        *,
        session: Any = None,
    ) -> list[OutboxEvent] | None:
        """Insert a batch of events in one call.

        Returns:
            The stored events, or None when the connection never produced a
            usable database handle.
        """
        await self._wait_for_connection()
        collection = await self.get_collection(collection_name)
        if collection is None:
            logger.warning("Outbox unavailable for collection '%s'", collection_name)
            return None
        if not data:
            return []

        events = [self._build_event(item) for item in data]
        with create_span(
            "docstore.outbox.write",
            attributes={"docstore.collection": collection_name, "docstore.outbox.events": len(events)},
        ):
            await collection.insert_many([event.to_document() for event in events], session=session)

        for event in events:
            OUTBOX_EVENTS.labels(collection=collection_name, type=event.type.value).inc()
        logger.debug("Wrote %d outbox event(s) for '%s'", len(events), collection_name)
        return events
