"""MongoDB backend built on pymongo's asyncio client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pymongo import AsyncMongoClient
from pymongo.errors import CollectionInvalid, OperationFailure, PyMongoError

from docstore.adapters.database import AbstractDatabase
from docstore.observability.logging import redact_uri


if TYPE_CHECKING:
    from collections.abc import Callable

    from docstore.config import Settings


logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_MS = 20000
NAMESPACE_EXISTS = 48


class MongoDatabase(AbstractDatabase):
    """Document-service context over one MongoDB database.

    Transactions need a replica set or sharded cluster; a standalone server
    rejects ``start_session().with_transaction``.
    """

    def __init__(
        self,
        url: str,
        db_name: str | None = None,
        *,
        client_factory: Callable[..., Any] = AsyncMongoClient,
        **client_options: Any,
    ) -> None:
        super().__init__()
        self.url = url
        self.db_name = db_name
        self.client_options = {"connectTimeoutMS": DEFAULT_CONNECT_TIMEOUT_MS, **client_options}
        self._client_factory = client_factory
        self._client: Any | None = None
        self._db: Any | None = None

    @classmethod
    def from_settings(cls, settings: Settings, **client_options: Any) -> MongoDatabase:
        return cls(
            settings.mongo_connection,
            settings.mongo_db_name,
            connectTimeoutMS=settings.mongo_connect_timeout_ms,
            **client_options,
        )

    async def connect(self) -> None:
        """Create the client, verify it with ``ping`` and release connection waiters.

        Raises:
            PyMongoError: The server could not be reached or no database name resolved.
        """
        try:
            client = self._client_factory(self.url, **self.client_options)
            db = client.get_database(self.db_name)
            await db.command("ping")
        except PyMongoError as exc:
            logger.error("Failed to connect to MongoDB at %s: %s", redact_uri(self.url), exc, exc_info=True)
            await self.events.publish("error", exc)
            raise

        self._client = client
        self._db = db
        logger.info("Connected to MongoDB database '%s'.", db.name)
        await self._mark_connected()

    async def close(self) -> None:
        if self._client is None:
            return
        logger.info("Disconnecting from MongoDB.")
        await self._client.close()
        self._client = None
        self._db = None
        await self._mark_disconnected()

    async def get_client(self) -> Any | None:
        await self.wait_for_connection()
        return self._client

    async def get_or_create_collection(
        self,
        name: str,
        *,
        create_options: dict[str, Any] | None = None,
        collection_options: dict[str, Any] | None = None,
    ) -> Any | None:
        await self.wait_for_connection()
        if self._db is None:
            return None

        try:
            await self._db.create_collection(name, **(create_options or {}))
        except CollectionInvalid:
            logger.debug("Collection '%s' already exists", name)
        except OperationFailure as exc:
            if exc.code != NAMESPACE_EXISTS:
                raise
            logger.debug("Collection '%s' already exists", name)

        return self._db.get_collection(name, **(collection_options or {}))

    async def ping(self) -> dict[str, Any] | None:
        await self.wait_for_connection()
        if self._db is None:
            return None
        return await self._db.command("ping")
