"""In-process backend with the same contract as ``MongoDatabase``.

Collections are plain dicts keyed by ``_id``. Transactions snapshot every
collection when they start and restore the snapshot when the unit of work
raises, which is enough to observe commit/abort behavior in tests and local
development. Concurrent transactions are not isolated from each other.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure
from pymongo.results import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from docstore.adapters.database import AbstractDatabase
from docstore.adapters.memory_query import (
    apply_update,
    matches,
    normalize_sort,
    project,
    resolve,
    sort_documents,
)
from docstore.domain.model import ID_FIELD, Document
from docstore.id_generator import generate_id


logger = logging.getLogger(__name__)

DUPLICATE_KEY = 11000
INDEX_NOT_FOUND = 27
ID_INDEX_NAME = "_id_"


class InMemoryCursor:
    """Lazy result set mirroring the async driver cursor surface used here."""

    def __init__(
        self,
        collection: InMemoryCollection,
        query: dict[str, Any] | None,
        *,
        projection: Any = None,
        skip: int = 0,
        limit: int = 0,
        sort: Any = None,
    ) -> None:
        self._collection = collection
        self._query = query
        self._projection = projection
        self._skip = skip
        self._limit = limit
        self._sort = sort
        self._buffer: list[Document] | None = None

    def sort(self, key_or_list: Any, direction: int | None = None) -> InMemoryCursor:
        self._sort = [(key_or_list, direction or 1)] if isinstance(key_or_list, str) else key_or_list
        return self

    def skip(self, skip: int) -> InMemoryCursor:
        self._skip = skip
        return self

    def limit(self, limit: int) -> InMemoryCursor:
        self._limit = limit
        return self

    def _evaluate(self) -> list[Document]:
        documents = [document for document in self._collection.documents() if matches(document, self._query)]
        documents = sort_documents(documents, self._sort)
        if self._skip:
            documents = documents[self._skip :]
        if self._limit:
            documents = documents[: abs(self._limit)]
        return [project(copy.deepcopy(document), self._projection) for document in documents]

    async def to_list(self, length: int | None = None) -> list[Document]:
        if self._buffer is None:
            self._buffer = self._evaluate()
        if length is None:
            documents, self._buffer = self._buffer, []
        else:
            documents, self._buffer = self._buffer[:length], self._buffer[length:]
        return documents

    def __aiter__(self) -> InMemoryCursor:
        return self

    async def __anext__(self) -> Document:
        if self._buffer is None:
            self._buffer = self._evaluate()
        if not self._buffer:
            raise StopAsyncIteration
        return self._buffer.pop(0)


class InMemoryCollection:
    """Collection double supporting the driver calls document services make.

    ``session`` arguments are accepted and ignored; isolation comes from the
    client-wide snapshot taken by ``InMemorySession.with_transaction``.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._documents: dict[Any, Document] = {}
        self._indexes: dict[str, dict[str, Any]] = {ID_INDEX_NAME: {"key": [(ID_FIELD, 1)]}}

    def documents(self) -> list[Document]:
        return list(self._documents.values())

    def snapshot(self) -> tuple[dict[Any, Document], dict[str, dict[str, Any]]]:
        return copy.deepcopy(self._documents), copy.deepcopy(self._indexes)

    def restore(self, state: tuple[dict[Any, Document], dict[str, dict[str, Any]]]) -> None:
        self._documents, self._indexes = state

    def _matching(self, query: dict[str, Any] | None) -> list[Document]:
        return [document for document in self._documents.values() if matches(document, query)]

    # --- Reads ---

    def find(
        self,
        filter: dict[str, Any] | None = None,
        projection: Any = None,
        *,
        skip: int = 0,
        limit: int = 0,
        sort: Any = None,
        session: Any = None,
        **kwargs: Any,
    ) -> InMemoryCursor:
        return InMemoryCursor(self, filter, projection=projection, skip=skip, limit=limit, sort=sort)

    async def find_one(self, filter: dict[str, Any] | None = None, *args: Any, **kwargs: Any) -> Document | None:
        documents = await self.find(filter, *args, limit=1, **kwargs).to_list(length=1)
        return documents[0] if documents else None

    async def count_documents(
        self,
        filter: dict[str, Any],
        *,
        session: Any = None,
        skip: int = 0,
        limit: int = 0,
        **kwargs: Any,
    ) -> int:
        count = max(len(self._matching(filter)) - skip, 0)
        return min(count, limit) if limit else count

    async def distinct(
        self, key: str, filter: dict[str, Any] | None = None, *, session: Any = None, **kwargs: Any
    ) -> list[Any]:
        values: list[Any] = []
        for document in self._matching(filter):
            for value in resolve(document, key):
                for item in value if isinstance(value, list) else [value]:
                    if item not in values:
                        values.append(copy.deepcopy(item))
        return values

    # --- Writes ---

    def _insert(self, document: Document) -> Any:
        if ID_FIELD not in document:
            document[ID_FIELD] = generate_id()
        document_id = document[ID_FIELD]
        if document_id in self._documents:
            raise DuplicateKeyError(
                f"E11000 duplicate key error collection: {self.name} index: {ID_INDEX_NAME} "
                f"dup key: {{ _id: {document_id!r} }}",
                code=DUPLICATE_KEY,
            )
        self._documents[document_id] = copy.deepcopy(document)
        return document_id

    async def insert_one(self, document: Document, *, session: Any = None, **kwargs: Any) -> InsertOneResult:
        return InsertOneResult(self._insert(document), True)

    async def insert_many(self, documents: list[Document], *, session: Any = None, **kwargs: Any) -> InsertManyResult:
        if not documents:
            raise TypeError("documents must be a non-empty list")
        return InsertManyResult([self._insert(document) for document in documents], True)

    def _update(self, query: dict[str, Any], update: dict[str, Any], *, many: bool) -> UpdateResult:
        targets = self._matching(query)
        if not many:
            targets = targets[:1]

        modified = 0
        for document in targets:
            updated = apply_update(document, update)
            if updated != document:
                self._documents[document[ID_FIELD]] = updated
                modified += 1
        return UpdateResult({"n": len(targets), "nModified": modified}, True)

    async def update_one(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        *,
        session: Any = None,
        **kwargs: Any,
    ) -> UpdateResult:
        return self._update(filter, update, many=False)

    async def update_many(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        *,
        session: Any = None,
        **kwargs: Any,
    ) -> UpdateResult:
        return self._update(filter, update, many=True)

    async def find_one_and_update(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        *,
        projection: Any = None,
        sort: Any = None,
        return_document: bool = ReturnDocument.BEFORE,
        session: Any = None,
        **kwargs: Any,
    ) -> Document | None:
        targets = sort_documents(self._matching(filter), sort)
        if not targets:
            return None

        before = targets[0]
        after = apply_update(before, update)
        self._documents[before[ID_FIELD]] = after
        chosen = after if return_document == ReturnDocument.AFTER else before
        return project(copy.deepcopy(chosen), projection)

    async def delete_one(self, filter: dict[str, Any], *, session: Any = None, **kwargs: Any) -> DeleteResult:
        targets = self._matching(filter)[:1]
        for document in targets:
            del self._documents[document[ID_FIELD]]
        return DeleteResult({"n": len(targets)}, True)

    async def delete_many(self, filter: dict[str, Any], *, session: Any = None, **kwargs: Any) -> DeleteResult:
        targets = self._matching(filter)
        for document in targets:
            del self._documents[document[ID_FIELD]]
        return DeleteResult({"n": len(targets)}, True)

    # --- Indexes ---

    async def create_index(self, keys: Any, *, session: Any = None, **options: Any) -> str:
        key = normalize_sort(keys)
        name = options.pop("name", None) or "_".join(f"{field}_{direction}" for field, direction in key)
        self._indexes[name] = {"key": key, **options}
        return name

    async def drop_index(self, index_or_name: Any, *, session: Any = None, **kwargs: Any) -> None:
        name = index_or_name
        if not isinstance(index_or_name, str):
            name = "_".join(f"{field}_{direction}" for field, direction in normalize_sort(index_or_name))
        if name == ID_INDEX_NAME or name not in self._indexes:
            raise OperationFailure(f"index not found with name [{name}]", code=INDEX_NOT_FOUND)
        del self._indexes[name]

    async def drop_indexes(self, *, session: Any = None, **kwargs: Any) -> None:
        self._indexes = {ID_INDEX_NAME: self._indexes[ID_INDEX_NAME]}

    async def index_information(self, *, session: Any = None) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._indexes)

    async def watch(self, pipeline: Any = None, **kwargs: Any) -> Any:
        raise NotImplementedError("Change streams are not supported by the in-memory backend")

    async def aggregate(self, pipeline: Any, **kwargs: Any) -> Any:
        raise NotImplementedError("Aggregation is not supported by the in-memory backend")


class InMemorySession:
    """Session whose transactions roll back by restoring a client snapshot."""

    def __init__(self, client: InMemoryClient) -> None:
        self._client = client
        self.has_ended = False
        self.in_transaction = False

    async def __aenter__(self) -> InMemorySession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.end_session()

    async def end_session(self) -> None:
        if not self.has_ended:
            self.has_ended = True
            self._client.sessions_ended += 1

    async def with_transaction(self, callback, read_concern=None, write_concern=None, read_preference=None, **kwargs):
        if self.in_transaction:
            raise OperationFailure("Transaction already in progress", code=256)
        snapshot = self._client.snapshot()
        self.in_transaction = True
        try:
            result = await callback(self)
        except Exception:
            self._client.restore(snapshot)
            self._client.transactions_aborted += 1
            raise
        finally:
            self.in_transaction = False
        self._client.transactions_committed += 1
        return result


class InMemoryClient:
    """Holds the collections of one in-memory database and counts session activity."""

    def __init__(self) -> None:
        self.collections: dict[str, InMemoryCollection] = {}
        self.sessions_started = 0
        self.sessions_ended = 0
        self.transactions_committed = 0
        self.transactions_aborted = 0

    def get_collection(self, name: str) -> InMemoryCollection:
        collection = self.collections.get(name)
        if collection is None:
            collection = self.collections[name] = InMemoryCollection(name)
        return collection

    def start_session(self, **kwargs: Any) -> InMemorySession:
        self.sessions_started += 1
        return InMemorySession(self)

    def snapshot(self) -> dict[str, Any]:
        return {name: collection.snapshot() for name, collection in self.collections.items()}

    def restore(self, snapshot: dict[str, Any]) -> None:
        for name in list(self.collections):
            state = snapshot.get(name)
            if state is None:
                # Created inside the aborted transaction
                self.collections[name].restore(({}, {ID_INDEX_NAME: {"key": [(ID_FIELD, 1)]}}))
            else:
                self.collections[name].restore(state)


class InMemoryDatabase(AbstractDatabase):
    """Backend used by the unit tests and for local runs without a server."""

    def __init__(self, name: str = "docstore") -> None:
        super().__init__()
        self.name = name
        self._client: InMemoryClient | None = None

    @property
    def client(self) -> InMemoryClient | None:
        return self._client

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = InMemoryClient()
        logger.info("Connected to in-memory database '%s'", self.name)
        await self._mark_connected()

    async def close(self) -> None:
        if self._client is None:
            return
        self._client = None
        await self._mark_disconnected()

    async def get_client(self) -> InMemoryClient | None:
        await self.wait_for_connection()
        return self._client

    async def get_or_create_collection(
        self,
        name: str,
        *,
        create_options: dict[str, Any] | None = None,
        collection_options: dict[str, Any] | None = None,
    ) -> InMemoryCollection | None:
        await self.wait_for_connection()
        if self._client is None:
            return None
        return self._client.get_collection(name)

    async def ping(self) -> dict[str, Any] | None:
        if self._client is None:
            return None
        return {"ok": 1.0}
