"""Per-collection document service.

``DocumentService`` is the facade callers use: reads go through the query
normalizer, writes combine the data change and its outbox event in one
transaction, and every committed write is announced on the service's
``EventBus`` afterwards.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
import copy
import functools
import inspect
import logging
import math
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from docstore.domain.diff import compute_diff, path_changed_to, paths_changed
from docstore.domain.errors import (
    CollectionNotInitializedError,
    InvalidArgumentError,
    InvalidSchemaError,
    MoreThanOneError,
    NotFoundError,
    RemoveNotAcknowledgedError,
    serialize_query,
)
from docstore.domain.model import (
    CREATED_ON_FIELD,
    DELETED_ON_FIELD,
    ID_FIELD,
    UPDATED_ON_FIELD,
    Document,
    DocumentCreated,
    DocumentRemoved,
    DocumentUpdated,
    FindResult,
    OutboxEventData,
    OutboxEventType,
    QueryOptions,
    ServiceOptions,
    epoch_seconds,
    utc_now,
)
from docstore.event_bus import EventBus, EventHandler
from docstore.id_generator import generate_id
from docstore.observability.metrics import track_operation
from docstore.service_layer.query_normalizer import Query, QueryNormalizer


if TYPE_CHECKING:
    from docstore.adapters.database import AbstractDatabase


DEFAULT_PER_PAGE = 100

UpdateFunction = Callable[[Document], Awaitable[Mapping[str, Any] | None] | Mapping[str, Any] | None]


def _tracked(operation: str):
    """Count and time a service coroutine under ``operation``."""

    def decorator(method):
        @functools.wraps(method)
        async def wrapper(self: DocumentService, *args: Any, **kwargs: Any):
            with track_operation(self.collection_name, operation):
                return await method(self, *args, **kwargs)

        return wrapper

    return decorator


class AtomicOperations:
    """Direct storage passthroughs that skip the outbox and the service events.

    Filter-bearing operations still go through the query normalizer; only
    the updates add the soft-delete default.
    """

    def __init__(self, service: DocumentService) -> None:
        self._service = service

    async def delete_many(
        self,
        query: Query | None,
        *,
        session: Any = None,
        skip_query_validation: bool = False,
        **options: Any,
    ) -> Any:
        """Hard delete; soft-deleted documents match too."""
        query = self._service._normalizer.check(
            {} if query is None else dict(query), QueryOptions(skip_query_validation=skip_query_validation)
        )
        collection = await self._service._get_collection()
        return await collection.delete_many(query, session=session, **options)

    async def insert_many(self, documents: list[Document], *, session: Any = None, **options: Any) -> Any:
        collection = await self._service._get_collection()
        return await collection.insert_many(documents, session=session, **options)

    async def update_many(
        self,
        query: Query | None,
        update: Mapping[str, Any],
        *,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
        **options: Any,
    ) -> Any:
        query = self._service._normalize(query, do_not_add_deleted_on, skip_query_validation)
        collection = await self._service._get_collection()
        return await collection.update_many(query, update, session=session, **options)

    async def find_one_and_update(
        self,
        query: Query | None,
        update: Mapping[str, Any],
        *,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
        **options: Any,
    ) -> Document | None:
        query = self._service._normalize(query, do_not_add_deleted_on, skip_query_validation)
        collection = await self._service._get_collection()
        return await collection.find_one_and_update(query, update, session=session, **options)


class DocumentService:
    """Soft-delete aware access to one collection with outbox-backed writes.

    Instances are created through ``AbstractDatabase.create_service``. The
    collection handle is resolved on first use, after the database connected;
    concurrent first callers share one resolution.

    Events published on ``events``:
        created: ``DocumentCreated`` per inserted document
        updated: ``DocumentUpdated`` per modified document
        removed: ``DocumentRemoved`` per soft- or hard-deleted document
    """

    def __init__(
        self,
        collection_name: str,
        options: ServiceOptions | None = None,
        *,
        database: AbstractDatabase,
        normalizer: QueryNormalizer | None = None,
        event_bus: EventBus | None = None,
        methods: Mapping[str, Callable[..., Any]] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._collection_name = collection_name
        self._options = options or ServiceOptions()
        self._database = database
        self._normalizer = (normalizer or QueryNormalizer()).bind(self._options)
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._events = event_bus if event_bus is not None else EventBus(logger=self._logger)
        self._methods = methods or {}
        self._atomic = AtomicOperations(self)

        self._collection: Any | None = None
        self._client: Any | None = None
        self._collection_lock = asyncio.Lock()

    def __getattr__(self, name: str) -> Any:
        # Only reached for names missing from the instance and the class
        methods = self.__dict__.get("_methods") or {}
        handler = methods.get(name)
        if handler is None:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")
        return functools.partial(handler, self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(collection_name={self._collection_name!r})"

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def options(self) -> ServiceOptions:
        return self._options

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def atomic(self) -> AtomicOperations:
        return self._atomic

    @property
    def normalizer(self) -> QueryNormalizer:
        return self._normalizer

    # --- Internals ---

    async def _get_collection(self) -> Any:
        # A reconnect swaps the client, and the collection handle bound to the old one goes with it
        client = await self._database.get_client()
        if self._collection is not None and client is self._client:
            return self._collection

        async with self._collection_lock:
            if self._collection is None or client is not self._client:
                collection = await self._database.get_or_create_collection(
                    self._collection_name,
                    create_options=dict(self._options.create_collection_options),
                    collection_options=dict(self._options.collection_options),
                )
                if collection is None:
                    raise CollectionNotInitializedError(
                        f"Collection '{self._collection_name}' is not initialized; is the database connected?"
                    )
                self._client = client
                self._collection = collection
                self._logger.debug("Resolved collection '%s'", self._collection_name)
        return self._collection

    def _normalize(self, query: Query | None, do_not_add_deleted_on: bool, skip_query_validation: bool) -> Query:
        # Work on a copy so the caller's filter is never changed
        query = {} if query is None else dict(query)
        options = QueryOptions(do_not_add_deleted_on=do_not_add_deleted_on, skip_query_validation=skip_query_validation)
        return self._normalizer.normalize(query, options)

    def _validate_schema(self, entity: Document) -> None:
        schema = self._options.schema
        if schema is None:
            return
        try:
            schema.model_validate(entity)
        except ValidationError as exc:
            self._logger.warning(
                "Schema validation failed for '%s' document %s", self._collection_name, entity.get(ID_FIELD)
            )
            raise InvalidSchemaError(
                f"Document {entity.get(ID_FIELD)!r} of '{self._collection_name}' failed {schema.__name__} validation",
                error=exc.errors(include_url=False),
            ) from exc

    async def _apply_update_fn(self, update_fn: UpdateFunction, entity: Document) -> Document:
        result = update_fn(entity)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return entity
        if not isinstance(result, Mapping):
            raise InvalidArgumentError(
                f"update function must return a mapping or None, got {type(result).__name__}"
            )
        return dict(result)

    async def _prepare_update(self, document: Document, update_fn: UpdateFunction) -> tuple[Document, Document]:
        prev_doc = copy.deepcopy(document)
        entity = copy.deepcopy(document)
        if self._options.add_updated_on_field:
            entity[UPDATED_ON_FIELD] = epoch_seconds()
        entity = await self._apply_update_fn(update_fn, entity)
        entity[ID_FIELD] = prev_doc[ID_FIELD]
        return prev_doc, entity

    async def _write_update(
        self,
        collection: Any,
        prev_doc: Document,
        entity: Document,
        diff: list[dict[str, Any]],
        session: Any,
    ) -> bool:
        """Persist ``entity`` over ``prev_doc``; True when storage reported a modification."""
        update: dict[str, Any] = {}
        fields = {key: value for key, value in entity.items() if key != ID_FIELD}
        if fields:
            update["$set"] = fields
        removed = [key for key in prev_doc if key not in entity]
        if removed:
            update["$unset"] = dict.fromkeys(removed, "")
        if not update:
            return False

        result = await collection.update_one({ID_FIELD: entity[ID_FIELD]}, update, session=session)
        if result.modified_count != 1:
            return False

        if self._options.outbox:
            await self._database.outbox.create_event(
                self._collection_name,
                OutboxEventData(type=OutboxEventType.UPDATE, data=copy.deepcopy(entity), diff=diff),
                session=session,
            )
        return True

    # --- Reads ---

    @_tracked("find_one")
    async def find_one(
        self,
        query: Query | None = None,
        *,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
        **find_options: Any,
    ) -> Document | None:
        """Return the single matching document, or None.

        Reads at most two documents; a second match means the filter is
        ambiguous.

        Raises:
            MoreThanOneError: Two or more documents matched.
        """
        query = self._normalize(query, do_not_add_deleted_on, skip_query_validation)
        collection = await self._get_collection()
        # The bound of two is what detects an ambiguous filter
        find_options.pop("limit", None)
        documents = await collection.find(query, limit=2, session=session, **find_options).to_list(length=2)
        if len(documents) > 1:
            raise MoreThanOneError("find_one", query)
        return documents[0] if documents else None

    @_tracked("find")
    async def find(
        self,
        query: Query | None = None,
        *,
        page: int = 0,
        per_page: int = DEFAULT_PER_PAGE,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
        **find_options: Any,
    ) -> FindResult:
        """Return matching documents, optionally one page at a time.

        Args:
            query: Filter; soft-deleted documents are excluded by default
            page: 1-based page number; 0 or less returns every match unpaginated
            per_page: Page size used when ``page`` > 0
            session: Session of an enclosing transaction
            do_not_add_deleted_on: Include soft-deleted documents
            skip_query_validation: Bypass the normalizer's validation hook
            **find_options: Forwarded to the driver's ``find`` (sort, projection, ...);
                paginated reads own ``skip`` and ``limit``

        Returns:
            FindResult; ``count`` and ``pages_count`` are only set for paginated reads.
        """
        if per_page <= 0:
            raise InvalidArgumentError(f"find: per_page must be positive, got {per_page}")

        query = self._normalize(query, do_not_add_deleted_on, skip_query_validation)
        collection = await self._get_collection()

        if page <= 0:
            results = await collection.find(query, session=session, **find_options).to_list(length=None)
            return FindResult(results=results)

        find_options.pop("skip", None)
        find_options.pop("limit", None)
        skip = (page - 1) * per_page
        results = await collection.find(query, skip=skip, limit=per_page, session=session, **find_options).to_list(
            length=None
        )
        count = await collection.count_documents(query, session=session)
        return FindResult(results=results, count=count, pages_count=max(1, math.ceil(count / per_page)))

    async def find_all(self, query: Query | None = None, *, session: Any = None, **find_options: Any) -> list[Document]:
        """Unfiltered scan: no soft-delete default and no validation."""
        collection = await self._get_collection()
        return await collection.find(query or {}, session=session, **find_options).to_list(length=None)

    async def cursor(self, query: Query | None = None, **find_options: Any) -> Any:
        collection = await self._get_collection()
        return collection.find(query or {}, **find_options)

    async def exists(
        self,
        query: Query | None = None,
        *,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
    ) -> bool:
        """True when exactly one document matches; an ambiguous filter raises ``MoreThanOneError``."""
        document = await self.find_one(
            query,
            session=session,
            do_not_add_deleted_on=do_not_add_deleted_on,
            skip_query_validation=skip_query_validation,
        )
        return document is not None

    @_tracked("count_documents")
    async def count_documents(
        self,
        query: Query | None = None,
        *,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
        **options: Any,
    ) -> int:
        query = self._normalize(query, do_not_add_deleted_on, skip_query_validation)
        collection = await self._get_collection()
        return await collection.count_documents(query, session=session, **options)

    @_tracked("distinct")
    async def distinct(
        self,
        key: str,
        query: Query | None = None,
        *,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
        **options: Any,
    ) -> list[Any]:
        query = self._normalize(query, do_not_add_deleted_on, skip_query_validation)
        collection = await self._get_collection()
        return await collection.distinct(key, query, session=session, **options)

    async def aggregate(self, pipeline: list[Mapping[str, Any]], *, session: Any = None, **options: Any) -> Any:
        collection = await self._get_collection()
        return await collection.aggregate(pipeline, session=session, **options)

    # --- Writes ---

    @_tracked("create")
    async def create(
        self,
        entities: Mapping[str, Any] | Iterable[Mapping[str, Any]],
        *,
        session: Any = None,
    ) -> Document | list[Document] | None:
        """Insert one entity or a batch.

        Missing ``_id`` values are generated and timestamps stamped when enabled.
        Every entity is validated before anything is written; the insert and
        its outbox events commit together.

        Returns:
            The stored entity when exactly one was given, otherwise the list.
            None when the backend exposes no client.

        Raises:
            InvalidSchemaError: An entity failed validation; nothing was written.
        """
        if isinstance(entities, Mapping):
            items = [copy.deepcopy(dict(entities))]
        else:
            items = [copy.deepcopy(dict(entity)) for entity in entities]
        if not items:
            return []

        now = epoch_seconds()
        for entity in items:
            if entity.get(ID_FIELD) is None:
                entity[ID_FIELD] = self.generate_id()
            if self._options.add_created_on_field and entity.get(CREATED_ON_FIELD) is None:
                entity[CREATED_ON_FIELD] = now
            if self._options.add_updated_on_field and entity.get(UPDATED_ON_FIELD) is None:
                entity[UPDATED_ON_FIELD] = now

        for entity in items:
            self._validate_schema(entity)

        collection = await self._get_collection()
        if self._client is None:
            return None

        async def unit_of_work(active_session: Any) -> list[Document]:
            await collection.insert_many(copy.deepcopy(items), session=active_session)
            if self._options.outbox:
                await self._database.outbox.create_many_events(
                    self._collection_name,
                    [OutboxEventData(type=OutboxEventType.CREATE, data=copy.deepcopy(entity)) for entity in items],
                    session=active_session,
                )
            return items

        stored = await self._database.transactions.run(
            unit_of_work, session=session, name=f"{self._collection_name}.create"
        )
        if stored is None:
            return None

        for entity in stored:
            await self._events.publish("created", DocumentCreated(collection=self._collection_name, doc=entity))
        return stored[0] if len(stored) == 1 else stored

    @_tracked("update")
    async def update(
        self,
        query: Query | None,
        update_fn: UpdateFunction,
        *,
        session: Any = None,
        require_document: bool = False,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
    ) -> Document | None:
        """Apply ``update_fn`` to the single matching document and persist it.

        ``update_fn`` receives a deep copy (``updatedOn`` already refreshed) and
        either mutates it in place or returns the replacement; it may be a
        coroutine function. ``_id`` cannot be changed.

        Returns:
            The stored document, or None when nothing matched or storage
            reported no modification. Validation runs either way.

        Raises:
            InvalidArgumentError: ``update_fn`` is not callable.
            MoreThanOneError: The filter matched several documents.
            NotFoundError: Nothing matched and ``require_document`` is set.
            InvalidSchemaError: The updated document failed validation.
        """
        if not callable(update_fn):
            raise InvalidArgumentError(
                f"update: expected a callable update function but got {type(update_fn).__name__}"
            )

        document = await self.find_one(
            query,
            session=session,
            do_not_add_deleted_on=do_not_add_deleted_on,
            skip_query_validation=skip_query_validation,
        )
        if document is None:
            if require_document:
                raise NotFoundError(
                    f"update: no document of '{self._collection_name}' matches {serialize_query(query)}"
                )
            self._logger.warning(
                "update: no document of '%s' matches %s", self._collection_name, serialize_query(query)
            )
            return None

        prev_doc, entity = await self._prepare_update(document, update_fn)
        self._validate_schema(entity)
        diff = compute_diff(prev_doc, entity)

        collection = await self._get_collection()
        if self._client is None:
            return None

        async def unit_of_work(active_session: Any) -> bool:
            return await self._write_update(collection, prev_doc, entity, diff, active_session)

        updated = await self._database.transactions.run(
            unit_of_work, session=session, name=f"{self._collection_name}.update"
        )
        if not updated:
            self._logger.debug("update: document %s of '%s' unchanged", entity[ID_FIELD], self._collection_name)
            return None

        await self._events.publish(
            "updated",
            DocumentUpdated(collection=self._collection_name, doc=entity, prev_doc=prev_doc, diff=diff),
        )
        return entity

    @_tracked("update_many")
    async def update_many(
        self,
        query: Query | None,
        update_fn: UpdateFunction,
        *,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
    ) -> list[Document]:
        """Apply ``update_fn`` to every matching document in one transaction.

        All results are validated before the first write. Each document is
        written on its own ``_id``; only documents storage reports as modified
        get an outbox event and are returned.
        """
        if not callable(update_fn):
            raise InvalidArgumentError(
                f"update_many: expected a callable update function but got {type(update_fn).__name__}"
            )

        query = self._normalize(query, do_not_add_deleted_on, skip_query_validation)
        collection = await self._get_collection()
        if self._client is None:
            return []

        documents = await collection.find(query, session=session).to_list(length=None)
        if not documents:
            return []

        prepared = [await self._prepare_update(document, update_fn) for document in documents]
        for _, entity in prepared:
            self._validate_schema(entity)
        changes = [(prev_doc, entity, compute_diff(prev_doc, entity)) for prev_doc, entity in prepared]

        async def unit_of_work(active_session: Any) -> list[tuple[Document, Document, list[dict[str, Any]]]]:
            written = []
            for prev_doc, entity, diff in changes:
                if await self._write_update(collection, prev_doc, entity, diff, active_session):
                    written.append((prev_doc, entity, diff))
            return written

        written = await self._database.transactions.run(
            unit_of_work, session=session, name=f"{self._collection_name}.update_many"
        )
        if not written:
            return []

        for prev_doc, entity, diff in written:
            await self._events.publish(
                "updated",
                DocumentUpdated(collection=self._collection_name, doc=entity, prev_doc=prev_doc, diff=diff),
            )
        return [entity for _, entity, _ in written]

    @_tracked("remove_soft")
    async def remove_soft(
        self,
        query: Query | None,
        *,
        session: Any = None,
        do_not_add_deleted_on: bool = False,
        skip_query_validation: bool = False,
    ) -> list[Document]:
        """Mark every matching live document deleted by setting ``deletedOn``.

        Returns:
            The documents as they were before the soft delete.
        """
        query = self._normalize(query, do_not_add_deleted_on, skip_query_validation)
        collection = await self._get_collection()
        if self._client is None:
            return []

        documents = await collection.find(query, session=session).to_list(length=None)
        if not documents:
            return []
        ids = [document[ID_FIELD] for document in documents]

        async def unit_of_work(active_session: Any) -> list[Document]:
            if self._options.outbox:
                await self._database.outbox.create_many_events(
                    self._collection_name,
                    [OutboxEventData(type=OutboxEventType.REMOVE, data=copy.deepcopy(doc)) for doc in documents],
                    session=active_session,
                )
            await collection.update_many(
                {"$and": [query, {ID_FIELD: {"$in": ids}}]},
                {"$set": {DELETED_ON_FIELD: utc_now()}},
                session=active_session,
            )
            return documents

        removed = await self._database.transactions.run(
            unit_of_work, session=session, name=f"{self._collection_name}.remove_soft"
        )
        if removed is None:
            return []

        for document in removed:
            await self._events.publish("removed", DocumentRemoved(collection=self._collection_name, doc=document))
        return removed

    @_tracked("remove")
    async def remove(
        self,
        query: Query | None,
        *,
        ack_remove: bool = False,
        session: Any = None,
        skip_query_validation: bool = False,
    ) -> list[Document]:
        """Permanently delete every matching document, soft-deleted ones included.

        Raises:
            RemoveNotAcknowledgedError: ``ack_remove`` was not set; storage is untouched.
        """
        if not ack_remove:
            raise RemoveNotAcknowledgedError(self._collection_name)

        query = self._normalizer.check(
            {} if query is None else dict(query), QueryOptions(skip_query_validation=skip_query_validation)
        )
        collection = await self._get_collection()
        if self._client is None:
            return []

        documents = await collection.find(query, session=session).to_list(length=None)
        if not documents:
            return []
        ids = [document[ID_FIELD] for document in documents]

        async def unit_of_work(active_session: Any) -> list[Document]:
            if self._options.outbox:
                await self._database.outbox.create_many_events(
                    self._collection_name,
                    [OutboxEventData(type=OutboxEventType.REMOVE, data=copy.deepcopy(doc)) for doc in documents],
                    session=active_session,
                )
            await collection.delete_many({"$and": [query, {ID_FIELD: {"$in": ids}}]}, session=active_session)
            return documents

        removed = await self._database.transactions.run(
            unit_of_work, session=session, name=f"{self._collection_name}.remove"
        )
        if removed is None:
            return []

        for document in removed:
            await self._events.publish(
                "removed", DocumentRemoved(collection=self._collection_name, doc=document, soft=False)
            )
        return removed

    # --- Indexes, streams and transactions ---

    async def ensure_index(self, keys: Mapping[str, Any] | list[tuple[str, Any]], **options: Any) -> str | None:
        """Create an index; storage errors are logged and yield None."""
        collection = await self._get_collection()
        if isinstance(keys, Mapping):
            keys = list(keys.items())
        try:
            return await collection.create_index(keys, **options)
        except PyMongoError as exc:
            self._logger.info("ensure_index failed on '%s': %s", self._collection_name, exc)
            return None

    async def drop_index(self, index: str | Mapping[str, Any] | list[tuple[str, Any]], **options: Any) -> None:
        collection = await self._get_collection()
        if isinstance(index, Mapping):
            index = list(index.items())
        try:
            await collection.drop_index(index, **options)
        except PyMongoError as exc:
            self._logger.info("drop_index failed on '%s': %s", self._collection_name, exc)

    async def drop_indexes(self, **options: Any) -> None:
        collection = await self._get_collection()
        try:
            await collection.drop_indexes(**options)
        except PyMongoError as exc:
            self._logger.info("drop_indexes failed on '%s': %s", self._collection_name, exc)

    async def watch(self, pipeline: list[Mapping[str, Any]] | None = None, **options: Any) -> Any:
        """Open a change stream on the collection."""
        collection = await self._get_collection()
        return await collection.watch(pipeline, **options)

    def generate_id(self) -> str:
        return generate_id()

    async def with_transaction(self, fn: Callable[[Any], Any], *, session: Any = None) -> Any:
        """Run ``fn(session)`` in one transaction; pass that session to service calls to join it."""
        if not callable(fn):
            raise InvalidArgumentError(f"with_transaction: expected a callable but got {type(fn).__name__}")
        return await self._database.transactions.run(
            fn, session=session, name=f"{self._collection_name}.with_transaction"
        )

    # --- Events ---

    def on(self, event_name: str, handler: EventHandler) -> None:
        self._events.on(event_name, handler)

    def once(self, event_name: str, handler: EventHandler) -> None:
        self._events.once(event_name, handler)

    def off(self, event_name: str, handler: EventHandler) -> bool:
        return self._events.off(event_name, handler)

    def on_properties_updated(
        self,
        properties: list[str] | Mapping[str, Any],
        handler: EventHandler,
    ) -> EventHandler:
        """Call ``handler`` with the ``DocumentUpdated`` event when a watched path changed.

        ``properties`` is a list of dotted paths, or a mapping of dotted path to
        the value it must have changed to. Returns the listener registered on
        ``updated`` so it can be passed to ``off``.
        """
        if isinstance(properties, Mapping):
            expected = dict(properties)

            def changed(event: DocumentUpdated) -> bool:
                return path_changed_to(event.prev_doc, event.doc, expected)

        else:
            paths = list(properties)

            def changed(event: DocumentUpdated) -> bool:
                return paths_changed(event.prev_doc, event.doc, paths)

        async def listener(event: DocumentUpdated) -> None:
            if not changed(event):
                return
            result = handler(event)
            if inspect.isawaitable(result):
                await result

        self._events.on("updated", listener)
        return listener
