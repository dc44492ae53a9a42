"""Outbox publisher and same-transaction event atomicity."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from docstore.domain.model import OutboxEvent, OutboxEventData, OutboxEventType
from docstore.service_layer.outbox import OutboxPublisher, outbox_collection_name


pytestmark = pytest.mark.unit


def _publisher(collection, *, ids=None) -> tuple[OutboxPublisher, AsyncMock]:
    get_or_create = AsyncMock(return_value=collection)
    id_values = iter(ids or [f"evt{i}" for i in range(10)])
    publisher = OutboxPublisher(get_or_create, AsyncMock(), id_factory=lambda: next(id_values))
    return publisher, get_or_create


def test_outbox_collection_name() -> None:
    assert outbox_collection_name("users") == "users_outbox"


@pytest.mark.asyncio
async def test_create_event_stamps_id_and_timestamp() -> None:
    collection = AsyncMock()
    publisher, get_or_create = _publisher(collection)

    event = await publisher.create_event(
        "users", OutboxEventData(type=OutboxEventType.CREATE, data={"_id": "u1"}), session="s"
    )

    assert isinstance(event, OutboxEvent)
    assert event.id == "evt0"
    assert event.created_on > 0
    get_or_create.assert_awaited_once_with("users_outbox")
    collection.insert_many.assert_awaited_once_with([event.to_document()], session="s")


@pytest.mark.asyncio
async def test_companion_collection_is_resolved_once_under_concurrency() -> None:
    publisher, get_or_create = _publisher(AsyncMock())
    data = OutboxEventData(type=OutboxEventType.REMOVE, data={"_id": "u1"})

    await asyncio.gather(*(publisher.create_event("users", data) for _ in range(5)))

    assert get_or_create.await_count == 1


@pytest.mark.asyncio
async def test_reset_resolves_the_collection_again() -> None:
    publisher, get_or_create = _publisher(AsyncMock())
    data = OutboxEventData(type=OutboxEventType.CREATE, data={"_id": "u1"})

    await publisher.create_event("users", data)
    publisher.reset()
    await publisher.create_event("users", data)

    assert get_or_create.await_count == 2


@pytest.mark.asyncio
async def test_unavailable_outbox_returns_none() -> None:
    publisher, get_or_create = _publisher(None)
    data = OutboxEventData(type=OutboxEventType.CREATE, data={})

    assert await publisher.create_event("users", data) is None
    assert await publisher.create_many_events("users", [data]) is None
    # Not cached, so a later connection can still provide it
    assert get_or_create.await_count == 2


@pytest.mark.asyncio
async def test_empty_batch_inserts_nothing() -> None:
    collection = AsyncMock()
    publisher, _ = _publisher(collection)

    assert await publisher.create_many_events("users", []) == []
    collection.insert_many.assert_not_awaited()


def test_outbox_event_document_round_trip() -> None:
    event = OutboxEvent(
        id="evt", type=OutboxEventType.UPDATE, data={"_id": "u1"}, created_on=1700000000000, diff=[{"kind": "E"}]
    )

    document = event.to_document()

    assert document == {
        "_id": "evt",
        "type": "update",
        "data": {"_id": "u1"},
        "createdOn": 1700000000000,
        "diff": [{"kind": "E"}],
    }
    assert OutboxEvent.from_document(document) == event


@pytest.mark.asyncio
async def test_failed_transaction_leaves_no_events(users, read_outbox) -> None:
    async def create_then_fail(session):
        await users.create({"name": "Ada"}, session=session)
        raise RuntimeError("forced abort")

    with pytest.raises(RuntimeError, match="forced abort"):
        await users.with_transaction(create_then_fail)

    assert await users.find_all() == []
    assert read_outbox() == []


@pytest.mark.asyncio
async def test_outbox_failure_rolls_back_data_write(users, database, read_outbox, monkeypatch) -> None:
    await users.create({"name": "Ada"})
    monkeypatch.setattr(database.outbox, "create_many_events", AsyncMock(side_effect=RuntimeError("outbox down")))

    with pytest.raises(RuntimeError, match="outbox down"):
        await users.create({"name": "Grace"})

    assert [doc["name"] for doc in await users.find_all()] == ["Ada"]
    assert len(read_outbox()) == 1


@pytest.mark.asyncio
async def test_composed_transaction_commits_all_events(users, make_service, read_outbox) -> None:
    orders = make_service("orders", outbox=True)

    async def place_order(session):
        user = await users.create({"name": "Ada"}, session=session)
        await orders.create({"user": user["_id"]}, session=session)
        return user

    user = await users.with_transaction(place_order)

    assert [event["data"]["_id"] for event in read_outbox("users")] == [user["_id"]]
    assert [event["data"]["user"] for event in read_outbox("orders")] == [user["_id"]]
