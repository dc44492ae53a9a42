"""pymongo backend with a mocked AsyncMongoClient."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

from pymongo.errors import CollectionInvalid, OperationFailure, ServerSelectionTimeoutError
import pytest

from docstore.adapters.mongo_database import MongoDatabase


pytestmark = pytest.mark.unit

URL = "mongodb://admin:s3cret@db:27017/app?replicaSet=rs0"


def _mock_client() -> tuple[MagicMock, MagicMock, MagicMock]:
    collection = MagicMock(name="collection")
    db = MagicMock(name="db")
    db.name = "app"
    db.command = AsyncMock(return_value={"ok": 1.0})
    db.create_collection = AsyncMock()
    db.get_collection = MagicMock(return_value=collection)
    client = MagicMock(name="client")
    client.get_database = MagicMock(return_value=db)
    client.close = AsyncMock()
    return client, db, collection


@pytest.mark.asyncio
async def test_connect_pings_and_signals_connection() -> None:
    client, db, _ = _mock_client()
    factory = MagicMock(return_value=client)
    database = MongoDatabase(URL, "app", client_factory=factory, appname="tests")
    connected = []
    database.events.on("connected", connected.append)

    await database.connect()

    factory.assert_called_once_with(URL, connectTimeoutMS=20000, appname="tests")
    client.get_database.assert_called_once_with("app")
    db.command.assert_awaited_once_with("ping")
    assert database.is_connected is True
    assert connected == [database]
    assert await database.get_client() is client
    assert await database.ping() == {"ok": 1.0}


@pytest.mark.asyncio
async def test_connect_failure_is_logged_redacted_and_raised(caplog) -> None:
    client, db, _ = _mock_client()
    db.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
    database = MongoDatabase(URL, client_factory=MagicMock(return_value=client))
    errors = []
    database.events.on("error", errors.append)

    with caplog.at_level(logging.ERROR), pytest.raises(ServerSelectionTimeoutError):
        await database.connect()

    assert database.is_connected is False
    assert len(errors) == 1
    assert "s3cret" not in caplog.text
    assert "[REDACTED]@db:27017" in caplog.text


@pytest.mark.asyncio
async def test_get_or_create_collection_passes_options() -> None:
    client, db, collection = _mock_client()
    database = MongoDatabase(URL, client_factory=MagicMock(return_value=client))
    await database.connect()

    result = await database.get_or_create_collection(
        "users", create_options={"capped": False}, collection_options={"read_preference": "primary"}
    )

    assert result is collection
    db.create_collection.assert_awaited_once_with("users", capped=False)
    db.get_collection.assert_called_once_with("users", read_preference="primary")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error", [CollectionInvalid("collection users already exists"), OperationFailure("exists", code=48)]
)
async def test_existing_collection_is_success(error) -> None:
    client, db, collection = _mock_client()
    db.create_collection = AsyncMock(side_effect=error)
    database = MongoDatabase(URL, client_factory=MagicMock(return_value=client))
    await database.connect()

    assert await database.get_or_create_collection("users") is collection


@pytest.mark.asyncio
async def test_other_create_failures_propagate() -> None:
    client, db, _ = _mock_client()
    db.create_collection = AsyncMock(side_effect=OperationFailure("unauthorized", code=13))
    database = MongoDatabase(URL, client_factory=MagicMock(return_value=client))
    await database.connect()

    with pytest.raises(OperationFailure):
        await database.get_or_create_collection("users")


@pytest.mark.asyncio
async def test_close_releases_client() -> None:
    client, _, _ = _mock_client()
    database = MongoDatabase(URL, client_factory=MagicMock(return_value=client))
    disconnected = []
    database.events.on("disconnected", disconnected.append)
    await database.connect()

    await database.close()
    await database.close()

    client.close.assert_awaited_once()
    assert database.is_connected is False
    assert disconnected == [None]


@pytest.mark.asyncio
async def test_service_reads_through_driver_collection() -> None:
    client, _, collection = _mock_client()
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[{"_id": "u1", "name": "Ada"}])
    collection.find = MagicMock(return_value=cursor)
    database = MongoDatabase(URL, client_factory=MagicMock(return_value=client))
    await database.connect()
    service = database.create_service("users")

    document = await service.find_one({"name": "Ada"}, session="s")

    assert document == {"_id": "u1", "name": "Ada"}
    collection.find.assert_called_once_with(
        {"name": "Ada", "deletedOn": {"$exists": False}}, limit=2, session="s"
    )
    cursor.to_list.assert_awaited_once_with(length=2)
