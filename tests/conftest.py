"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

from pydantic import BaseModel
import pytest
import pytest_asyncio

from docstore.adapters.memory_database import InMemoryDatabase
from docstore.domain.model import Document, ServiceOptions
from docstore.service_layer.document_service import DocumentService


class User(BaseModel):
    """Schema used by services that validate their documents."""

    name: str
    role: str = "member"
    age: int | None = None


SETTINGS_ENV = (
    "MONGO_CONNECTION",
    "MONGO_DB_NAME",
    "MONGO_CONNECT_TIMEOUT_MS",
    "LOG_LEVEL",
    "LOG_JSON",
    "SERVICE_NAME",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings tests independent from the developer's shell."""
    for key in SETTINGS_ENV:
        monkeypatch.delenv(key, raising=False)


@pytest_asyncio.fixture
async def database() -> AsyncIterator[InMemoryDatabase]:
    db = InMemoryDatabase("test")
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def make_service(database: InMemoryDatabase) -> Callable[..., DocumentService]:
    """Build a service on the shared in-memory database; keyword args become ServiceOptions."""

    def _make(collection_name: str = "users", **options) -> DocumentService:
        return database.create_service(collection_name, ServiceOptions(**options))

    return _make


@pytest.fixture
def users(make_service: Callable[..., DocumentService]) -> DocumentService:
    return make_service("users", outbox=True)


@pytest.fixture
def validated_users(make_service: Callable[..., DocumentService]) -> DocumentService:
    return make_service("validated_users", outbox=True, schema=User)


@pytest.fixture
def read_outbox(database: InMemoryDatabase) -> Callable[[str], list[Document]]:
    """Raw outbox records written for a collection so far."""

    def _read(collection_name: str = "users") -> list[Document]:
        collection = database.client.collections.get(f"{collection_name}_outbox")
        if collection is None:
            return []
        return collection.documents()

    return _read
