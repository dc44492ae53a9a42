"""Settings loaded from the environment."""

from __future__ import annotations

from pydantic import ValidationError
import pytest

from docstore.adapters.mongo_database import MongoDatabase
from docstore.config import Settings, get_settings


pytestmark = pytest.mark.unit


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.mongo_connection == "mongodb://localhost:27017/?replicaSet=rs0"
    assert settings.mongo_db_name is None
    assert settings.mongo_connect_timeout_ms == 20000
    assert settings.log_level == "info"
    assert settings.log_json is True
    assert settings.service_name == "docstore"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MONGO_CONNECTION", "mongodb://db:27017")
    monkeypatch.setenv("MONGO_DB_NAME", "app")
    monkeypatch.setenv("MONGO_CONNECT_TIMEOUT_MS", "500")
    monkeypatch.setenv("LOG_JSON", "false")

    settings = get_settings()

    assert settings.mongo_connection == "mongodb://db:27017"
    assert settings.mongo_db_name == "app"
    assert settings.mongo_connect_timeout_ms == 500
    assert settings.log_json is False


def test_rejects_non_positive_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MONGO_CONNECT_TIMEOUT_MS", "0")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_database_from_settings() -> None:
    settings = Settings(_env_file=None, mongo_db_name="app", mongo_connect_timeout_ms=1500)

    database = MongoDatabase.from_settings(settings, appname="tests")

    assert database.url == settings.mongo_connection
    assert database.db_name == "app"
    assert database.client_options == {"connectTimeoutMS": 1500, "appname": "tests"}
