"""Centralized configuration for docstore using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables (or ``.env``)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    mongo_connection: str = Field(
        default="mongodb://localhost:27017/?replicaSet=rs0",
        description="MongoDB connection string; transactions require a replica set or sharded cluster",
    )
    mongo_db_name: str | None = Field(default=None, description="Database name; defaults to the one in the URI")
    mongo_connect_timeout_ms: int = Field(default=20000, ge=1, description="Driver connect timeout in milliseconds")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    # Telemetry
    service_name: str = Field(default="docstore", description="service.name resource attribute")


def get_settings() -> Settings:
    """Load settings from the current environment."""
    return Settings()
