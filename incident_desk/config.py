"""Incident Desk configuration system using Pydantic Settings."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IncidentDeskConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INCIDENT_DESK_",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Incident Desk"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    # Storage
    storage_backend: str = "sql"  # sql / memory
    database_url: str = "sqlite+aiosqlite:///./incident_desk.db"

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        allowed = {"sql", "memory"}
        if v not in allowed:
            raise ValueError(f"storage_backend must be one of {allowed}")
        return v


def get_config() -> IncidentDeskConfig:
    """Factory function to create config instance."""
    return IncidentDeskConfig()
