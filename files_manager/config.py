from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import dotenv_values
from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, ConfigDict, Field, field_validator


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings read from the environment (and ``.env`` as fallback)."""

    # Persistent store
    db_host: str = env_field("localhost", "DB_HOST")
    db_port: int = env_field(5432, "DB_PORT")
    db_database: str = env_field("files_manager", "DB_DATABASE")
    db_user: Optional[str] = env_field(None, "DB_USER")
    db_password: Optional[str] = env_field(None, "DB_PASSWORD")
    db_connect_timeout: int = env_field(
        5, "DB_CONNECT_TIMEOUT", description="Seconds per connection attempt"
    )
    # Ephemeral store
    redis_url: str = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_socket_timeout: float = env_field(5.0, "REDIS_SOCKET_TIMEOUT")
    # HTTP listener
    host: str = env_field("0.0.0.0", "HOST")
    port: int = env_field(5000, "PORT")

    use_memory_store: bool = env_field(
        False,
        "USE_MEMORY_STORE",
        description="Replace Postgres and Redis with in-process stores",
    )
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allow runtime resets between tests",
    )

    session_ttl_seconds: int = env_field(60 * 60 * 24, "SESSION_TTL_SECONDS")
    readiness_attempts: int = env_field(10, "READINESS_ATTEMPTS")
    readiness_interval_seconds: float = env_field(1.0, "READINESS_INTERVAL_SECONDS")
    readiness_deadline_seconds: Optional[float] = env_field(
        None,
        "READINESS_DEADLINE_SECONDS",
        description="Overall cap on the startup wait; unset means attempts * interval",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("session_ttl_seconds", "readiness_attempts")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("readiness_deadline_seconds", mode="before")
    @classmethod
    def _blank_deadline(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def database_url(self) -> str:
        """libpq conninfo string built from the ``DB_*`` fields."""
        params: dict[str, Any] = {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_database,
            "connect_timeout": self.db_connect_timeout,
        }
        if self.db_user:
            params["user"] = self.db_user
        if self.db_password:
            params["password"] = self.db_password
        return make_conninfo(**params)


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
