from __future__ import annotations

import os
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import BaseModel
from sqlalchemy.engine import URL


class DatabaseConfig(BaseModel):
    """Connection settings for the backing relational store."""

    client: str = "sqlite"
    filename: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    use_null_as_default: bool = False

    def to_url(self, driver: str) -> URL:
        """Build the SQLAlchemy URL for ``driver`` (e.g. ``sqlite+aiosqlite``)."""
        if self.client == "sqlite":
            return URL.create(driver, database=self.filename or ":memory:")
        return URL.create(
            driver,
            username=self.user,
            password=self.password,
            host=self.host or "localhost",
            port=self.port,
            database=self.database,
        )


class LiteflowConfig(BaseModel):
    """Top-level configuration model."""

    database: DatabaseConfig = DatabaseConfig()
    batch_delay: float = 0.1
    operation_timeout: Optional[float] = None


ConfigLike = Union[str, os.PathLike, DatabaseConfig, Mapping[str, Any]]


def coerce_database_config(value: ConfigLike) -> DatabaseConfig:
    """Normalise the accepted constructor shapes into a ``DatabaseConfig``.

    A bare string or path is the backward-compatible shorthand for an SQLite
    database file.
    """
    if isinstance(value, DatabaseConfig):
        return value
    if isinstance(value, (str, os.PathLike)):
        return DatabaseConfig(client="sqlite", filename=os.fspath(value))
    if isinstance(value, Mapping):
        return DatabaseConfig(**value)
    raise TypeError(f"Unsupported database configuration: {value!r}")


def load_config(path: Optional[str] = None) -> LiteflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to LITEFLOW_CONFIG env
            variable or 'liteflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("LITEFLOW_CONFIG", "liteflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = LiteflowConfig(**data)
    else:
        config = LiteflowConfig()

    env_db = os.getenv("LITEFLOW_DB_PATH")
    if env_db:
        config.database = DatabaseConfig(client="sqlite", filename=env_db)
    return config
