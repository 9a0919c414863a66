"""Tests for configuration loading."""

import pytest

from liteflow.config import DatabaseConfig, coerce_database_config, load_config


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "liteflow.yaml"
    config_path.write_text(
        """
database:
  client: postgres
  host: testhost
  port: 5433
  user: tracker
  password: secret
  database: flows
batch_delay: 0.5
"""
    )
    monkeypatch.setenv("LITEFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("LITEFLOW_DB_PATH", raising=False)

    config = load_config()
    assert config.database.client == "postgres"
    assert config.database.host == "testhost"
    assert config.database.port == 5433
    assert config.batch_delay == 0.5


def test_load_config_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("LITEFLOW_DB_PATH", raising=False)
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config.database.client == "sqlite"
    assert config.batch_delay == 0.1
    assert config.operation_timeout is None


def test_db_path_env_overrides_file(tmp_path, monkeypatch):
    monkeypatch.setenv("LITEFLOW_DB_PATH", str(tmp_path / "env.db"))
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config.database.client == "sqlite"
    assert config.database.filename == str(tmp_path / "env.db")


def test_coerce_accepts_path_config_and_mapping(tmp_path):
    from_path = coerce_database_config(tmp_path / "wf.db")
    assert from_path.client == "sqlite"
    assert from_path.filename == str(tmp_path / "wf.db")

    cfg = DatabaseConfig(client="mysql", host="db")
    assert coerce_database_config(cfg) is cfg

    from_mapping = coerce_database_config({"client": "postgres", "host": "db", "port": 5432})
    assert from_mapping.client == "postgres"

    with pytest.raises(TypeError):
        coerce_database_config(42)


def test_database_urls_per_backend():
    sqlite_url = DatabaseConfig(filename="/tmp/wf.db").to_url("sqlite+aiosqlite")
    assert sqlite_url.database == "/tmp/wf.db"
    assert DatabaseConfig().to_url("sqlite+aiosqlite").database == ":memory:"

    pg_url = DatabaseConfig(
        client="postgres", host="db", port=5432, user="u", password="p", database="flows"
    ).to_url("postgresql+asyncpg")
    assert pg_url.drivername == "postgresql+asyncpg"
    assert pg_url.host == "db"
    assert pg_url.username == "u"
    assert pg_url.database == "flows"
