"""Storage backend dialects."""

from __future__ import annotations

from typing import Dict, Type

from .base import Dialect
from .mysql import MySQLDialect
from .postgres import PostgresDialect
from .sqlite import SQLiteDialect

_DIALECTS: Dict[str, Type[Dialect]] = {
    "sqlite": SQLiteDialect,
    "postgres": PostgresDialect,
    "mysql": MySQLDialect,
}


def register_dialect(client: str, dialect: Type[Dialect]) -> None:
    _DIALECTS[client] = dialect


def get_dialect(client: str) -> Dialect:
    """Return the dialect registered for ``client``."""
    try:
        return _DIALECTS[client]()
    except KeyError:
        raise ValueError(f"Unsupported database backend: {client}") from None


__all__ = [
    "Dialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
    "get_dialect",
    "register_dialect",
]
