"""SQLite predicates built on the JSON1 table-valued functions."""

from __future__ import annotations

from sqlalchemy import text

from .base import Dialect, Predicate


class SQLiteDialect(Dialect):
    name = "sqlite"
    driver = "sqlite+aiosqlite"

    def identifier_predicate(self, key: str, value: str) -> Predicate:
        return text(
            "EXISTS (SELECT 1 FROM json_each(workflow.identifiers) AS ident "
            "WHERE json_extract(ident.value, '$.key') = :ident_key "
            "AND json_extract(ident.value, '$.value') = :ident_value)"
        ).bindparams(ident_key=key, ident_value=value)
