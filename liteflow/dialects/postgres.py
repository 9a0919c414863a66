"""PostgreSQL predicates using ``jsonb`` containment."""

from __future__ import annotations

from sqlalchemy import text

from ..identifiers import containment_needle
from .base import Dialect, Predicate


class PostgresDialect(Dialect):
    name = "postgres"
    driver = "postgresql+asyncpg"

    def identifier_predicate(self, key: str, value: str) -> Predicate:
        # identifiers is stored as TEXT, cast both sides for @>
        return text(
            "CAST(workflow.identifiers AS jsonb) @> CAST(:ident_needle AS jsonb)"
        ).bindparams(ident_needle=containment_needle(key, value))
