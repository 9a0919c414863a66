"""MySQL predicates using ``JSON_CONTAINS``."""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import text

from ..identifiers import containment_needle
from .base import Dialect, Predicate


class MySQLDialect(Dialect):
    name = "mysql"
    driver = "mysql+aiomysql"

    def identifier_predicate(self, key: str, value: str) -> Predicate:
        return text(
            "JSON_CONTAINS(workflow.identifiers, :ident_needle)"
        ).bindparams(ident_needle=containment_needle(key, value))

    def engine_options(self) -> Dict[str, Any]:
        return {"pool_recycle": 3600}
