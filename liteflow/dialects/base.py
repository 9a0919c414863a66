"""Base interface for backend-specific SQL generation."""

from __future__ import annotations

import abc
from typing import Any, Dict, Union

from sqlalchemy import exists
from sqlalchemy.sql.expression import ColumnElement, TextClause

from ..db.tables import step_table, workflow_table

Predicate = Union[ColumnElement[bool], TextClause]


class Dialect(metaclass=abc.ABCMeta):
    """Predicates whose SQL differs between storage backends.

    The query engine and store only talk to this interface. Supporting a new
    backend means subclassing it and adding the class to the registry in
    ``liteflow.dialects``.
    """

    name: str
    driver: str

    @abc.abstractmethod
    def identifier_predicate(self, key: str, value: str) -> Predicate:
        """True when ``workflow.identifiers`` holds the pair ``(key, value)``."""
        raise NotImplementedError

    def step_membership_predicate(self, step: str) -> Predicate:
        """True when the workflow has at least one step named ``step``."""
        return exists().where(
            step_table.c.workflow_id == workflow_table.c.id,
            step_table.c.step == step,
        )

    def engine_options(self) -> Dict[str, Any]:
        """Extra keyword arguments for ``create_async_engine``."""
        return {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
