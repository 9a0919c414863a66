"""Filtered, paginated reads over the workflow tables."""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncConnection

from .clock import from_db, normalize_bound
from .db.tables import step_table, workflow_table
from .dialects import Dialect
from .dialects.base import Predicate
from .identifiers import decode_identifiers
from .models import Identifier, Workflow, WorkflowPage, WorkflowStatus, WorkflowStep

logger = logging.getLogger(__name__)

ORDERABLE_COLUMNS = ("started_at", "ended_at")
SORT_DIRECTIONS = ("asc", "desc")


class WorkflowFilter(BaseModel):
    """Criteria accepted by ``Liteflow.get_workflows``.

    ``start_date`` is an inclusive lower bound and ``end_date`` an exclusive
    upper bound on ``started_at``. ``name`` matches as a substring.
    """

    status: Optional[WorkflowStatus] = None
    identifier: Optional[Identifier] = None
    name: Optional[str] = None
    start_date: Optional[Union[datetime, str]] = None
    end_date: Optional[Union[datetime, str]] = None
    step: Optional[str] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)
    order_by: str = "started_at"
    order: str = "desc"


def build_predicates(criteria: WorkflowFilter, dialect: Dialect) -> List[Predicate]:
    """Translate ``criteria`` into WHERE clauses for the workflow table."""
    predicates: List[Predicate] = []
    if criteria.status:
        predicates.append(workflow_table.c.status == criteria.status)
    if criteria.identifier is not None:
        predicates.append(
            dialect.identifier_predicate(
                criteria.identifier.key, criteria.identifier.value
            )
        )
    if criteria.name:
        predicates.append(workflow_table.c.name.contains(criteria.name, autoescape=True))
    if criteria.start_date:
        predicates.append(
            workflow_table.c.started_at >= normalize_bound(criteria.start_date)
        )
    if criteria.end_date:
        predicates.append(workflow_table.c.started_at < normalize_bound(criteria.end_date))
    if criteria.step:
        predicates.append(dialect.step_membership_predicate(criteria.step))
    return predicates


def _ordering(criteria: WorkflowFilter):
    if criteria.order_by not in ORDERABLE_COLUMNS:
        raise ValueError(f"Invalid order_by column: {criteria.order_by!r}")
    direction = criteria.order.lower()
    if direction not in SORT_DIRECTIONS:
        raise ValueError(f"Invalid sort direction: {criteria.order!r}")
    column = workflow_table.c[criteria.order_by]
    # id keeps pages disjoint when timestamps tie
    if direction == "asc":
        return column.asc(), workflow_table.c.id.asc()
    return column.desc(), workflow_table.c.id.desc()


async def fetch_workflow_page(
    conn: AsyncConnection, criteria: WorkflowFilter, dialect: Dialect
) -> WorkflowPage:
    """Count and fetch one page using the same predicate set."""
    ordering = _ordering(criteria)
    predicates = build_predicates(criteria, dialect)

    count_query = select(func.count()).select_from(workflow_table).where(*predicates)
    total = (await conn.execute(count_query)).scalar_one()

    page_query = (
        select(workflow_table)
        .where(*predicates)
        .order_by(*ordering)
        .limit(criteria.page_size)
        .offset((criteria.page - 1) * criteria.page_size)
    )
    rows = (await conn.execute(page_query)).mappings().all()

    return WorkflowPage(
        workflows=[row_to_workflow(row) for row in rows],
        total=total,
        page=criteria.page,
        page_size=criteria.page_size,
        total_pages=math.ceil(total / criteria.page_size) if total else 0,
    )


def decode_data(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Step payload is not valid JSON, returning raw text")
        return raw


def row_to_workflow(row: RowMapping) -> Workflow:
    return Workflow(
        id=row["id"],
        name=row["name"],
        identifiers=decode_identifiers(row["identifiers"]),
        status=row["status"],
        started_at=from_db(row["started_at"]),
        ended_at=from_db(row["ended_at"]),
    )


def row_to_step(row: RowMapping) -> WorkflowStep:
    return WorkflowStep(
        id=row["id"],
        workflow_id=row["workflow_id"],
        step=row["step"],
        data=decode_data(row["data"]),
        created_at=from_db(row["created_at"]),
    )


def steps_query(*predicates: Predicate, join_workflow: bool = False):
    """Steps matching ``predicates`` in creation order.

    With ``join_workflow`` the predicates may also reference ``workflow``
    columns.
    """
    query = select(step_table)
    if join_workflow:
        query = query.select_from(
            step_table.join(
                workflow_table, step_table.c.workflow_id == workflow_table.c.id
            )
        )
    return query.where(*predicates).order_by(
        step_table.c.created_at.asc(), step_table.c.id.asc()
    )
