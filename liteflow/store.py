"""Workflow tracker façade."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import uuid
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    List,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from pydantic import ValidationError
from sqlalchemy import case, delete, func, insert, select, update

from .batching import DEFAULT_BATCH_DELAY, StepBuffer
from .clock import StepClock, from_db, to_db, utcnow
from .config import ConfigLike, LiteflowConfig, coerce_database_config, load_config
from .db import Database, step_table, workflow_table
from .dialects import get_dialect
from .events import (
    EventNotifier,
    Handler,
    StepAdded,
    WorkflowCompleted,
    WorkflowFailed,
    WorkflowStarted,
)
from .handle import WorkflowHandle
from .identifiers import (
    IdentifierLike,
    contains_identifier,
    decode_identifiers,
    encode_identifiers,
    parse_identifier,
)
from .models import (
    StepDuration,
    StepFrequency,
    StepInput,
    StepRecord,
    Workflow,
    WorkflowPage,
    WorkflowStats,
    WorkflowStep,
)
from .query import (
    WorkflowFilter,
    fetch_workflow_page,
    row_to_step,
    row_to_workflow,
    steps_query,
)

logger = logging.getLogger(__name__)

WorkflowRef = Union[str, WorkflowHandle]
StepLike = Union[StepInput, Mapping[str, Any]]

T = TypeVar("T")

# Keeps multi-row inserts under SQLite's bound parameter limit
INSERT_CHUNK_SIZE = 500


class LiteflowError(Exception):
    """Raised when the tracker cannot create a workflow or its schema."""


def contained(fallback: Callable[[], Any]):
    """Log any exception raised by the wrapped coroutine and return ``fallback()``."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(self: "Liteflow", *args: Any, **kwargs: Any) -> T:
            try:
                return await func(self, *args, **kwargs)
            except Exception:
                logger.exception(f"Liteflow.{func.__name__} failed")
                return fallback()

        return wrapper

    return decorator


def _resolve(ref: WorkflowRef) -> str:
    if isinstance(ref, WorkflowHandle):
        return ref.id
    return ref


def _chunks(rows: List[dict], size: int) -> Iterable[List[dict]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


class Liteflow:
    """Track workflows, their steps and lifecycle in a relational store.

    ``config`` is either a path to an SQLite file, a ``DatabaseConfig`` or a
    mapping with the same fields. Steps added with :meth:`add_step` are
    buffered and written in batches every ``batch_delay`` seconds; they are
    not visible to readers until flushed and are lost if that batch write
    fails. Use :meth:`add_steps` when a step must be durable before
    returning.

    Apart from :meth:`init` and :meth:`start_workflow`, public methods never
    raise on store errors: they log and return the operation's fallback value.
    """

    def __init__(
        self,
        config: ConfigLike,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        operation_timeout: Optional[float] = None,
    ) -> None:
        self.config = coerce_database_config(config)
        self.dialect = get_dialect(self.config.client)
        self.db = Database(self.config, self.dialect)
        self.events = EventNotifier()
        self.operation_timeout = operation_timeout
        self._buffer = StepBuffer(self._write_steps, delay=batch_delay)
        self._clock = StepClock()
        self._background: set[asyncio.Task] = set()
        self._destroyed = False

    @classmethod
    def from_config(cls, config: Optional[LiteflowConfig] = None) -> "Liteflow":
        config = config or load_config()
        return cls(
            config.database,
            batch_delay=config.batch_delay,
            operation_timeout=config.operation_timeout,
        )

    async def init(self) -> None:
        """Create the schema if it does not exist."""
        try:
            await self.db.init_db()
        except Exception as exc:
            logger.exception("Schema initialisation failed")
            raise LiteflowError("Could not initialise the workflow schema") from exc

    async def __aenter__(self) -> "Liteflow":
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.destroy()

    # ------------------------------------------------------------------
    # Subscriptions
    def on_start(self, handler: Handler[WorkflowStarted]) -> None:
        self.events.subscribe(WorkflowStarted, handler)

    def on_step(self, handler: Handler[StepAdded]) -> None:
        self.events.subscribe(StepAdded, handler)

    def on_complete(self, handler: Handler[WorkflowCompleted]) -> None:
        self.events.subscribe(WorkflowCompleted, handler)

    def on_fail(self, handler: Handler[WorkflowFailed]) -> None:
        self.events.subscribe(WorkflowFailed, handler)

    # ------------------------------------------------------------------
    # Buffer state
    @property
    def pending_steps(self) -> int:
        """Number of steps accepted but not yet handed to the store."""
        return len(self._buffer)

    @property
    def dropped_steps(self) -> int:
        """Number of buffered steps lost to failed batch writes."""
        return self._buffer.dropped

    # ------------------------------------------------------------------
    # Helpers
    def _encode_data(self, data: Any) -> Optional[str]:
        if data is None and self.config.use_null_as_default:
            return None
        return json.dumps(data)

    def _step_row(self, record: StepRecord) -> dict:
        return {
            "id": record.id,
            "workflow_id": record.workflow_id,
            "step": record.step,
            "data": self._encode_data(record.data),
            "created_at": to_db(record.created_at),
        }

    async def _write_steps(self, records: List[StepRecord]) -> None:
        """Insert ``records`` in one transaction, then notify subscribers."""
        rows = [self._step_row(record) for record in records]
        async with self.db.transaction() as conn:
            for chunk in _chunks(rows, INSERT_CHUNK_SIZE):
                await conn.execute(insert(step_table).values(chunk))
        for record in records:
            self.events.emit(
                StepAdded(
                    workflow_id=record.workflow_id,
                    step_id=record.id,
                    step=record.step,
                    data=record.data,
                    created_at=record.created_at,
                )
            )

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _bounded(self, coro: Awaitable[T]) -> T:
        if self.operation_timeout is None:
            return await coro
        return await asyncio.wait_for(coro, self.operation_timeout)

    async def _set_status(
        self, workflow_id: str, status: str, event: Union[WorkflowCompleted, WorkflowFailed]
    ) -> bool:
        ended_at = (
            event.completed_at if isinstance(event, WorkflowCompleted) else event.failed_at
        )
        try:
            async with self.db.transaction() as conn:
                await conn.execute(
                    update(workflow_table)
                    .where(workflow_table.c.id == workflow_id)
                    .values(status=status, ended_at=to_db(ended_at))
                )
        except Exception:
            logger.exception(f"Could not mark workflow {workflow_id} as {status}")
            return False
        self.events.emit(event)
        return True

    # ------------------------------------------------------------------
    # Write path
    async def start_workflow(
        self, name: str, identifiers: Optional[Iterable[IdentifierLike]] = None
    ) -> WorkflowHandle:
        """Insert a pending workflow and return a handle to it.

        The insert is awaited; if it fails a ``LiteflowError`` is raised since
        there is no usable workflow id to fall back to.
        """
        workflow_id = str(uuid.uuid4())
        started_at = utcnow()
        try:
            encoded = encode_identifiers(identifiers)
            async with self.db.transaction() as conn:
                await conn.execute(
                    insert(workflow_table).values(
                        id=workflow_id,
                        name=name,
                        identifiers=encoded,
                        status="pending",
                        started_at=to_db(started_at),
                    )
                )
        except Exception as exc:
            logger.exception(f"Failed to start workflow {name!r}")
            raise LiteflowError(f"Could not start workflow {name!r}") from exc

        self.events.emit(
            WorkflowStarted(
                workflow_id=workflow_id,
                name=name,
                identifiers=decode_identifiers(encoded),
                started_at=started_at,
            )
        )
        return WorkflowHandle(self, workflow_id)

    async def add_step(self, ref: WorkflowRef, step: str, data: Any = None) -> None:
        """Buffer a step; it becomes visible after the next flush.

        The parent workflow is not checked. Invalid input is logged and
        ignored.
        """
        workflow_id = _resolve(ref)
        if not workflow_id or not isinstance(workflow_id, str):
            logger.warning("add_step called without a workflow id")
            return
        if not step or not isinstance(step, str):
            logger.warning(f"add_step called without a step name for workflow {workflow_id}")
            return
        try:
            json.dumps(data)
        except (TypeError, ValueError):
            logger.warning(
                f"Step {step!r} for workflow {workflow_id} has a payload that is not JSON serializable"
            )
            return

        self._buffer.enqueue(
            StepRecord(
                id=str(uuid.uuid4()),
                workflow_id=workflow_id,
                step=step,
                data=data,
                created_at=self._clock.now(),
            )
        )

    async def add_steps(self, ref: WorkflowRef, steps: Iterable[StepLike]) -> bool:
        """Insert ``steps`` directly, returning once they are durable."""
        workflow_id = _resolve(ref)
        if not workflow_id or not isinstance(workflow_id, str):
            logger.warning("add_steps called without a workflow id")
            return False
        try:
            inputs = [StepInput.model_validate(step) for step in steps]
        except ValidationError as exc:
            logger.warning(f"Rejected steps for workflow {workflow_id}: {exc}")
            return False
        if not inputs:
            return True

        records = [
            StepRecord(
                id=str(uuid.uuid4()),
                workflow_id=workflow_id,
                step=item.step,
                data=item.data,
                created_at=self._clock.now(),
            )
            for item in inputs
        ]
        try:
            await self._write_steps(records)
        except Exception:
            logger.exception(f"Batch insert of {len(records)} step(s) failed for workflow {workflow_id}")
            return False
        return True

    async def complete_workflow(self, ref: WorkflowRef) -> None:
        """Mark the workflow completed in the background.

        Steps still sitting in the buffer are not flushed first, so a reader
        may see the workflow completed before its last steps.
        """
        workflow_id = _resolve(ref)
        if not workflow_id:
            logger.warning("complete_workflow called without a workflow id")
            return
        event = WorkflowCompleted(workflow_id=workflow_id, completed_at=utcnow())
        self._spawn(self._set_status(workflow_id, "completed", event))

    async def fail_workflow(self, ref: WorkflowRef, reason: Optional[str] = None) -> None:
        """Mark the workflow failed in the background."""
        workflow_id = _resolve(ref)
        if not workflow_id:
            logger.warning("fail_workflow called without a workflow id")
            return
        event = WorkflowFailed(workflow_id=workflow_id, failed_at=utcnow(), reason=reason)
        self._spawn(self._set_status(workflow_id, "failed", event))

    async def drain(self) -> None:
        """Wait for background status updates and async subscribers."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.events.wait_idle()

    async def flush_batch_inserts(self) -> int:
        """Write buffered steps now and return how many were persisted."""
        try:
            return await self._bounded(self._buffer.flush())
        except asyncio.TimeoutError:
            logger.error("Timed out flushing buffered steps")
            return 0

    # ------------------------------------------------------------------
    # Read path
    @contained(lambda: None)
    async def get_workflow(self, ref: WorkflowRef) -> Optional[Workflow]:
        async with self.db.connect() as conn:
            row = (
                await conn.execute(
                    select(workflow_table).where(workflow_table.c.id == _resolve(ref))
                )
            ).mappings().first()
        return row_to_workflow(row) if row else None

    @contained(lambda: None)
    async def get_workflow_by_identifier(self, key: str, value: str) -> Optional[Workflow]:
        """Return the earliest started workflow carrying ``(key, value)``."""
        async with self.db.connect() as conn:
            row = (
                await conn.execute(
                    select(workflow_table)
                    .where(self.dialect.identifier_predicate(key, value))
                    .order_by(workflow_table.c.started_at.asc())
                    .limit(1)
                )
            ).mappings().first()
        return row_to_workflow(row) if row else None

    @contained(WorkflowPage)
    async def get_workflows(
        self, criteria: Optional[WorkflowFilter] = None, **options: Any
    ) -> WorkflowPage:
        """List workflows; pass a ``WorkflowFilter`` or its fields as keywords."""
        if criteria is None:
            criteria = WorkflowFilter(**options)
        elif options:
            criteria = WorkflowFilter(**{**criteria.model_dump(), **options})
        async with self.db.connect() as conn:
            return await fetch_workflow_page(conn, criteria, self.dialect)

    @contained(list)
    async def get_steps(self, ref: WorkflowRef) -> List[WorkflowStep]:
        """Persisted steps of one workflow in creation order.

        Buffered steps are not included; call :meth:`flush_batch_inserts`
        first when they are needed.
        """
        query = steps_query(step_table.c.workflow_id == _resolve(ref))
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).mappings().all()
        return [row_to_step(row) for row in rows]

    @contained(list)
    async def get_steps_by_identifier(self, key: str, value: str) -> List[WorkflowStep]:
        query = steps_query(
            self.dialect.identifier_predicate(key, value), join_workflow=True
        )
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).mappings().all()
        return [row_to_step(row) for row in rows]

    @contained(lambda: False)
    async def attach_identifier(
        self, existing_key: str, existing_value: str, new_identifier: IdentifierLike
    ) -> bool:
        """Add ``new_identifier`` to the workflow found by an existing one.

        Returns False when no workflow matches, the identifier is malformed
        or the workflow already carries it.
        """
        identifier = parse_identifier(new_identifier)
        if identifier is None:
            return False

        async with self.db.transaction() as conn:
            row = (
                await conn.execute(
                    select(workflow_table.c.id, workflow_table.c.identifiers)
                    .where(self.dialect.identifier_predicate(existing_key, existing_value))
                    .order_by(workflow_table.c.started_at.asc())
                    .limit(1)
                )
            ).mappings().first()
            if row is None:
                return False
            if contains_identifier(
                decode_identifiers(row["identifiers"]), identifier.key, identifier.value
            ):
                return False

            current = json.loads(row["identifiers"] or "[]")
            current.append(identifier.model_dump())
            await conn.execute(
                update(workflow_table)
                .where(workflow_table.c.id == row["id"])
                .values(identifiers=json.dumps(current))
            )
        return True

    # ------------------------------------------------------------------
    # Statistics
    @contained(WorkflowStats)
    async def get_workflow_stats(self) -> WorkflowStats:
        """Workflow counts and the average number of steps per workflow.

        Workflows without steps count as zero in the average.
        """
        step_counts = (
            select(
                step_table.c.workflow_id,
                func.count().label("step_count"),
            )
            .group_by(step_table.c.workflow_id)
            .subquery()
        )
        query = select(
            func.count().label("total"),
            func.sum(case((workflow_table.c.status == "completed", 1), else_=0)).label(
                "completed"
            ),
            func.sum(case((workflow_table.c.status == "pending", 1), else_=0)).label(
                "pending"
            ),
            func.avg(func.coalesce(step_counts.c.step_count, 0)).label("avg_steps"),
        ).select_from(
            workflow_table.outerjoin(
                step_counts, workflow_table.c.id == step_counts.c.workflow_id
            )
        )
        async with self.db.connect() as conn:
            row = (await conn.execute(query)).mappings().one()
        return WorkflowStats(
            total=int(row["total"] or 0),
            completed=int(row["completed"] or 0),
            pending=int(row["pending"] or 0),
            avg_steps=round(float(row["avg_steps"] or 0), 2),
        )

    @contained(list)
    async def get_most_frequent_steps(self, limit: int = 5) -> List[StepFrequency]:
        """Step names by occurrence, most frequent first, ties by name."""
        if limit <= 0:
            return []
        occurrences = func.count().label("occurrences")
        query = (
            select(step_table.c.step, occurrences)
            .group_by(step_table.c.step)
            .order_by(occurrences.desc(), step_table.c.step.asc())
            .limit(limit)
        )
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).mappings().all()
        return [StepFrequency(step=row["step"], count=row["occurrences"]) for row in rows]

    @contained(list)
    async def get_average_step_duration(self) -> List[StepDuration]:
        """Per workflow: step count and milliseconds from first to last step."""
        query = (
            select(
                step_table.c.workflow_id,
                func.min(step_table.c.created_at).label("first_at"),
                func.max(step_table.c.created_at).label("last_at"),
                func.count().label("step_count"),
            )
            .group_by(step_table.c.workflow_id)
            .order_by(step_table.c.workflow_id)
        )
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).mappings().all()
        durations = []
        for row in rows:
            span = from_db(row["last_at"]) - from_db(row["first_at"])
            durations.append(
                StepDuration(
                    workflow_id=row["workflow_id"],
                    step_count=row["step_count"],
                    total_duration=span.total_seconds() * 1000,
                )
            )
        return durations

    # ------------------------------------------------------------------
    # Deletion
    @contained(lambda: False)
    async def delete_workflow(self, ref: WorkflowRef) -> bool:
        """Delete a workflow and its steps; False when it does not exist."""
        workflow_id = _resolve(ref)
        async with self.db.transaction() as conn:
            found = (
                await conn.execute(
                    select(workflow_table.c.id).where(workflow_table.c.id == workflow_id)
                )
            ).first()
            if found is None:
                return False
            await conn.execute(
                delete(step_table).where(step_table.c.workflow_id == workflow_id)
            )
            await conn.execute(delete(workflow_table).where(workflow_table.c.id == workflow_id))
        return True

    @contained(lambda: False)
    async def delete_all_workflows(self) -> bool:
        async with self.db.transaction() as conn:
            await conn.execute(delete(step_table))
            await conn.execute(delete(workflow_table))
        return True

    # ------------------------------------------------------------------
    async def destroy(self) -> None:
        """Flush buffered steps, wait for background writes, close the engine.

        Calling it again is a no-op.
        """
        if self._destroyed:
            return
        self._destroyed = True
        try:
            await self._bounded(self._buffer.shutdown())
            await self._bounded(self.drain())
        except asyncio.TimeoutError:
            logger.error("Timed out waiting for pending writes during shutdown")
        finally:
            await self.db.dispose()
