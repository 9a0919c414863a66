"""Lifecycle events and per-tracker subscriber registries."""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field

from .models import Identifier

logger = logging.getLogger(__name__)


class WorkflowStarted(BaseModel):
    workflow_id: str
    name: str
    identifiers: list[Identifier] = Field(default_factory=list)
    started_at: datetime


class StepAdded(BaseModel):
    workflow_id: str
    step_id: str
    step: str
    data: Any = None
    created_at: datetime


class WorkflowCompleted(BaseModel):
    workflow_id: str
    completed_at: datetime


class WorkflowFailed(BaseModel):
    workflow_id: str
    failed_at: datetime
    reason: Optional[str] = None


EventT = TypeVar("EventT", bound=BaseModel)
Handler = Callable[[EventT], Union[None, Awaitable[None]]]

EVENT_TYPES: tuple[Type[BaseModel], ...] = (
    WorkflowStarted,
    StepAdded,
    WorkflowCompleted,
    WorkflowFailed,
)


class EventNotifier:
    """Ordered subscriber lists for the four workflow event classes.

    Handlers may be plain callables or coroutine functions. Dispatch is
    fire-and-forget: a handler that raises is logged and the remaining
    handlers still run. Coroutines are scheduled as tasks on the running loop
    and can be awaited with :meth:`wait_idle`.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[BaseModel], List[Handler]] = {
            event_type: [] for event_type in EVENT_TYPES
        }
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event_type: Type[EventT], handler: Handler[EventT]) -> None:
        if event_type not in self._handlers:
            raise ValueError(f"Unknown event type: {event_type.__name__}")
        self._handlers[event_type].append(handler)

    def handlers(self, event_type: Type[BaseModel]) -> list[Handler]:
        return list(self._handlers[event_type])

    def emit(self, event: BaseModel) -> None:
        """Invoke every handler registered for ``type(event)`` in order."""
        for handler in self.handlers(type(event)):
            try:
                result = handler(event)
            except Exception:
                logger.exception(
                    f"Subscriber {handler!r} failed for {type(event).__name__}"
                )
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Async subscriber failed: {exc}", exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait for scheduled coroutine handlers to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
